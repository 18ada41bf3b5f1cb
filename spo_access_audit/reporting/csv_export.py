"""
CSV exporter — One row per audit record, header row of record field names.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Sequence

from ..errors import ExportError
from ..models import AUDIT_FIELDS, AuditRecord

logger = logging.getLogger("spo_access_audit.reporting")


def export_csv(records: Sequence[AuditRecord], path: Path) -> Path:
    """
    Write records to a UTF-8 CSV file. An empty sequence produces a
    header-only file and a warning.

    Returns:
        Path to the created CSV file.
    """
    path = Path(path)
    if not records:
        logger.warning("No records to export; writing header only.")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8-sig") as fh:
            writer = csv.DictWriter(fh, fieldnames=AUDIT_FIELDS)
            writer.writeheader()
            for record in records:
                writer.writerow(record.to_dict())
    except OSError as e:
        raise ExportError(f"Failed to write {path}: {e}") from e

    logger.info(f"Exported {len(records)} record(s) to {path}")
    return path


def read_records_csv(path: Path) -> list[AuditRecord]:
    """Parse an exported CSV back into records, in file order."""
    with open(path, "r", newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        if reader.fieldnames != AUDIT_FIELDS:
            raise ExportError(f"Unexpected columns in {path}: {reader.fieldnames}")
        return [AuditRecord.from_dict(row) for row in reader]
