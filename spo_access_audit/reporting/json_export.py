"""
JSON exporter — Produces the full audit output with run metadata.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from .. import __version__
from ..errors import ExportError
from ..models import AuditRecord


def export_json(
    records: Sequence[AuditRecord],
    path: Path,
    tenant_url: str = "",
    summary: Optional[dict] = None,
    safety: Optional[dict] = None,
) -> Path:
    """
    Write audit records and run metadata to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    path = Path(path)
    payload = {
        "metadata": {
            "engine": "SharePoint Online Access Audit",
            "version": __version__,
            "tenant_url": tenant_url,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "mode": "READ-ONLY",
        },
        "safety": safety or {},
        "summary": summary or {
            "total_records": len(records),
            "external_records": sum(
                1 for r in records if r.is_external or r.has_external_links
            ),
        },
        "records": [r.to_dict() for r in records],
    }

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)
    except OSError as e:
        raise ExportError(f"Failed to write {path}: {e}") from e

    return path
