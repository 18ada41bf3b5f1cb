"""
Result aggregation and external-only filtering.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from ..models import AuditRecord


class ResultAggregator:
    """Append-only, discovery-ordered collection of audit records."""

    def __init__(self):
        self._records: list[AuditRecord] = []

    def extend(self, records: Iterable[AuditRecord]) -> int:
        """Append records in order. Returns how many were added."""
        before = len(self._records)
        self._records.extend(records)
        return len(self._records) - before

    @property
    def records(self) -> tuple[AuditRecord, ...]:
        return tuple(self._records)

    @property
    def external_count(self) -> int:
        return sum(1 for r in self._records if is_externally_relevant(r))

    def __iter__(self) -> Iterator[AuditRecord]:
        return iter(tuple(self._records))

    def __len__(self) -> int:
        return len(self._records)


def is_externally_relevant(record: AuditRecord) -> bool:
    return record.is_external or record.has_external_links


def filter_records(records: Iterable[AuditRecord], external_only: bool) -> list[AuditRecord]:
    """
    Keep records that involve external identities or sharing links when
    ``external_only`` is set; otherwise return all records. Order is kept.
    """
    if not external_only:
        return list(records)
    return [r for r in records if is_externally_relevant(r)]
