"""
Per-unit results and record builders shared by all collectors.

Every traversal step (site, library, item, sharing lookup) returns a
UnitResult instead of raising, so the caller decides whether to log and
continue or to abort.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..models import (
    AuditRecord,
    GroupPrincipal,
    Item,
    ItemType,
    Library,
    PermissionAssignment,
    PrincipalType,
    SharingLink,
)

logger = logging.getLogger("spo_access_audit.collectors")

OK = "ok"
FAILED = "failed"
UNAVAILABLE = "unavailable"


class UnitResult:
    """Outcome of one traversal unit: records plus success/failure status."""

    def __init__(self, unit: str, status: str = OK, reason: str = ""):
        self.unit = unit
        self.status = status
        self.reason = reason
        self.records: list[AuditRecord] = []
        self.warnings: list[str] = []

    @classmethod
    def success(cls, unit: str, records: Iterable[AuditRecord] = ()) -> "UnitResult":
        result = cls(unit)
        result.records.extend(records)
        return result

    @classmethod
    def failure(cls, unit: str, reason: str,
                records: Iterable[AuditRecord] = ()) -> "UnitResult":
        result = cls(unit, FAILED, reason)
        result.records.extend(records)
        return result

    @classmethod
    def unavailable(cls, unit: str, reason: str = "") -> "UnitResult":
        return cls(unit, UNAVAILABLE, reason)

    @property
    def ok(self) -> bool:
        return self.status != FAILED

    def add_warning(self, warning: str):
        self.warnings.append(warning)
        logger.warning(f"[{self.unit}] {warning}")

    def merge(self, child: "UnitResult") -> "UnitResult":
        """
        Take a child's records. A failed child is logged as one warning
        here and does not fail the parent.
        """
        self.records.extend(child.records)
        self.warnings.extend(child.warnings)
        if child.status == FAILED:
            self.add_warning(f"Skipped {child.unit}: {child.reason}")
        return self

    def __repr__(self):
        return (f"UnitResult({self.unit!r}, status={self.status!r}, "
                f"records={len(self.records)})")


# ─── Record builders ────────────────────────────────────────────────────────

def assignment_record(
    site_url: str,
    item_type: ItemType,
    item_path: str,
    assignment: PermissionAssignment,
    inherited: bool = False,
) -> AuditRecord:
    """Normalize one role assignment into an AuditRecord."""
    principal = assignment.principal
    kind: Optional[str] = None
    if isinstance(principal, GroupPrincipal):
        email: Optional[str] = None
        kind = principal.kind
    else:
        email = principal.email
    return AuditRecord(
        site_url=site_url,
        item_type=item_type,
        item_path=item_path,
        principal_type=principal.principal_type,
        principal_name=principal.name,
        user_name=principal.name,
        user_email=email,
        permission=assignment.permission,
        inherited=inherited,
        principal_kind=kind,
    )


def sharing_link_record(site_url: str, item_path: str, link: SharingLink) -> AuditRecord:
    return AuditRecord(
        site_url=site_url,
        item_type=ItemType.SHARING_LINK,
        item_path=item_path,
        principal_type=PrincipalType.SHARING_LINK,
        principal_name=link.kind,
        user_name=link.url,
        permission=link.kind,
        link_type=link.kind,
    )


def item_path(library: Library, item: Item) -> str:
    return f"{library.title}{item.path}"
