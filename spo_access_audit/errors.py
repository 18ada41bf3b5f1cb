"""
Audit error taxonomy.

Site- and unit-scoped errors are caught where the traversal decides to skip
and continue; enumeration and export errors abort the run.
"""

from __future__ import annotations


class AuditError(Exception):
    """Base class for audit failures."""
    pass


class SiteConnectionError(AuditError):
    """Raised when a site connection cannot be established."""

    def __init__(self, site_url: str, reason: str):
        self.site_url = site_url
        self.reason = reason
        super().__init__(f"Cannot connect to {site_url}: {reason}")


class EnumerationError(AuditError):
    """Raised when tenant-level site enumeration yields nothing to audit."""
    pass


class PermissionFetchError(AuditError):
    """Raised when a listing or permission lookup fails for one unit."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Failed to fetch {target}: {reason}")


class SharingInfoUnavailable(AuditError):
    """Sharing information is not supported for this item. Not a fault."""
    pass


class ExportError(AuditError):
    """Raised when the output file cannot be written."""
    pass
