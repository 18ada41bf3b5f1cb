"""
Safety Guardian — Enforces strict read-only operation.
Validates all HTTP methods, blocks write attempts, and logs safety events.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("spo_access_audit.safety")

# ─── Blocked HTTP Methods ────────────────────────────────────────────────────

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE", "MERGE"}

# Known read-only POST endpoints (SharePoint REST uses POST for some queries)
SAFE_POST_ENDPOINTS = [
    re.compile(r"/GetSharingInformation$", re.IGNORECASE),
    re.compile(r"/_api/contextinfo$", re.IGNORECASE),
    re.compile(r"/_api/search/postquery$", re.IGNORECASE),
    re.compile(r"/RenderListDataAsStream$", re.IGNORECASE),
]

# Explicitly blocked write-pattern URLs
BLOCKED_URL_PATTERNS = [
    re.compile(r"/breakroleinheritance", re.IGNORECASE),
    re.compile(r"/resetroleinheritance$", re.IGNORECASE),
    re.compile(r"/addroleassignment", re.IGNORECASE),
    re.compile(r"/removeroleassignment", re.IGNORECASE),
    re.compile(r"/ShareObject$", re.IGNORECASE),
    re.compile(r"/UnshareLink$", re.IGNORECASE),
    re.compile(r"/UpdateDocumentSharingInfo$", re.IGNORECASE),
    re.compile(r"/ShareLink$", re.IGNORECASE),
    re.compile(r"/recycle$", re.IGNORECASE),
    re.compile(r"/deleteobject$", re.IGNORECASE),
]


class SafetyViolation(Exception):
    """Raised when a write operation is attempted."""
    pass


class SafetyGuardian:
    """
    Validates every outbound HTTP request to ensure read-only operation.
    Maintains an audit log of all safety checks and violations.
    """

    def __init__(self):
        self.violations: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = datetime.now(timezone.utc).isoformat()

    def validate_request(self, method: str, url: str, body: Optional[dict] = None) -> bool:
        """
        Validate that a request is read-only.
        Returns True if safe, raises SafetyViolation if not.
        """
        self.checks_performed += 1
        method_upper = method.upper()
        path = url.split("?", 1)[0]

        # Explicitly blocked URL patterns apply to any method
        for pattern in BLOCKED_URL_PATTERNS:
            if pattern.search(path):
                self._record_violation(method_upper, url, "Blocked write-pattern URL")
                raise SafetyViolation(
                    f"SAFETY VIOLATION: Write-pattern URL detected: {method_upper} {url}"
                )

        if method_upper in ("GET", "HEAD", "OPTIONS"):
            return True

        # POST is allowed only for known safe endpoints
        if method_upper == "POST":
            for pattern in SAFE_POST_ENDPOINTS:
                if pattern.search(path):
                    return True

        if method_upper in WRITE_METHODS:
            self._record_violation(method_upper, url, "Write HTTP method blocked")
            raise SafetyViolation(
                f"SAFETY VIOLATION: Write method blocked: {method_upper} {url}"
            )

        return True

    def _record_violation(self, method: str, url: str, reason: str):
        self.violations.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "url": url,
            "reason": reason,
        })
        logger.critical(f"SAFETY VIOLATION: {reason}: {method} {url}")

    @property
    def clean(self) -> bool:
        return not self.violations

    def report(self) -> dict:
        """Safety section embedded in the JSON export metadata."""
        return {
            "mode": "READ-ONLY",
            "started_at": self.started_at,
            "requests_validated": self.checks_performed,
            "violations": list(self.violations),
            "status": "CLEAN" if self.clean else "VIOLATIONS_DETECTED",
        }

    @staticmethod
    def print_banner():
        """Print the read-only warning banner."""
        print("=" * 75)
        print("  READ-ONLY SHAREPOINT ACCESS AUDIT -- NO CHANGES WILL BE MADE")
        print("  * Permissions and sharing links are only read, never modified")
        print("  * Safety Guardian enforces read-only at the HTTP layer")
        print("=" * 75)
