"""
External identity classification.

Guest accounts invited through Entra B2B carry ``#ext#`` in their user
principal name; legacy SharePoint guests carry ``urn:spo:guest``.
"""

from __future__ import annotations

from typing import Optional

GUEST_MARKERS = ("#ext#", "urn:spo:guest")

SECURITY_GROUP = "SecurityGroup"

# Principal kinds that reach beyond named site members by construction:
# anonymous or organization links, and directory security groups such as
# "Everyone" that can include guests
EXTERNAL_PRINCIPAL_TYPES = frozenset({"SharingLink", SECURITY_GROUP})


def has_guest_marker(value: Optional[str]) -> bool:
    """True if the identity string carries a guest marker."""
    if not value:
        return False
    lowered = value.lower()
    return any(marker in lowered for marker in GUEST_MARKERS)


def is_external(email: Optional[str], principal_type: str) -> bool:
    """
    Classify a principal as external.

    ``principal_type`` is the most specific kind known for the principal:
    a group record passes its directory kind (``SecurityGroup``,
    ``SharePointGroup``, ...), other records their ``PrincipalType``.
    Pure and deterministic.
    """
    kind = getattr(principal_type, "value", principal_type)
    return has_guest_marker(email) or kind in EXTERNAL_PRINCIPAL_TYPES
