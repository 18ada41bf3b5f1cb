"""
Audit data models — the normalized output record and the transient
SharePoint entities fetched while walking the tenant.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .classifier import SECURITY_GROUP, has_guest_marker, is_external


class ItemType(str, Enum):
    SITE = "Site"
    LIBRARY = "Library"
    FILE = "File"
    FOLDER = "Folder"
    SHARING_LINK = "SharingLink"


class PrincipalType(str, Enum):
    USER = "User"
    GROUP = "Group"
    SHARING_LINK = "SharingLink"


# Export column names, in output order
AUDIT_FIELDS = [
    "siteUrl", "itemType", "itemPath", "principalType", "principalName",
    "userName", "userEmail", "permission", "isExternal", "hasExternalLinks",
    "linkType", "inherited",
]


# ─── Traversal entities ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Site:
    url: str
    template: str = ""
    title: str = ""


@dataclass(frozen=True)
class Library:
    id: str
    title: str
    hidden: bool = False
    has_unique_permissions: bool = False
    root_folder: str = ""   # Server-relative URL of the library root


@dataclass(frozen=True)
class Item:
    id: int
    path: str                      # Relative to the library root, leading "/"
    item_type: ItemType
    has_unique_role_assignments: bool = False
    server_relative_url: str = ""

    @property
    def is_file(self) -> bool:
        return self.item_type is ItemType.FILE


@dataclass(frozen=True)
class SiteGroup:
    id: int
    title: str


@dataclass(frozen=True)
class SharingLink:
    kind: str
    url: str = ""


# ─── Principals (tagged variant) ────────────────────────────────────────────

@dataclass(frozen=True)
class UserPrincipal:
    name: str
    email: Optional[str] = None
    login_name: str = ""

    principal_type = PrincipalType.USER


@dataclass(frozen=True)
class GroupPrincipal:
    name: str
    login_name: str = ""
    kind: str = "SharePointGroup"   # SharePointGroup, SecurityGroup, DistributionList

    principal_type = PrincipalType.GROUP


Principal = Union[UserPrincipal, GroupPrincipal]


@dataclass(frozen=True)
class PermissionAssignment:
    """One role assignment: a principal bound to one or more role definitions."""
    principal: Principal
    roles: tuple[str, ...] = ()

    @property
    def permission(self) -> str:
        return ", ".join(self.roles)


# ─── Output record ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AuditRecord:
    """
    A single normalized access finding.

    ``is_external`` and ``has_external_links`` are derived from the principal
    and cannot be passed in. ``principal_kind`` carries a group's directory
    kind so classification can see it; it is not an export column.
    """
    site_url: str
    item_type: ItemType
    item_path: str
    principal_type: PrincipalType
    principal_name: str
    user_name: str
    permission: str
    user_email: Optional[str] = None
    link_type: Optional[str] = None
    inherited: bool = False
    principal_kind: Optional[str] = field(default=None, compare=False)
    is_external: bool = field(init=False)
    has_external_links: bool = field(init=False)

    def __post_init__(self):
        object.__setattr__(
            self, "is_external", is_external(
                self.user_email, self.principal_kind or self.principal_type
            )
        )
        object.__setattr__(
            self, "has_external_links",
            self.principal_type is PrincipalType.SHARING_LINK,
        )

    def to_dict(self) -> dict:
        return {
            "siteUrl": self.site_url,
            "itemType": self.item_type.value,
            "itemPath": self.item_path,
            "principalType": self.principal_type.value,
            "principalName": self.principal_name,
            "userName": self.user_name,
            "userEmail": self.user_email or "",
            "permission": self.permission,
            "isExternal": self.is_external,
            "hasExternalLinks": self.has_external_links,
            "linkType": self.link_type or "",
            "inherited": self.inherited,
        }

    @classmethod
    def from_dict(cls, row: dict) -> "AuditRecord":
        """Rebuild a record from an exported row (string or native values)."""
        return cls(
            site_url=row["siteUrl"],
            item_type=ItemType(row["itemType"]),
            item_path=row["itemPath"],
            principal_type=PrincipalType(row["principalType"]),
            principal_name=row["principalName"],
            user_name=row["userName"],
            permission=row["permission"],
            user_email=row.get("userEmail") or None,
            link_type=row.get("linkType") or None,
            inherited=_as_bool(row.get("inherited", False)),
            principal_kind=_exported_kind(row),
        )


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _exported_kind(row: dict) -> Optional[str]:
    """
    The export has no kind column. A group row flagged external without a
    guest marker can only come from an external group kind.
    """
    if (
        row.get("principalType") == PrincipalType.GROUP.value
        and _as_bool(row.get("isExternal", False))
        and not has_guest_marker(row.get("userEmail"))
    ):
        return SECURITY_GROUP
    return None
