"""
SharePoint directory/content service.

Translates SharePoint REST payloads into the audit's transient entities
(sites, libraries, items, role assignments, sharing links). Holds one tenant
client for search and at most one site connection at a time.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterator, Optional

import httpx

from ..classifier import has_guest_marker
from ..config import (
    AuditConfig,
    DOCUMENT_LIBRARY_BASE_TYPE,
    SEARCH_ROW_LIMIT,
    tenant_root,
)
from ..errors import PermissionFetchError, SharingInfoUnavailable, SiteConnectionError
from ..models import (
    GroupPrincipal,
    Item,
    ItemType,
    Library,
    PermissionAssignment,
    SharingLink,
    Site,
    SiteGroup,
    UserPrincipal,
)
from ..safety.guardian import SafetyGuardian
from .client import SharePointAPIError, SharePointClient, TokenProvider

logger = logging.getLogger("spo_access_audit.sharepoint.service")

FETCH_ERRORS = (SharePointAPIError, httpx.HTTPError)

# SP.Utilities.PrincipalType
PRINCIPAL_USER = 1
GROUP_KINDS = {
    2: "DistributionList",
    4: "SecurityGroup",
    8: "SharePointGroup",
}

# SP.Sharing.SharingLinkKind
LINK_KINDS = {
    0: "Uninitialized",
    1: "Direct",
    2: "OrganizationView",
    3: "OrganizationEdit",
    4: "AnonymousView",
    5: "AnonymousEdit",
    6: "Flexible",
}

ROLE_ASSIGNMENT_PARAMS = {"$expand": "Member,RoleDefinitionBindings"}
USER_SELECT = "Id,Title,Email,LoginName,PrincipalType"


class SharePointService:
    """
    Entry point to the tenant. Use as a context manager to hold the
    tenant-level connection; open site connections with connect().
    """

    def __init__(
        self,
        tenant_url: str,
        token_provider: TokenProvider,
        guardian: SafetyGuardian,
        config: Optional[AuditConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.tenant_url = tenant_root(tenant_url)
        self.token_provider = token_provider
        self.guardian = guardian
        self.config = config or AuditConfig()
        self._transport = transport
        self._sleep = sleep
        self._tenant: Optional[SharePointClient] = None
        self._active: Optional[SiteConnection] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args):
        self.close()

    def open(self):
        self._tenant = self._new_client(self.tenant_url)
        self._tenant.open()

    def close(self):
        self.disconnect()
        if self._tenant:
            self._tenant.close()
            self._tenant = None

    def _new_client(self, web_url: str) -> SharePointClient:
        return SharePointClient(
            web_url,
            self.token_provider,
            self.guardian,
            transport=self._transport,
            sleep=self._sleep,
        )

    # ── Sites ───────────────────────────────────────────────────────────────

    def list_sites(self) -> list[Site]:
        """
        Enumerate site collections through the search index.
        Raises SharePointAPIError / httpx.HTTPError on failure.
        """
        if not self._tenant:
            raise RuntimeError("SharePointService not open. Use 'with' context.")

        sites: list[Site] = []
        start = 0
        while True:
            data = self._tenant.get("search/query", params={
                "querytext": "'contentclass:STS_Site'",
                "selectproperties": "'Path,Title,WebTemplate'",
                "rowlimit": str(SEARCH_ROW_LIMIT),
                "startrow": str(start),
                "trimduplicates": "false",
            })
            relevant = (data.get("PrimaryQueryResult") or {}).get("RelevantResults") or {}
            rows = _results((relevant.get("Table") or {}).get("Rows", []))
            for row in rows:
                cells = {
                    c.get("Key"): c.get("Value")
                    for c in _results(row.get("Cells", []))
                }
                url = cells.get("Path")
                if not url:
                    continue
                sites.append(Site(
                    url=url.rstrip("/"),
                    template=cells.get("WebTemplate") or "",
                    title=cells.get("Title") or "",
                ))

            start += len(rows)
            total = int(relevant.get("TotalRows") or 0)
            if not rows or start >= total:
                break

        logger.debug(f"Search returned {len(sites)} site collections")
        return sites

    # ── Site connections ────────────────────────────────────────────────────

    def connect(self, site_url: str) -> "SiteConnection":
        """
        Open a connection to one site. Only one may be active at a time.
        Raises SiteConnectionError if the site cannot be reached.
        """
        if self._active is not None:
            raise RuntimeError(
                f"Site connection to {self._active.site_url} is still active"
            )

        client = self._new_client(site_url)
        client.open()
        try:
            client.get("web", params={"$select": "Title,Url"})
        except FETCH_ERRORS as e:
            client.close()
            raise SiteConnectionError(site_url, str(e)) from e
        except BaseException:
            client.close()
            raise

        self._active = SiteConnection(site_url, client, on_close=self._released)
        logger.debug(f"Connected to {site_url}")
        return self._active

    def disconnect(self):
        if self._active is not None:
            self._active.close()

    @property
    def active_connection(self) -> Optional["SiteConnection"]:
        return self._active

    def _released(self, connection: "SiteConnection"):
        if self._active is connection:
            self._active = None
            logger.debug(f"Disconnected from {connection.site_url}")


class SiteConnection:
    """
    Read operations scoped to a single site. Listing and permission failures
    surface as PermissionFetchError.
    """

    def __init__(
        self,
        site_url: str,
        client: SharePointClient,
        on_close: Optional[Callable[["SiteConnection"], None]] = None,
    ):
        self.site_url = site_url.rstrip("/")
        self.client = client
        self._on_close = on_close
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.client.close()
        if self._on_close:
            self._on_close(self)

    def _fetch(self, target: str, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except FETCH_ERRORS as e:
            raise PermissionFetchError(target, str(e)) from e

    # ── Groups and users ────────────────────────────────────────────────────

    def list_groups(self) -> list[SiteGroup]:
        groups = self._fetch("site groups", lambda: self.client.get_all_pages(
            "web/sitegroups", params={"$select": "Id,Title"},
        ))
        return [SiteGroup(id=int(g["Id"]), title=g.get("Title") or "") for g in groups]

    def list_group_members(self, group_id: int) -> list[UserPrincipal]:
        members = self._fetch(f"members of group {group_id}", lambda: self.client.get_all_pages(
            f"web/sitegroups/GetById({group_id})/users", params={"$select": USER_SELECT},
        ))
        return [user_principal(m) for m in members]

    def list_users(self) -> list[UserPrincipal]:
        users = self._fetch("site users", lambda: self.client.get_all_pages(
            "web/siteusers",
            params={"$select": USER_SELECT, "$filter": f"PrincipalType eq {PRINCIPAL_USER}"},
        ))
        return [user_principal(u) for u in users]

    # ── Libraries and items ─────────────────────────────────────────────────

    def list_libraries(self) -> list[Library]:
        lists = self._fetch("libraries", lambda: self.client.get_all_pages(
            "web/lists",
            params={
                "$select": "Id,Title,Hidden,HasUniqueRoleAssignments,BaseType,"
                           "RootFolder/ServerRelativeUrl",
                "$expand": "RootFolder",
                "$filter": f"BaseType eq {DOCUMENT_LIBRARY_BASE_TYPE}",
            },
        ))
        return [
            Library(
                id=lst["Id"],
                title=lst.get("Title") or "",
                hidden=bool(lst.get("Hidden")),
                has_unique_permissions=bool(lst.get("HasUniqueRoleAssignments")),
                root_folder=(lst.get("RootFolder") or {}).get("ServerRelativeUrl") or "",
            )
            for lst in lists
        ]

    def list_library_permissions(self, library: Library) -> list[PermissionAssignment]:
        assignments = self._fetch(f"permissions of library '{library.title}'", lambda: (
            self.client.get_all_pages(
                f"web/lists(guid'{library.id}')/roleassignments",
                params=dict(ROLE_ASSIGNMENT_PARAMS),
            )
        ))
        return [permission_assignment(ra) for ra in assignments]

    def iter_item_pages(
        self, library: Library, page_size: int, max_pages: Optional[int] = None,
    ) -> Iterator[list[Item]]:
        """Yield the library's items one page at a time."""
        kwargs = {"max_pages": max_pages} if max_pages else {}
        pages = self.client.iter_pages(
            f"web/lists(guid'{library.id}')/items",
            params={
                "$select": "Id,FileRef,FileLeafRef,FSObjType,HasUniqueRoleAssignments",
                "$top": str(page_size),
            },
            **kwargs,
        )
        while True:
            try:
                page = next(pages)
            except StopIteration:
                return
            except FETCH_ERRORS as e:
                raise PermissionFetchError(f"items of library '{library.title}'", str(e)) from e
            yield [list_item(raw, library) for raw in page]

    def list_item_permissions(self, library: Library, item: Item) -> list[PermissionAssignment]:
        assignments = self._fetch(f"permissions of '{item.path}'", lambda: (
            self.client.get_all_pages(
                f"web/lists(guid'{library.id}')/items({item.id})/roleassignments",
                params=dict(ROLE_ASSIGNMENT_PARAMS),
            )
        ))
        return [permission_assignment(ra) for ra in assignments]

    # ── Sharing links ───────────────────────────────────────────────────────

    def get_sharing_links(self, library: Library, item: Item) -> list[SharingLink]:
        """
        Return the sharing links defined on an item.
        Raises SharingInfoUnavailable when the item does not support sharing info.
        """
        try:
            data = self.client.post(
                f"web/lists(guid'{library.id}')/items({item.id})/GetSharingInformation",
                json_body={"request": {"maxPrincipalsToReturn": 0, "maxLinkMembersToReturn": 0}},
                params={"$expand": "permissionsInformation"},
            )
        except SharePointAPIError as e:
            if _sharing_not_supported(e):
                raise SharingInfoUnavailable(str(e)) from e
            raise PermissionFetchError(f"sharing links of '{item.path}'", str(e)) from e
        except httpx.HTTPError as e:
            raise PermissionFetchError(f"sharing links of '{item.path}'", str(e)) from e

        info = data.get("permissionsInformation") or {}
        links = []
        for link in _results(info.get("links", [])):
            details = link.get("linkDetails") or {}
            kind = link_kind_name(details.get("LinkKind"))
            url = details.get("Url") or ""
            if kind == "Uninitialized" or not url:
                continue
            links.append(SharingLink(kind=kind, url=url))
        return links


# ─── Payload mapping ────────────────────────────────────────────────────────

def _results(value: Any) -> list:
    """Unwrap verbose-mode ``{"results": [...]}`` collections."""
    if isinstance(value, dict):
        return value.get("results", [])
    return value or []


def _sharing_not_supported(error: SharePointAPIError) -> bool:
    if error.status_code == 404:
        return True
    message = error.message.lower()
    return error.status_code == 400 and "not supported" in message


def claims_identity(login_name: str) -> str:
    """``i:0#.f|membership|jane@contoso.com`` -> ``jane@contoso.com``."""
    return (login_name or "").rsplit("|", 1)[-1]


def principal_email(member: dict) -> Optional[str]:
    """
    Pick the identity to record as a user's email. Guests keep their guest
    UPN so the marker survives; others use the Email property.
    """
    identity = claims_identity(member.get("LoginName", ""))
    if has_guest_marker(identity):
        return identity
    email = member.get("Email")
    if email:
        return email
    if "@" in identity:
        return identity
    return None


def user_principal(member: dict) -> UserPrincipal:
    return UserPrincipal(
        name=member.get("Title") or "",
        email=principal_email(member),
        login_name=member.get("LoginName") or "",
    )


def permission_assignment(ra: dict) -> PermissionAssignment:
    member = ra.get("Member") or {}
    roles = tuple(
        b.get("Name") or "" for b in _results(ra.get("RoleDefinitionBindings", []))
    )
    principal_type = member.get("PrincipalType")
    if principal_type == PRINCIPAL_USER:
        principal = user_principal(member)
    else:
        principal = GroupPrincipal(
            name=member.get("Title") or "",
            login_name=member.get("LoginName") or "",
            kind=GROUP_KINDS.get(principal_type, "SharePointGroup"),
        )
    return PermissionAssignment(principal=principal, roles=roles)


def list_item(raw: dict, library: Library) -> Item:
    file_ref = raw.get("FileRef") or ""
    root = library.root_folder.rstrip("/")
    if root and file_ref.startswith(root + "/"):
        path = file_ref[len(root):]
    else:
        path = "/" + (raw.get("FileLeafRef") or file_ref.rsplit("/", 1)[-1])
    return Item(
        id=int(raw["Id"]),
        path=path,
        item_type=ItemType.FOLDER if int(raw.get("FSObjType") or 0) == 1 else ItemType.FILE,
        has_unique_role_assignments=bool(raw.get("HasUniqueRoleAssignments")),
        server_relative_url=file_ref,
    )


def link_kind_name(kind: Any) -> str:
    if isinstance(kind, str) and not kind.isdigit():
        return kind
    try:
        return LINK_KINDS.get(int(kind), "Uninitialized")
    except (TypeError, ValueError):
        return "Uninitialized"
