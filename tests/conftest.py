"""
Shared fixtures: in-memory stand-ins for the SharePoint content service.
"""
import pytest

from spo_access_audit.config import AuditConfig
from spo_access_audit.errors import PermissionFetchError
from spo_access_audit.models import (
    GroupPrincipal,
    Item,
    ItemType,
    Library,
    PermissionAssignment,
    Site,
    UserPrincipal,
)


SITE_URL = "https://contoso.sharepoint.com/sites/hr"
GUEST_EMAIL = "jane_fabrikam.com#ext#@contoso.onmicrosoft.com"


# =============================================================================
# Fakes
# =============================================================================

def _answer(value):
    if isinstance(value, Exception):
        raise value
    return value


class FakeConnection:
    """Site connection whose answers are plain attributes. Exceptions are raised."""

    def __init__(self, site_url=SITE_URL):
        self.site_url = site_url
        self.groups = []
        self.members = {}            # group id -> [UserPrincipal] | Exception
        self.users = []
        self.libraries = []
        self.library_permissions = {}  # library id -> [PermissionAssignment] | Exception
        self.items = {}              # library id -> [page, ...]; a page may be an Exception
        self.item_permissions = {}   # (library id, item id) -> [...] | Exception
        self.sharing_links = {}      # (library id, item id) -> [SharingLink] | Exception
        self.calls = []
        self.page_sizes = []
        self.closed = False
        self.on_close = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        self.closed = True
        if self.on_close:
            self.on_close()

    def list_groups(self):
        self.calls.append("list_groups")
        return _answer(self.groups)

    def list_group_members(self, group_id):
        self.calls.append(("list_group_members", group_id))
        return _answer(self.members.get(group_id, []))

    def list_users(self):
        self.calls.append("list_users")
        return _answer(self.users)

    def list_libraries(self):
        self.calls.append("list_libraries")
        return _answer(self.libraries)

    def list_library_permissions(self, library):
        self.calls.append(("list_library_permissions", library.id))
        return _answer(self.library_permissions.get(library.id, []))

    def iter_item_pages(self, library, page_size, max_pages=None):
        self.calls.append(("iter_item_pages", library.id))
        self.page_sizes.append(page_size)
        for page in _answer(self.items.get(library.id, [])):
            yield _answer(page)

    def list_item_permissions(self, library, item):
        self.calls.append(("list_item_permissions", library.id, item.id))
        return _answer(self.item_permissions.get((library.id, item.id), []))

    def get_sharing_links(self, library, item):
        self.calls.append(("get_sharing_links", library.id, item.id))
        return _answer(self.sharing_links.get((library.id, item.id), []))


class FakeService:
    """Tenant-level service handing out FakeConnections and recording lifecycle events."""

    def __init__(self, sites=None, connections=None, list_error=None):
        self.sites = sites or []
        self.connections = connections or {}
        self.list_error = list_error
        self.events = []

    def __enter__(self):
        self.events.append("open")
        return self

    def __exit__(self, *args):
        self.events.append("close")

    def list_sites(self):
        self.events.append("list_sites")
        if self.list_error:
            raise self.list_error
        return list(self.sites)

    def connect(self, url):
        self.events.append(("connect", url))
        connection = self.connections.get(url)
        if connection is None:
            connection = FakeConnection(url)
            self.connections[url] = connection
        if isinstance(connection, Exception):
            raise connection
        connection.on_close = lambda: self.events.append(("disconnect", url))
        return connection


# =============================================================================
# Helper Functions
# =============================================================================

def user(name, email=None):
    return UserPrincipal(name=name, email=email, login_name=f"i:0#.f|membership|{email or name}")


def user_assignment(name, email, *roles):
    return PermissionAssignment(principal=user(name, email), roles=tuple(roles) or ("Read",))


def group_assignment(name, *roles):
    return PermissionAssignment(
        principal=GroupPrincipal(name=name, login_name=name),
        roles=tuple(roles) or ("Edit",),
    )


def library(title="Documents", library_id=None, hidden=False, unique=False):
    return Library(
        id=library_id or f"{title.lower()}-id",
        title=title,
        hidden=hidden,
        has_unique_permissions=unique,
        root_folder=f"/sites/hr/{title}",
    )


def file_item(item_id, path, unique=False):
    return Item(id=item_id, path=path, item_type=ItemType.FILE,
                has_unique_role_assignments=unique)


def folder_item(item_id, path, unique=False):
    return Item(id=item_id, path=path, item_type=ItemType.FOLDER,
                has_unique_role_assignments=unique)


def fetch_error(target="thing"):
    return PermissionFetchError(target, "403 Forbidden")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def site():
    return Site(url=SITE_URL, template="STS#3", title="HR")


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture
def audit_config():
    return AuditConfig()
