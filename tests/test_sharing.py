"""
Tests for the sharing link inspector.
"""
import logging

from conftest import fetch_error, file_item, library

from spo_access_audit.collectors.base import FAILED, OK, UNAVAILABLE
from spo_access_audit.collectors.sharing import SharingLinkInspector
from spo_access_audit.errors import SharingInfoUnavailable
from spo_access_audit.models import ItemType, PrincipalType, SharingLink


def test_each_link_becomes_a_record(connection, site):
    lib = library()
    item = file_item(7, "/Plans/budget.xlsx")
    connection.sharing_links[(lib.id, 7)] = [
        SharingLink(kind="AnonymousView", url="https://contoso.sharepoint.com/:x:/g/a"),
        SharingLink(kind="AnonymousView", url="https://contoso.sharepoint.com/:x:/g/b"),
    ]

    result = SharingLinkInspector().inspect(connection, site, lib, item)

    assert result.status == OK
    assert len(result.records) == 2
    record = result.records[0]
    assert record.item_type is ItemType.SHARING_LINK
    assert record.item_path == "Documents/Plans/budget.xlsx"
    assert record.principal_type is PrincipalType.SHARING_LINK
    assert record.permission == "AnonymousView"
    assert record.link_type == "AnonymousView"
    assert record.user_name == "https://contoso.sharepoint.com/:x:/g/a"
    assert record.is_external is True
    assert record.has_external_links is True
    assert record.user_email is None


def test_unavailable_sharing_info_is_silent(connection, site, caplog):
    lib = library()
    connection.sharing_links[(lib.id, 1)] = SharingInfoUnavailable("not supported")

    with caplog.at_level(logging.DEBUG):
        result = SharingLinkInspector().inspect(connection, site, lib, file_item(1, "/a.txt"))

    assert result.status == UNAVAILABLE
    assert result.ok
    assert result.records == []
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_lookup_fault_is_a_failure(connection, site):
    lib = library()
    connection.sharing_links[(lib.id, 1)] = fetch_error("sharing links")

    result = SharingLinkInspector().inspect(connection, site, lib, file_item(1, "/a.txt"))

    assert result.status == FAILED
    assert result.records == []


def test_file_without_links_yields_nothing(connection, site):
    result = SharingLinkInspector().inspect(connection, site, library(), file_item(1, "/a.txt"))
    assert result.status == OK
    assert result.records == []
