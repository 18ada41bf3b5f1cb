"""
Tests for the audit driver: ordering, connection lifecycle, failure isolation
and export behaviour.
"""
import logging

import pytest

from conftest import (
    GUEST_EMAIL,
    FakeConnection,
    FakeService,
    fetch_error,
    file_item,
    folder_item,
    group_assignment,
    library,
    user,
)

from spo_access_audit.collectors import PermissionCollector
from spo_access_audit.collectors.base import UnitResult
from spo_access_audit.config import AuditConfig
from spo_access_audit.engine import AuditDriver, DriverState
from spo_access_audit.errors import EnumerationError, ExportError, SiteConnectionError
from spo_access_audit.models import ItemType, PrincipalType, SharingLink, Site, SiteGroup
from spo_access_audit.safety import SafetyViolation

HR = "https://contoso.sharepoint.com/sites/hr"
FINANCE = "https://contoso.sharepoint.com/sites/finance"


class CapturingExporter:
    def __init__(self, error=None):
        self.calls = []
        self.summaries = []
        self.error = error

    def __call__(self, records, summary):
        self.calls.append(list(records))
        self.summaries.append(summary.to_dict())
        if self.error:
            raise self.error
        return []


def populated(url):
    connection = FakeConnection(url)
    connection.groups = [SiteGroup(id=1, title="Owners")]
    connection.members = {1: [user("Alice", "alice@contoso.com")]}
    lib = library(unique=True)
    connection.libraries = [lib]
    connection.library_permissions[lib.id] = [group_assignment("Editors")]
    return connection


def driver_for(service, config=None, **kwargs):
    exporter = kwargs.pop("exporter", CapturingExporter())
    return AuditDriver(service, config or AuditConfig(), exporter=exporter, **kwargs), exporter


def test_empty_tenant_fails_enumeration_without_export():
    service = FakeService()
    driver, exporter = driver_for(service)

    with pytest.raises(EnumerationError):
        driver.run()

    assert driver.state is DriverState.ENUMERATION_FAILED
    assert exporter.calls == []
    assert not any(isinstance(e, tuple) for e in service.events)
    assert service.events[-1] == "close"


def test_records_follow_site_then_library_order():
    service = FakeService(
        sites=[Site(HR), Site(FINANCE)],
        connections={HR: populated(HR), FINANCE: populated(FINANCE)},
    )
    driver, exporter = driver_for(service)

    summary = driver.run()

    (records,) = exporter.calls
    assert [(r.site_url, r.item_type) for r in records] == [
        (HR, ItemType.SITE),
        (HR, ItemType.LIBRARY),
        (FINANCE, ItemType.SITE),
        (FINANCE, ItemType.LIBRARY),
    ]
    assert summary.sites_processed == 2
    assert summary.total_records == 4
    assert summary.state is DriverState.DONE


def test_connections_never_overlap():
    service = FakeService(sites=[Site(HR), Site(FINANCE)])
    driver, _ = driver_for(service)

    driver.run()

    lifecycle = [e for e in service.events if isinstance(e, tuple)]
    assert lifecycle == [
        ("connect", HR), ("disconnect", HR),
        ("connect", FINANCE), ("disconnect", FINANCE),
    ]


def test_state_history_for_one_site():
    service = FakeService(sites=[Site(HR)])
    driver, _ = driver_for(service)

    driver.run()

    assert driver.history == [
        DriverState.INIT,
        DriverState.TENANT_CONNECTED,
        DriverState.ENUMERATED,
        DriverState.SITE_CONNECTED,
        DriverState.COLLECTED,
        DriverState.WALKED,
        DriverState.SITE_DISCONNECTED,
        DriverState.FILTERED,
        DriverState.EXPORTED,
        DriverState.DONE,
    ]


def test_unreachable_site_does_not_stop_the_run(caplog):
    service = FakeService(
        sites=[Site(HR), Site(FINANCE)],
        connections={HR: SiteConnectionError(HR, "403 Forbidden"), FINANCE: populated(FINANCE)},
    )
    driver, exporter = driver_for(service)

    with caplog.at_level(logging.INFO):
        summary = driver.run()

    assert summary.failed_sites == [HR]
    assert summary.sites_processed == 1
    assert {r.site_url for r in exporter.calls[0]} == {FINANCE}
    assert ("disconnect", HR) not in service.events
    assert any(HR in r.getMessage() and r.levelno == logging.ERROR for r in caplog.records)


def test_collector_failure_skips_walk_but_disconnects():
    broken = populated(HR)
    broken.groups = fetch_error("site groups")
    service = FakeService(
        sites=[Site(HR), Site(FINANCE)],
        connections={HR: broken, FINANCE: populated(FINANCE)},
    )
    driver, exporter = driver_for(service)

    summary = driver.run()

    assert "list_libraries" not in broken.calls
    assert ("disconnect", HR) in service.events
    assert summary.failed_sites == [HR]
    assert {r.site_url for r in exporter.calls[0]} == {FINANCE}


def test_unexpected_error_is_isolated_to_its_site():
    class ExplodingCollector(PermissionCollector):
        def collect(self, connection, site):
            if site.url == HR:
                raise KeyError("Title")
            return super().collect(connection, site)

    service = FakeService(
        sites=[Site(HR), Site(FINANCE)],
        connections={HR: populated(HR), FINANCE: populated(FINANCE)},
    )
    driver, exporter = driver_for(service, collector=ExplodingCollector())

    summary = driver.run()

    assert summary.failed_sites == [HR]
    assert ("disconnect", HR) in service.events
    assert len(exporter.calls[0]) == 2


def test_external_links_only_skips_site_collection_and_filters():
    connection = FakeConnection(HR)
    connection.groups = [SiteGroup(id=1, title="Visitors")]
    connection.members = {1: [user("Jane", GUEST_EMAIL)]}
    lib = library()
    connection.libraries = [lib]
    connection.items[lib.id] = [[
        folder_item(1, "/internal", unique=True),
        file_item(2, "/shared.docx"),
    ]]
    connection.item_permissions[(lib.id, 1)] = [group_assignment("Staff")]
    connection.sharing_links[(lib.id, 2)] = [SharingLink("AnonymousEdit", "https://x/y")]

    service = FakeService(sites=[Site(HR)], connections={HR: connection})
    driver, exporter = driver_for(service, AuditConfig(external_links_only=True))

    summary = driver.run()

    assert "list_groups" not in connection.calls
    (records,) = exporter.calls
    assert [r.principal_type for r in records] == [PrincipalType.SHARING_LINK]
    assert summary.total_records == 2
    assert summary.exported_records == 1


def test_exporter_sees_run_totals_not_filtered_count():
    connection = FakeConnection(HR)
    lib = library()
    connection.libraries = [lib]
    connection.items[lib.id] = [[
        folder_item(1, "/internal", unique=True),
        file_item(2, "/shared.docx"),
    ]]
    connection.item_permissions[(lib.id, 1)] = [group_assignment("Staff")]
    connection.sharing_links[(lib.id, 2)] = [SharingLink("AnonymousView", "https://x/z")]
    service = FakeService(sites=[Site(HR)], connections={HR: connection})
    driver, exporter = driver_for(service, AuditConfig(external_links_only=True))

    driver.run()

    (totals,) = exporter.summaries
    assert totals["total_records"] == 2
    assert totals["external_records"] == 1
    assert totals["exported_records"] == 1
    assert totals["sites_processed"] == 1


def test_partial_unit_failures_keep_site_processed(caplog):
    connection = populated(HR)
    lib = connection.libraries[0]
    connection.items[lib.id] = [[folder_item(1, "/locked", unique=True)]]
    connection.item_permissions[(lib.id, 1)] = fetch_error("permissions of 'Documents/locked'")
    service = FakeService(sites=[Site(HR)], connections={HR: connection})
    driver, _ = driver_for(service)

    with caplog.at_level(logging.INFO):
        summary = driver.run()

    assert summary.failed_sites == []
    assert summary.sites_processed == 1
    assert len([r for r in caplog.records if r.levelno == logging.WARNING]) == 1


def test_export_failure_is_critical():
    service = FakeService(sites=[Site(HR)])
    exporter = CapturingExporter(error=ExportError("disk full"))
    driver, _ = driver_for(service, exporter=exporter)

    with pytest.raises(ExportError):
        driver.run()

    assert driver.state is DriverState.CRITICAL_FAILURE


def test_safety_violation_aborts_the_run():
    class UnsafeWalker:
        def walk(self, connection, site):
            raise SafetyViolation("POST blocked")

    service = FakeService(sites=[Site(HR), Site(FINANCE)])
    driver, exporter = driver_for(service, walker=UnsafeWalker())

    with pytest.raises(SafetyViolation):
        driver.run()

    assert driver.state is DriverState.CRITICAL_FAILURE
    assert ("connect", FINANCE) not in service.events
    assert ("disconnect", HR) in service.events
    assert exporter.calls == []


def test_collector_result_with_partial_records_is_aggregated():
    class PartialCollector:
        def collect(self, connection, site):
            return UnitResult.failure(f"site permissions {site.url}", "users unavailable")

    service = FakeService(sites=[Site(HR)])
    driver, _ = driver_for(service, collector=PartialCollector())

    summary = driver.run()

    assert summary.failed_sites == [HR]
    assert summary.sites_processed == 0
