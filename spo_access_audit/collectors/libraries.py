"""
Library Walker
Enumerates document libraries, their unique role assignments, and every
item inside them. Files are handed to the SharingLinkInspector.

Failures are isolated per unit: a library that cannot be paged is skipped,
an item whose permissions cannot be read loses only that sub-step.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import AuditConfig
from ..errors import PermissionFetchError
from ..models import Item, ItemType, Library, Site
from .base import FAILED, UnitResult, assignment_record, item_path
from .sharing import SharingLinkInspector

logger = logging.getLogger("spo_access_audit.collectors.libraries")


class LibraryWalker:
    name = "libraries"
    description = "Library and item role assignments, sharing links on files"

    def __init__(
        self,
        config: AuditConfig,
        inspector: Optional[SharingLinkInspector] = None,
    ):
        self.config = config
        self.inspector = inspector or SharingLinkInspector()

    def walk(self, connection, site: Site) -> UnitResult:
        result = UnitResult(f"libraries {site.url}")
        try:
            libraries = connection.list_libraries()
        except PermissionFetchError as e:
            return UnitResult.failure(result.unit, str(e))

        visible = [lib for lib in libraries if not lib.hidden]
        logger.info(f"[{site.url}] {len(visible)} visible library(ies) to walk")

        for library in visible:
            result.merge(self._walk_library(connection, site, library))
        return result

    # ── Library ─────────────────────────────────────────────────────────────

    def _walk_library(self, connection, site: Site, library: Library) -> UnitResult:
        result = UnitResult(f"library '{library.title}'")
        include_inherited = self.config.include_inherited_permissions

        if library.has_unique_permissions or include_inherited:
            result.merge(self._library_assignments(connection, site, library))

        scanned = 0
        try:
            for page in connection.iter_item_pages(
                library, self.config.page_size, self.config.max_pages
            ):
                for item in page:
                    scanned += 1
                    for child in self._inspect_item(connection, site, library, item):
                        result.merge(child)
        except PermissionFetchError as e:
            # Records already discovered for this library are kept
            result.status = FAILED
            result.reason = str(e)
            return result

        logger.debug(
            f"[{site.url}] {library.title}: {scanned} item(s), "
            f"{len(result.records)} record(s)"
        )
        return result

    def _library_assignments(self, connection, site: Site, library: Library) -> UnitResult:
        unit = f"permissions of library '{library.title}'"
        try:
            assignments = connection.list_library_permissions(library)
        except PermissionFetchError as e:
            return UnitResult.failure(unit, str(e))

        inherited = not library.has_unique_permissions
        return UnitResult.success(unit, (
            assignment_record(site.url, ItemType.LIBRARY, library.title, a, inherited)
            for a in assignments
        ))

    # ── Item ────────────────────────────────────────────────────────────────

    def _inspect_item(self, connection, site: Site, library: Library,
                      item: Item) -> list[UnitResult]:
        results = []
        if item.has_unique_role_assignments or self.config.include_inherited_permissions:
            results.append(self._item_assignments(connection, site, library, item))
        if item.is_file:
            results.append(self.inspector.inspect(connection, site, library, item))
        return results

    def _item_assignments(self, connection, site: Site, library: Library,
                          item: Item) -> UnitResult:
        path = item_path(library, item)
        unit = f"permissions of '{path}'"
        try:
            assignments = connection.list_item_permissions(library, item)
        except PermissionFetchError as e:
            return UnitResult.failure(unit, str(e))

        inherited = not item.has_unique_role_assignments
        return UnitResult.success(unit, (
            assignment_record(site.url, item.item_type, path, a, inherited)
            for a in assignments
        ))
