"""
Sharing Link Inspector
Reports ad-hoc sharing links on a single file.
"""

from __future__ import annotations

import logging

from ..errors import PermissionFetchError, SharingInfoUnavailable
from ..models import Item, Library, Site
from .base import UnitResult, item_path, sharing_link_record

logger = logging.getLogger("spo_access_audit.collectors.sharing")


class SharingLinkInspector:
    name = "sharing"

    def inspect(self, connection, site: Site, library: Library, item: Item) -> UnitResult:
        path = item_path(library, item)
        unit = f"sharing links {path}"
        try:
            links = connection.get_sharing_links(library, item)
        except SharingInfoUnavailable as e:
            return UnitResult.unavailable(unit, str(e))
        except PermissionFetchError as e:
            return UnitResult.failure(unit, str(e))

        if links:
            logger.debug(f"[{site.url}] {len(links)} sharing link(s) on {path}")
        return UnitResult.success(
            unit, (sharing_link_record(site.url, path, link) for link in links)
        )
