"""
Site Permission Collector
Enumerates site group memberships and direct site users.
"""

from __future__ import annotations

import logging

from ..errors import PermissionFetchError
from ..models import AuditRecord, ItemType, PrincipalType, Site, SiteGroup
from .base import UnitResult

logger = logging.getLogger("spo_access_audit.collectors.permissions")

DIRECT_ACCESS = "Direct Access"
SITE_PATH = "/"


class PermissionCollector:
    name = "permissions"
    description = "Site-level group memberships and direct user access"

    def collect(self, connection, site: Site) -> UnitResult:
        unit = f"site permissions {site.url}"
        records: list[AuditRecord] = []

        try:
            groups = connection.list_groups()
        except PermissionFetchError as e:
            return UnitResult.failure(unit, str(e))

        for group in groups:
            records.extend(self._group_records(connection, site, group))

        try:
            users = connection.list_users()
        except PermissionFetchError as e:
            return UnitResult.failure(unit, str(e), records)

        for user in users:
            if not user.email:
                continue
            records.append(AuditRecord(
                site_url=site.url,
                item_type=ItemType.SITE,
                item_path=SITE_PATH,
                principal_type=PrincipalType.USER,
                principal_name=user.name,
                user_name=user.name,
                user_email=user.email,
                permission=DIRECT_ACCESS,
            ))

        logger.info(
            f"[{site.url}] {len(groups)} group(s), {len(users)} user(s) -> "
            f"{len(records)} site-level record(s)"
        )
        return UnitResult.success(unit, records)

    def _group_records(self, connection, site: Site, group: SiteGroup) -> list[AuditRecord]:
        """One record per member. Member lookup is best effort."""
        try:
            members = connection.list_group_members(group.id)
        except PermissionFetchError as e:
            logger.debug(f"[{site.url}] Members of '{group.title}' unavailable: {e}")
            return []

        return [
            AuditRecord(
                site_url=site.url,
                item_type=ItemType.SITE,
                item_path=SITE_PATH,
                principal_type=PrincipalType.GROUP,
                principal_name=group.title,
                user_name=member.name,
                user_email=member.email,
                permission=group.title,
            )
            for member in members
        ]
