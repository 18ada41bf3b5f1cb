"""
Site Enumerator
Lists the site collections to audit, dropping redirect placeholders.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import AuditConfig
from ..errors import EnumerationError
from ..models import Site
from ..safety.guardian import SafetyViolation

logger = logging.getLogger("spo_access_audit.collectors.sites")


class SiteEnumerator:
    name = "sites"

    def __init__(self, service, config: AuditConfig):
        self.service = service
        self.config = config
        self.last_error: Optional[EnumerationError] = None

    def list_sites(self) -> list[Site]:
        """
        Return auditable sites in tenant order. On failure, return an empty
        list and keep the error in ``last_error``.
        """
        self.last_error = None
        if self.config.sites:
            candidates = [Site(url=url.rstrip("/")) for url in self.config.sites]
            logger.info(f"Using {len(candidates)} explicitly configured site(s)")
        else:
            try:
                candidates = self.service.list_sites()
            except SafetyViolation:
                raise
            except Exception as e:
                self.last_error = EnumerationError(f"Site enumeration failed: {e}")
                logger.error(str(self.last_error))
                return []

        excluded = {t.upper() for t in self.config.excluded_templates}
        sites = [s for s in candidates if _template_family(s.template) not in excluded]
        skipped = len(candidates) - len(sites)
        if skipped:
            logger.info(f"Excluded {skipped} placeholder site(s) by template")
        if not sites and self.last_error is None:
            self.last_error = EnumerationError("No auditable sites found")
        return sites


def _template_family(template: str) -> str:
    """``REDIRECTSITE#0`` -> ``REDIRECTSITE``."""
    return (template or "").split("#", 1)[0].upper()
