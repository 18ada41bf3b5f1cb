"""
Audit driver — sequences enumeration, per-site collection, filtering and export.

Sites are processed strictly one at a time. Each site connection is scoped
with ``with`` so it is released before the next site, whether or not that
site succeeded. Site-scoped failures are logged and skipped; enumeration,
setup, teardown and export failures end the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from .collectors import (
    LibraryWalker,
    PermissionCollector,
    ResultAggregator,
    SiteEnumerator,
    UnitResult,
    filter_records,
)
from .config import AuditConfig
from .errors import EnumerationError
from .models import AuditRecord, Site
from .safety.guardian import SafetyViolation

logger = logging.getLogger("spo_access_audit.engine")


class DriverState(str, Enum):
    INIT = "Init"
    TENANT_CONNECTED = "TenantConnected"
    ENUMERATED = "Enumerated"
    SITE_CONNECTED = "SiteConnected"
    COLLECTED = "Collected"
    WALKED = "Walked"
    SITE_DISCONNECTED = "SiteDisconnected"
    FILTERED = "Filtered"
    EXPORTED = "Exported"
    DONE = "Done"
    ENUMERATION_FAILED = "EnumerationFailed"
    CRITICAL_FAILURE = "CriticalFailure"


@dataclass
class AuditSummary:
    """Outcome of a completed run."""
    sites_total: int = 0
    sites_processed: int = 0
    failed_sites: list[str] = field(default_factory=list)
    total_records: int = 0
    external_records: int = 0
    exported_records: int = 0
    output_files: list[Path] = field(default_factory=list)
    state: DriverState = DriverState.INIT

    def to_dict(self) -> dict:
        return {
            "sites_total": self.sites_total,
            "sites_processed": self.sites_processed,
            "sites_failed": len(self.failed_sites),
            "failed_sites": self.failed_sites,
            "total_records": self.total_records,
            "external_records": self.external_records,
            "exported_records": self.exported_records,
            "output_files": [str(p) for p in self.output_files],
            "state": self.state.value,
        }


Exporter = Callable[[Sequence[AuditRecord], AuditSummary], list[Path]]


class AuditDriver:
    """
    Runs one audit against a content service.

    The service must be a context manager exposing ``list_sites()`` and
    ``connect(url)``; ``connect`` returns a context-managed site connection.
    """

    def __init__(
        self,
        service,
        config: AuditConfig,
        exporter: Optional[Exporter] = None,
        enumerator: Optional[SiteEnumerator] = None,
        collector: Optional[PermissionCollector] = None,
        walker: Optional[LibraryWalker] = None,
    ):
        self.service = service
        self.config = config
        self.exporter = exporter
        self.enumerator = enumerator or SiteEnumerator(service, config)
        self.collector = collector or PermissionCollector()
        self.walker = walker or LibraryWalker(config)
        self.aggregator = ResultAggregator()
        self.summary = AuditSummary()
        self.history: list[DriverState] = [DriverState.INIT]

    @property
    def state(self) -> DriverState:
        return self.history[-1]

    def _transition(self, state: DriverState):
        self.history.append(state)
        self.summary.state = state
        logger.debug(f"Driver state -> {state.value}")

    # ── Run ─────────────────────────────────────────────────────────────────

    def run(self) -> AuditSummary:
        """
        Execute the full audit. Raises EnumerationError when no site can be
        audited; any other escaping error marks the run as a critical failure.
        """
        try:
            with self.service:
                self._transition(DriverState.TENANT_CONNECTED)
                sites = self.enumerator.list_sites()
                if not sites:
                    self._transition(DriverState.ENUMERATION_FAILED)
                    raise self.enumerator.last_error or EnumerationError(
                        "No auditable sites found"
                    )
                self._transition(DriverState.ENUMERATED)
                self.summary.sites_total = len(sites)
                logger.info(f"Enumerated {len(sites)} site(s) to audit")

                for index, site in enumerate(sites, 1):
                    self._audit_site(site, index, len(sites))

            records = filter_records(self.aggregator, self.config.external_links_only)
            self._transition(DriverState.FILTERED)

            self.summary.total_records = len(self.aggregator)
            self.summary.external_records = self.aggregator.external_count
            self.summary.exported_records = len(records)
            if self.exporter:
                self.summary.output_files = list(self.exporter(records, self.summary))
            self._transition(DriverState.EXPORTED)
        except EnumerationError:
            raise
        except Exception:
            self._transition(DriverState.CRITICAL_FAILURE)
            raise

        self._transition(DriverState.DONE)
        return self.summary

    # ── Per site ────────────────────────────────────────────────────────────

    def _audit_site(self, site: Site, index: int, total: int):
        logger.info(f"[{index}/{total}] Auditing {site.url}")
        connected = False
        try:
            with self.service.connect(site.url) as connection:
                connected = True
                self._transition(DriverState.SITE_CONNECTED)

                if not self.config.external_links_only:
                    if not self._take(site, self.collector.collect(connection, site)):
                        return
                self._transition(DriverState.COLLECTED)

                if not self._take(site, self.walker.walk(connection, site)):
                    return
                self._transition(DriverState.WALKED)

            self.summary.sites_processed += 1
        except SafetyViolation:
            raise
        except Exception as e:
            self.summary.failed_sites.append(site.url)
            logger.error(f"[{site.url}] Site skipped: {type(e).__name__}: {e}")
        finally:
            if connected:
                self._transition(DriverState.SITE_DISCONNECTED)

    def _take(self, site: Site, result: UnitResult) -> bool:
        """Aggregate a site step's records; False ends this site's processing."""
        self.aggregator.extend(result.records)
        if result.ok:
            return True
        self.summary.failed_sites.append(site.url)
        logger.error(f"[{site.url}] {result.unit} failed, skipping site: {result.reason}")
        return False
