"""
SharePoint Online Access Audit — Command-line entry point

Usage:
    python -m spo_access_audit https://contoso.sharepoint.com \\
        --tenant-id <GUID> --client-id <GUID> --cert-path ./base64.txt
    python -m spo_access_audit https://contoso.sharepoint.com --config audit.json
    python -m spo_access_audit https://contoso.sharepoint.com --external-links-only
    python -m spo_access_audit https://contoso.sharepoint.com --site https://contoso.sharepoint.com/sites/hr

This tool is STRICTLY READ-ONLY. It will NEVER modify the tenant.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .auth.authenticator import Authenticator, AuthenticationError
from .config import CertificateAuth, DelegatedAuth, EngineConfig, OutputConfig
from .engine import AuditDriver, AuditSummary
from .errors import AuditError, EnumerationError
from .models import AuditRecord
from .reporting import export_csv, export_json
from .safety.guardian import SafetyGuardian
from .sharepoint.service import SharePointService

logger = logging.getLogger("spo_access_audit")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="spo_access_audit",
        description="SharePoint Online site, library, item and sharing-link access audit (READ-ONLY)",
    )
    parser.add_argument(
        "tenant_url",
        help="Tenant root URL, e.g. https://contoso.sharepoint.com",
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Output file (default: SharePointPermissionAudit_<timestamp>.csv)",
    )
    parser.add_argument(
        "--include-inherited-permissions",
        action="store_true",
        help="Also report libraries and items that inherit their permissions",
    )
    parser.add_argument(
        "--external-links-only",
        action="store_true",
        help="Skip site-level permissions and keep only external users and sharing links",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to JSON configuration file",
    )
    parser.add_argument(
        "--tenant-id",
        type=str,
        default=None,
        help="Entra tenant ID (overrides config file)",
    )
    parser.add_argument(
        "--client-id",
        type=str,
        default=None,
        help="App registration client ID (overrides config file)",
    )
    parser.add_argument(
        "--cert-path",
        type=Path,
        help="Path to base64-encoded or raw PFX certificate (overrides config file)",
    )
    parser.add_argument(
        "--delegated",
        action="store_true",
        help="Use delegated (device-code) authentication instead of certificate",
    )
    parser.add_argument(
        "--site",
        action="append",
        default=None,
        help="Audit only this site URL (repeatable); skips tenant site search",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=None,
        help="Items fetched per request when walking libraries (default: 1000)",
    )
    parser.add_argument(
        "--formats",
        nargs="+",
        choices=["csv", "json"],
        default=None,
        help="Output formats to generate (default: csv)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> EngineConfig:
    """Build engine configuration from a config file and CLI overrides."""
    if args.config and args.config.exists():
        config = EngineConfig.from_file(str(args.config))
    else:
        config = EngineConfig()

    config.tenant_url = args.tenant_url

    if args.delegated:
        config.auth.mode = "delegated"

    # CLI flags override file values
    cert = config.auth.certificate
    tenant_id = args.tenant_id or (cert.tenant_id if cert else None)
    client_id = args.client_id or (cert.client_id if cert else None)
    if config.auth.mode == "delegated" and config.auth.delegated:
        tenant_id = args.tenant_id or config.auth.delegated.tenant_id
        client_id = args.client_id or config.auth.delegated.client_id

    if not tenant_id or not client_id:
        raise AuthenticationError(
            "No tenant credentials found. Use --tenant-id and --client-id, "
            "or --config with an 'auth' section."
        )

    if config.auth.mode == "delegated":
        config.auth.delegated = DelegatedAuth(tenant_id=tenant_id, client_id=client_id)
    else:
        config.auth.certificate = CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=str(args.cert_path) if args.cert_path else (
                cert.certificate_path if cert else "./base64.txt"
            ),
            certificate_password=cert.certificate_password if cert else "",
        )

    if args.include_inherited_permissions:
        config.audit.include_inherited_permissions = True
    if args.external_links_only:
        config.audit.external_links_only = True
    if args.site:
        config.audit.sites = list(args.site)
    if args.page_size:
        config.audit.page_size = args.page_size

    if args.output or args.formats:
        config.output = OutputConfig(
            path=str(args.output) if args.output else config.output.path,
            formats=args.formats or config.output.formats,
        )
    config.verbose = args.verbose or config.verbose
    return config


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Request-level noise from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("msal").setLevel(logging.WARNING)


def make_exporter(config: EngineConfig, guardian: Optional[SafetyGuardian] = None):
    """Return the exporter callable the driver invokes with the final records."""
    def _export(
        records: Sequence[AuditRecord], summary: Optional[AuditSummary] = None,
    ) -> list[Path]:
        created = []
        if "csv" in config.output.formats:
            created.append(export_csv(records, config.output.csv_path))
        if "json" in config.output.formats:
            created.append(export_json(
                records, config.output.json_path, config.tenant_url,
                summary=summary.to_dict() if summary else None,
                safety=guardian.report() if guardian else None,
            ))
        return created
    return _export


def print_summary(summary: AuditSummary):
    print("\n" + "=" * 70)
    print(" AUDIT COMPLETE")
    print("=" * 70)
    print(f"\n  Sites processed:  {summary.sites_processed}/{summary.sites_total}")
    if summary.failed_sites:
        print(f"  Sites skipped:    {len(summary.failed_sites)}")
        for url in summary.failed_sites:
            print(f"      ⚠  {url}")
    print(f"  Total records:    {summary.total_records}")
    print(f"  External records: {summary.external_records}")
    for path in summary.output_files:
        print(f"  📄 Output:        {Path(path).resolve()}")
    print()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    guardian = SafetyGuardian()
    guardian.print_banner()

    print("=" * 70)
    print(f" SharePoint Online Access Audit v{__version__}")
    print(" Mode: READ-ONLY — No tenant modifications will be made")
    print("=" * 70)

    try:
        config = build_config(args)
        authenticator = Authenticator(config.auth, config.sharepoint_scope)
        authenticator.acquire_token()
    except (AuthenticationError, ValueError) as e:
        logger.critical(f"Authentication failed: {e}")
        return 1

    service = SharePointService(
        config.tenant_url,
        token_provider=authenticator,
        guardian=guardian,
        config=config.audit,
    )
    driver = AuditDriver(service, config.audit, exporter=make_exporter(config, guardian))

    try:
        summary = driver.run()
    except EnumerationError as e:
        logger.critical(f"Audit aborted, nothing to process: {e}")
        return 1
    except (AuditError, OSError) as e:
        logger.critical(f"Audit aborted: {type(e).__name__}: {e}")
        return 1
    except Exception:
        logger.exception("Audit aborted by an unexpected error")
        return 1

    print_summary(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
