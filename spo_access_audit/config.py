"""
Configuration module for the SharePoint Online Access Audit.
Defines all tunable parameters, REST settings, and operational options.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Will be prompted if empty
    thumbprint: str = ""

@dataclass
class DelegatedAuth:
    """Delegated (device code) authentication configuration."""
    tenant_id: str
    client_id: str

@dataclass
class AuthConfig:
    """Authentication configuration — supports both modes."""
    mode: str = "certificate"  # "certificate" or "delegated"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None


# ─── SharePoint REST Settings ───────────────────────────────────────────────

ODATA_ACCEPT = "application/json;odata=nometadata"

# Rate limiting / throttling
MAX_RETRIES = 5                   # Retry count for throttled requests
INITIAL_BACKOFF_SECONDS = 2.0     # First retry delay
MAX_BACKOFF_SECONDS = 120.0       # Cap on exponential backoff
BACKOFF_MULTIPLIER = 2.0          # Exponential factor
REQUEST_TIMEOUT_SECONDS = 60.0
CONNECT_TIMEOUT_SECONDS = 30.0

# Pagination
DEFAULT_PAGE_SIZE = 1000          # Items per page when walking libraries
SEARCH_ROW_LIMIT = 500            # Search API maximum rows per request
MAX_PAGES_PER_ENDPOINT = 10000    # Safety cap on pagination loops

# SP.BaseType.DocumentLibrary: document, page, picture and asset libraries
DOCUMENT_LIBRARY_BASE_TYPE = 1

# Redirect placeholders left behind by site URL changes hold no content
DEFAULT_EXCLUDED_TEMPLATES = ["REDIRECTSITE"]


# ─── Audit Settings ─────────────────────────────────────────────────────────

@dataclass
class AuditConfig:
    """Controls for traversal behavior."""
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = MAX_PAGES_PER_ENDPOINT
    include_inherited_permissions: bool = False  # Also inspect inheriting libraries/items
    external_links_only: bool = False            # Skip site-level pass, keep external records
    excluded_templates: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_TEMPLATES)
    )
    sites: list[str] = field(default_factory=list)  # Explicit site URLs, bypasses search


# ─── Output Configuration ───────────────────────────────────────────────────

@dataclass
class OutputConfig:
    """Output file and format settings."""
    path: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: ["csv"])

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        if not self.path:
            self.path = f"SharePointPermissionAudit_{self.timestamp}.csv"

    @property
    def csv_path(self) -> Path:
        return Path(self.path).with_suffix(".csv")

    @property
    def json_path(self) -> Path:
        return Path(self.path).with_suffix(".json")


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class EngineConfig:
    """Top-level configuration for the whole audit run."""
    tenant_url: str = ""
    auth: AuthConfig = field(default_factory=AuthConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    @property
    def sharepoint_scope(self) -> str:
        """Token scope for the tenant's SharePoint resource."""
        return f"{tenant_root(self.tenant_url)}/.default"

    @classmethod
    def from_file(cls, path: str) -> "EngineConfig":
        """Load configuration from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        config = cls()
        config.tenant_url = data.get("tenant_url", "")
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "certificate")
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                config.auth.certificate = CertificateAuth(
                    tenant_id=c["tenant_id"],
                    client_id=c["client_id"],
                    certificate_path=c.get("certificate_path", "./base64.txt"),
                    certificate_password=c.get("certificate_password", ""),
                    thumbprint=c.get("thumbprint", ""),
                )
            if "delegated" in auth_data:
                d = auth_data["delegated"]
                config.auth.delegated = DelegatedAuth(
                    tenant_id=d["tenant_id"],
                    client_id=d["client_id"],
                )
        if "audit" in data:
            for k, v in data["audit"].items():
                if hasattr(config.audit, k):
                    setattr(config.audit, k, v)
        if "output" in data:
            for k, v in data["output"].items():
                if hasattr(config.output, k):
                    setattr(config.output, k, v)
        config.verbose = data.get("verbose", False)
        return config


def tenant_root(url: str) -> str:
    """Reduce any tenant or site URL to ``https://<host>``."""
    parsed = urlparse(url if "://" in url else f"https://{url}")
    if not parsed.netloc:
        raise ValueError(f"Not a tenant URL: {url!r}")
    return f"{parsed.scheme or 'https'}://{parsed.netloc}"
