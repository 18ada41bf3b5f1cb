"""SharePoint REST access — transport client and content service."""

from .client import SharePointAPIError, SharePointClient
from .service import SharePointService, SiteConnection

__all__ = [
    "SharePointAPIError",
    "SharePointClient",
    "SharePointService",
    "SiteConnection",
]
