"""
SharePoint Online Access Audit
==============================
A read-only audit of site, library, item and sharing-link permissions across
a SharePoint Online tenant. Produces a flat record set for security review.

WARNING: This tool operates in STRICT READ-ONLY mode.
         No write operations will be performed against the tenant.
"""

__version__ = "1.0.0"
__mode__ = "READ-ONLY"
