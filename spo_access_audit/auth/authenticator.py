"""
Authentication module — Supports certificate-based and delegated device-code auth.
Uses MSAL for token acquisition against the tenant's SharePoint resource.
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from typing import Optional

from cryptography.hazmat.primitives.serialization import pkcs12, Encoding, PrivateFormat, NoEncryption
from cryptography.hazmat.primitives.hashes import SHA1
import msal

from ..config import AuthConfig

logger = logging.getLogger("spo_access_audit.auth")

CERT_PASSWORD_ENV = "SPO_AUDIT_CERT_PASSWORD"


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class Authenticator:
    """
    Handles MSAL-based authentication for SharePoint REST.
    Supports:
      - Certificate-based app-only authentication (required by SharePoint for app-only)
      - Delegated interactive authentication (device code flow)

    The instance is callable and returns a valid access token, so it can be
    handed to the REST client as its token provider. MSAL serves cached
    tokens until they near expiry.
    """

    def __init__(self, config: AuthConfig, scope: str):
        self.config = config
        self.scopes = [scope]
        self._app = None
        self._access_token: Optional[str] = None

    def __call__(self) -> str:
        return self.acquire_token()

    def acquire_token(self) -> str:
        """Acquire an access token based on configured auth mode."""
        if self.config.mode == "certificate":
            return self._acquire_certificate_token()
        elif self.config.mode == "delegated":
            return self._acquire_delegated_token()
        else:
            raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    def _acquire_certificate_token(self) -> str:
        """Acquire token using certificate-based client credentials."""
        if self._app is None:
            self._app = self._build_confidential_app()

        result = self._app.acquire_token_for_client(scopes=self.scopes)
        return self._token_from(result, "Certificate")

    def _build_confidential_app(self):
        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        logger.info("Authenticating with certificate-based app credentials...")

        cert_path = cert_config.certificate_path
        password = cert_config.certificate_password
        if not password:
            password = os.environ.get(CERT_PASSWORD_ENV, "")
        if not password:
            password = getpass.getpass("Enter the certificate password: ")

        try:
            private_key_pem, thumbprint = load_certificate(cert_path, password)
            logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")
        except FileNotFoundError:
            raise AuthenticationError(f"Certificate file not found: {cert_path}.")
        except Exception as e:
            raise AuthenticationError(f"Failed to load certificate: {e}")

        return msal.ConfidentialClientApplication(
            client_id=cert_config.client_id,
            authority=f"https://login.microsoftonline.com/{cert_config.tenant_id}",
            client_credential={
                "thumbprint": thumbprint,
                "private_key": private_key_pem,
            },
        )

    def _acquire_delegated_token(self) -> str:
        """Acquire token using delegated (device code) flow."""
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")

        if self._app is None:
            self._app = msal.PublicClientApplication(
                client_id=deleg_config.client_id,
                authority=f"https://login.microsoftonline.com/{deleg_config.tenant_id}",
            )

        accounts = self._app.get_accounts()
        if accounts:
            result = self._app.acquire_token_silent(self.scopes, account=accounts[0])
            if result and "access_token" in result:
                return self._token_from(result, "Delegated")

        logger.info("Initiating device code authentication flow...")
        flow = self._app.initiate_device_flow(scopes=self.scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        print(f"{'='*60}\n")

        result = self._app.acquire_token_by_device_flow(flow)
        return self._token_from(result, "Delegated")

    def _token_from(self, result: dict, label: str) -> str:
        if "access_token" in result:
            if self._access_token is None:
                logger.info(f"{label} authentication successful.")
            self._access_token = result["access_token"]
            return self._access_token
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"{label} auth failed: {error}")

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token


def load_certificate(cert_path: str, password: str) -> tuple[str, str]:
    """
    Load a PFX certificate (raw or base64-encoded) and return the private key
    as PEM together with the SHA1 thumbprint MSAL expects.
    """
    with open(cert_path, "rb") as f:
        raw = f.read()

    if cert_path.lower().endswith((".pfx", ".p12")):
        cert_bytes = raw
    else:
        cert_bytes = base64.b64decode(raw.strip())

    password_bytes = password.encode("utf-8") if password else None
    private_key, certificate, _ = pkcs12.load_key_and_certificates(
        cert_bytes, password_bytes
    )
    if private_key is None or certificate is None:
        raise ValueError("PFX does not contain both a private key and a certificate")

    private_key_pem = private_key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    ).decode("utf-8")
    thumbprint = certificate.fingerprint(SHA1()).hex()
    return private_key_pem, thumbprint
