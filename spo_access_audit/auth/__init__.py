"""MSAL authentication for SharePoint REST."""

from .authenticator import Authenticator, AuthenticationError

__all__ = ["Authenticator", "AuthenticationError"]
