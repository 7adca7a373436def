"""OAuth2 credential storage and refresh."""

from .store import CredentialStore, TokenStorage

__all__ = ["CredentialStore", "TokenStorage"]
