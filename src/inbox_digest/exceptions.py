"""Custom exceptions for Inbox Digest.

Callers outside the core map these onto transport-level responses:
AuthError to 401/403, NotFoundError to 404, ValidationError to 400 and
everything else to a generic failure.
"""


class InboxDigestError(Exception):
    """Base exception for all Inbox Digest errors."""


class AuthError(InboxDigestError):
    """Missing, invalid or unrefreshable mailbox credentials."""


class NotFoundError(InboxDigestError):
    """A referenced thread or summary does not exist."""


class ValidationError(InboxDigestError):
    """Required input is missing; raised before any external call."""


class ConfigurationError(InboxDigestError):
    """Exception raised for configuration related errors."""


class ProviderError(InboxDigestError):
    """Network or API failure from an external collaborator."""


class GmailAPIError(ProviderError):
    """Exception raised for Gmail API related errors."""


class OllamaConnectionError(ProviderError):
    """Exception raised when unable to connect to Ollama."""


class OllamaInferenceError(ProviderError):
    """Exception raised when Ollama inference fails."""


class DeliveryError(ProviderError):
    """Exception raised when a digest email cannot be delivered."""


class StorageError(ProviderError):
    """Exception raised when the persistence layer fails."""
