"""Exceptions related to key-sync."""

__all__ = [
    "KeySyncException",
    "ConfigException",
    "AuthenticationException",
    "FetchException",
    "VaultRequestError",
    "CertificateInvalidError",
    "KeyInvalidError",
    "ProviderNotFoundError",
    "RefresherNotFoundError",
    "RegistrationError",
    "ObjectNotFoundError",
    "ReconcileError",
]


class KeySyncException(Exception):
    """Generic base exception used for this library."""


class ConfigException(KeySyncException):
    """Raised when a provider or refresher configuration is missing or invalid."""


class AuthenticationException(KeySyncException):
    """Raised when credentials or vault clients cannot be constructed."""


class FetchException(KeySyncException):
    """Raised when fetching material from a key store fails."""


class VaultRequestError(FetchException):
    """Raised by a vault client when a request to the vault fails.

    The status code and raw response body are preserved so callers can inspect
    the failure signature (e.g. a disabled secret).
    """

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class CertificateInvalidError(KeySyncException):
    """Raised when a certificate bundle cannot be parsed."""


class KeyInvalidError(KeySyncException):
    """Raised when key material cannot be parsed."""


class ProviderNotFoundError(KeySyncException):
    """Raised when no provider factory is registered for a type."""


class RefresherNotFoundError(KeySyncException):
    """Raised when no refresher factory is registered for a type."""


class RegistrationError(KeySyncException):
    """Raised when a registry is wired incorrectly.

    This is a programming error detected while building the registries and is
    never expected to be handled.
    """


class ObjectNotFoundError(KeySyncException):
    """Raised when a resource does not exist in the cluster."""


class ReconcileError(KeySyncException):
    """Raised when a reconciliation cycle fails."""

    def __init__(self, resource_name: str, message: str | None) -> None:
        super().__init__(
            f"Resource {resource_name} failed to reconcile: {message or 'Unknown error'}"
        )
        self.resource_name = resource_name
        self.message = message
