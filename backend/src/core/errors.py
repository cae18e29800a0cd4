"""
Error taxonomy for the Site Kit integration layer.

Token and authorization failures are recorded in the credential store by the
code that raises them; provider and cache failures are request-scoped.
"""
import enum


class SiteKitError(Exception):
    """Base class for every failure raised by the integration layer."""


class NotConfigured(SiteKitError):
    """No integration row exists yet."""

    def __init__(self, message: str = "Google Site Kit configuration not found"):
        super().__init__(message)


class ConfigurationError(SiteKitError):
    """An admin config update was rejected (e.g. changing the client id)."""


class CredentialStoreError(SiteKitError):
    """The credential store could not be read or written."""


class RefreshError(SiteKitError):
    """Refresh-token exchange failed, or its result could not be persisted."""


class CacheUnavailable(SiteKitError):
    """The response cache could not be read or written."""


class AdapterErrorKind(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    PROVIDER_FAILURE = "provider_failure"
    SERVICE_DISABLED = "service_disabled"
    MISCONFIGURED = "misconfigured"


class AdapterError(SiteKitError):
    def __init__(self, kind: AdapterErrorKind, details: str | None = None):
        self.kind = kind
        self.details = details
        message = kind.value if not details else f"{kind.value}: {details}"
        super().__init__(message)
