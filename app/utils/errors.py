"""Error taxonomy for the translation proxy.

Every layer raises one of these classes. The HTTP boundary maps them to a
status code in exactly one place (``STATUS_BY_KIND``) and renders
``{"error": message, "kind": kind}``.
"""

from enum import Enum


class ErrorKind(Enum):
    CONFIGURATION = 'configuration'
    VALIDATION = 'validation'
    AUTH = 'auth'
    RATE_LIMIT = 'rate_limit'
    UPSTREAM_UNAVAILABLE = 'upstream_unavailable'
    BACKEND = 'backend'
    STORE = 'store'


STATUS_BY_KIND = {
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTH: 401,
    ErrorKind.RATE_LIMIT: 429,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
    ErrorKind.BACKEND: 502,
    ErrorKind.STORE: 502,
}


class TranslationProxyError(Exception):
    """Base class for all classified errors."""
    kind = ErrorKind.BACKEND

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        return {'error': self.message, 'kind': self.kind.value}


class ConfigurationError(TranslationProxyError):
    """Required settings (e.g. remote store credentials) are missing."""
    kind = ErrorKind.CONFIGURATION


class ValidationError(TranslationProxyError):
    """Request body is malformed."""
    kind = ErrorKind.VALIDATION


class AuthError(TranslationProxyError):
    """Translation provider rejected the API key."""
    kind = ErrorKind.AUTH


class RateLimitError(TranslationProxyError):
    """Translation provider is throttling us."""
    kind = ErrorKind.RATE_LIMIT


class UpstreamUnavailable(TranslationProxyError):
    """Translation provider could not be reached or is overloaded."""
    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class BackendError(TranslationProxyError):
    """Translation provider answered with something we cannot use."""
    kind = ErrorKind.BACKEND


class StoreError(TranslationProxyError):
    """Remote cache call failed. Only ever surfaced on admin endpoints."""
    kind = ErrorKind.STORE
