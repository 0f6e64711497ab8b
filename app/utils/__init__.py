"""Shared utilities for the translation proxy.

This package contains the error taxonomy shared by services and routes.
"""

from app.utils.errors import (
    ErrorKind,
    TranslationProxyError,
    ConfigurationError,
    ValidationError,
    AuthError,
    RateLimitError,
    UpstreamUnavailable,
    BackendError,
    StoreError,
)

__all__ = [
    'ErrorKind',
    'TranslationProxyError',
    'ConfigurationError',
    'ValidationError',
    'AuthError',
    'RateLimitError',
    'UpstreamUnavailable',
    'BackendError',
    'StoreError',
]
