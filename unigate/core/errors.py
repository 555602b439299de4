from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Failure categories surfaced on a Result."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    TRANSLATION = "translation"
    TRANSPORT = "transport"
    PROVIDER = "provider"
    CANCELLED = "cancelled"
    CACHE = "cache"


class GatewayError(Exception):
    """Base exception class for the unified gateway."""
    kind = ErrorKind.TRANSPORT


class ConfigurationError(GatewayError):
    """Raised when a provider template or user config is unknown or invalid."""
    kind = ErrorKind.CONFIGURATION


class ValidationError(GatewayError):
    """Raised when a request is rejected before any cache or network access."""
    kind = ErrorKind.VALIDATION


class TranslationError(GatewayError):
    """Raised when a required template path is missing from a payload."""
    kind = ErrorKind.TRANSLATION

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Required field '{field}' missing from provider response")


class TransportError(GatewayError):
    """Raised for network failures and timeouts."""
    kind = ErrorKind.TRANSPORT


class RequestCancelled(TransportError):
    """Raised when the caller's cancellation token fires."""
    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Request was cancelled by the caller"):
        super().__init__(message)


class ProviderError(GatewayError):
    """Raised when the provider answers with a non-2xx status."""
    kind = ErrorKind.PROVIDER

    def __init__(self, message: str, status_code: int, payload: Any = None):
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class CacheError(GatewayError):
    """Raised by the cache layer; callers degrade it to a cache miss."""
    kind = ErrorKind.CACHE
