"""Explicit success/failure value returned by every public operation."""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from unigate.core.errors import ErrorKind, GatewayError, ProviderError

__all__ = ["Result"]

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    is_success: bool
    value: Optional[T] = None
    error: str = ""
    error_kind: Optional[ErrorKind] = None
    error_payload: Any = None

    @property
    def is_failure(self) -> bool:
        return not self.is_success

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(is_success=True, value=value)

    @classmethod
    def failure(
        cls,
        error: str,
        kind: ErrorKind = ErrorKind.TRANSPORT,
        payload: Any = None,
    ) -> "Result[T]":
        return cls(is_success=False, error=error, error_kind=kind, error_payload=payload)

    @classmethod
    def from_error(cls, exc: GatewayError) -> "Result[T]":
        """Normalize a gateway exception into a failed Result."""
        payload = exc.payload if isinstance(exc, ProviderError) else None
        return cls.failure(str(exc), kind=exc.kind, payload=payload)
