from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class LocalChatError(Exception):
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GatewayUnavailable(LocalChatError):
    kind = "gateway_unavailable"


class GatewayError(LocalChatError):
    kind = "gateway_error"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(LocalChatError):
    kind = "persistence"


class ValidationError(LocalChatError):
    kind = "validation"


class ConfigError(LocalChatError):
    kind = "config"


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    kind: str
    message: str

    @classmethod
    def from_exception(cls, exc: Exception) -> "ErrorInfo":
        if isinstance(exc, LocalChatError):
            return cls(kind=exc.kind, message=exc.message)
        return cls(kind="error", message=str(exc) or exc.__class__.__name__)


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """Value/error pair returned across the UI boundary instead of raising."""

    value: T | None = None
    error: ErrorInfo | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, exc: Exception, value: T | None = None) -> "Result[T]":
        return cls(value=value, error=ErrorInfo.from_exception(exc))
