# app/core/exceptions.py
"""Domain error taxonomy for the grading pipeline.

Route handlers let these propagate; ``register_exception_handlers`` turns them
into the standard error envelope. Provider errors are absorbed by the provider
chain and only surface as ``AllProvidersFailedError``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from app.utils.enums import ProviderFailureKind


class DomainError(Exception):
    """Base class for errors with a stable error code and HTTP status."""

    status_code: int = 400
    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, *, data: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.data = data


class ValidationError(DomainError):
    status_code = 422
    error_code = "VALIDATION_ERROR"


class NotFoundError(DomainError):
    status_code = 404
    error_code = "NOT_FOUND"


class AccessDenied(DomainError):
    status_code = 403
    error_code = "ACCESS_DENIED"


class StateConflictError(DomainError):
    """A transition from a disallowed state or a duplicate-approval attempt."""

    status_code = 409
    error_code = "STATE_CONFLICT"


class PersistenceError(DomainError):
    status_code = 500
    error_code = "PERSISTENCE_ERROR"


class StorageError(DomainError):
    status_code = 502
    error_code = "STORAGE_ERROR"


class RenderError(DomainError):
    """Page rendering failed. Never retried."""

    status_code = 502
    error_code = "RENDER_ERROR"


class ProviderError(DomainError):
    status_code = 502
    error_code = "PROVIDER_ERROR"

    def __init__(self, message: str, *, kind: ProviderFailureKind, provider: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.provider = provider

    @classmethod
    def critical(cls, message: str, provider: Optional[str] = None) -> "ProviderError":
        return cls(message, kind=ProviderFailureKind.critical, provider=provider)

    @classmethod
    def transient(cls, message: str, provider: Optional[str] = None) -> "ProviderError":
        return cls(message, kind=ProviderFailureKind.transient, provider=provider)

    @property
    def is_critical(self) -> bool:
        return self.kind == ProviderFailureKind.critical

    def __str__(self) -> str:
        prefix = f"[{self.provider}] " if self.provider else ""
        return f"{prefix}{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class ProviderAttempt:
    """Outcome of one adapter attempt inside a chain invocation."""

    provider: str
    succeeded: bool
    error: Optional[ProviderError] = None
    empty: bool = False


class AllProvidersFailedError(DomainError):
    status_code = 502
    error_code = "ALL_PROVIDERS_FAILED"

    def __init__(
        self,
        operation: str,
        attempts: Sequence[ProviderAttempt],
        last_error: Optional[ProviderError],
    ):
        if last_error is not None:
            message = f"All providers failed for {operation}. Last error: {last_error}"
        elif attempts:
            message = f"All providers returned no results for {operation}"
        else:
            message = f"No providers are enabled for {operation}"
        super().__init__(message)
        self.operation = operation
        self.attempts = list(attempts)
        self.last_error = last_error
