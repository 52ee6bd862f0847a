from __future__ import annotations


class SignageOpsError(RuntimeError):
    """Base class for every error raised by the signage tooling."""


class TransportError(SignageOpsError):
    """Raised when a call to the relational store or blob store fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error


class ServiceUnavailableError(TransportError):
    """Raised when a store cannot be reached at all. Fatal for a run."""


class NotFoundError(SignageOpsError):
    """Raised when a referenced table, bucket, row or object is absent."""


class ValidationError(SignageOpsError):
    """Raised for malformed names, unsafe identifiers or bad configuration."""


class AmbiguousMatchError(SignageOpsError):
    """Never raised: several candidate assets resolve by first match."""


class MigrationError(SignageOpsError):
    """Raised when the settings table cannot be created."""


__all__ = [
    "AmbiguousMatchError",
    "MigrationError",
    "NotFoundError",
    "ServiceUnavailableError",
    "SignageOpsError",
    "TransportError",
    "ValidationError",
]
