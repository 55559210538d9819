"""Custom exceptions for core logic."""

from __future__ import annotations


class CoreError(Exception):
    """Base class for errors raised by the marker/profile/assembly core."""


class ValidationError(CoreError):
    """Raised when caller input is invalid (e.g. an empty variant name)."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ConflictError(CoreError):
    """Raised when an operation would break a profile/variant invariant."""


class NotFoundError(CoreError):
    """Raised when a profile, variant, role, template or entity does not exist."""

    def __init__(self, message: str, *, available: list[str] | None = None) -> None:
        super().__init__(message)
        self.available = list(available or [])


class FormatError(CoreError):
    """Raised when template bytes cannot be parsed as a docx package."""


class AssemblyError(CoreError):
    """Raised when substitution fails inside an otherwise readable template."""

    def __init__(self, message: str, *, marker: str | None = None) -> None:
        super().__init__(message)
        self.marker = marker


class UnavailableError(CoreError):
    """Raised when no storage tier can supply the requested object."""

    def __init__(
        self,
        message: str,
        *,
        object_id: str | None = None,
        attempted_tiers: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.object_id = object_id
        self.attempted_tiers = list(attempted_tiers or [])
