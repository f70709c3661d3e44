"""Error definitions for the Interpress translation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .structures import TranslationAttempt


class ErrorKind(Enum):
    """Categorises runtime errors so attempts and results can be tallied."""

    NETWORK = auto()
    HTTP = auto()
    PARSE = auto()
    EXHAUSTED = auto()
    PLACEHOLDER = auto()
    PUBLISH = auto()
    CONFIGURATION = auto()
    OTHER = auto()


class InterpressError(Exception):
    """Base exception for all custom errors."""

    kind: ErrorKind = ErrorKind.OTHER


class ConfigurationError(InterpressError):
    """Raised when settings or run preconditions are invalid."""

    kind = ErrorKind.CONFIGURATION


class InvalidTransition(InterpressError):
    """Raised when a run or item is moved to a state it cannot reach."""


class NetworkError(InterpressError):
    """Raised when a remote call times out, is aborted, or cannot connect."""

    kind = ErrorKind.NETWORK


class HttpError(InterpressError):
    """Raised when a remote service answers with a non-success status."""

    kind = ErrorKind.HTTP

    def __init__(self, status_code: int, body: str = "", *, service: str = "remote") -> None:
        self.status_code = status_code
        self.body = body
        snippet = body[:300].strip()
        message = f"{service} returned HTTP {status_code}"
        if snippet:
            message = f"{message}: {snippet}"
        super().__init__(message)


class ParseError(InterpressError):
    """Raised when a response does not have the expected shape."""

    kind = ErrorKind.PARSE


class ProviderExhausted(InterpressError):
    """Raised when every configured provider credential failed for one call."""

    kind = ErrorKind.EXHAUSTED

    def __init__(
        self,
        message: str,
        *,
        last_error: Optional[BaseException] = None,
        attempts: Sequence["TranslationAttempt"] = (),
    ) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.attempts = list(attempts)


class PlaceholderMismatch(InterpressError):
    """Signals placeholder tokens that did not survive translation intact."""

    kind = ErrorKind.PLACEHOLDER

    def __init__(
        self,
        *,
        unknown: Sequence[str] = (),
        missing: Sequence[str] = (),
        duplicated: Sequence[str] = (),
    ) -> None:
        self.unknown = list(unknown)
        self.missing = list(missing)
        self.duplicated = list(duplicated)
        parts = []
        if self.unknown:
            parts.append("unknown " + ", ".join(self.unknown))
        if self.missing:
            parts.append("missing " + ", ".join(self.missing))
        if self.duplicated:
            parts.append("duplicated " + ", ".join(self.duplicated))
        super().__init__("Placeholder mismatch: " + "; ".join(parts))


class PublishError(InterpressError):
    """Raised when the content host rejects or fails a write."""

    kind = ErrorKind.PUBLISH


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    kind: ErrorKind
    message: str
    attempt: int = 0
    details: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException, *, attempt: int = 0) -> "ErrorRecord":
        kind = getattr(exc, "kind", ErrorKind.OTHER)
        details = None
        cause = getattr(exc, "last_error", None) or exc.__cause__
        if cause is not None:
            details = f"{type(cause).__name__}: {cause}"
        return cls(kind=kind, message=str(exc), attempt=attempt, details=details)
