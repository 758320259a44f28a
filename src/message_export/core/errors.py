from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Error taxonomy shared by sources, the iterator and sinks."""

    OPEN_FAILED = "open_failed"
    ADVANCE_FAILED = "advance_failed"
    SINK_WRITE_FAILED = "sink_write_failed"
    RETRY_BUDGET_EXCEEDED = "retry_budget_exceeded"
    CANCELLED = "cancelled"
    # Store returned records or pages that cannot be read; retrying would fail the same way.
    BAD_DATA = "bad_data"


# Sink failure reasons
NAME_ALREADY_EXISTS = "name_already_exists"


@dataclass(frozen=True)
class ExportError:
    """
    Structured error value passed between components.

    `reason` is a short machine-readable cause (e.g. the source exception name
    or NAME_ALREADY_EXISTS); `cause` links the error that led to this one.
    """

    kind: ErrorKind
    message: str = ""
    reason: str = ""
    cause: Optional["ExportError"] = None

    @property
    def recoverable(self) -> bool:
        return self.kind == ErrorKind.ADVANCE_FAILED

    @property
    def is_name_collision(self) -> bool:
        return self.kind == ErrorKind.SINK_WRITE_FAILED and self.reason == NAME_ALREADY_EXISTS

    @classmethod
    def from_exception(cls, kind: ErrorKind, exc: BaseException) -> "ExportError":
        return cls(kind=kind, message=str(exc), reason=type(exc).__name__)

    def __str__(self) -> str:
        text = f"{self.kind.value}: {self.reason or 'error'}"
        if self.message:
            text += f" ({self.message})"
        if self.cause is not None:
            text += f" <- {self.cause}"
        return text


class ExportFailure(Exception):
    """Raised by result.raise_for_error() for callers that prefer exceptions."""

    def __init__(self, error: ExportError):
        super().__init__(str(error))
        self.error = error

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind
