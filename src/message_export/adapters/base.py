from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Protocol, Tuple, Type

from message_export.core.errors import ErrorKind, ExportError
from message_export.core.models import END, Checkpoint, Item, SourceFilter, Step

# Reason for a page that is empty yet not the last one.
EMPTY_PAGE = "EmptyPage"


class Cursor(Protocol):
    """Forward-only handle over a source. Exactly one advance() outstanding at a time."""

    def advance(self) -> Step: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class OpenResult:
    """Either an opened cursor or the fatal error that prevented opening it."""

    cursor: Optional[Cursor] = None
    error: Optional[ExportError] = None

    @classmethod
    def failed(cls, exc: BaseException) -> "OpenResult":
        return cls(error=ExportError.from_exception(ErrorKind.OPEN_FAILED, exc))


class CursorSource(Protocol):
    """Protocol for message/thread stores reachable only through cursors."""

    def open(self, resume_from: Optional[Checkpoint]) -> OpenResult: ...


class SourceFactory(Protocol):
    """Builds cursor sources; thread-scoped strategies need one per thread."""

    def messages(self, scope: SourceFilter = SourceFilter()) -> CursorSource: ...

    def threads(self) -> CursorSource: ...


class PagedCursor:
    """
    Cursor over a store that hands out items one page at a time.

    Subclasses implement _fetch_page() and list the store's transport errors in
    `transient_errors`; those become ADVANCE_FAILED through _classify(). Records
    that cannot be decoded (KeyError, TypeError, ValueError) become BAD_DATA.
    Any other exception is a bug and propagates.
    """

    transient_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, resume_from: Optional[Checkpoint]):
        self._position: Optional[Checkpoint] = resume_from
        self._buffer: Deque[Item] = deque()
        self._inclusive = resume_from is not None
        self._exhausted = False
        self._finished = False

    def prime(self) -> Optional[ExportError]:
        """Fetch the first page now, so an unreachable store fails when the cursor is opened."""
        return self._fill()

    def advance(self) -> Step:
        if self._finished:
            raise RuntimeError("advance() called after the cursor delivered its end signal")

        error = self._fill()
        if error is not None:
            return Step(error=error)

        if not self._buffer:
            self._finished = True
            return END

        item = self._buffer.popleft()
        self._position = Checkpoint.of(item)
        return Step(item=item)

    def close(self) -> None:
        self._buffer.clear()
        self._finished = True

    def _fill(self) -> Optional[ExportError]:
        if self._buffer or self._exhausted:
            return None

        try:
            items, exhausted = self._fetch_page(self._position, self._inclusive)
        except (KeyError, TypeError, ValueError) as e:
            return ExportError(
                kind=ErrorKind.BAD_DATA,
                message=f"unreadable record after {self._position}: {e}",
                reason=type(e).__name__,
            )
        except self.transient_errors as e:
            return self._classify(e)

        if not items and not exhausted:
            return ExportError(
                kind=ErrorKind.BAD_DATA,
                message=f"empty page after {self._position} claims more items follow",
                reason=EMPTY_PAGE,
            )

        self._exhausted = exhausted
        self._inclusive = False
        self._buffer.extend(items)
        return None

    def _fetch_page(self, position: Optional[Checkpoint], inclusive: bool) -> Tuple[List[Item], bool]:
        """
        Return the page following `position` and whether it is the last one.

        `inclusive` is set only for the first page of a resumed cursor, where
        redelivering the checkpoint item itself is allowed.
        """
        raise NotImplementedError

    def _classify(self, exc: BaseException) -> ExportError:
        return ExportError.from_exception(ErrorKind.ADVANCE_FAILED, exc)
