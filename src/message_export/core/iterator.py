from __future__ import annotations

import threading
from typing import Iterator, List, Optional

from message_export.adapters.base import Cursor, CursorSource
from message_export.core.errors import ErrorKind, ExportError
from message_export.core.models import Checkpoint, Item, IteratorState, RunReport, Step
from message_export.core.policies import CancellationToken, RetryPolicy, backoff_sleep
from message_export.transform.dedupe import DedupeStrategy, IdDedupeStrategy
from message_export.utils.logging import get_logger

ADVANCE_TIMEOUT = "AdvanceTimeout"


def _precedes(a: Checkpoint, b: Checkpoint) -> bool:
    try:
        return (a.timestamp, a.id) < (b.timestamp, b.id)
    except TypeError:
        return False


class ResumableIterator:
    """
    Drives a cursor source to its end, reopening it from the last checkpoint
    whenever an advance fails.

    Iterating yields each item id at most once. When iteration stops, `state`
    is DONE, FAILED or CANCELLED and `error` holds the surfaced error, if any.
    An instance runs once; build a new one per run.
    """

    def __init__(
        self,
        source: CursorSource,
        policy: Optional[RetryPolicy] = None,
        token: Optional[CancellationToken] = None,
        deduper: Optional[DedupeStrategy] = None,
        name: str = "messages",
    ):
        self.source = source
        self.policy = policy or RetryPolicy()
        self.token = token
        self.deduper = deduper or IdDedupeStrategy()
        self.name = name
        self.state = IteratorState.IDLE
        self.error: Optional[ExportError] = None
        self.report = RunReport()
        self._checkpoint: Optional[Checkpoint] = None
        self.log = get_logger("message_export.iterator")

    @property
    def ok(self) -> bool:
        return self.state == IteratorState.DONE

    def __iter__(self) -> Iterator[Item]:
        if self.state != IteratorState.IDLE:
            raise RuntimeError("ResumableIterator runs once; create a new one for each run")

        self.log.info("Iteration started: %s max_retries=%s", self.name, self.policy.max_retries)
        cursor = self._open()
        try:
            while cursor is not None:
                if self._cancelled():
                    break

                step = self._advance(cursor)

                if step.done:
                    self._set_state(IteratorState.DONE)
                    break

                if step.error is not None:
                    # A timed-out cursor may still be inside advance(); it is dropped, not closed.
                    if step.error.reason != ADVANCE_TIMEOUT:
                        cursor.close()
                    cursor = self._recover(step.error)
                    continue

                item = step.item
                if not self.deduper.admit(item):
                    self.report.duplicates_discarded += 1
                    continue

                self._move_checkpoint(item)
                self.report.items_yielded += 1
                yield item
        finally:
            if cursor is not None:
                cursor.close()

        self.log.info(
            "Iteration finished: %s state=%s yielded=%s duplicates=%s retries=%s cursors=%s",
            self.name,
            self.state.value,
            self.report.items_yielded,
            self.report.duplicates_discarded,
            self.report.retries,
            self.report.cursors_opened,
        )

    def _open(self) -> Optional[Cursor]:
        if self._cancelled():
            return None

        result = self.source.open(self._checkpoint)
        self.report.cursors_opened += 1
        if result.error is not None:
            self._fail(result.error)
            return None

        self._set_state(IteratorState.RUNNING)
        return result.cursor

    def _advance(self, cursor: Cursor) -> Step:
        timeout_s = self.policy.attempt_timeout_s
        if timeout_s is None:
            return cursor.advance()

        steps: List[Step] = []
        raised: List[BaseException] = []

        def run() -> None:
            try:
                steps.append(cursor.advance())
            except BaseException as e:
                raised.append(e)

        # Daemon, so a worker stuck inside advance() cannot hold the process open at exit.
        worker = threading.Thread(target=run, name="cursor-advance", daemon=True)
        worker.start()
        worker.join(timeout_s)
        if worker.is_alive():
            return Step(
                error=ExportError(
                    kind=ErrorKind.ADVANCE_FAILED,
                    message=f"advance() did not return within {timeout_s}s",
                    reason=ADVANCE_TIMEOUT,
                )
            )
        if raised:
            raise raised[0]
        return steps[0]

    def _recover(self, error: ExportError) -> Optional[Cursor]:
        if not error.recoverable:
            self._fail(error)
            return None

        self._set_state(IteratorState.DRAINING)
        self.report.retries += 1

        if self.policy.exhausted(self.report.retries):
            self._fail(
                ExportError(
                    kind=ErrorKind.RETRY_BUDGET_EXCEEDED,
                    message=f"gave up after {self.policy.max_retries} reopen attempt(s)",
                    reason=error.reason,
                    cause=error,
                )
            )
            return None

        self.log.warning(
            "Cursor failed, reopening: %s retry=%s checkpoint=%s error=%s",
            self.name,
            self.report.retries,
            self._checkpoint,
            error,
        )
        backoff_sleep(self.policy, self.report.retries - 1, self.token)
        return self._open()

    def _move_checkpoint(self, item: Item) -> None:
        candidate = Checkpoint.of(item)
        if self._checkpoint is not None and _precedes(candidate, self._checkpoint):
            self.log.warning(
                "Out-of-order item %s at %s; checkpoint stays at %s",
                item.id,
                item.timestamp,
                self._checkpoint,
            )
            return
        self._checkpoint = candidate

    def _cancelled(self) -> bool:
        if self.token is None or not self.token.cancelled:
            return False
        self.state = IteratorState.CANCELLED
        self.error = ExportError(kind=ErrorKind.CANCELLED, message=f"{self.name} iteration cancelled")
        self.report.state = self.state
        return True

    def _fail(self, error: ExportError) -> None:
        self.error = error
        self._set_state(IteratorState.FAILED)
        self.log.error("Iteration failed: %s error=%s", self.name, error)

    def _set_state(self, state: IteratorState) -> None:
        self.state = state
        self.report.state = state
