"""
Test doubles for cursor sources.

FlakyStore behaves like a real store whose cursors go stale: each opened
cursor may fail after a scripted number of items, and a resumed cursor
redelivers the checkpoint message itself.
"""

import threading
from collections import deque
from typing import Any, List, Optional

from message_export.adapters.base import OpenResult
from message_export.core.errors import ErrorKind, ExportError
from message_export.core.models import END, Checkpoint, Message, SourceFilter, Step, Thread


def sms(msg_id: int, timestamp: Optional[int] = None, thread_id: Any = 1, **extra) -> Message:
    attributes = {
        "id": msg_id,
        "type": "sms",
        "timestamp": timestamp if timestamp is not None else 1408892131000 + msg_id,
        "threadId": thread_id,
        "body": f"message {msg_id}",
        "delivery": "received",
        "read": True,
        "sender": "+33612345678",
        "receiver": None,
        "messageClass": "normal",
        "deliveryStatus": "not-applicable",
    }
    attributes.update(extra)
    return Message.from_attributes(attributes)


def mms(msg_id: int, timestamp: Optional[int] = None, thread_id: Any = 1, **extra) -> Message:
    attributes = {
        "id": msg_id,
        "type": "mms",
        "timestamp": timestamp if timestamp is not None else 1408892131000 + msg_id,
        "threadId": thread_id,
        "subject": f"subject {msg_id}",
        "smil": "<smil></smil>",
        "attachments": [{"id": "a1", "location": "image.jpg"}],
        "receivers": ["+33623456789"],
        "sender": "+33612345678",
        "delivery": "received",
        "deliveryStatus": ["success"],
        "expiryDate": 0,
        "read": False,
    }
    attributes.update(extra)
    return Message.from_attributes(attributes)


def advance_error(reason: str = "InvalidStateError") -> ExportError:
    return ExportError(kind=ErrorKind.ADVANCE_FAILED, message="cursor went stale", reason=reason)


class ListCursor:
    """Yields items then END; fails with ADVANCE_FAILED once `fail_after` items were delivered."""

    def __init__(self, items: List[Any], fail_after: Optional[int] = None):
        self.items = deque(items)
        self.fail_after = fail_after
        self.delivered = 0
        self.closed = False
        self.ended = False

    def advance(self) -> Step:
        assert not self.ended, "advance() called after END"
        if self.fail_after is not None and self.delivered >= self.fail_after:
            return Step(error=advance_error())
        if not self.items:
            self.ended = True
            return END
        self.delivered += 1
        return Step(item=self.items.popleft())

    def close(self) -> None:
        self.closed = True


class ScriptedCursor:
    """Replays a fixed list of steps."""

    def __init__(self, steps: List[Step]):
        self.steps = deque(steps)
        self.closed = False

    def advance(self) -> Step:
        return self.steps.popleft()

    def close(self) -> None:
        self.closed = True


class ScriptedSource:
    """Hands out pre-built cursors (or open results) in order and records resume positions."""

    def __init__(self, *cursors: Any):
        self.cursors = list(cursors)
        self.opened_with: List[Optional[Checkpoint]] = []

    def open(self, resume_from: Optional[Checkpoint]) -> OpenResult:
        self.opened_with.append(resume_from)
        nxt = self.cursors.pop(0)
        if isinstance(nxt, OpenResult):
            return nxt
        return OpenResult(cursor=nxt)


class BlockingCursor:
    """advance() blocks until released; used to exercise attempt timeouts."""

    def __init__(self):
        self.release = threading.Event()
        self.closed = False

    def advance(self) -> Step:
        self.release.wait(5)
        return Step(error=advance_error("Released"))

    def close(self) -> None:
        self.closed = True


class FlakyStore:
    """In-memory store whose cursors fail according to `failures`."""

    def __init__(self, messages: List[Message], failures: Optional[List[int]] = None):
        self.records = sorted(messages, key=lambda m: (m.timestamp, m.id))
        # Each entry is how many items the next opened cursor yields before failing.
        self.failures = list(failures or [])
        self.opened_with: List[Optional[Checkpoint]] = []
        self.cursors: List[ListCursor] = []

    def messages(self, scope: SourceFilter = SourceFilter()) -> "_FlakySource":
        return _FlakySource(self, scope)

    def threads(self) -> "_ThreadSource":
        return _ThreadSource(self)

    def open_cursor(self, items: List[Any], resume_from: Optional[Checkpoint]) -> OpenResult:
        self.opened_with.append(resume_from)
        if resume_from is not None:
            items = [i for i in items if (i.timestamp, i.id) >= (resume_from.timestamp, resume_from.id)]
        fail_after = self.failures.pop(0) if self.failures else None
        cursor = ListCursor(items, fail_after)
        self.cursors.append(cursor)
        return OpenResult(cursor=cursor)


class _FlakySource:
    def __init__(self, store: FlakyStore, scope: SourceFilter):
        self.store = store
        self.scope = scope

    def open(self, resume_from: Optional[Checkpoint]) -> OpenResult:
        items = [
            m for m in self.store.records if self.scope.thread_id is None or m.thread_id == self.scope.thread_id
        ]
        return self.store.open_cursor(items, resume_from)


class _ThreadSource:
    def __init__(self, store: FlakyStore):
        self.store = store

    def open(self, resume_from: Optional[Checkpoint]) -> OpenResult:
        thread_ids = sorted({m.thread_id for m in self.store.records})
        threads = [
            Thread(id=tid, message_count=sum(1 for m in self.store.records if m.thread_id == tid))
            for tid in thread_ids
        ]
        return self.store.open_cursor(threads, resume_from)
