from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from message_export.core.errors import ExportError, ExportFailure


class MessageKind(str, Enum):
    """Enumeration for message kinds."""

    SMS = "sms"
    MMS = "mms"


def _freeze(attributes: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(attributes))


@dataclass(frozen=True)
class Message:
    """A message read from the source store. Immutable once read."""

    id: Any
    kind: MessageKind
    timestamp: Any
    thread_id: Any
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", _freeze(self.attributes))

    @classmethod
    def from_attributes(cls, attributes: Mapping[str, Any]) -> "Message":
        """Build a message from a raw store record (keys as the store names them)."""
        kind = MessageKind.MMS if attributes.get("type") == MessageKind.MMS.value else MessageKind.SMS
        return cls(
            id=attributes["id"],
            kind=kind,
            timestamp=attributes["timestamp"],
            thread_id=attributes.get("threadId"),
            attributes=attributes,
        )


@dataclass(frozen=True)
class Thread:
    """Aggregate view of one conversation thread."""

    id: Any
    last_timestamp: Any = None
    message_count: int = 0
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", _freeze(self.attributes))

    @property
    def timestamp(self) -> Any:
        # Threads are ordered by id; the id doubles as their ordering key.
        return self.id


Item = Union[Message, Thread]


@dataclass(frozen=True)
class Checkpoint:
    """Position of the last item included in the current run."""

    timestamp: Any
    id: Any

    @classmethod
    def of(cls, item: Item) -> "Checkpoint":
        return cls(timestamp=item.timestamp, id=item.id)


@dataclass(frozen=True)
class SourceFilter:
    """Scope predicate accepted by cursor sources."""

    thread_id: Any = None


@dataclass(frozen=True)
class Step:
    """Outcome of one Cursor.advance() call: an item, an error, or the end."""

    item: Optional[Item] = None
    error: Optional[ExportError] = None

    @property
    def done(self) -> bool:
        return self.item is None and self.error is None


END = Step()


class IteratorState(str, Enum):
    """Lifecycle of a resumable iteration."""

    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class RunReport:
    """Summary report of one iteration run."""

    state: IteratorState = IteratorState.IDLE
    items_yielded: int = 0
    duplicates_discarded: int = 0
    retries: int = 0
    cursors_opened: int = 0

    def merge(self, other: "RunReport") -> None:
        """Fold a nested run (e.g. one thread of a by-thread export) into this one."""
        self.items_yielded += other.items_yielded
        self.duplicates_discarded += other.duplicates_discarded
        self.retries += other.retries
        self.cursors_opened += other.cursors_opened


class FetchStrategy(str, Enum):
    """How messages are pulled from the source."""

    TIMELINE = "timeline"
    BY_THREAD = "by_thread"


@dataclass
class CountResult:
    """Outcome of a count operation."""

    count: int = 0
    error: Optional[ExportError] = None
    report: RunReport = field(default_factory=RunReport)

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> "CountResult":
        if self.error is not None:
            raise ExportFailure(self.error)
        return self


@dataclass
class ExportResult:
    """Outcome of an export; artifact_name is set only when the sink accepted the artifact."""

    artifact_name: Optional[str] = None
    record_count: int = 0
    bytes_written: int = 0
    error: Optional[ExportError] = None
    report: RunReport = field(default_factory=RunReport)

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> "ExportResult":
        if self.error is not None:
            raise ExportFailure(self.error)
        return self
