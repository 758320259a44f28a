from __future__ import annotations

from typing import Any, Protocol, Set

from message_export.core.models import Item
from message_export.utils.logging import get_logger


class DedupeStrategy(Protocol):
    """Protocol for run-scoped deduplication."""

    def key(self, item: Item) -> Any: ...
    def admit(self, item: Item) -> bool: ...


class IdDedupeStrategy:
    """Admit each item id once per run; redelivered ids are discarded."""

    def __init__(self):
        self._seen: Set[Any] = set()
        self.duplicates = 0
        self.log = get_logger("message_export.dedupe.id")

    def key(self, item: Item) -> Any:
        return (type(item).__name__, item.id)

    def admit(self, item: Item) -> bool:
        k = self.key(item)
        if k in self._seen:
            self.duplicates += 1
            self.log.debug("Duplicate id skipped: %s", item.id)
            return False
        self._seen.add(k)
        return True

    def __len__(self) -> int:
        return len(self._seen)
