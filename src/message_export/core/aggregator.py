from __future__ import annotations

from typing import Any, Dict, Iterable, List

from message_export.core.models import Item, Message
from message_export.transform.projection import Projector


def count_items(items: Iterable[Item]) -> int:
    """Consume the stream keeping only a running total."""
    total = 0
    for _ in items:
        total += 1
    return total


def collect_projections(items: Iterable[Message], projector: Projector) -> List[Dict[str, Any]]:
    """Consume the stream into an ordered list of projections."""
    return [projector.project(message) for message in items]
