from __future__ import annotations
from typing import Optional, Protocol
from message_export.core.errors import ExportError

class ArtifactSink(Protocol):
    """Protocol for artifact sinks. write() returns None on success."""

    def write(self, name: str, data: bytes) -> Optional[ExportError]: ...
