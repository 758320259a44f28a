from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from message_export.core.errors import NAME_ALREADY_EXISTS, ErrorKind, ExportError
from message_export.sinks.base import ArtifactSink
from message_export.utils.logging import get_logger


class DirectorySink(ArtifactSink):
    """Sink that stores each artifact as a new file under a root directory. Never overwrites."""

    def __init__(self, root: str):
        self.root = Path(root)
        self.log = get_logger("message_export.sink.directory")

    def write(self, name: str, data: bytes) -> Optional[ExportError]:
        """Create `name` under the root; an existing file is reported as NAME_ALREADY_EXISTS."""
        if not name or Path(name).name != name:
            return ExportError(
                kind=ErrorKind.SINK_WRITE_FAILED,
                message=f"artifact name must be a plain file name: {name!r}",
                reason="invalid_name",
            )

        path = self.root / name
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            f = open(path, "xb")
        except FileExistsError:
            self.log.error("Unable to write the file: %s already exists", path)
            return ExportError(
                kind=ErrorKind.SINK_WRITE_FAILED,
                message=f"{path} already exists",
                reason=NAME_ALREADY_EXISTS,
            )
        except OSError as e:
            self.log.error("Unable to write the file %s: %s", path, e)
            return ExportError.from_exception(ErrorKind.SINK_WRITE_FAILED, e)

        try:
            with f:
                f.write(data)
        except OSError as e:
            # The file was created by this call; drop the partial artifact.
            os.remove(path)
            self.log.error("Unable to write the file %s: %s", path, e)
            return ExportError.from_exception(ErrorKind.SINK_WRITE_FAILED, e)

        self.log.info("Artifact write: path=%s bytes=%d", path, len(data))
        return None
