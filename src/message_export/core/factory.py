from __future__ import annotations

from dataclasses import dataclass

from message_export.adapters.base import SourceFactory
from message_export.adapters.http_source import HttpMessageSource
from message_export.adapters.sqlite_store import SQLiteMessageStore
from message_export.config_models import ExportConfig, HttpSourceConfig
from message_export.core.engine import MessageExporter
from message_export.core.models import MessageKind
from message_export.core.policies import RetryPolicy
from message_export.sinks.base import ArtifactSink
from message_export.sinks.directory_sink import DirectorySink
from message_export.transform.projection import Projector


@dataclass(frozen=True)
class BuiltComponents:
    exporter: MessageExporter
    sources: SourceFactory
    sink: ArtifactSink
    projector: Projector
    retry: RetryPolicy


class ComponentFactory:
    """
    Factory responsible for wiring dependencies.
    Keeps main.py clean and turns a validated config into ready components.
    """

    def build(self, config: ExportConfig) -> BuiltComponents:
        """
        Build all components needed for counting and exporting.

        Args:
            config: The validated export configuration.

        Returns:
            A container with all built components.
        """
        sources = self._sources(config)
        sink = self._sink(config)
        projector = self._projector(config)
        retry = self._retry(config)

        exporter = MessageExporter(
            sources=sources,
            sink=sink,
            projector=projector,
            retry=retry,
            strategy=config.export.strategy,
            base_name=config.export.base_name,
        )

        return BuiltComponents(
            exporter=exporter,
            sources=sources,
            sink=sink,
            projector=projector,
            retry=retry,
        )

    # ---------- Builders (private) ----------

    def _sources(self, config: ExportConfig) -> SourceFactory:
        """Create the cursor source factory based on source type."""
        src = config.source
        if isinstance(src, HttpSourceConfig):
            return HttpMessageSource(
                base_url=src.base_url,
                page_size=src.page_size,
                timeout_s=src.timeout_s,
                headers=src.headers,
            )
        return SQLiteMessageStore(path=src.path, page_size=src.page_size, timeout_s=src.timeout_s)

    def _sink(self, config: ExportConfig) -> ArtifactSink:
        """Create the artifact sink."""
        return DirectorySink(config.sink.path)

    def _projector(self, config: ExportConfig) -> Projector:
        """Create the projection allow-lists."""
        return Projector(
            {
                MessageKind.SMS: tuple(config.export.sms_properties),
                MessageKind.MMS: tuple(config.export.mms_properties),
            }
        )

    def _retry(self, config: ExportConfig) -> RetryPolicy:
        """Create the cursor reopen policy."""
        return RetryPolicy(**config.retry.model_dump())
