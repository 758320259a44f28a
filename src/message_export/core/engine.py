from __future__ import annotations

from datetime import datetime
from typing import Iterator, List, Optional

from message_export.adapters.base import CursorSource, SourceFactory
from message_export.core.aggregator import collect_projections, count_items
from message_export.core.errors import ExportError
from message_export.core.iterator import ResumableIterator
from message_export.core.models import (
    CountResult,
    ExportResult,
    FetchStrategy,
    IteratorState,
    Message,
    RunReport,
    SourceFilter,
)
from message_export.core.policies import CancellationToken, RetryPolicy
from message_export.sinks.base import ArtifactSink
from message_export.sinks.json_codec import encode_projections
from message_export.transform.dedupe import IdDedupeStrategy
from message_export.transform.projection import Projector
from message_export.utils.logging import get_logger
from message_export.utils.time import artifact_name

DEFAULT_BASE_NAME = "SMMS.json"


class _Run:
    """Outcome of the iterators driven by one invocation."""

    def __init__(self) -> None:
        self.report = RunReport()
        self.error: Optional[ExportError] = None

    def absorb(self, iterator: ResumableIterator) -> None:
        self.report.merge(iterator.report)
        self.report.state = iterator.state
        if iterator.error is not None:
            self.error = iterator.error


class MessageExporter:
    """
    Counts and exports messages held in a cursor-only store.

    Every call starts from scratch: iterators, dedupe state and result sets
    are built per invocation and never shared between calls.
    """

    def __init__(
        self,
        sources: SourceFactory,
        sink: Optional[ArtifactSink] = None,
        projector: Optional[Projector] = None,
        retry: Optional[RetryPolicy] = None,
        strategy: FetchStrategy = FetchStrategy.TIMELINE,
        base_name: str = DEFAULT_BASE_NAME,
    ):
        """
        Initialize the exporter.

        Args:
            sources: Factory for message and thread cursor sources.
            sink: Destination for exported artifacts (required by export_messages).
            projector: Allow-list projection applied to exported messages.
            retry: Reopen policy for failed cursors.
            strategy: Whether to read messages as one timeline or thread by thread.
            base_name: Artifact base name used when no name hint is given.
        """
        self.sources = sources
        self.sink = sink
        self.projector = projector or Projector()
        self.retry = retry or RetryPolicy()
        self.strategy = FetchStrategy(strategy)
        self.base_name = base_name
        self.log = get_logger("message_export.engine")

    def count_messages(self, token: Optional[CancellationToken] = None) -> CountResult:
        """Count distinct messages in the store."""
        run = _Run()
        count = count_items(self._messages(run, token))
        self.log.info("SMS and MMS count: %s (state=%s)", count, run.report.state.value)
        return CountResult(count=count, error=run.error, report=run.report)

    def count_threads(self, token: Optional[CancellationToken] = None) -> CountResult:
        """Count threads in the store."""
        run = _Run()
        iterator = self._iterator(self.sources.threads(), token, IdDedupeStrategy(), "threads")
        count = count_items(iterator)
        run.absorb(iterator)
        self.log.info("Threads count: %s (state=%s)", count, run.report.state.value)
        return CountResult(count=count, error=run.error, report=run.report)

    def export_messages(
        self,
        name_hint: Optional[str] = None,
        token: Optional[CancellationToken] = None,
        now: Optional[datetime] = None,
    ) -> ExportResult:
        """
        Export all messages as one JSON artifact.

        The sink is called only after the source has been read to its end;
        a failed or cancelled read writes nothing.

        Args:
            name_hint: Base name of the artifact; defaults to the configured base name.
            token: Optional cancellation token checked before every cursor call.
            now: Time used for the artifact name prefix (local time by default).

        Returns:
            An ExportResult with the artifact name and record count, or an error.
        """
        if self.sink is None:
            raise ValueError("export_messages requires a sink")

        name = artifact_name(name_hint or self.base_name, now)
        self.log.info("Exporting messages to %s", name)

        run = _Run()
        projections = collect_projections(self._messages(run, token), self.projector)
        if run.error is not None:
            self.log.error("Export aborted after %s message(s): %s", len(projections), run.error)
            return ExportResult(record_count=len(projections), error=run.error, report=run.report)

        data = encode_projections(projections)
        self.log.info("Exporting %s messages to %s", len(projections), name)
        sink_error = self.sink.write(name, data)
        if sink_error is not None:
            return ExportResult(record_count=len(projections), error=sink_error, report=run.report)

        self.log.info("File %s successfully written (%d bytes)", name, len(data))
        return ExportResult(
            artifact_name=name,
            record_count=len(projections),
            bytes_written=len(data),
            report=run.report,
        )

    # ---------- Strategies (private) ----------

    def _messages(self, run: _Run, token: Optional[CancellationToken]) -> Iterator[Message]:
        deduper = IdDedupeStrategy()
        if self.strategy == FetchStrategy.BY_THREAD:
            return self._messages_by_thread(run, token, deduper)
        return self._messages_timeline(run, token, deduper)

    def _messages_timeline(
        self,
        run: _Run,
        token: Optional[CancellationToken],
        deduper: IdDedupeStrategy,
    ) -> Iterator[Message]:
        iterator = self._iterator(self.sources.messages(), token, deduper, "messages")
        yield from iterator
        run.absorb(iterator)

    def _messages_by_thread(
        self,
        run: _Run,
        token: Optional[CancellationToken],
        deduper: IdDedupeStrategy,
    ) -> Iterator[Message]:
        threads = self._iterator(self.sources.threads(), token, IdDedupeStrategy(), "threads")
        # A None id would turn into an unscoped scan of every message.
        thread_ids: List[object] = [t.id for t in threads if t.id is not None]
        run.absorb(threads)
        if threads.state != IteratorState.DONE:
            return

        for index, thread_id in enumerate(thread_ids, start=1):
            iterator = self._iterator(
                self.sources.messages(SourceFilter(thread_id=thread_id)),
                token,
                deduper,
                f"thread {thread_id}",
            )
            yield from iterator
            run.absorb(iterator)
            self.log.info("%s messages from %s/%s thread(s)", run.report.items_yielded, index, len(thread_ids))
            if iterator.state != IteratorState.DONE:
                return

    def _iterator(
        self,
        source: CursorSource,
        token: Optional[CancellationToken],
        deduper: IdDedupeStrategy,
        name: str,
    ) -> ResumableIterator:
        return ResumableIterator(source, policy=self.retry, token=token, deduper=deduper, name=name)
