"""
Integration tests for the count and export operations.
"""

import json
import os
import shutil
import tempfile
import unittest
from datetime import datetime

from fakes import FlakyStore, ListCursor, ScriptedSource, mms, sms

from message_export.core.engine import MessageExporter
from message_export.core.errors import NAME_ALREADY_EXISTS, ErrorKind, ExportFailure
from message_export.core.models import FetchStrategy, IteratorState, SourceFilter, Thread
from message_export.core.policies import CancellationToken, RetryPolicy
from message_export.sinks.directory_sink import DirectorySink

NOW = datetime(2014, 8, 4, 9, 5, 7)
ARTIFACT = "2014-8-4-9-5-7-SMMS.json"


def _mailbox():
    return [
        sms(1, thread_id=10),
        sms(2, thread_id=20),
        mms(3, thread_id=10),
        sms(4, thread_id=30),
        sms(5, thread_id=20),
        mms(6, thread_id=30),
    ]


class TestMessageExporter(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.sink = DirectorySink(self.tmp_dir)

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def _exporter(self, store, **kwargs):
        return MessageExporter(sources=store, sink=self.sink, **kwargs)

    def test_count_messages_complete(self):
        result = self._exporter(FlakyStore(_mailbox())).count_messages()

        self.assertTrue(result.ok)
        self.assertEqual(result.count, 6)
        self.assertEqual(result.report.state, IteratorState.DONE)

    def test_count_messages_with_failures_has_no_duplicates(self):
        store = FlakyStore(_mailbox(), failures=[2, 1, 3])
        result = self._exporter(store).count_messages()

        self.assertEqual(result.count, 6)
        self.assertEqual(result.report.retries, 3)

    def test_count_twice_gives_same_result(self):
        store = FlakyStore(_mailbox(), failures=[4])
        exporter = self._exporter(store)

        first = exporter.count_messages()
        second = exporter.count_messages()

        self.assertEqual(first.count, 6)
        self.assertEqual(second.count, 6)
        self.assertEqual(first.report.retries, 1)
        self.assertEqual(second.report.retries, 0)
        self.assertEqual(second.report.duplicates_discarded, 0)

    def test_count_threads(self):
        result = self._exporter(FlakyStore(_mailbox())).count_threads()

        self.assertTrue(result.ok)
        self.assertEqual(result.count, 3)

    def test_count_retry_exhaustion_reports_error(self):
        store = FlakyStore(_mailbox(), failures=[2, 0, 0])
        result = self._exporter(store, retry=RetryPolicy(max_retries=1)).count_messages()

        self.assertFalse(result.ok)
        self.assertEqual(result.count, 2)
        self.assertEqual(result.error.kind, ErrorKind.RETRY_BUDGET_EXCEEDED)
        with self.assertRaises(ExportFailure) as ctx:
            result.raise_for_error()
        self.assertEqual(ctx.exception.kind, ErrorKind.RETRY_BUDGET_EXCEEDED)

    def test_export_writes_projected_json_array(self):
        store = FlakyStore(_mailbox(), failures=[3])
        result = self._exporter(store).export_messages(now=NOW)

        self.assertTrue(result.ok)
        self.assertEqual(result.artifact_name, ARTIFACT)
        self.assertEqual(result.record_count, 6)

        path = os.path.join(self.tmp_dir, ARTIFACT)
        with open(path, "rb") as f:
            raw = f.read()
        self.assertEqual(result.bytes_written, len(raw))

        exported = json.loads(raw.decode("utf-8"))
        self.assertEqual([m["id"] for m in exported], [1, 2, 3, 4, 5, 6])
        self.assertNotIn("subject", exported[0])
        self.assertEqual(exported[2]["subject"], "subject 3")
        self.assertNotIn("body", exported[2])

    def test_export_uses_name_hint(self):
        result = self._exporter(FlakyStore([sms(1)])).export_messages("backup.json", now=NOW)

        self.assertEqual(result.artifact_name, "2014-8-4-9-5-7-backup.json")
        self.assertTrue(os.path.exists(os.path.join(self.tmp_dir, result.artifact_name)))

    def test_export_empty_store_writes_empty_array(self):
        result = self._exporter(FlakyStore([])).export_messages(now=NOW)

        self.assertEqual(result.record_count, 0)
        with open(os.path.join(self.tmp_dir, ARTIFACT), "rb") as f:
            self.assertEqual(f.read(), b"[]")

    def test_failed_export_writes_nothing(self):
        store = FlakyStore(_mailbox(), failures=[2, 0, 0, 0])
        result = self._exporter(store, retry=RetryPolicy(max_retries=2)).export_messages(now=NOW)

        self.assertFalse(result.ok)
        self.assertIsNone(result.artifact_name)
        self.assertEqual(result.record_count, 2)
        self.assertEqual(result.error.kind, ErrorKind.RETRY_BUDGET_EXCEEDED)
        self.assertEqual(os.listdir(self.tmp_dir), [])

    def test_cancelled_export_writes_nothing(self):
        token = CancellationToken()
        token.cancel()
        result = self._exporter(FlakyStore(_mailbox())).export_messages(token=token, now=NOW)

        self.assertEqual(result.error.kind, ErrorKind.CANCELLED)
        self.assertEqual(os.listdir(self.tmp_dir), [])

    def test_export_name_collision_keeps_existing_file(self):
        path = os.path.join(self.tmp_dir, ARTIFACT)
        with open(path, "wb") as f:
            f.write(b"previous export")

        result = self._exporter(FlakyStore(_mailbox())).export_messages(now=NOW)

        self.assertFalse(result.ok)
        self.assertEqual(result.error.kind, ErrorKind.SINK_WRITE_FAILED)
        self.assertEqual(result.error.reason, NAME_ALREADY_EXISTS)
        self.assertTrue(result.error.is_name_collision)
        self.assertIsNone(result.artifact_name)
        self.assertEqual(result.record_count, 6)
        with open(path, "rb") as f:
            self.assertEqual(f.read(), b"previous export")

    def test_export_requires_sink(self):
        exporter = MessageExporter(sources=FlakyStore([]))
        with self.assertRaises(ValueError):
            exporter.export_messages()

    def test_by_thread_strategy_matches_timeline(self):
        timeline = self._exporter(FlakyStore(_mailbox())).count_messages()

        store = FlakyStore(_mailbox(), failures=[1, 0, 1])
        by_thread = self._exporter(store, strategy=FetchStrategy.BY_THREAD)
        result = by_thread.export_messages(now=NOW)

        self.assertTrue(result.ok)
        self.assertEqual(result.record_count, timeline.count)
        with open(os.path.join(self.tmp_dir, ARTIFACT), "rb") as f:
            exported = json.loads(f.read())
        # Messages arrive grouped by thread.
        self.assertEqual([m["id"] for m in exported], [1, 3, 2, 5, 4, 6])

    def test_by_thread_stops_on_failed_thread(self):
        # threads cursor, thread 10 cursor, then thread 20 keeps failing
        store = FlakyStore(_mailbox(), failures=[None, None, 0, 0])
        exporter = self._exporter(store, strategy=FetchStrategy.BY_THREAD, retry=RetryPolicy(max_retries=1))

        result = exporter.count_messages()

        self.assertEqual(result.count, 2)
        self.assertEqual(result.error.kind, ErrorKind.RETRY_BUDGET_EXCEEDED)
        self.assertEqual(result.report.state, IteratorState.FAILED)

    def test_by_thread_skips_thread_without_id(self):
        store = FlakyStore(_mailbox())
        scopes = []

        class _Sources:
            def threads(self):
                return ScriptedSource(ListCursor([Thread(id=None), Thread(id=10)]))

            def messages(self, scope=SourceFilter()):
                scopes.append(scope)
                return store.messages(scope)

        exporter = MessageExporter(sources=_Sources(), strategy=FetchStrategy.BY_THREAD)
        result = exporter.count_messages()

        self.assertEqual(result.count, 2)
        self.assertEqual(scopes, [SourceFilter(thread_id=10)])


if __name__ == "__main__":
    unittest.main()
