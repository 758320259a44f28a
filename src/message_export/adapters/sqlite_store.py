from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from message_export.adapters.base import OpenResult, PagedCursor
from message_export.core.models import Checkpoint, Item, Message, SourceFilter, Thread
from message_export.utils.logging import get_logger


class SQLiteMessageStore:
    """
    SQLite-backed message store.

    Messages are read through keyset-paged cursors ordered by (timestamp, id);
    threads are derived by grouping messages on thread_id.
    """

    def __init__(self, path: str, page_size: int = 100, timeout_s: float = 5.0):
        self.path = path
        self.page_size = max(1, int(page_size))
        self.timeout_s = timeout_s
        self.log = get_logger("message_export.source.sqlite")

    def messages(self, scope: SourceFilter = SourceFilter()) -> "SQLiteMessageSource":
        return SQLiteMessageSource(self, scope)

    def threads(self) -> "SQLiteThreadSource":
        return SQLiteThreadSource(self)

    def add_messages(self, messages: Iterable[Mapping[str, Any]]) -> int:
        """Insert raw message attribute maps (keys as exported: id, type, threadId, timestamp, ...)."""
        rows = []
        for m in messages:
            if m.get("threadId") is None:
                raise ValueError(f"message {m.get('id')!r} has no threadId")
            rows.append(
                (
                    m["id"],
                    str(m.get("type") or "sms"),
                    m["threadId"],
                    m["timestamp"],
                    json.dumps(dict(m), ensure_ascii=False, sort_keys=True),
                )
            )

        self._ensure_parent_dir(self.path)
        self.ensure_schema()
        with self._session() as conn:
            conn.executemany(
                """
                INSERT INTO messages (id, type, thread_id, timestamp, attributes_json)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    type = excluded.type,
                    thread_id = excluded.thread_id,
                    timestamp = excluded.timestamp,
                    attributes_json = excluded.attributes_json
                """,
                rows,
            )
        self.log.info("SQLite insert: path=%s messages=%d", self.path, len(rows))
        return len(rows)

    def ensure_schema(self) -> None:
        with self._session() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id PRIMARY KEY,
                    type TEXT NOT NULL,
                    thread_id NOT NULL,
                    timestamp INTEGER NOT NULL,
                    attributes_json TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_messages_timestamp_id
                ON messages (timestamp, id)
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_messages_thread
                ON messages (thread_id, timestamp, id)
                """
            )

    def connect_readonly(self) -> sqlite3.Connection:
        # mode=ro refuses to create a missing database file
        uri = Path(self.path).resolve().as_uri() + "?mode=ro"
        # Cursors may be advanced from a timeout worker thread, one call at a time.
        conn = sqlite3.connect(uri, uri=True, timeout=self.timeout_s, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("SELECT 1 FROM messages LIMIT 0")
        except Exception:
            conn.close()
            raise
        return conn

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=self.timeout_s)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _session(self):
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _ensure_parent_dir(self, path: str) -> None:
        parent = Path(path).parent
        if str(parent) not in {"", "."}:
            parent.mkdir(parents=True, exist_ok=True)


class SQLiteMessageSource:
    """Cursor source over the messages table, optionally scoped to one thread."""

    def __init__(self, store: SQLiteMessageStore, scope: SourceFilter = SourceFilter()):
        self.store = store
        self.scope = scope

    def open(self, resume_from: Optional[Checkpoint]) -> OpenResult:
        try:
            conn = self.store.connect_readonly()
        except sqlite3.Error as e:
            self.store.log.error("Cannot open messages cursor: %s", e)
            return OpenResult.failed(e)
        return OpenResult(cursor=_MessageCursor(conn, self.scope, self.store.page_size, resume_from))


class SQLiteThreadSource:
    """Cursor source over threads, ordered by thread id."""

    def __init__(self, store: SQLiteMessageStore):
        self.store = store

    def open(self, resume_from: Optional[Checkpoint]) -> OpenResult:
        try:
            conn = self.store.connect_readonly()
        except sqlite3.Error as e:
            self.store.log.error("Cannot open threads cursor: %s", e)
            return OpenResult.failed(e)
        return OpenResult(cursor=_ThreadCursor(conn, self.store.page_size, resume_from))


class _SQLiteCursor(PagedCursor):
    transient_errors = (sqlite3.Error,)

    def __init__(self, conn: sqlite3.Connection, page_size: int, resume_from: Optional[Checkpoint]):
        super().__init__(resume_from)
        self.conn = conn
        self.page_size = page_size

    def _run_page(self, sql: str, params: List[Any]) -> Tuple[List[sqlite3.Row], bool]:
        rows = self.conn.execute(sql, (*params, self.page_size)).fetchall()
        last_page = len(rows) < self.page_size
        if last_page:
            self.conn.close()
        return rows, last_page

    def close(self) -> None:
        super().close()
        self.conn.close()


class _MessageCursor(_SQLiteCursor):
    def __init__(
        self,
        conn: sqlite3.Connection,
        scope: SourceFilter,
        page_size: int,
        resume_from: Optional[Checkpoint],
    ):
        super().__init__(conn, page_size, resume_from)
        self.scope = scope

    def _fetch_page(self, position: Optional[Checkpoint], inclusive: bool) -> Tuple[List[Item], bool]:
        clauses: List[str] = []
        params: List[Any] = []

        if self.scope.thread_id is not None:
            clauses.append("thread_id = ?")
            params.append(self.scope.thread_id)

        if position is not None:
            op = ">=" if inclusive else ">"
            clauses.append(f"(timestamp > ? OR (timestamp = ? AND id {op} ?))")
            params.extend([position.timestamp, position.timestamp, position.id])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows, last_page = self._run_page(
            f"""
            SELECT attributes_json
            FROM messages
            {where}
            ORDER BY timestamp, id
            LIMIT ?
            """,
            params,
        )
        return [Message.from_attributes(json.loads(r["attributes_json"])) for r in rows], last_page


class _ThreadCursor(_SQLiteCursor):
    def _fetch_page(self, position: Optional[Checkpoint], inclusive: bool) -> Tuple[List[Item], bool]:
        # Rows without a thread (databases not written by add_messages) belong to no thread.
        clauses = ["thread_id IS NOT NULL"]
        params: List[Any] = []
        if position is not None:
            clauses.append(f"thread_id {'>=' if inclusive else '>'} ?")
            params.append(position.id)

        where = f"WHERE {' AND '.join(clauses)}"

        rows, last_page = self._run_page(
            f"""
            SELECT thread_id, COUNT(*) AS message_count, MAX(timestamp) AS last_timestamp
            FROM messages
            {where}
            GROUP BY thread_id
            ORDER BY thread_id
            LIMIT ?
            """,
            params,
        )
        threads: List[Item] = []
        for r in rows:
            attributes: Dict[str, Any] = {
                "id": r["thread_id"],
                "lastMessageTimestamp": r["last_timestamp"],
                "messageCount": int(r["message_count"]),
            }
            threads.append(
                Thread(
                    id=r["thread_id"],
                    last_timestamp=r["last_timestamp"],
                    message_count=int(r["message_count"]),
                    attributes=attributes,
                )
            )
        return threads, last_page
