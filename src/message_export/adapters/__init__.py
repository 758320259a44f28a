from message_export.adapters.base import Cursor, CursorSource, OpenResult, PagedCursor, SourceFactory
from message_export.adapters.http_source import HttpMessageSource
from message_export.adapters.sqlite_store import SQLiteMessageStore

__all__ = [
    "Cursor",
    "CursorSource",
    "HttpMessageSource",
    "OpenResult",
    "PagedCursor",
    "SQLiteMessageStore",
    "SourceFactory",
]
