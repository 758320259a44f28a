from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import requests

from message_export.adapters.base import OpenResult, PagedCursor
from message_export.core.errors import ErrorKind, ExportError
from message_export.core.models import Checkpoint, Item, Message, SourceFilter, Thread
from message_export.utils.logging import get_logger

DEFAULT_HEADERS = {"User-Agent": "message-export/0.1", "Accept": "application/json"}
ACCESS_DENIED_STATUSES = (401, 403)


class HttpStatusError(Exception):
    """Non-2xx response from the message API."""

    def __init__(self, status_code: int, url: str):
        super().__init__(f"HTTP {status_code} for {url}")
        self.status_code = status_code
        self.url = url


class HttpMessageSource:
    """
    Message store exposed as a paged JSON API.

    GET {base_url}/messages and GET {base_url}/threads answer
    {"items": [...], "has_more": bool}. Resumption is requested with the
    start_timestamp/start_id/inclusive query parameters.
    """

    def __init__(
        self,
        base_url: str,
        page_size: int = 100,
        timeout_s: Optional[float] = 30,
        headers: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.page_size = max(1, int(page_size))
        self.timeout_s = timeout_s
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}
        self.session = session or requests.Session()
        self.log = get_logger("message_export.source.http")

    def messages(self, scope: SourceFilter = SourceFilter()) -> "_HttpEndpointSource":
        return _HttpEndpointSource(self, "messages", scope)

    def threads(self) -> "_HttpEndpointSource":
        return _HttpEndpointSource(self, "threads", SourceFilter())

    def get_page(self, endpoint: str, params: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], bool]:
        url = f"{self.base_url}/{endpoint}"
        r = self.session.get(url, params=params, headers=self.headers, timeout=self.timeout_s)
        if r.status_code >= 400:
            raise HttpStatusError(r.status_code, url)
        payload = r.json()
        items = list(payload.get("items") or [])
        has_more = bool(payload.get("has_more", len(items) >= self.page_size))
        self.log.debug("Page fetched: url=%s items=%d has_more=%s", url, len(items), has_more)
        return items, not has_more


class _HttpEndpointSource:
    def __init__(self, client: HttpMessageSource, endpoint: str, scope: SourceFilter):
        self.client = client
        self.endpoint = endpoint
        self.scope = scope

    def open(self, resume_from: Optional[Checkpoint]) -> OpenResult:
        cursor = _HttpCursor(self.client, self.endpoint, self.scope, resume_from)
        error = cursor.prime()
        if error is None:
            return OpenResult(cursor=cursor)

        # An unreachable API is an open failure, not a mid-stream one.
        if error.kind == ErrorKind.ADVANCE_FAILED:
            error = ExportError(kind=ErrorKind.OPEN_FAILED, message=error.message, reason=error.reason)
        self.client.log.error("Cannot open %s cursor: %s", self.endpoint, error)
        return OpenResult(error=error)


class _HttpCursor(PagedCursor):
    transient_errors = (requests.RequestException, HttpStatusError)

    def __init__(
        self,
        client: HttpMessageSource,
        endpoint: str,
        scope: SourceFilter,
        resume_from: Optional[Checkpoint],
    ):
        super().__init__(resume_from)
        self.client = client
        self.endpoint = endpoint
        self.scope = scope

    def _fetch_page(self, position: Optional[Checkpoint], inclusive: bool) -> Tuple[List[Item], bool]:
        params: Dict[str, Any] = {"limit": self.client.page_size}
        if self.scope.thread_id is not None:
            params["thread_id"] = self.scope.thread_id
        if position is not None:
            if self.endpoint == "messages":
                params["start_timestamp"] = position.timestamp
            params["start_id"] = position.id
            params["inclusive"] = 1 if inclusive else 0

        raw_items, last_page = self.client.get_page(self.endpoint, params)
        if self.endpoint == "threads":
            return [self._to_thread(raw) for raw in raw_items], last_page
        return [Message.from_attributes(raw) for raw in raw_items], last_page

    def _to_thread(self, raw: Dict[str, Any]) -> Thread:
        return Thread(
            id=raw["id"],
            last_timestamp=raw.get("lastMessageTimestamp", raw.get("timestamp")),
            message_count=int(raw.get("messageCount") or 0),
            attributes=raw,
        )

    def _classify(self, exc: BaseException) -> ExportError:
        if isinstance(exc, HttpStatusError) and exc.status_code in ACCESS_DENIED_STATUSES:
            self.client.log.error("Access denied by message API: %s", exc)
            return ExportError.from_exception(ErrorKind.OPEN_FAILED, exc)
        self.client.log.warning("Message API read failed: %s: %s", type(exc).__name__, exc)
        return ExportError.from_exception(ErrorKind.ADVANCE_FAILED, exc)
