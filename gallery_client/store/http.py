from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from gallery_client import __version__
from gallery_client.core.errors import NotFound, TransientIOError
from gallery_client.store.base import (
    ArrayUnion,
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    FieldFilter,
    Increment,
    SnapshotCallback,
    Subscription,
    validate_filters,
)

_log = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)
_DEFAULT_HEADERS: Mapping[str, str] = {
    "User-Agent": f"gallery-client/{__version__}",
}


def _coerce_timeout(value: httpx.Timeout | float | int | None) -> httpx.Timeout:
    if isinstance(value, httpx.Timeout):
        return value
    if isinstance(value, (int, float)):
        return httpx.Timeout(value)
    return _DEFAULT_TIMEOUT


def _trim(text: str | None, *, limit: int = 200) -> str | None:
    if text is None:
        return None
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class HTTPClient:
    """Lazily opened ``httpx.AsyncClient`` that speaks JSON both ways."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: httpx.Timeout | float | int | None = None,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._timeout = _coerce_timeout(timeout)
        self._headers = {**_DEFAULT_HEADERS, **(headers or {})}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    self._client = httpx.AsyncClient(
                        base_url=self._base_url,
                        timeout=self._timeout,
                        headers=self._headers,
                        transport=self._transport,
                    )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send one request and decode its JSON body; an empty body gives None.

        Raises ``httpx.HTTPStatusError`` for error statuses and ``ValueError``
        for a body that is not JSON.
        """
        client = await self._get_client()
        response = await client.request(method, "/" + path.lstrip("/"), **kwargs)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ValueError("Response body is not valid JSON") from exc


# --- wire encoding ---------------------------------------------------

def encode_value(value: Any) -> Any:
    if isinstance(value, Increment):
        return {"__transform__": "increment", "value": value.amount}
    if isinstance(value, ArrayUnion):
        return {"__transform__": "arrayUnion", "values": [encode_value(v) for v in value.values]}
    if isinstance(value, Mapping):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def encode_filter(flt: FieldFilter) -> dict[str, Any]:
    value = list(flt.value) if flt.op == 'in' else flt.value
    return {"field": flt.field, "op": flt.op, "value": value}


def _doc_url(path: str) -> str:
    return "/v1/documents/" + quote(path.strip("/"), safe="/")


def _decode_snapshot(payload: Any, fallback_path: str) -> DocumentSnapshot:
    if not isinstance(payload, Mapping):
        raise TransientIOError(f"unexpected document payload for {fallback_path}")
    path = payload.get("path") or fallback_path
    data = payload.get("data")
    if data is not None and not isinstance(data, Mapping):
        raise TransientIOError(f"document data for {path} is not an object")
    return DocumentSnapshot(str(path), dict(data) if data is not None else None)


class _PollingSubscription(Subscription):
    """Live listener emulated by polling one document."""

    def __init__(self, store: 'HttpDocumentStore', path: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback | None, interval: float):
        self._store = store
        self.path = path
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._interval = max(0.01, interval)
        self._closed = False
        self._task: asyncio.Task[None] | None = asyncio.get_running_loop().create_task(self._run())

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
        self._store._subscriptions.discard(self)

    async def _run(self) -> None:
        last: Any = _UNSEEN
        try:
            while not self._closed:
                try:
                    snapshot = await self._store.get(self.path)
                except TransientIOError as exc:
                    _log.warning("subscription poll failed path=%s: %s", self.path, exc)
                    self._fail(exc)
                    return
                if self._closed:
                    return
                if last is _UNSEEN or snapshot.data != last:
                    last = snapshot.data
                    try:
                        self._on_snapshot(snapshot)
                    except Exception:
                        _log.exception("listener callback failed path=%s", self.path)
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            pass

    def _fail(self, error: BaseException) -> None:
        self._closed = True
        self._task = None
        self._store._subscriptions.discard(self)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                _log.exception("listener error callback failed path=%s", self.path)


_UNSEEN = object()


class HttpDocumentStore(DocumentStore):
    """Document store reached through a small JSON REST facade.

    ``GET/PUT/PATCH /v1/documents/{path}`` address single documents (PUT takes
    ``?merge=true`` for partial writes); ``POST /v1/query`` runs a filtered
    collection query. Every transport or decoding failure surfaces as
    ``TransientIOError``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: httpx.Timeout | float | int | None = None,
        poll_interval: float = 5.0,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.http = HTTPClient(base_url, timeout=timeout, headers=headers, transport=transport)
        self.poll_interval = poll_interval
        self._subscriptions: set[_PollingSubscription] = set()

    async def _call(self, method: str, url: str, *, missing_path: str | None = None, **kwargs: Any) -> Any:
        try:
            return await self.http.send_json(method, url, **kwargs)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404 and missing_path is not None:
                raise NotFound(missing_path) from exc
            raise TransientIOError(
                f"{method} {url} failed status={status} body={_trim(exc.response.text)}", exc
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise TransientIOError(f"{method} {url} failed: {exc}", exc) from exc

    async def get(self, path: str) -> DocumentSnapshot:
        try:
            payload = await self._call("GET", _doc_url(path), missing_path=path)
        except NotFound:
            return DocumentSnapshot(path, None)
        return _decode_snapshot(payload, path)

    async def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        await self._call(
            "PUT",
            _doc_url(path),
            params={"merge": "true" if merge else "false"},
            json={"data": encode_value(data)},
        )

    async def update(self, path: str, data: Mapping[str, Any]) -> None:
        await self._call("PATCH", _doc_url(path), missing_path=path, json={"data": encode_value(data)})

    async def query(self, collection_path: str, filters: Sequence[FieldFilter] = ()) -> list[DocumentSnapshot]:
        checked = validate_filters(filters)
        payload = await self._call(
            "POST",
            "/v1/query",
            json={"collection": collection_path.strip("/"), "filters": [encode_filter(f) for f in checked]},
        )
        try:
            documents = TypeAdapter(list[dict[str, Any]]).validate_python((payload or {}).get("documents", []))
        except (ValidationError, AttributeError) as exc:
            raise TransientIOError(f"malformed query response for {collection_path}", exc) from exc
        return [_decode_snapshot(doc, f"{collection_path}/?") for doc in documents]

    def subscribe(self, path: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback | None = None) -> Subscription:
        sub = _PollingSubscription(self, path, on_snapshot, on_error, self.poll_interval)
        self._subscriptions.add(sub)
        return sub

    async def close(self) -> None:
        for sub in list(self._subscriptions):
            sub.close()
        await self.http.close()
