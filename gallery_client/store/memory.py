from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from typing import Any, Dict, Mapping, Sequence

from gallery_client.core.errors import NotFound
from gallery_client.store.base import (
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    FieldFilter,
    SnapshotCallback,
    Subscription,
    apply_write,
    path_parent,
    validate_filters,
)

_log = logging.getLogger(__name__)


class _Listener(Subscription):
    __slots__ = ('key', 'path', 'on_snapshot', 'on_error', '_store', '_closed')

    def __init__(self, store: 'InMemoryDocumentStore', key: int, path: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback | None):
        self._store = store
        self.key = key
        self.path = path
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store._drop_listener(self)


class InMemoryDocumentStore(DocumentStore):
    """Process-local document store.

    Used for offline/dev runs and as the backing store of test doubles. Live
    listener pushes are scheduled on the running event loop so callers observe
    the same asynchronous delivery they get from a remote store.
    """

    def __init__(self, documents: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._docs: Dict[str, dict[str, Any]] = {}
        self._listeners: Dict[str, Dict[int, _Listener]] = {}
        self._ids = itertools.count(1)
        if documents:
            self.load_documents(documents)

    # --- seeding -----------------------------------------------------
    def load_documents(self, documents: Mapping[str, Mapping[str, Any]]) -> None:
        """Replace documents without notifying listeners (fixture loading)."""
        for path, data in documents.items():
            self._docs[path] = copy.deepcopy(dict(data))

    def document(self, path: str) -> dict[str, Any] | None:
        data = self._docs.get(path)
        return copy.deepcopy(data) if data is not None else None

    @property
    def listener_count(self) -> int:
        return sum(len(entries) for entries in self._listeners.values())

    # --- reads -------------------------------------------------------
    def _snapshot(self, path: str) -> DocumentSnapshot:
        data = self._docs.get(path)
        return DocumentSnapshot(path, copy.deepcopy(data) if data is not None else None)

    async def get(self, path: str) -> DocumentSnapshot:
        return self._snapshot(path)

    async def query(self, collection_path: str, filters: Sequence[FieldFilter] = ()) -> list[DocumentSnapshot]:
        checked = validate_filters(filters)
        results: list[DocumentSnapshot] = []
        for path in list(self._docs):
            if path_parent(path) != collection_path:
                continue
            snap = self._snapshot(path)
            if all(flt.matches(snap) for flt in checked):
                results.append(snap)
        return results

    # --- writes ------------------------------------------------------
    async def set(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        self._docs[path] = apply_write(self._docs.get(path), data, merge=merge)
        self._notify(path)

    async def update(self, path: str, data: Mapping[str, Any]) -> None:
        existing = self._docs.get(path)
        if existing is None:
            raise NotFound(path)
        self._docs[path] = apply_write(existing, data, merge=True)
        self._notify(path)

    # --- listeners ---------------------------------------------------
    def subscribe(self, path: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback | None = None) -> Subscription:
        listener = _Listener(self, next(self._ids), path, on_snapshot, on_error)
        self._listeners.setdefault(path, {})[listener.key] = listener
        self._schedule(listener, self._snapshot(path))
        return listener

    def _drop_listener(self, listener: _Listener) -> None:
        entries = self._listeners.get(listener.path)
        if not entries:
            return
        entries.pop(listener.key, None)
        if not entries:
            del self._listeners[listener.path]

    def _notify(self, path: str) -> None:
        for listener in list(self._listeners.get(path, {}).values()):
            self._schedule(listener, self._snapshot(path))

    def _schedule(self, listener: _Listener, snapshot: DocumentSnapshot) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver(listener, snapshot)
            return
        loop.call_soon(self._deliver, listener, snapshot)

    def _deliver(self, listener: _Listener, snapshot: DocumentSnapshot) -> None:
        if listener.closed:
            return
        try:
            listener.on_snapshot(snapshot)
        except Exception:
            _log.exception("listener callback failed path=%s", listener.path)

    def _fail_listeners(self, path: str, error: BaseException) -> None:
        """Terminate every listener on ``path`` with ``error``."""
        for listener in list(self._listeners.get(path, {}).values()):
            listener.close()
            if listener.on_error is not None:
                try:
                    listener.on_error(error)
                except Exception:
                    _log.exception("listener error callback failed path=%s", path)

    async def close(self) -> None:
        for entries in list(self._listeners.values()):
            for listener in list(entries.values()):
                listener.close()
