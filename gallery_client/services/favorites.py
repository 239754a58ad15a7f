from __future__ import annotations
import asyncio
import itertools
import logging
from typing import Callable, Dict, Iterable, List, Tuple

from gallery_client.store import paths
from gallery_client.store.base import DocumentSnapshot, DocumentStore, FieldFilter, Subscription

_log = logging.getLogger(__name__)

FavoriteKey = Tuple[str, str]
FavoriteCallback = Callable[[bool], None]


def _is_on(snapshot: DocumentSnapshot) -> bool:
    return snapshot.exists and snapshot.get('isOn') is True


class _Channel:
    """One remote listener and the observers it fans out to."""

    __slots__ = ('subscription', 'observers', 'has_pushed')

    def __init__(self) -> None:
        self.subscription: Subscription | None = None
        self.observers: Dict[int, FavoriteCallback] = {}
        self.has_pushed = False


class FavoriteSubscription:
    """Handle returned to one observer. Calling or closing it is idempotent."""

    __slots__ = ('_manager', 'key', 'token', '_closed')

    def __init__(self, manager: 'FavoritesManager', key: FavoriteKey, token: int) -> None:
        self._manager = manager
        self.key = key
        self.token = token
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._manager._release(self.key, self.token)

    __call__ = close


class FavoritesManager:
    """Read-through favorites cache with multiplexed live subscriptions.

    At most one remote subscription exists per (user, piece) key no matter
    how many observers are registered for it; the subscription is opened by
    the first observer and closed when the last one leaves. Cache entries
    outlive their subscriptions.

    Errors never leave this component: reads fail open to ``False``.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self._cache: Dict[FavoriteKey, bool] = {}
        self._channels: Dict[FavoriteKey, _Channel] = {}
        self._tokens = itertools.count(1)

    # --- cache -------------------------------------------------------
    def cached(self, user_id: str, piece_id: str) -> bool | None:
        return self._cache.get((user_id, piece_id))

    def update_cache(self, user_id: str, piece_id: str, value: bool) -> None:
        self._cache[(user_id, piece_id)] = bool(value)

    def clear_cache(self, user_id: str, piece_id: str) -> None:
        self._cache.pop((user_id, piece_id), None)

    def clear_all_cache(self) -> None:
        self._cache.clear()
        for channel in self._channels.values():
            if channel.subscription is not None:
                channel.subscription.close()
        self._channels.clear()

    # --- reads -------------------------------------------------------
    async def is_favorited(self, user_id: str, piece_id: str) -> bool:
        key = (user_id, piece_id)
        if key in self._cache:
            return self._cache[key]
        try:
            snapshot = await self.store.get(paths.favorite_piece_doc(user_id, piece_id))
        except Exception as exc:
            _log.warning("favorites: status read failed user=%s piece=%s: %s", user_id, piece_id, exc)
            return False
        channel = self._channels.get(key)
        if channel is not None and channel.has_pushed and key in self._cache:
            # a live push landed while the read was in flight and is newer
            return self._cache[key]
        value = _is_on(snapshot)
        self._cache[key] = value
        return value

    async def get_favorites_for_pieces(self, user_id: str, piece_ids: Iterable[str]) -> Dict[str, bool]:
        ordered = list(dict.fromkeys(piece_ids))
        result: Dict[str, bool] = {}
        uncached: List[str] = []
        for piece_id in ordered:
            value = self._cache.get((user_id, piece_id))
            if value is None:
                uncached.append(piece_id)
            else:
                result[piece_id] = value
        if uncached:
            values = await asyncio.gather(*(self.is_favorited(user_id, pid) for pid in uncached))
            result.update(zip(uncached, values))
        return {piece_id: result[piece_id] for piece_id in ordered}

    async def get_all_favorites(self, user_id: str) -> List[str]:
        try:
            snapshots = await self.store.query(paths.favorites_path(user_id), [FieldFilter('isOn', '==', True)])
        except Exception as exc:
            _log.warning("favorites: listing failed user=%s: %s", user_id, exc)
            return []
        return [snap.id for snap in snapshots]

    # --- subscriptions -----------------------------------------------
    def subscribe_to_favorite_status(self, user_id: str, piece_id: str, on_change: FavoriteCallback) -> FavoriteSubscription:
        key = (user_id, piece_id)
        token = next(self._tokens)
        channel = self._channels.get(key)
        if channel is None:
            channel = _Channel()
            channel.observers[token] = on_change
            self._channels[key] = channel
            try:
                channel.subscription = self.store.subscribe(
                    paths.favorite_piece_doc(user_id, piece_id),
                    lambda snap, key=key: self._on_push(key, snap),
                    lambda exc, key=key: self._on_error(key, exc),
                )
            except Exception as exc:
                _log.warning("favorites: subscribe failed user=%s piece=%s: %s", user_id, piece_id, exc)
                self._channels.pop(key, None)
                self._notify(on_change, False)
                return FavoriteSubscription(self, key, token)
        else:
            channel.observers[token] = on_change
            cached = self._cache.get(key)
            if cached is not None:
                self._notify(on_change, cached)
        return FavoriteSubscription(self, key, token)

    def _release(self, key: FavoriteKey, token: int) -> None:
        channel = self._channels.get(key)
        if channel is None or token not in channel.observers:
            return
        del channel.observers[token]
        if channel.observers:
            return
        del self._channels[key]
        if channel.subscription is not None:
            channel.subscription.close()

    def _on_push(self, key: FavoriteKey, snapshot: DocumentSnapshot) -> None:
        channel = self._channels.get(key)
        value = _is_on(snapshot)
        self._cache[key] = value
        if channel is None:
            return
        channel.has_pushed = True
        for callback in list(channel.observers.values()):
            self._notify(callback, value)

    def _on_error(self, key: FavoriteKey, error: BaseException) -> None:
        _log.warning("favorites: subscription error user=%s piece=%s: %s", key[0], key[1], error)
        channel = self._channels.pop(key, None)
        if channel is None:
            return
        for callback in list(channel.observers.values()):
            self._notify(callback, False)

    @staticmethod
    def _notify(callback: FavoriteCallback, value: bool) -> None:
        try:
            callback(value)
        except Exception:
            _log.exception("favorites: observer callback failed")

    # --- introspection / lifecycle -----------------------------------
    @property
    def live_subscription_count(self) -> int:
        return sum(1 for channel in self._channels.values() if channel.subscription is not None)

    def observer_count(self, user_id: str, piece_id: str) -> int:
        channel = self._channels.get((user_id, piece_id))
        return len(channel.observers) if channel else 0

    def dispose(self) -> None:
        for channel in self._channels.values():
            if channel.subscription is not None:
                channel.subscription.close()
        self._channels.clear()
