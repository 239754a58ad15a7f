from __future__ import annotations
import asyncio
import logging
import platform
import time
from typing import Any, Awaitable, Callable, List

from gallery_client.models.analytics import (
    FAVORITE_EVENT_TYPES,
    ZOOM_EVENT_TYPES,
    DeviceInfo,
    OpenPieceView,
    SessionPhase,
    SessionRecord,
    ViewingEvent,
    ViewingEventType,
    WriteResult,
)
from gallery_client.models.auth import GalleryUser
from gallery_client.store import paths
from gallery_client.store.base import ArrayUnion, DocumentStore, Increment
from gallery_client.utils.ids import epoch_to_utc, generate_event_id, generate_session_id

_log = logging.getLogger(__name__)

UserRef = GalleryUser | str


def capture_device_info() -> DeviceInfo:
    """Describe the running client once per session."""
    system = platform.system() or 'unknown'
    release = platform.release()
    return DeviceInfo(
        device_type='desktop',
        browser=f"{platform.python_implementation()} {platform.python_version()}",
        operating_system=f"{system} {release}".strip(),
        screen_resolution='unknown',
    )


def _user_id(user: UserRef) -> str:
    return user if isinstance(user, str) else user.user_id


def _access_code(user: UserRef) -> str | None:
    return None if isinstance(user, str) else user.code_value


class AnalyticsTracker:
    """Session lifecycle plus interaction event recording.

    Every remote write is best effort: failures are logged and reported as a
    failed ``WriteResult``; nothing raises to the caller. Writes are never
    retried.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        heartbeat_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
        device_info: DeviceInfo | None = None,
    ) -> None:
        if heartbeat_seconds <= 0:
            raise ValueError("heartbeat_seconds must be positive")
        self.store = store
        self.heartbeat_seconds = heartbeat_seconds
        self._clock = clock
        self._device_info = device_info
        self._phase = SessionPhase.no_session
        self._gallery_id: str | None = None
        self._session_id: str | None = None
        self._user_id: str | None = None
        self._session_started_at = 0.0
        self._last_activity_at = 0.0
        self._current_view: OpenPieceView | None = None
        self._heartbeat: asyncio.Task[None] | None = None
        self._view_lock = asyncio.Lock()

    # --- state -------------------------------------------------------
    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def current_view(self) -> OpenPieceView | None:
        return self._current_view

    @property
    def last_activity_at(self) -> float:
        return self._last_activity_at

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat is not None and not self._heartbeat.done()

    def new_session_id(self, user: UserRef) -> str:
        return generate_session_id(_user_id(user), self._clock())

    # --- best-effort write helper --------------------------------------
    async def _attempt(self, label: str, path: str, write: Awaitable[Any]) -> WriteResult:
        try:
            await write
        except Exception as exc:
            _log.warning("analytics: %s failed path=%s: %s", label, path, exc)
            return WriteResult(label, path, False, str(exc) or exc.__class__.__name__)
        return WriteResult(label, path, True)

    # --- session lifecycle ---------------------------------------------
    async def start_session(self, user: UserRef, gallery_id: str, session_id: str | None = None) -> List[WriteResult]:
        await self._stop_heartbeat()
        results: List[WriteResult] = []
        # a view left open by the previous session is closed, not dropped
        async with self._view_lock:
            results.extend(await self._close_current_view())
        user_id = _user_id(user)
        now = self._clock()
        session_id = session_id or generate_session_id(user_id, now)
        device = self._device_info or capture_device_info()
        record = SessionRecord(
            user_id=user_id,
            session_id=session_id,
            start_time=epoch_to_utc(now),
            last_activity=epoch_to_utc(now),
            device_type=device.device_type,
            browser=device.browser,
            os=device.operating_system,
            screen_resolution=device.screen_resolution,
            access_code=_access_code(user),
        )
        self._phase = SessionPhase.active
        self._gallery_id = gallery_id
        self._session_id = session_id
        self._user_id = user_id
        self._session_started_at = now
        self._last_activity_at = now

        path = paths.user_session_doc(gallery_id, session_id)
        results.append(await self._attempt('session_start', path, self.store.set(path, record.to_document())))
        self._heartbeat = asyncio.get_running_loop().create_task(self._heartbeat_loop(gallery_id, session_id))
        _log.info("analytics: session %s started for user %s", session_id, user_id)
        return results

    async def _heartbeat_loop(self, gallery_id: str, session_id: str) -> None:
        path = paths.user_session_doc(gallery_id, session_id)
        while True:
            await asyncio.sleep(self.heartbeat_seconds)
            now = self._clock()
            payload = {
                'lastActivity': epoch_to_utc(now),
                'lastInteraction': epoch_to_utc(self._last_activity_at),
                'duration': int(now - self._session_started_at),
            }
            await self._attempt('session_heartbeat', path, self.store.update(path, payload))

    def _cancel_heartbeat(self) -> asyncio.Task[None] | None:
        task = self._heartbeat
        self._heartbeat = None
        if task is None or task.done():
            return None
        task.cancel()
        return task

    async def _stop_heartbeat(self) -> None:
        task = self._cancel_heartbeat()
        if task is None:
            return
        # an in-flight heartbeat write must settle before the next session write
        await asyncio.wait({task})

    async def end_session(self, user: UserRef | None = None, gallery_id: str | None = None, session_id: str | None = None) -> List[WriteResult]:
        if self._phase is not SessionPhase.active:
            return []
        self._phase = SessionPhase.ending
        ending_id = self._session_id
        gallery_id = gallery_id or self._gallery_id
        session_id = session_id or self._session_id
        await self._stop_heartbeat()
        results: List[WriteResult] = []
        async with self._view_lock:
            results.extend(await self._close_current_view())
        now = self._clock()
        duration = int(now - self._session_started_at)
        path = paths.user_session_doc(gallery_id, session_id)
        results.append(await self._attempt('session_end', path, self.store.update(path, {
            'endTime': epoch_to_utc(now),
            'duration': duration,
            'lastActivity': epoch_to_utc(now),
        })))
        _log.info("analytics: session %s ended after %ss", session_id, duration)
        if self._phase is not SessionPhase.ending or self._session_id != ending_id:
            # a new session was started while this one was being closed
            return results
        self._phase = SessionPhase.ended
        self._gallery_id = None
        self._session_id = None
        self._user_id = None
        self._session_started_at = 0.0
        self._last_activity_at = 0.0
        return results

    def record_activity(self) -> None:
        self._last_activity_at = self._clock()

    def dispose(self) -> None:
        self._cancel_heartbeat()
        self._current_view = None

    # --- piece views -------------------------------------------------
    async def record_piece_view(
        self,
        user: UserRef,
        gallery_id: str,
        collection_id: str,
        piece_id: str,
        session_id: str,
    ) -> List[WriteResult]:
        user_id = _user_id(user)
        results: List[WriteResult] = []
        # serialise views so a close is always issued before the next open
        async with self._view_lock:
            results.extend(await self._close_current_view())
            now = self._clock()
            event = self._event(ViewingEventType.view, gallery_id, user_id, collection_id, piece_id, session_id, now)
            event_path = paths.viewing_event_doc(event.event_id)
            created = await self._attempt('view_event', event_path, self.store.set(event_path, event.to_document()))
            results.append(created)
            if created.ok and self._accepts_view(session_id):
                self._current_view = OpenPieceView(event.event_id, piece_id, gallery_id, user_id, now)

        stamp = epoch_to_utc(now)
        interaction_path = paths.user_piece_interaction_doc(gallery_id, user_id, piece_id)
        results.append(await self._attempt('view_interaction', interaction_path, self.store.set(interaction_path, {
            'gallery_id': gallery_id,
            'user_id': user_id,
            'piece_id': piece_id,
            'last_viewed': stamp,
            'view_count': Increment(1),
            'collection_ids': ArrayUnion((collection_id,)),
            'last_updated': stamp,
        }, merge=True)))
        stats_path = paths.piece_stats_doc(piece_id)
        results.append(await self._attempt('piece_stats', stats_path, self.store.set(stats_path, {
            'pieceId': piece_id,
            'totalViews': Increment(1),
            'uniqueViewers': ArrayUnion((user_id,)),
            'lastUpdated': stamp,
        }, merge=True)))
        self._last_activity_at = now
        _log.debug("analytics: view recorded piece=%s user=%s", piece_id, user_id)
        return results

    def _accepts_view(self, session_id: str) -> bool:
        """Whether a new view may stay open for duration tracking.

        Views recorded with no session at all are still tracked; once a
        session is ending or over, or the caller names a different session,
        the view is written but never held open.
        """
        if self._phase is SessionPhase.no_session:
            return True
        return self._phase is SessionPhase.active and session_id == self._session_id

    async def _close_current_view(self) -> List[WriteResult]:
        view = self._current_view
        if view is None:
            return []
        self._current_view = None
        now = self._clock()
        duration_ms = max(0, int((now - view.started_at) * 1000))
        event_path = paths.viewing_event_doc(view.event_id)
        results = [await self._attempt('view_duration', event_path, self.store.update(event_path, {'duration_ms': duration_ms}))]
        interaction_path = paths.user_piece_interaction_doc(view.gallery_id, view.user_id, view.piece_id)
        results.append(await self._attempt('view_total_duration', interaction_path, self.store.set(interaction_path, {
            'total_duration_ms': Increment(duration_ms),
            'last_updated': epoch_to_utc(now),
        }, merge=True)))
        _log.debug("analytics: view closed piece=%s after %ss", view.piece_id, duration_ms // 1000)
        return results

    # --- interactions ------------------------------------------------
    async def record_interaction_event(
        self,
        user: UserRef,
        gallery_id: str,
        collection_id: str,
        piece_id: str,
        session_id: str,
        event_type: ViewingEventType | str,
    ) -> List[WriteResult]:
        event_type = ViewingEventType(event_type)
        if event_type in FAVORITE_EVENT_TYPES:
            return await self.toggle_favorite(
                user, gallery_id, collection_id, piece_id, session_id,
                event_type is ViewingEventType.favorite,
            )
        user_id = _user_id(user)
        now = self._clock()
        results = [await self._record_event(event_type, gallery_id, user_id, collection_id, piece_id, session_id, now)]
        payload: dict[str, Any] = {
            'gallery_id': gallery_id,
            'user_id': user_id,
            'piece_id': piece_id,
            'last_updated': epoch_to_utc(now),
        }
        if event_type in ZOOM_EVENT_TYPES:
            payload['zoom_count'] = Increment(1)
        elif event_type is ViewingEventType.read_description:
            payload['description_views'] = Increment(1)
        interaction_path = paths.user_piece_interaction_doc(gallery_id, user_id, piece_id)
        results.append(await self._attempt(
            f'{event_type.value}_interaction', interaction_path,
            self.store.set(interaction_path, payload, merge=True),
        ))
        self._last_activity_at = now
        return results

    async def toggle_favorite(
        self,
        user: UserRef,
        gallery_id: str,
        collection_id: str,
        piece_id: str,
        session_id: str,
        is_favorite: bool,
    ) -> List[WriteResult]:
        user_id = _user_id(user)
        now = self._clock()
        stamp = epoch_to_utc(now)
        event_type = ViewingEventType.favorite if is_favorite else ViewingEventType.unfavorite
        results = [await self._record_event(event_type, gallery_id, user_id, collection_id, piece_id, session_id, now)]

        favorite_path = paths.favorite_piece_doc(user_id, piece_id)
        results.append(await self._attempt('favorite_record', favorite_path, self.store.set(favorite_path, {
            'userId': user_id,
            'isOn': bool(is_favorite),
            'modifiedDateTime': stamp,
            'pieceId': piece_id,
        })))
        interaction_path = paths.user_piece_interaction_doc(gallery_id, user_id, piece_id)
        results.append(await self._attempt('favorite_interaction', interaction_path, self.store.set(interaction_path, {
            'gallery_id': gallery_id,
            'user_id': user_id,
            'piece_id': piece_id,
            'favorite': bool(is_favorite),
            'last_updated': stamp,
            'collection_ids': ArrayUnion((collection_id,)),
        }, merge=True)))
        self._last_activity_at = now
        _log.debug("analytics: favorite=%s piece=%s user=%s", is_favorite, piece_id, user_id)
        return results

    # --- internals ---------------------------------------------------
    def _event(
        self,
        event_type: ViewingEventType,
        gallery_id: str,
        user_id: str,
        collection_id: str,
        piece_id: str,
        session_id: str,
        now: float,
    ) -> ViewingEvent:
        return ViewingEvent(
            event_id=generate_event_id(event_type.value, piece_id, user_id, now),
            gallery_id=gallery_id,
            user_id=user_id,
            collection_id=collection_id,
            piece_id=piece_id,
            event_type=event_type,
            session_id=session_id,
            duration_ms=0,
            timestamp=epoch_to_utc(now),
        )

    async def _record_event(self, event_type, gallery_id, user_id, collection_id, piece_id, session_id, now) -> WriteResult:
        event = self._event(event_type, gallery_id, user_id, collection_id, piece_id, session_id, now)
        path = paths.viewing_event_doc(event.event_id)
        return await self._attempt(f'{event_type.value}_event', path, self.store.set(path, event.to_document()))
