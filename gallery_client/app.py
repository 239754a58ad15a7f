from __future__ import annotations
import logging
from typing import List

import httpx

from gallery_client.core.config import Settings, settings as default_settings
from gallery_client.core.errors import AuthenticationError
from gallery_client.core.logging_config import configure_logging
from gallery_client.db.local_session import LocalSessionStore
from gallery_client.models.analytics import FAVORITE_EVENT_TYPES, ViewingEventType, WriteResult
from gallery_client.models.auth import GalleryUser, LoginResult
from gallery_client.services.analytics import AnalyticsTracker
from gallery_client.services.assets import StorageUrlResolver
from gallery_client.services.auth import AuthClient
from gallery_client.services.favorites import FavoriteCallback, FavoritesManager, FavoriteSubscription
from gallery_client.services.gallery_loader import GalleryLoader
from gallery_client.state.gallery_state import GalleryState
from gallery_client.store.base import DocumentStore
from gallery_client.store.http import HttpDocumentStore
from gallery_client.store.memory import InMemoryDocumentStore

_log = logging.getLogger(__name__)


def _favorite_saved(results: List[WriteResult]) -> bool:
    return any(r.ok for r in results if r.label == 'favorite_record')


class GalleryClient:
    """Root container: owns every component and the signed-in session."""

    def __init__(
        self,
        *,
        store: DocumentStore,
        loader: GalleryLoader,
        favorites: FavoritesManager,
        tracker: AnalyticsTracker,
        local_sessions: LocalSessionStore,
        assets: StorageUrlResolver,
        auth: AuthClient | None = None,
    ) -> None:
        self.store = store
        self.loader = loader
        self.favorites = favorites
        self.tracker = tracker
        self.local_sessions = local_sessions
        self.assets = assets
        self.auth = auth
        self.state = GalleryState(loader, favorites)
        self.user: GalleryUser | None = None
        self.session_id: str | None = None
        self.gallery_id: str | None = None

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        store: DocumentStore | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> 'GalleryClient':
        cfg = settings or default_settings
        configure_logging(cfg.log_level)
        for line in cfg.diagnostics or []:
            _log.debug("config: %s", line)
        if store is None:
            if cfg.store_url:
                store = HttpDocumentStore(
                    cfg.store_url,
                    timeout=cfg.request_timeout,
                    poll_interval=cfg.subscription_poll_seconds,
                    transport=transport,
                )
            else:
                _log.warning("GALLERY_STORE_URL not set; using an empty in-memory document store")
                store = InMemoryDocumentStore()
        auth = None
        if cfg.functions_url:
            auth = AuthClient(cfg.functions_url, timeout=cfg.request_timeout, transport=transport)
        return cls(
            store=store,
            loader=GalleryLoader(store, batch_limit=cfg.query_batch_limit),
            favorites=FavoritesManager(store),
            tracker=AnalyticsTracker(store, heartbeat_seconds=cfg.heartbeat_seconds),
            local_sessions=LocalSessionStore(cfg.database_url),
            assets=StorageUrlResolver(cfg.storage_url),
            auth=auth,
        )

    async def dispose(self) -> None:
        self.tracker.dispose()
        self.favorites.dispose()
        if self.auth is not None:
            await self.auth.close()
        await self.store.close()
        self.local_sessions.close()

    # --- authentication ----------------------------------------------
    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.session_id is not None

    def _require_session(self) -> tuple[GalleryUser, str, str]:
        if self.user is None or self.session_id is None or self.gallery_id is None:
            raise AuthenticationError("not signed in")
        return self.user, self.session_id, self.gallery_id

    async def login(self, access_code: str, gallery_id: str) -> LoginResult:
        if self.auth is None:
            return LoginResult(success=False, error='Login endpoint is not configured')
        result = await self.auth.login_with_access_code(access_code, gallery_id)
        if not result.success or result.user is None:
            return result
        session_id = self.tracker.new_session_id(result.user)
        await self.tracker.start_session(result.user, gallery_id, session_id)
        self.user, self.session_id, self.gallery_id = result.user, session_id, gallery_id
        self.local_sessions.save(result.user, session_id, gallery_id)
        return result.model_copy(update={'session_id': session_id})

    def restore_session(self) -> bool:
        saved = self.local_sessions.load()
        if saved is None:
            return False
        self.user, self.session_id, self.gallery_id = saved.user, saved.session_id, saved.gallery_id
        _log.info("restored session %s for user %s", saved.session_id, saved.user.user_id)
        return True

    async def logout(self) -> None:
        if self.user is not None and self.gallery_id and self.session_id:
            await self.tracker.end_session(self.user, self.gallery_id, self.session_id)
        self.favorites.clear_all_cache()
        self.local_sessions.clear()
        self.state.reset()
        self.user = self.session_id = self.gallery_id = None

    # --- gallery -----------------------------------------------------
    async def enter_gallery(self) -> bool:
        user, _, gallery_id = self._require_session()
        if not await self.state.load_gallery(gallery_id, user.collection_id):
            return False
        await self.state.load_favorites(user.user_id)
        return True

    async def open_piece(self, piece_id: str, on_favorite_change: FavoriteCallback) -> FavoriteSubscription:
        user, session_id, gallery_id = self._require_session()
        self.state.select_piece(piece_id)
        await self.tracker.record_piece_view(user, gallery_id, user.collection_id, piece_id, session_id)
        return self.favorites.subscribe_to_favorite_status(user.user_id, piece_id, on_favorite_change)

    async def toggle_favorite(self, piece_id: str, is_favorite: bool | None = None) -> bool:
        user, _, _ = self._require_session()
        if is_favorite is None:
            is_favorite = not await self.favorites.is_favorited(user.user_id, piece_id)
        results = await self._write_favorite(piece_id, is_favorite)
        if _favorite_saved(results):
            return is_favorite
        return not is_favorite

    async def _write_favorite(self, piece_id: str, is_favorite: bool) -> List[WriteResult]:
        user, session_id, gallery_id = self._require_session()
        results = await self.tracker.toggle_favorite(user, gallery_id, user.collection_id, piece_id, session_id, is_favorite)
        # the echoed subscription push may lag behind the write
        if _favorite_saved(results):
            self.favorites.update_cache(user.user_id, piece_id, is_favorite)
            self.state.mark_favorite(piece_id, is_favorite)
        return results

    async def record_interaction(self, piece_id: str, event_type: ViewingEventType | str) -> List[WriteResult]:
        user, session_id, gallery_id = self._require_session()
        event_type = ViewingEventType(event_type)
        if event_type in FAVORITE_EVENT_TYPES:
            return await self._write_favorite(piece_id, event_type is ViewingEventType.favorite)
        return await self.tracker.record_interaction_event(user, gallery_id, user.collection_id, piece_id, session_id, event_type)

    def record_activity(self) -> None:
        self.tracker.record_activity()
