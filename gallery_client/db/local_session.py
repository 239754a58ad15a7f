from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column

from gallery_client.db.session import Base, make_engine, make_session_factory
from gallery_client.models.auth import GalleryUser

_log = logging.getLogger(__name__)

# Only one persisted session exists per client install
_SLOT = 1


class LocalSessionRecord(Base):
    __tablename__ = 'local_session'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_json: Mapped[str] = mapped_column(Text, nullable=False)
    session_id: Mapped[str] = mapped_column(String(128), nullable=False)
    gallery_id: Mapped[str] = mapped_column(String(128), nullable=False)
    saved_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)


@dataclass(slots=True)
class SavedSession:
    user: GalleryUser
    session_id: str
    gallery_id: str


class LocalSessionStore:
    """Persists the signed-in ``{user, session_id, gallery_id}`` triple so a
    restarted client can resume without asking for the access code again."""

    def __init__(self, database_url: str) -> None:
        self.engine = make_engine(database_url)
        self._session_factory = make_session_factory(self.engine)
        Base.metadata.create_all(self.engine, tables=[LocalSessionRecord.__table__])

    def save(self, user: GalleryUser, session_id: str, gallery_id: str) -> None:
        payload = user.model_dump_json(by_alias=True)
        with self._session_factory() as db:
            row = db.get(LocalSessionRecord, _SLOT)
            if row is None:
                row = LocalSessionRecord(id=_SLOT, user_json=payload, session_id=session_id, gallery_id=gallery_id)
                db.add(row)
            else:
                row.user_json = payload
                row.session_id = session_id
                row.gallery_id = gallery_id
                row.saved_at = datetime.now(timezone.utc)
            db.commit()
        _log.debug("saved local session %s for gallery %s", session_id, gallery_id)

    def load(self) -> SavedSession | None:
        with self._session_factory() as db:
            row = db.get(LocalSessionRecord, _SLOT)
            if row is None:
                return None
            user_json, session_id, gallery_id = row.user_json, row.session_id, row.gallery_id
        try:
            user = GalleryUser.model_validate(json.loads(user_json))
        except (ValueError, ValidationError) as exc:
            _log.warning("discarding unreadable local session: %s", exc)
            self.clear()
            return None
        if not session_id or not gallery_id:
            self.clear()
            return None
        return SavedSession(user=user, session_id=session_id, gallery_id=gallery_id)

    def clear(self) -> None:
        try:
            with self._session_factory() as db:
                row = db.get(LocalSessionRecord, _SLOT)
                if row is not None:
                    db.delete(row)
                    db.commit()
        except SQLAlchemyError as exc:
            _log.warning("failed to clear local session: %s", exc)

    def close(self) -> None:
        self.engine.dispose()
