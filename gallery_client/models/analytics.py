from __future__ import annotations
import enum
from dataclasses import dataclass
from typing import Optional
from pydantic import BaseModel, Field


class ViewingEventType(str, enum.Enum):
    view = 'view'
    zoom_in = 'zoom_in'
    zoom_out = 'zoom_out'
    favorite = 'favorite'
    unfavorite = 'unfavorite'
    read_description = 'read_description'


ZOOM_EVENT_TYPES = {ViewingEventType.zoom_in, ViewingEventType.zoom_out}
FAVORITE_EVENT_TYPES = {ViewingEventType.favorite, ViewingEventType.unfavorite}


class SessionPhase(str, enum.Enum):
    no_session = 'no_session'
    active = 'active'
    ending = 'ending'
    ended = 'ended'


class DeviceInfo(BaseModel):
    device_type: str = Field('desktop', alias='deviceType')
    browser: str = 'unknown'
    operating_system: str = Field('unknown', alias='operatingSystem')
    screen_resolution: str = Field('unknown', alias='screenResolution')

    model_config = {
        'populate_by_name': True,
        'extra': 'ignore',
    }


class ViewingEvent(BaseModel):
    """Append-only interaction record, stored under ``viewing_events/{event_id}``."""

    event_id: str
    gallery_id: str
    user_id: str
    collection_id: str
    piece_id: str
    event_type: ViewingEventType
    session_id: str
    duration_ms: int = 0
    timestamp: str

    def to_document(self) -> dict:
        return self.model_dump(mode='json')


class SessionRecord(BaseModel):
    user_id: str = Field(alias='userId')
    session_id: str = Field(alias='sessionId')
    start_time: str = Field(alias='startTime')
    last_activity: str = Field(alias='lastActivity')
    end_time: Optional[str] = Field(None, alias='endTime')
    duration: int = 0
    device_type: str = Field('desktop', alias='deviceType')
    browser: str = 'unknown'
    os: str = 'unknown'
    screen_resolution: str = Field('unknown', alias='screenResolution')
    is_guided: bool = Field(False, alias='isGuided')
    access_code: Optional[str] = Field(None, alias='accessCode')

    model_config = {
        'populate_by_name': True,
        'extra': 'ignore',
    }

    def to_document(self) -> dict:
        return self.model_dump(mode='json', by_alias=True)


@dataclass(slots=True)
class OpenPieceView:
    event_id: str
    piece_id: str
    gallery_id: str
    user_id: str
    started_at: float


@dataclass(slots=True)
class WriteResult:
    label: str
    path: str
    ok: bool
    error: str | None = None
