from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, Field


class GalleryUser(BaseModel):
    user_id: str = Field(alias='userId')
    display_name: str = Field('', alias='displayName')
    first_name: Optional[str] = Field(None, alias='firstName')
    last_name: Optional[str] = Field(None, alias='lastName')
    collection_id: str = Field(alias='collectionId')
    collection_name: Optional[str] = Field(None, alias='collectionName')
    hide_titles: bool = Field(False, alias='hideTitles')
    code_value: str = Field(alias='codeValue')
    active: bool = True
    last_login_time_utc: Optional[str] = Field(None, alias='lastLoginTimeUTC')

    model_config = {
        'populate_by_name': True,
        'extra': 'ignore',
    }


class LoginUserPayload(BaseModel):
    """User block returned by the ``loginWithAccessCode`` callable."""

    id: str
    display_name: str = Field('', alias='displayName')
    first_name: Optional[str] = Field(None, alias='firstName')
    last_name: Optional[str] = Field(None, alias='lastName')
    collection_id: str = Field(alias='collectionId')
    collection_name: Optional[str] = Field(None, alias='collectionName')
    hide_titles: bool = Field(False, alias='hideTitles')

    model_config = {
        'populate_by_name': True,
        'extra': 'ignore',
    }


class LoginResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    user: Optional[LoginUserPayload] = None


class LoginResult(BaseModel):
    success: bool
    user: Optional[GalleryUser] = None
    session_id: Optional[str] = None
    gallery_id: Optional[str] = None
    error: Optional[str] = None
