from __future__ import annotations
import logging
from typing import Any, Mapping

import httpx
from pydantic import ValidationError

from gallery_client.models.auth import GalleryUser, LoginResponse, LoginResult
from gallery_client.store.http import HTTPClient
from gallery_client.utils.ids import clean_datetime_utc

_log = logging.getLogger(__name__)

LOGIN_FUNCTION = 'loginWithAccessCode'
GENERIC_LOGIN_ERROR = 'Failed to validate access code. Please try again.'


class AuthClient:
    """Access-code login against the callable functions endpoint.

    Callables take ``{"data": {...}}`` and answer ``{"result": {...}}``.
    """

    def __init__(
        self,
        functions_url: str,
        *,
        timeout: httpx.Timeout | float | int | None = None,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.http = HTTPClient(functions_url, timeout=timeout, headers=headers, transport=transport)

    async def _call(self, name: str, data: Mapping[str, Any]) -> Any:
        payload = await self.http.send_json('POST', name, json={'data': dict(data)})
        if not isinstance(payload, Mapping) or 'result' not in payload:
            raise ValueError(f"callable {name} returned no result")
        return payload['result']

    async def login_with_access_code(self, access_code: str, gallery_id: str) -> LoginResult:
        code = (access_code or '').strip().upper()
        if not code:
            return LoginResult(success=False, error='Access code is required')
        try:
            raw = await self._call(LOGIN_FUNCTION, {'accessCode': code, 'galleryId': gallery_id})
            response = LoginResponse.model_validate(raw)
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            _log.warning("login failed gallery=%s: %s", gallery_id, exc)
            return LoginResult(success=False, error=GENERIC_LOGIN_ERROR)

        if not response.success or response.user is None:
            return LoginResult(success=False, error=response.message or 'Invalid access code')

        payload = response.user
        user = GalleryUser(
            user_id=payload.id,
            display_name=payload.display_name,
            first_name=payload.first_name,
            last_name=payload.last_name,
            collection_id=payload.collection_id,
            collection_name=payload.collection_name,
            hide_titles=payload.hide_titles,
            code_value=code,
            active=True,
            last_login_time_utc=clean_datetime_utc(),
        )
        _log.info("user %s signed in to gallery %s", user.user_id, gallery_id)
        return LoginResult(success=True, user=user, gallery_id=gallery_id)

    async def close(self) -> None:
        await self.http.close()
