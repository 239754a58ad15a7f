"""Tests for access-code login over the callable functions endpoint."""

import json

import httpx
import pytest

from gallery_client.services.auth import GENERIC_LOGIN_ERROR, AuthClient

FUNCTIONS = 'http://functions.test'


def _client(handler) -> AuthClient:
    return AuthClient(FUNCTIONS, transport=httpx.MockTransport(handler))


def _ok_user(**overrides):
    user = {
        'id': 'u1',
        'displayName': 'Visitor One',
        'firstName': 'Visitor',
        'lastName': 'One',
        'collectionId': 'c1',
        'collectionName': 'Spring Show',
        'hideTitles': True,
    }
    user.update(overrides)
    return user


@pytest.mark.asyncio
async def test_successful_login_builds_user():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={'result': {'success': True, 'user': _ok_user()}})

    client = _client(handler)
    try:
        result = await client.login_with_access_code(' abc123 ', 'g1')
    finally:
        await client.close()

    assert result.success is True
    assert result.gallery_id == 'g1'
    user = result.user
    assert user.user_id == 'u1'
    assert user.collection_id == 'c1'
    assert user.hide_titles is True
    assert user.code_value == 'ABC123'
    assert user.active is True
    assert user.last_login_time_utc.endswith('Z')

    request = seen[0]
    assert request.method == 'POST'
    assert request.url.path == '/loginWithAccessCode'
    assert json.loads(request.content) == {'data': {'accessCode': 'ABC123', 'galleryId': 'g1'}}


@pytest.mark.asyncio
async def test_refusal_uses_server_message():
    client = _client(lambda r: httpx.Response(200, json={'result': {'success': False, 'message': 'Code expired'}}))
    try:
        result = await client.login_with_access_code('abc', 'g1')
    finally:
        await client.close()
    assert result.success is False
    assert result.error == 'Code expired'
    assert result.user is None


@pytest.mark.asyncio
async def test_refusal_without_message():
    client = _client(lambda r: httpx.Response(200, json={'result': {'success': False}}))
    try:
        result = await client.login_with_access_code('abc', 'g1')
    finally:
        await client.close()
    assert result.error == 'Invalid access code'


@pytest.mark.asyncio
@pytest.mark.parametrize('response', [
    httpx.Response(500, text='internal'),
    httpx.Response(200, text='not json'),
    httpx.Response(200, json={'unexpected': True}),
    httpx.Response(200, json={'result': {'success': True, 'user': {'displayName': 'missing ids'}}}),
])
async def test_transport_and_shape_failures_give_generic_error(response):
    client = _client(lambda r: response)
    try:
        result = await client.login_with_access_code('abc', 'g1')
    finally:
        await client.close()
    assert result.success is False
    assert result.error == GENERIC_LOGIN_ERROR


@pytest.mark.asyncio
async def test_connection_error_gives_generic_error():
    def handler(request):
        raise httpx.ConnectError('down', request=request)

    client = _client(handler)
    try:
        result = await client.login_with_access_code('abc', 'g1')
    finally:
        await client.close()
    assert result.error == GENERIC_LOGIN_ERROR


@pytest.mark.asyncio
async def test_blank_code_short_circuits():
    calls = []
    client = _client(lambda r: calls.append(r) or httpx.Response(200, json={}))
    try:
        result = await client.login_with_access_code('   ', 'g1')
    finally:
        await client.close()
    assert result.success is False
    assert calls == []
