"""Tests for binding a connection credential to a user."""
from unittest.mock import MagicMock

import jwt as pyjwt
import pytest

from fakes import ALICE, FakeUsers, make_users
from tripsync.auth.binder import IdentityBinder, credential_from_websocket, decode_token
from tripsync.core.config import settings
from tripsync.core.errors import AuthError
from tripsync.core.security import create_access_token


class TestDecodeToken:
    def test_valid_token_returns_subject(self):
        assert decode_token(create_access_token(ALICE.user_id)) == ALICE.user_id

    def test_missing_token(self):
        with pytest.raises(AuthError) as exc:
            decode_token(None)
        assert exc.value.reason == AuthError.MISSING

    def test_garbage_token(self):
        with pytest.raises(AuthError) as exc:
            decode_token("not-a-jwt")
        assert exc.value.reason == AuthError.INVALID

    def test_wrong_secret(self):
        token = pyjwt.encode({"sub": ALICE.user_id}, "some-other-secret", algorithm="HS256")

        with pytest.raises(AuthError) as exc:
            decode_token(token)
        assert exc.value.reason == AuthError.INVALID

    def test_expired_token(self):
        token = create_access_token(ALICE.user_id, expire_min=-5)

        with pytest.raises(AuthError) as exc:
            decode_token(token)
        assert exc.value.reason == AuthError.EXPIRED

    def test_token_without_subject(self):
        token = pyjwt.encode({"role": "member"}, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

        with pytest.raises(AuthError) as exc:
            decode_token(token)
        assert exc.value.reason == AuthError.INVALID


class TestIdentityBinder:
    @pytest.mark.asyncio
    async def test_bind_returns_identity_snapshot(self):
        binder = IdentityBinder(FakeUsers(make_users()))

        identity = await binder.bind(create_access_token(ALICE.user_id))

        assert identity == ALICE

    @pytest.mark.asyncio
    async def test_inactive_user_is_refused(self):
        binder = IdentityBinder(FakeUsers(make_users()))

        with pytest.raises(AuthError) as exc:
            await binder.bind(create_access_token("u-gone"))
        assert exc.value.reason == AuthError.INACTIVE

    @pytest.mark.asyncio
    async def test_unknown_user_is_refused(self):
        binder = IdentityBinder(FakeUsers(make_users()))

        with pytest.raises(AuthError) as exc:
            await binder.bind(create_access_token("u-nobody"))
        assert exc.value.reason == AuthError.INACTIVE


class TestCredentialFromWebsocket:
    def _ws(self, query=None, headers=None):
        ws = MagicMock()
        ws.query_params = query or {}
        ws.headers = headers or {}
        return ws

    def test_query_parameter(self):
        assert credential_from_websocket(self._ws(query={"token": " abc "})) == "abc"

    def test_authorization_header(self):
        ws = self._ws(headers={"authorization": "Bearer xyz"})
        assert credential_from_websocket(ws) == "xyz"

    def test_query_parameter_wins(self):
        ws = self._ws(query={"token": "abc"}, headers={"authorization": "Bearer xyz"})
        assert credential_from_websocket(ws) == "abc"

    def test_nothing_supplied(self):
        assert credential_from_websocket(self._ws()) is None
        assert credential_from_websocket(self._ws(headers={"authorization": "Basic Zm9v"})) is None
