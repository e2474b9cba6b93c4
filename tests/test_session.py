from __future__ import annotations

import hashlib

import pytest

from conftest import FakeZStack
from zmachine.core.exceptions import AuthenticationError, ProtocolError, TransportError
from zmachine.zstack.session import Session, hash_password
from zmachine.zstack.types import INSTANCES_PATH, LOGIN_PATH, LOGOUT_PATH

pytestmark = [pytest.mark.unit]


def test_hash_password_is_hex_sha512():
    digest = hash_password("password")
    assert digest == hashlib.sha512(b"password").hexdigest()
    assert len(digest) == 128
    assert digest == digest.lower()


def test_plaintext_password_is_not_kept():
    session = Session("admin", "secret", "http://zstack.local:8080/")
    assert session.password_digest == hash_password("secret")
    assert "secret" not in vars(session).values()
    assert session.endpoint == "http://zstack.local:8080"


# ─── Login ───────────────────────────────────────────────────────────


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_stores_token(self, fake: FakeZStack, endpoint: str):
        session = Session("admin", "password", endpoint)
        try:
            await session.login()
            assert session.authenticated
            assert session.token == "session-1"
        finally:
            await session.teardown()

        [call] = fake.calls_to("PUT", LOGIN_PATH)
        assert call.body["logInByAccount"] == {
            "accountName": "admin",
            "password": hash_password("password"),
        }
        assert call.body["systemTags"] == []
        assert call.body["userTags"] == []

    @pytest.mark.asyncio
    async def test_login_is_skipped_when_token_held(self, fake: FakeZStack, session: Session):
        await session.login()
        assert len(fake.calls_to("PUT", LOGIN_PATH)) == 1

    @pytest.mark.asyncio
    async def test_wrong_password(self, endpoint: str):
        session = Session("admin", "nope", endpoint)
        try:
            with pytest.raises(AuthenticationError, match="wrong account name or password"):
                await session.login()
            assert not session.authenticated
        finally:
            await session.teardown()

    @pytest.mark.asyncio
    async def test_error_object_under_2xx_is_rejected(self, fake: FakeZStack, endpoint: str):
        fake.login_reply = (200, fake.error("ID.1000", "account disabled"))
        session = Session("admin", "password", endpoint)
        try:
            with pytest.raises(AuthenticationError, match="account disabled"):
                await session.login()
        finally:
            await session.teardown()

    @pytest.mark.asyncio
    async def test_error_that_is_not_an_object(self, fake: FakeZStack, endpoint: str):
        fake.login_reply = (200, {"error": "internal failure"})
        session = Session("admin", "password", endpoint)
        try:
            with pytest.raises(ProtocolError, match="internal failure"):
                await session.login()
            assert not session.authenticated
        finally:
            await session.teardown()

    @pytest.mark.asyncio
    async def test_non_2xx_without_body_is_rejected(self, fake: FakeZStack, endpoint: str):
        fake.login_reply = (503, "")
        session = Session("admin", "password", endpoint)
        try:
            with pytest.raises(AuthenticationError, match="503"):
                await session.login()
        finally:
            await session.teardown()

    @pytest.mark.asyncio
    async def test_undecodable_success_is_protocol_error(self, fake: FakeZStack, endpoint: str):
        fake.login_reply = (200, "not json")
        session = Session("admin", "password", endpoint)
        try:
            with pytest.raises(ProtocolError):
                await session.login()
        finally:
            await session.teardown()

    @pytest.mark.asyncio
    async def test_missing_session_uuid_is_protocol_error(self, fake: FakeZStack, endpoint: str):
        fake.login_reply = (200, {"inventory": {}})
        session = Session("admin", "password", endpoint)
        try:
            with pytest.raises(ProtocolError, match="no session uuid"):
                await session.login()
        finally:
            await session.teardown()

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_is_transport_error(self):
        with pytest.raises(TransportError):
            await Session.open("admin", "password", "http://127.0.0.1:1", request_timeout=5)


# ─── Requests ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_requests_carry_session_header(fake: FakeZStack, session: Session):
    fake.reply("GET", INSTANCES_PATH, (200, {"inventories": []}))
    resp = await session.request("GET", INSTANCES_PATH)
    assert resp.status == 200
    [call] = fake.calls_to("GET", INSTANCES_PATH)
    assert call.authorization == "OAuth session-1"


@pytest.mark.asyncio
async def test_request_statuses_are_not_interpreted(fake: FakeZStack, session: Session):
    fake.reply("GET", INSTANCES_PATH, (500, fake.error("SYS.1000", "boom")))
    resp = await session.request("GET", INSTANCES_PATH)
    assert resp.status == 500


# ─── Teardown ────────────────────────────────────────────────────────


class TestTeardown:
    @pytest.mark.asyncio
    async def test_logout_and_clear_token(self, fake: FakeZStack, endpoint: str):
        session = await Session.open("admin", "password", endpoint)
        await session.teardown()

        assert not session.authenticated
        [call] = fake.calls_to("DELETE", LOGOUT_PATH.format(uuid="session-1"))
        assert call.authorization == "OAuth session-1"

    @pytest.mark.asyncio
    async def test_logout_failure_is_not_raised(self, fake: FakeZStack, endpoint: str):
        fake.logout_status = 500
        session = await Session.open("admin", "password", endpoint)
        await session.teardown()
        assert session.token == ""

    @pytest.mark.asyncio
    async def test_context_manager(self, fake: FakeZStack, endpoint: str):
        async with Session("admin", "password", endpoint) as session:
            assert session.authenticated
        assert not session.authenticated
        assert len(fake.calls_to("DELETE", LOGOUT_PATH.format(uuid="session-1"))) == 1

    @pytest.mark.asyncio
    async def test_teardown_without_login_sends_nothing(self, fake: FakeZStack, endpoint: str):
        session = Session("admin", "password", endpoint)
        await session.teardown()
        assert fake.calls == []
