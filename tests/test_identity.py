import asyncio
import time

import jwt
import pytest

from config import Settings
from errors import AuthError
from identity import AuthBackend, AuthClient, dev_user_id, hash_password, verify_password
from stores import MemoryStateStorage


@pytest.fixture
def backend(db, settings):
    return AuthBackend(db, settings)


def test_password_hash_is_salted():
    first, second = hash_password("gold"), hash_password("gold")
    assert first != second
    assert first.startswith("$2b$")
    assert verify_password("gold", first)
    assert not verify_password("silver", first)


def test_sign_up_then_sign_in(backend):
    session = backend.sign_up("Ravi@DJewel.in", "pa55word")
    assert session.email == "ravi@djewel.in"

    again = backend.sign_in("ravi@djewel.in", "pa55word")
    assert again.user_id == session.user_id
    assert again.session_id != session.session_id

    with pytest.raises(AuthError):
        backend.sign_in("ravi@djewel.in", "wrong")
    with pytest.raises(AuthError, match="already registered"):
        backend.sign_up("ravi@djewel.in", "other")


def test_access_token_carries_identity(backend, settings):
    session = backend.sign_up("ravi@djewel.in", "pa55word")
    payload = backend.decode_access_token(session.access_token)
    assert payload["email"] == "ravi@djewel.in"
    assert payload["sub"] == session.user_id

    with pytest.raises(AuthError):
        backend.decode_access_token(session.refresh_token)


def test_revoked_session_rejects_tokens(backend):
    session = backend.sign_up("ravi@djewel.in", "pa55word")
    backend.revoke(session.session_id)
    with pytest.raises(AuthError, match="revoked"):
        backend.decode_access_token(session.access_token)
    with pytest.raises(AuthError):
        backend.refresh(session.refresh_token)


def test_expired_token(backend, settings):
    session = backend.sign_up("ravi@djewel.in", "pa55word")
    expired = jwt.encode({"sub": session.user_id, "email": session.email, "sid": session.session_id,
                          "type": "access", "exp": int(time.time()) - 10},
                         settings.jwt_secret, algorithm=settings.jwt_algo)
    with pytest.raises(AuthError, match="expired"):
        backend.decode_access_token(expired)


def test_login_code_flow(backend, db):
    code = backend.create_login_code("neha@djewel.in")
    assert len(code) == 6 and code.isdigit()
    assert db["auth_code"].find_one({"email": "neha@djewel.in"})["code_hash"] != code

    with pytest.raises(AuthError, match="Invalid code"):
        backend.verify_login_code("neha@djewel.in", "000000" if code != "000000" else "111111")

    session = backend.verify_login_code("neha@djewel.in", code)
    assert session.email == "neha@djewel.in"
    with pytest.raises(AuthError, match="expired or invalid"):
        backend.verify_login_code("neha@djewel.in", code)


def test_login_code_attempts_are_limited(backend):
    code = backend.create_login_code("neha@djewel.in")
    wrong = "000000" if code != "000000" else "111111"
    for _ in range(5):
        with pytest.raises(AuthError, match="Invalid code"):
            backend.verify_login_code("neha@djewel.in", wrong)
    with pytest.raises(AuthError, match="Too many attempts"):
        backend.verify_login_code("neha@djewel.in", code)


def test_expired_login_code(backend, db):
    code = backend.create_login_code("neha@djewel.in")
    db["auth_code"].update_one({"email": "neha@djewel.in"}, {"$set": {"expires_at": time.time() - 1}})
    with pytest.raises(AuthError, match="expired"):
        backend.verify_login_code("neha@djewel.in", code)


def test_dev_users_skip_codes_and_use_password(backend):
    assert backend.create_login_code("user1@test.com") is None
    session = backend.verify_login_code("user1@test.com", "user123")
    assert session.user_id == dev_user_id("user1@test.com")
    with pytest.raises(AuthError):
        backend.sign_in("user1@test.com", "nope")


def test_dev_users_disabled_in_production(db):
    backend = AuthBackend(db, Settings(app_env="production", jwt_secret="prod-secret"))
    assert backend.create_login_code("admin@test.com") is not None
    with pytest.raises(AuthError, match="Invalid credentials"):
        backend.sign_in("admin@test.com", "admin123")


def test_client_sends_code_and_persists_session(backend):
    sent = []

    async def send_code(email, code):
        sent.append((email, code))

    async def scenario():
        storage = MemoryStateStorage()
        client = AuthClient(backend, storage, send_login_code=send_code)
        events = []
        client.on_auth_state_change(events.append)
        await client.sign_in_with_otp("neha@djewel.in")
        session = await client.verify_otp("neha@djewel.in", sent[0][1])
        restored = AuthClient(backend, storage)
        return session, restored, events

    session, restored, events = asyncio.run(scenario())
    assert sent[0][0] == "neha@djewel.in"
    assert restored.session == session
    assert [e.type for e in events] == ["SIGNED_IN"]


def test_client_refresh_and_failed_refresh(backend):
    async def scenario():
        client = AuthClient(backend, MemoryStateStorage())
        events = []
        client.on_auth_state_change(events.append)
        session = await client.sign_up("ravi@djewel.in", "pa55word")
        refreshed = await client.refresh_session()
        backend.revoke(session.session_id)
        gone = await client.get_session()
        return refreshed, gone, events, client

    refreshed, gone, events, client = asyncio.run(scenario())
    assert refreshed is not None
    assert gone is None
    assert client.session is None
    assert [e.type for e in events] == ["SIGNED_IN", "TOKEN_REFRESHED", "SIGNED_OUT"]
