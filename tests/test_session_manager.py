import asyncio
import time
from datetime import datetime, timedelta, timezone

import pytest

from src.helpdesk.domain.errors import InvalidCredentials, InvalidToken, SessionExpired
from src.helpdesk.security.auth import (
    HashedCredentialVerifier,
    JwtConfig,
    SessionManager,
    check_password,
    create_access_token,
    hash_password,
)


def _run(coro):
    return asyncio.run(coro)


CFG = JwtConfig(secret="unit-secret", expires_hours=24)


@pytest.fixture
def manager(store):
    verifier = HashedCredentialVerifier("admin", hash_password("pw", iterations=1000))
    return SessionManager(store, verifier, CFG)


def test_password_hash_roundtrip_and_salt():
    encoded = hash_password("hunter2", iterations=1000)
    assert encoded.startswith("pbkdf2_sha256$1000$")
    assert check_password("hunter2", encoded)
    assert not check_password("hunter3", encoded)
    assert encoded != hash_password("hunter2", iterations=1000)
    assert not check_password("hunter2", "garbage")


def test_authenticate_admin_and_reject_wrong_password(manager):
    principal = _run(manager.authenticate("admin", "pw"))
    assert (principal.user_id, principal.role) == ("admin", "admin")
    with pytest.raises(InvalidCredentials):
        _run(manager.authenticate("admin", "nope"))
    with pytest.raises(InvalidCredentials):
        _run(manager.authenticate("root", "pw"))


def test_issue_session_persists_mirror_record(manager, store):
    issued = _run(manager.issue_session("admin", "admin"))
    record = _run(store.find_one("sessions", {"token": issued.token}))
    assert record["user_id"] == "admin"
    expected = datetime.now(timezone.utc) + timedelta(hours=24)
    assert abs((record["expires_at"] - expected).total_seconds()) < 5


def test_tokens_are_unique_per_login(manager):
    a = _run(manager.issue_session("admin", "admin"))
    b = _run(manager.issue_session("admin", "admin"))
    assert a.token != b.token


def test_validate_returns_principal(manager):
    issued = _run(manager.issue_session("admin", "admin"))
    principal = _run(manager.validate(issued.token))
    assert principal.user_id == "admin" and principal.role == "admin"


def test_revoked_token_fails_although_signature_verifies(manager):
    issued = _run(manager.issue_session("admin", "admin"))
    _run(manager.revoke(issued.token))
    with pytest.raises(SessionExpired):
        _run(manager.validate(issued.token))
    # idempotent
    _run(manager.revoke(issued.token))


def test_expired_stored_record_rejects_valid_token(manager, store):
    issued = _run(manager.issue_session("admin", "admin"))
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    _run(store.update("sessions", {"token": issued.token}, {"expires_at": past}))
    with pytest.raises(SessionExpired):
        _run(manager.validate(issued.token))


def test_stored_expiry_must_agree_with_token(manager, store):
    issued = _run(manager.issue_session("admin", "admin"))
    later = issued.record.expires_at + timedelta(hours=2)
    _run(store.update("sessions", {"token": issued.token}, {"expires_at": later}))
    with pytest.raises(SessionExpired):
        _run(manager.validate(issued.token))


def test_expired_signature_is_rejected(manager, store):
    old = datetime.now(timezone.utc) - timedelta(hours=25)
    token, expires_at = create_access_token("admin", "admin", CFG, now=old)
    _run(store.insert("sessions", {"user_id": "admin", "role": "admin", "token": token, "expires_at": expires_at}))
    with pytest.raises(SessionExpired):
        _run(manager.validate(token))


def test_foreign_signature_is_invalid(manager):
    token, _ = create_access_token("admin", "admin", JwtConfig(secret="someone-else"))
    with pytest.raises(InvalidToken):
        _run(manager.validate(token))
    with pytest.raises(InvalidToken):
        _run(manager.validate("not-a-jwt"))


def test_login_does_not_stall_other_requests(store):
    # Stands in for an expensive hash: sleeps in whichever thread runs it.
    class SlowVerifier(HashedCredentialVerifier):
        def verify(self, username, password):
            time.sleep(0.3)
            return super().verify(username, password)

    manager = SessionManager(store, SlowVerifier("admin", hash_password("pw", iterations=1000)), CFG)

    async def scenario():
        gaps = []
        done = asyncio.Event()

        async def ticker():
            last = time.perf_counter()
            while not done.is_set():
                await asyncio.sleep(0.005)
                now = time.perf_counter()
                gaps.append(now - last)
                last = now

        tick = asyncio.create_task(ticker())
        principals = await asyncio.gather(*(manager.authenticate("admin", "pw") for _ in range(3)))
        done.set()
        await tick
        return principals, gaps

    principals, gaps = _run(scenario())
    assert [p.role for p in principals] == ["admin"] * 3
    assert len(gaps) > 10
    assert max(gaps) < 0.2
