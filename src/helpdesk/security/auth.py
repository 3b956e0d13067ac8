from __future__ import annotations

"""Authentication: admin credential check, signed session tokens, revocation.

This module provides:
- Salted PBKDF2 credential verification for the configured admin account
- JWT encode/decode helpers (PyJWT, HS256)
- A SessionManager that mirrors every issued token into the ``sessions``
  collection so logout can revoke an otherwise self-contained token
- FastAPI dependencies resolving the current principal from a bearer token

Env vars (for production readiness):
- JWT_SECRET (required in prod; default for dev)
- JWT_EXPIRES_HOURS (default 24)
- ADMIN_USERNAME, ADMIN_PASSWORD_HASH
"""

import asyncio
import hashlib
import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from ..config import Settings, get_settings
from ..domain.errors import AuthenticationError, InvalidCredentials, InvalidToken, SessionExpired
from ..domain.models import SessionRecord, from_record
from ..infrastructure.record_store import RecordStore, get_record_store


logger = logging.getLogger(__name__)
LOG = logging.getLogger("helpdesk.auth")
bearer_scheme = HTTPBearer(auto_error=False)

PBKDF2_ITERATIONS = 390_000
# Allowed drift between the token's exp claim and the stored expires_at
EXPIRY_AGREEMENT_SECONDS = 1.0


@dataclass
class JwtConfig:
    secret: str
    algorithm: str = "HS256"
    expires_hours: int = 24

    @staticmethod
    def from_settings(settings: Optional[Settings] = None) -> "JwtConfig":
        settings = settings or get_settings()
        return JwtConfig(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_hours=settings.jwt_expires_hours,
        )


class Principal(BaseModel):
    user_id: str
    role: str


@dataclass
class IssuedSession:
    token: str
    record: SessionRecord


# --- credentials ---


def hash_password(password: str, salt: Optional[str] = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    """Return ``pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>``."""

    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def check_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, expected = encoded.split("$")
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    candidate = hash_password(password, salt=salt, iterations=rounds)
    return hmac.compare_digest(candidate.split("$")[-1], expected)


class CredentialVerifier(Protocol):
    def verify(self, username: str, password: str) -> bool: ...


class HashedCredentialVerifier:
    def __init__(self, username: str, password_hash: str) -> None:
        self._username = username
        self._password_hash = password_hash

    def verify(self, username: str, password: str) -> bool:
        # Always hash, so a wrong username costs the same as a wrong password
        password_ok = check_password(password, self._password_hash)
        return hmac.compare_digest(username.encode("utf-8"), self._username.encode("utf-8")) and password_ok

    @staticmethod
    def from_settings(settings: Optional[Settings] = None) -> "HashedCredentialVerifier":
        settings = settings or get_settings()
        password_hash = settings.admin_password_hash
        if not password_hash:
            logger.warning("ADMIN_PASSWORD_HASH not set; using development admin password")
            password_hash = hash_password("admin")
        return HashedCredentialVerifier(settings.admin_username, password_hash)


# --- tokens ---


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_access_token(user_id: str, role: str, cfg: JwtConfig, now: Optional[datetime] = None) -> tuple[str, datetime]:
    now = now or _now()
    exp = now + timedelta(hours=cfg.expires_hours)
    payload = {
        "sub": user_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        # Two logins in the same second must still yield distinct tokens
        "jti": uuid.uuid4().hex,
    }
    token = jwt.encode(payload, cfg.secret, algorithm=cfg.algorithm)
    return token, datetime.fromtimestamp(payload["exp"], tz=timezone.utc)


def decode_token(token: str, cfg: JwtConfig) -> Dict[str, Any]:
    try:
        return jwt.decode(token, cfg.secret, algorithms=[cfg.algorithm])
    except jwt.ExpiredSignatureError:
        raise SessionExpired()
    except jwt.PyJWTError:
        raise InvalidToken()


class SessionManager:
    """Issues, validates and revokes bearer sessions for privileged access."""

    COLLECTION = "sessions"

    def __init__(
        self,
        store: RecordStore,
        verifier: CredentialVerifier,
        cfg: Optional[JwtConfig] = None,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._cfg = cfg or JwtConfig.from_settings()

    async def authenticate(self, username: str, password: str) -> Principal:
        # PBKDF2 is CPU-bound; run it off the event loop
        if not await asyncio.to_thread(self._verifier.verify, username, password):
            LOG.info("login_rejected", extra={"username": username})
            raise InvalidCredentials()
        # The single configured account is the administrator.
        return Principal(user_id="admin", role="admin")

    async def issue_session(self, user_id: str, role: str) -> IssuedSession:
        now = _now()
        token, expires_at = create_access_token(user_id, role, self._cfg, now=now)
        record = await self._store.insert(
            self.COLLECTION,
            {
                "user_id": user_id,
                "role": role,
                "token": token,
                "expires_at": expires_at,
                "created_at": now,
            },
        )
        LOG.info("session_issued", extra={"user_id": user_id, "role": role, "session_id": record["id"]})
        return IssuedSession(token=token, record=from_record(SessionRecord, record))

    def _verify_signature(self, token: str) -> Dict[str, Any]:
        """First predicate: the token is signed by us and its exp is in the future."""

        claims = decode_token(token, self._cfg)
        if not claims.get("sub") or not claims.get("role") or "exp" not in claims:
            raise InvalidToken()
        return claims

    @staticmethod
    def _session_record_live(record: Optional[Dict[str, Any]], claims: Dict[str, Any], now: datetime) -> bool:
        """Second predicate: the stored mirror exists, is unexpired and agrees with the token."""

        if not record:
            return False
        expires_at = record.get("expires_at")
        if not isinstance(expires_at, datetime):
            return False
        expires_at = _as_utc(expires_at)
        if expires_at <= now:
            return False
        embedded = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
        return abs((expires_at - embedded).total_seconds()) <= EXPIRY_AGREEMENT_SECONDS

    async def validate(self, token: str) -> Principal:
        claims = self._verify_signature(token)
        record = await self._store.find_one(self.COLLECTION, {"token": token})
        if not self._session_record_live(record, claims, _now()):
            raise SessionExpired()
        return Principal(user_id=str(claims["sub"]), role=str(claims["role"]))

    async def revoke(self, token: str) -> None:
        removed = await self._store.delete(self.COLLECTION, {"token": token})
        LOG.info("session_revoked", extra={"removed": removed})


_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    global _manager
    if _manager is None:
        _manager = SessionManager(get_record_store(), HashedCredentialVerifier.from_settings())
    return _manager


def reset_session_manager() -> None:
    global _manager
    _manager = None


def _bearer_token(creds: Optional[HTTPAuthorizationCredentials]) -> str:
    if creds is None or not creds.scheme or creds.scheme.lower() != "bearer" or not creds.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized - No token provided")
    return creds.credentials


async def get_bearer_token(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> str:
    return _bearer_token(creds)


async def get_current_principal(
    token: str = Depends(get_bearer_token),
    manager: SessionManager = Depends(get_session_manager),
) -> Principal:
    """Resolve the caller from a bearer token; 401 on missing/invalid/expired."""

    try:
        return await manager.validate(token)
    except SessionExpired:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized - Session expired")
    except AuthenticationError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized - Invalid token")
