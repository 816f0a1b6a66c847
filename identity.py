"""
Identity provider.

``AuthBackend`` owns identities and sessions: passwordless email codes,
password sign-up / sign-in, and JWT access / refresh tokens bound to a
revocable session row.

``AuthClient`` is one shopper's handle on the backend. It keeps the current
session in the shopper's state storage and notifies subscribers of
``INITIAL_SESSION``, ``SIGNED_IN``, ``TOKEN_REFRESHED`` and ``SIGNED_OUT``.
"""
import hashlib
import hmac
import secrets
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Literal, Optional

import jwt
import structlog
from fastapi.concurrency import run_in_threadpool
from passlib.context import CryptContext
from pydantic import BaseModel, ValidationError
from pymongo.database import Database

from config import Settings, get_dev_user
from database import now_utc
from errors import AuthError, StorageError
from stores import StateStorage

logger = structlog.get_logger(__name__)

CODE_TTL_SECONDS = 600
MAX_CODE_ATTEMPTS = 5
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

AuthEventType = Literal["INITIAL_SESSION", "SIGNED_IN", "TOKEN_REFRESHED", "SIGNED_OUT"]


class AuthSession(BaseModel):
    session_id: str
    user_id: str
    email: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: int


class AuthEvent(BaseModel):
    type: AuthEventType
    session: Optional[AuthSession] = None


# ----------------------- Utils -----------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, stored: str) -> bool:
    return pwd_context.verify(password, stored)


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


def dev_user_id(email: str) -> str:
    return "dev-" + email.lower().replace("@", "-").replace(".", "-")


# ----------------------- Backend -----------------------
class AuthBackend:
    users = "auth_user"
    codes = "auth_code"
    sessions = "auth_session"

    def __init__(self, database: Database, settings: Settings):
        self.db = database
        self.settings = settings

    # Tokens
    def _encode(self, payload: dict, lifetime: timedelta) -> str:
        exp = datetime.now(timezone.utc) + lifetime
        return jwt.encode({**payload, "exp": exp}, self.settings.jwt_secret, algorithm=self.settings.jwt_algo)

    def _decode(self, token: str, token_type: str) -> dict:
        try:
            payload = jwt.decode(token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algo])
        except jwt.ExpiredSignatureError:
            raise AuthError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthError("Invalid token")
        if payload.get("type") != token_type:
            raise AuthError("Invalid token")
        row = self.db[self.sessions].find_one({"session_id": payload.get("sid")})
        if not row or row.get("revoked"):
            raise AuthError("Session revoked")
        return payload

    def _tokens(self, session_id: str, user_id: str, email: str) -> AuthSession:
        access_lifetime = timedelta(minutes=self.settings.access_token_minutes)
        claims = {"sub": user_id, "email": email, "sid": session_id}
        return AuthSession(
            session_id=session_id,
            user_id=user_id,
            email=email,
            access_token=self._encode({**claims, "type": "access"}, access_lifetime),
            refresh_token=self._encode({**claims, "type": "refresh"},
                                       timedelta(days=self.settings.refresh_token_days)),
            expires_at=int(time.time() + access_lifetime.total_seconds()),
        )

    def issue_session(self, user_id: str, email: str) -> AuthSession:
        session_id = uuid.uuid4().hex
        self.db[self.sessions].insert_one({
            "session_id": session_id,
            "user_id": user_id,
            "email": email,
            "revoked": False,
            "created_at": now_utc(),
        })
        logger.info("session_issued", user_id=user_id)
        return self._tokens(session_id, user_id, email)

    def decode_access_token(self, token: str) -> dict:
        return self._decode(token, "access")

    def refresh(self, refresh_token: str) -> AuthSession:
        payload = self._decode(refresh_token, "refresh")
        return self._tokens(payload["sid"], payload["sub"], payload["email"])

    def revoke(self, session_id: str) -> None:
        self.db[self.sessions].update_one({"session_id": session_id},
                                          {"$set": {"revoked": True, "updated_at": now_utc()}})

    # Identities
    def _get_or_create_user(self, email: str) -> str:
        user = self.db[self.users].find_one({"email": email})
        if user:
            return str(user["_id"])
        res = self.db[self.users].insert_one({"email": email, "password_hash": None, "created_at": now_utc()})
        return str(res.inserted_id)

    def _dev_sign_in(self, email: str, secret: str) -> Optional[AuthSession]:
        dev = get_dev_user(self.settings, email)
        if dev is None:
            return None
        if secret != dev["password"]:
            raise AuthError("Invalid password")
        return self.issue_session(dev_user_id(email), email.lower())

    def create_login_code(self, email: str) -> Optional[str]:
        """Start the passwordless flow. Returns the code to deliver, or None for dev users."""
        email = email.lower()
        if get_dev_user(self.settings, email):
            logger.info("dev_user_login_code_skipped", email=email)
            return None
        code = f"{secrets.randbelow(10 ** 6):06d}"
        self.db[self.codes].update_one(
            {"email": email},
            {"$set": {"code_hash": hash_code(code), "expires_at": time.time() + CODE_TTL_SECONDS, "attempts": 0}},
            upsert=True,
        )
        return code

    def verify_login_code(self, email: str, code: str) -> AuthSession:
        email = email.lower()
        dev_session = self._dev_sign_in(email, code)
        if dev_session:
            return dev_session
        row = self.db[self.codes].find_one({"email": email})
        if not row or row["expires_at"] < time.time():
            raise AuthError("Code expired or invalid")
        if row.get("attempts", 0) >= MAX_CODE_ATTEMPTS:
            raise AuthError("Too many attempts. Request a new code.")
        if not hmac.compare_digest(row["code_hash"], hash_code(code)):
            self.db[self.codes].update_one({"email": email}, {"$inc": {"attempts": 1}})
            raise AuthError("Invalid code")
        self.db[self.codes].delete_one({"email": email})
        return self.issue_session(self._get_or_create_user(email), email)

    def sign_up(self, email: str, password: str) -> AuthSession:
        email = email.lower()
        existing = self.db[self.users].find_one({"email": email})
        if existing and existing.get("password_hash"):
            raise AuthError("Email already registered")
        user_id = self._get_or_create_user(email)
        self.db[self.users].update_one({"email": email}, {"$set": {"password_hash": hash_password(password)}})
        return self.issue_session(user_id, email)

    def sign_in(self, email: str, password: str) -> AuthSession:
        email = email.lower()
        dev_session = self._dev_sign_in(email, password)
        if dev_session:
            return dev_session
        user = self.db[self.users].find_one({"email": email})
        if not user or not user.get("password_hash") or not verify_password(password, user["password_hash"]):
            raise AuthError("Invalid credentials")
        return self.issue_session(str(user["_id"]), email)


# ----------------------- Client -----------------------
Listener = Callable[[AuthEvent], None]


class AuthClient:
    storage_key = "auth-session"

    def __init__(self, backend: AuthBackend, storage: StateStorage, send_login_code=None):
        self.backend = backend
        self.storage = storage
        self.send_login_code = send_login_code
        self._listeners: List[Listener] = []
        self.session: Optional[AuthSession] = self._load()

    def _load(self) -> Optional[AuthSession]:
        try:
            raw = self.storage.get(self.storage_key)
            return AuthSession.model_validate_json(raw) if raw else None
        except (StorageError, ValidationError) as e:
            logger.warning("auth_session_unreadable", error=str(e))
            return None

    def _set_session(self, session: Optional[AuthSession]) -> None:
        self.session = session
        try:
            if session is None:
                self.storage.remove(self.storage_key)
            else:
                self.storage.set(self.storage_key, session.model_dump_json())
        except StorageError as e:
            logger.warning("auth_session_write_failed", error=str(e))

    def on_auth_state_change(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _emit(self, event_type: str, session: Optional[AuthSession]) -> None:
        event = AuthEvent(type=event_type, session=session)
        for listener in list(self._listeners):
            listener(event)

    def emit_initial_session(self) -> None:
        self._emit("INITIAL_SESSION", self.session)

    async def sign_in_with_otp(self, email: str) -> None:
        code = await run_in_threadpool(self.backend.create_login_code, email)
        if code and self.send_login_code:
            await self.send_login_code(email, code)

    async def _signed_in(self, session: AuthSession) -> AuthSession:
        await run_in_threadpool(self._set_session, session)
        self._emit("SIGNED_IN", session)
        return session

    async def verify_otp(self, email: str, code: str) -> AuthSession:
        session = await run_in_threadpool(self.backend.verify_login_code, email, code)
        return await self._signed_in(session)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        session = await run_in_threadpool(self.backend.sign_in, email, password)
        return await self._signed_in(session)

    async def sign_up(self, email: str, password: str) -> AuthSession:
        session = await run_in_threadpool(self.backend.sign_up, email, password)
        return await self._signed_in(session)

    async def get_session(self) -> Optional[AuthSession]:
        """Return the current session after re-validating it with the backend."""
        if self.session is None:
            return None
        try:
            await run_in_threadpool(self.backend.decode_access_token, self.session.access_token)
            return self.session
        except AuthError:
            return await self.refresh_session()

    async def refresh_session(self) -> Optional[AuthSession]:
        if self.session is None:
            self._emit("SIGNED_OUT", None)
            return None
        try:
            session = await run_in_threadpool(self.backend.refresh, self.session.refresh_token)
        except AuthError as e:
            logger.info("session_refresh_failed", reason=str(e))
            await run_in_threadpool(self._set_session, None)
            self._emit("SIGNED_OUT", None)
            return None
        await run_in_threadpool(self._set_session, session)
        self._emit("TOKEN_REFRESHED", session)
        return session

    async def sign_out(self) -> None:
        session = self.session
        try:
            if session is not None:
                await run_in_threadpool(self.backend.revoke, session.session_id)
        finally:
            await run_in_threadpool(self._set_session, None)
            self._emit("SIGNED_OUT", None)
