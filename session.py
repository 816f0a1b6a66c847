"""
Session / identity cache.

A local projection of the identity provider's session for one shopper:
authentication flag, minimal identity, profile and admin flag. Provider
events and the manual refresh poll are both posted to a single queue which
one consumer drains under a lock, so applying the same session twice is
harmless.
"""
import asyncio
import json
from typing import Optional

import structlog
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError

from config import Settings, get_dev_user
from errors import AuthError, SessionExpiredError, StorageError
from identity import AuthClient, AuthEvent, AuthSession
from profiles import UserProfileService
from schemas import UserProfile
from stores import StateStorage

logger = structlog.get_logger(__name__)


class SessionUser(BaseModel):
    uid: str
    email: str
    name: str = ""


class SessionCache:
    storage_key = "auth-storage"

    def __init__(self, auth: AuthClient, profiles: UserProfileService, settings: Settings,
                 storage: StateStorage):
        self.auth = auth
        self.profiles = profiles
        self.settings = settings
        self.storage = storage

        self.is_authenticated = False
        self.user: Optional[SessionUser] = None
        self.profile: Optional[UserProfile] = None
        self.is_admin = False
        self.is_loading_profile = False

        self._queue: asyncio.Queue = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._lookup: Optional[asyncio.Task] = None

        self._hydrate()
        self._unsubscribe = auth.on_auth_state_change(self.post)

    # ----------------------- Persistence -----------------------
    def _hydrate(self):
        try:
            raw = self.storage.get(self.storage_key)
            if not raw:
                return
            state = json.loads(raw)
            self.is_authenticated = bool(state.get("is_authenticated"))
            self.user = SessionUser(**state["user"]) if state.get("user") else None
            self.profile = UserProfile(**state["profile"]) if state.get("profile") else None
            self.is_admin = bool(state.get("is_admin"))
        except (StorageError, ValueError, ValidationError) as e:
            logger.warning("session_state_discarded", error=str(e))

    def _persist(self):
        state = {
            "is_authenticated": self.is_authenticated,
            "user": self.user.model_dump() if self.user else None,
            "profile": self.profile.model_dump(mode="json") if self.profile else None,
            "is_admin": self.is_admin,
        }
        try:
            self.storage.set(self.storage_key, json.dumps(state))
        except StorageError as e:
            logger.warning("session_state_write_failed", error=str(e))

    # ----------------------- Event queue -----------------------
    def post(self, event: AuthEvent) -> None:
        self._queue.put_nowait(event)

    async def drain(self) -> None:
        async with self._lock:
            applied = False
            while not self._queue.empty():
                event = self._queue.get_nowait()
                logger.debug("auth_event", type=event.type)
                if event.type == "SIGNED_OUT" or event.session is None:
                    self._clear()
                else:
                    self._sync(event.session, event.type)
                applied = True
            if applied:
                await run_in_threadpool(self._persist)

    async def start(self) -> None:
        """Apply whatever session the provider already holds."""
        self.auth.emit_initial_session()
        await self.drain()

    async def refresh(self) -> None:
        """Visibility poll: refresh the provider session if one exists."""
        session = await self.auth.get_session()
        if session is not None:
            await self.auth.refresh_session()
        await self.drain()

    def _lookup_running(self) -> bool:
        return self._lookup is not None and not self._lookup.done()

    def _sync(self, session: AuthSession, event_type: str) -> None:
        same_user = self.is_authenticated and self.user is not None and self.user.uid == session.user_id
        self.is_authenticated = True
        if not same_user:
            self._cancel_lookup()
            self.user = SessionUser(uid=session.user_id, email=session.email)
            self.profile = None
            self.is_admin = False

        if self._lookup_running():
            return
        if same_user and event_type == "TOKEN_REFRESHED" and self.profile is not None:
            return
        self._lookup = asyncio.create_task(self._load_profile_and_admin())

    def _clear(self) -> None:
        self._cancel_lookup()
        self.is_authenticated = False
        self.user = None
        self.profile = None
        self.is_admin = False
        self.is_loading_profile = False

    def _cancel_lookup(self) -> None:
        if self._lookup_running():
            self._lookup.cancel()
        self._lookup = None

    async def _load_profile_and_admin(self) -> None:
        await self.load_profile()
        await self.check_admin_status()

    async def settle(self) -> None:
        """Wait for any in-flight profile/admin lookup."""
        task = self._lookup
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ----------------------- Profile -----------------------
    async def load_profile(self) -> None:
        user = self.user
        if user is None:
            return
        self.is_loading_profile = True
        try:
            profile = await run_in_threadpool(self.profiles.get_or_create_profile, user.email)
        except Exception as e:
            logger.warning("profile_load_failed", email=user.email, error=str(e))
            return
        finally:
            self.is_loading_profile = False
        if self.user is not None and self.user.uid == user.uid:
            self.profile = profile
            await run_in_threadpool(self._persist)

    async def check_admin_status(self) -> None:
        user = self.user
        if user is None:
            return
        dev = get_dev_user(self.settings, user.email)
        if dev and dev["is_admin"]:
            is_admin = True
        elif self.profile is not None and self.profile.email == user.email:
            is_admin = self.profile.is_admin
        else:
            try:
                is_admin = await run_in_threadpool(self.profiles.is_admin, user.email)
            except Exception as e:
                logger.warning("admin_check_failed", email=user.email, error=str(e))
                is_admin = False
        if self.user is not None and self.user.uid == user.uid:
            self.is_admin = is_admin
            await run_in_threadpool(self._persist)

    async def update_profile(self, name: str, phone: str) -> UserProfile:
        if self.user is None:
            raise SessionExpiredError("Not authenticated")
        session = await self.auth.get_session()
        await self.drain()
        if session is None or self.user is None:
            raise SessionExpiredError()
        profile = await run_in_threadpool(self.profiles.upsert_profile, self.user.email, name, phone)
        self.profile = profile
        await run_in_threadpool(self._persist)
        return profile

    async def logout(self) -> None:
        try:
            await self.auth.sign_out()
        except (AuthError, PyMongoError) as e:
            logger.warning("logout_provider_failed", error=str(e))
        self._clear()
        await self.drain()
        await run_in_threadpool(self._persist)

    def snapshot(self) -> dict:
        return {
            "is_authenticated": self.is_authenticated,
            "user": self.user.model_dump() if self.user else None,
            "profile": self.profile.model_dump() if self.profile else None,
            "is_admin": self.is_admin,
            "is_loading_profile": self.is_loading_profile,
        }
