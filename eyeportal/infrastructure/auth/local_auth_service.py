"""In-process capability source backed by the record store.

Credentials live in the ``auth_users`` table (passlib hashes), sessions are
signed JWT access tokens. Change notifications are queued and delivered on
the next event loop turn, one at a time, in the order they were raised.
A timer per session signs the user out when the token expires.
Calling back into the service while a notification is being delivered is
rejected, so subscribers must defer any follow-up request.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Deque, List, Optional, Tuple

import jwt
from passlib.context import CryptContext

from ...application.ports.audit_logger import AuditLogger
from ...application.ports.capability_source import (
    AuthEvent, CapabilitySource, ChangeCallback, Identity, Session, Unsubscribe,
)
from ...application.ports.record_store import RecordStore, AUTH_USERS, eq
from ...application.services.profile_service import ProfileService
from ...config import settings
from ...exceptions import AuthError, PersistenceError
from ...schemas.profile import Profile, UserType

logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class LocalAuthService(CapabilitySource):
    def __init__(
        self,
        store: RecordStore,
        profiles: ProfileService,
        audit: AuditLogger,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        expire_minutes: Optional[float] = None,
    ) -> None:
        self._store = store
        self._profiles = profiles
        self._audit = audit
        self._secret_key = secret_key or settings.SECRET_KEY
        self._algorithm = algorithm or settings.ALGORITHM
        self._expire_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES if expire_minutes is None else expire_minutes
        self._session: Optional[Session] = None
        self._subscribers: List[ChangeCallback] = []
        self._pending: Deque[Tuple[AuthEvent, Optional[Session]]] = deque()
        self._drain_scheduled = False
        self._dispatching = False
        self._expiry: Optional[asyncio.TimerHandle] = None

    def subscribe(self, on_change: ChangeCallback) -> Unsubscribe:
        self._subscribers.append(on_change)

        def unsubscribe() -> None:
            if on_change in self._subscribers:
                self._subscribers.remove(on_change)

        return unsubscribe

    async def get_current_session(self) -> Optional[Session]:
        self._guard()
        if self._session is None:
            return None
        if self.verify_token(self._session.access_token) is None:
            self._expire(self._session)
            return None
        return self._session

    async def sign_in(self, email: str, password: str) -> Session:
        self._guard()
        rows = await self._store.query(AUTH_USERS, [eq("email", email)], limit=1)
        if not rows or not await asyncio.to_thread(pwd_context.verify, password, rows[0]["password_hash"]):
            self._audit.log("sign_in", email, success=False)
            raise AuthError("Invalid login credentials")
        session = self._start_session(Identity(id=rows[0]["id"], email=email))
        self._audit.log("sign_in", email, user_id=session.user.id)
        self._emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_up(self, email: str, password: str, full_name: str, user_type: UserType) -> Session:
        self._guard()
        if await self._store.count(AUTH_USERS, [eq("email", email)]):
            self._audit.log("sign_up", email, success=False, details={"reason": "duplicate"})
            raise AuthError("User already registered")
        password_hash = await asyncio.to_thread(pwd_context.hash, password)
        try:
            row = await self._store.insert(AUTH_USERS, {"email": email, "password_hash": password_hash})
            # The role is fixed here, at account creation.
            await self._profiles.create_profile(
                Profile(id=row["id"], user_type=user_type, full_name=full_name, email=email)
            )
        except PersistenceError as e:
            self._audit.log("sign_up", email, success=False, details={"reason": "storage"})
            raise AuthError("Could not create account") from e
        session = self._start_session(Identity(id=row["id"], email=email))
        self._audit.log("sign_up", email, user_id=session.user.id, details={"user_type": user_type.value})
        self._emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        self._guard()
        session, self._session = self._session, None
        self._cancel_expiry()
        if session is None:
            return
        self._audit.log("sign_out", session.user.email, user_id=session.user.id)
        self._emit(AuthEvent.SIGNED_OUT, None)

    async def refresh_session(self) -> Session:
        self._guard()
        if self._session is None:
            raise AuthError("No active session")
        session = self._start_session(self._session.user)
        self._emit(AuthEvent.TOKEN_REFRESHED, session)
        return session

    def verify_token(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            logger.info("Session token has expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid session token: {e}")
            return None

    def _start_session(self, identity: Identity) -> Session:
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=self._expire_minutes)
        token = jwt.encode(
            {"sub": identity.id, "email": identity.email, "exp": expires_at, "type": "access"},
            self._secret_key,
            algorithm=self._algorithm,
        )
        self._session = Session(access_token=token, expires_at=expires_at, user=identity)
        self._arm_expiry(self._session)
        return self._session

    def close(self) -> None:
        self._cancel_expiry()
        self._subscribers.clear()

    def _arm_expiry(self, session: Session) -> None:
        # One timer per live session; a refresh or sign-in replaces it.
        self._cancel_expiry()
        delay = max((session.expires_at - datetime.now(timezone.utc)).total_seconds(), 0)
        self._expiry = asyncio.get_running_loop().call_later(delay, self._expire, session)

    def _cancel_expiry(self) -> None:
        if self._expiry is not None:
            self._expiry.cancel()
            self._expiry = None

    def _expire(self, session: Session) -> None:
        if self._session is not session:
            return
        self._session = None
        self._cancel_expiry()
        logger.info(f"Session for {session.user.id} expired")
        self._audit.log("session_expired", session.user.email, user_id=session.user.id)
        self._emit(AuthEvent.SIGNED_OUT, None)

    def _guard(self) -> None:
        if self._dispatching:
            raise AuthError("Auth service called from inside its own change notification")

    def _emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        self._pending.append((event, session))
        if not self._drain_scheduled:
            self._drain_scheduled = True
            asyncio.get_running_loop().call_soon(self._drain)

    def _drain(self) -> None:
        self._drain_scheduled = False
        while self._pending:
            event, session = self._pending.popleft()
            self._dispatching = True
            try:
                for callback in list(self._subscribers):
                    try:
                        callback(event, session)
                    except Exception:
                        logger.exception(f"Auth subscriber failed on {event.value}")
            finally:
                self._dispatching = False
