"""Process-wide mirror of the signed-in session and its profile.

The synchronizer is the only writer of :class:`AuthState`. It reconciles two
independent inputs from the capability source: the change notification
stream and the one-off snapshot requested at start. Every accepted write bumps
a version counter; profile fetches and the snapshot carry the version they
were issued under and are dropped when a newer write has landed in between.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Set

from ..ports.capability_source import AuthEvent, CapabilitySource, Identity, Session, Unsubscribe
from .profile_service import ProfileService
from ...exceptions import ProfileFetchError
from ...schemas.profile import Profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthState:
    ready: bool = False
    session: Optional[Session] = None
    profile: Optional[Profile] = None

    @property
    def identity(self) -> Optional[Identity]:
        return self.session.user if self.session else None


StateListener = Callable[[AuthState], None]


class SessionSynchronizer:
    def __init__(self, capability_source: CapabilitySource, profiles: ProfileService) -> None:
        self._source = capability_source
        self._profiles = profiles
        self._state = AuthState()
        self._listeners: List[StateListener] = []
        self._unsubscribe: Optional[Unsubscribe] = None
        self._version = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()
        self._handles: Set[asyncio.Handle] = set()
        self._ready = asyncio.Event()
        self._started = False
        self._closed = False

    @property
    def state(self) -> AuthState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a reader notified after every state write."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._loop = asyncio.get_running_loop()
        # Subscribe before asking for the snapshot so no transition falls between the two calls.
        self._unsubscribe = self._source.subscribe(self._on_change)
        self._track(self._loop.create_task(self._resolve_snapshot(self._version)))
        logger.info("Session synchronizer started")

    async def wait_ready(self, timeout: Optional[float] = None) -> AuthState:
        if timeout is None:
            await self._ready.wait()
        else:
            await asyncio.wait_for(self._ready.wait(), timeout)
        return self._state

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            for handle in list(self._handles):
                handle.cancel()
            self._handles.clear()
            pending = [t for t in self._tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        finally:
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            self._listeners.clear()
            logger.info("Session synchronizer closed")

    async def __aenter__(self) -> "SessionSynchronizer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _on_change(self, event: AuthEvent, session: Optional[Session]) -> None:
        if self._closed:
            return
        self._version += 1
        version = self._version
        identity = session.user if session else None
        logger.info(f"Auth change {event.value} for {identity.id if identity else 'anonymous'}")

        if identity is None:
            self._write(AuthState(ready=True))
            return

        current = self._state.profile
        if current is not None and current.id == identity.id:
            # Same user (token refresh or re-sign-in): keep the profile, re-read it below.
            self._write(replace(self._state, session=session))
        else:
            self._write(AuthState(ready=False, session=session, profile=None))

        # The capability source forbids requests from inside its own callback; fetch on the next turn.
        loop = self._loop or asyncio.get_running_loop()
        handle: Optional[asyncio.Handle] = None

        def spawn() -> None:
            self._handles.discard(handle)
            if self._closed:
                return
            self._track(loop.create_task(self._load_profile(identity.id, version)))

        handle = loop.call_soon(spawn)
        self._handles.add(handle)

    async def _resolve_snapshot(self, issued_at: int) -> None:
        try:
            session = await self._source.get_current_session()
        except Exception as e:
            logger.error(f"Could not read current session: {e}")
            session = None
        if self._closed:
            return
        if self._version != issued_at:
            logger.debug("Initial session snapshot superseded by a change notification")
            return

        self._version += 1
        version = self._version
        if session is None:
            self._write(AuthState(ready=True))
            return
        self._write(AuthState(ready=False, session=session, profile=None))
        await self._load_profile(session.user.id, version)

    async def _load_profile(self, user_id: str, version: int) -> None:
        try:
            profile = await self._profiles.get_profile(user_id)
        except ProfileFetchError as e:
            logger.warning(f"Profile unavailable for {user_id}: {e}")
            profile = None
        if self._closed or version != self._version:
            logger.debug(f"Discarding stale profile for {user_id}")
            return
        self._write(replace(self._state, profile=profile, ready=True))

    def _write(self, state: AuthState) -> None:
        self._state = state
        if state.ready:
            self._ready.set()
        else:
            self._ready.clear()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Auth state listener failed")

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
