from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Protocol

from ...schemas.profile import UserType


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass(frozen=True)
class Identity:
    id: str
    email: str


@dataclass(frozen=True)
class Session:
    access_token: str
    expires_at: datetime
    user: Identity


ChangeCallback = Callable[[AuthEvent, Optional[Session]], None]
Unsubscribe = Callable[[], None]


class CapabilitySource(Protocol):
    def subscribe(self, on_change: ChangeCallback) -> Unsubscribe:
        ...

    async def get_current_session(self) -> Optional[Session]:
        ...

    async def sign_in(self, email: str, password: str) -> Session:
        ...

    async def sign_up(self, email: str, password: str, full_name: str, user_type: UserType) -> Session:
        ...

    async def sign_out(self) -> None:
        ...
