from dataclasses import dataclass
import logging
import re

from ..ports.capability_source import CapabilitySource, Session
from ..ports.notifier import Notifier
from .profile_service import ProfileService
from ...exceptions import AuthError, ProfileFetchError
from ...schemas.profile import UserType

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6

WELCOME_MESSAGES = {
    UserType.PATIENT: "Welcome back!",
    UserType.DOCTOR: "Welcome back, Doctor!",
}

SIGN_UP_MESSAGES = {
    UserType.PATIENT: "Account created successfully!",
    UserType.DOCTOR: "Doctor account created successfully!",
}


@dataclass
class AuthFlowService:
    source: CapabilitySource
    profiles: ProfileService
    notifier: Notifier

    async def sign_in(self, email: str, password: str, role: UserType) -> Session:
        email = self._validate(email, password)
        try:
            session = await self.source.sign_in(email, password)
        except AuthError as e:
            self.notifier.error(e.message or "Authentication failed")
            raise

        try:
            profile = await self.profiles.get_profile(session.user.id)
        except ProfileFetchError:
            profile = None
        if profile is None or profile.user_type != role:
            # The patient and doctor portals do not share accounts.
            await self.source.sign_out()
            message = f"This account is not registered as a {role.value}"
            self.notifier.error(message)
            raise AuthError(message)

        self.notifier.success(WELCOME_MESSAGES[role])
        return session

    async def sign_up(self, email: str, password: str, full_name: str, role: UserType) -> Session:
        email = self._validate(email, password)
        if not full_name or not full_name.strip():
            self.notifier.error("Full name is required")
            raise AuthError("Full name is required")
        try:
            session = await self.source.sign_up(email, password, full_name.strip(), role)
        except AuthError as e:
            self.notifier.error(e.message or "Authentication failed")
            raise
        self.notifier.success(SIGN_UP_MESSAGES[role])
        return session

    async def sign_out(self) -> None:
        await self.source.sign_out()
        self.notifier.info("Signed out")

    def _validate(self, email: str, password: str) -> str:
        email = (email or "").strip().lower()
        if not EMAIL_PATTERN.match(email):
            self.notifier.error("Invalid email address")
            raise AuthError("Invalid email address")
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            message = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            self.notifier.error(message)
            raise AuthError(message)
        return email
