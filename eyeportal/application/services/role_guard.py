import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .session_synchronizer import AuthState, SessionSynchronizer
from ...schemas.profile import UserType

logger = logging.getLogger(__name__)

SIGN_IN_ROUTES = {
    UserType.PATIENT: "/patient/auth",
    UserType.DOCTOR: "/doctor/auth",
}

DASHBOARD_ROUTES = {
    UserType.PATIENT: "/patient/dashboard",
    UserType.DOCTOR: "/doctor/dashboard",
}


class GuardOutcome(str, Enum):
    PENDING = "pending"
    REDIRECT = "redirect"
    ALLOW = "allow"


@dataclass(frozen=True)
class GuardDecision:
    outcome: GuardOutcome
    redirect_to: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is GuardOutcome.ALLOW


def decide(state: AuthState, required_role: UserType) -> GuardDecision:
    if not state.ready:
        return GuardDecision(GuardOutcome.PENDING)
    if state.identity is None or state.profile is None or state.profile.user_type != required_role:
        # Always the required role's sign-in, never the caller's own dashboard.
        return GuardDecision(GuardOutcome.REDIRECT, SIGN_IN_ROUTES[required_role])
    return GuardDecision(GuardOutcome.ALLOW)


def redirect_if_signed_in(state: AuthState, role: UserType) -> Optional[str]:
    """Dashboard route for a sign-in page whose role is already signed in."""
    if state.identity is not None and state.profile is not None and state.profile.user_type == role:
        return DASHBOARD_ROUTES[role]
    return None


class RoleGuard:
    """Re-evaluates access for one screen on every auth state write."""

    def __init__(self, synchronizer: SessionSynchronizer, required_role: UserType,
                 on_decision: Optional[Callable[[GuardDecision], None]] = None) -> None:
        self._synchronizer = synchronizer
        self.required_role = required_role
        self._on_decision = on_decision
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._decision = GuardDecision(GuardOutcome.PENDING)

    @property
    def decision(self) -> GuardDecision:
        # Read through to the live state so a stale cached decision can never leak content.
        return decide(self._synchronizer.state, self.required_role)

    def start(self) -> GuardDecision:
        if self._unsubscribe is None:
            self._unsubscribe = self._synchronizer.subscribe(self._evaluate)
        self._evaluate(self._synchronizer.state)
        return self._decision

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> "RoleGuard":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _evaluate(self, state: AuthState) -> None:
        decision = decide(state, self.required_role)
        changed = decision != self._decision
        self._decision = decision
        if changed and decision.outcome is GuardOutcome.REDIRECT:
            logger.info(f"Redirecting to {decision.redirect_to} ({self.required_role.value} required)")
        if changed and self._on_decision is not None:
            self._on_decision(decision)
