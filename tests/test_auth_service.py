import asyncio
import pytest

from eyeportal.application.ports.capability_source import AuthEvent
from eyeportal.application.ports.record_store import AUTH_USERS, PROFILES
from eyeportal.application.services.auth_flow_service import AuthFlowService
from eyeportal.application.services.profile_service import ProfileService
from eyeportal.exceptions import AuthError
from eyeportal.infrastructure.auth.local_auth_service import LocalAuthService
from eyeportal.infrastructure.persistence.memory_record_store import InMemoryRecordStore
from eyeportal.schemas.profile import UserType

from fakes import FakeAudit, FakeNotifier, settle


def build(expire_minutes=60):
    store = InMemoryRecordStore()
    profiles = ProfileService(store)
    audit = FakeAudit()
    auth = LocalAuthService(store, profiles, audit, secret_key="test-secret", algorithm="HS256",
                            expire_minutes=expire_minutes)
    events = []
    auth.subscribe(lambda event, session: events.append((event, session)))
    return auth, store, profiles, audit, events


@pytest.mark.asyncio
async def test_sign_up_creates_account_and_profile():
    auth, store, profiles, _, events = build()
    session = await auth.sign_up("ana@example.com", "secret1", "Ana", UserType.PATIENT)

    assert store.rows(AUTH_USERS)[0]["password_hash"] != "secret1"
    profile = await profiles.get_profile(session.user.id)
    assert profile.user_type == UserType.PATIENT
    assert profile.full_name == "Ana"
    assert auth.verify_token(session.access_token)["sub"] == session.user.id


@pytest.mark.asyncio
async def test_notifications_arrive_on_a_later_turn_in_order():
    auth, _, _, _, events = build()
    await auth.sign_up("ana@example.com", "secret1", "Ana", UserType.PATIENT)
    await auth.sign_out()
    assert events == []
    await settle()
    assert [e for e, _ in events] == [AuthEvent.SIGNED_IN, AuthEvent.SIGNED_OUT]
    assert events[1][1] is None


@pytest.mark.asyncio
async def test_duplicate_sign_up_is_rejected():
    auth, store, _, audit, _ = build()
    await auth.sign_up("ana@example.com", "secret1", "Ana", UserType.PATIENT)
    with pytest.raises(AuthError, match="User already registered"):
        await auth.sign_up("ana@example.com", "other12", "Ana Again", UserType.DOCTOR)
    assert len(store.rows(PROFILES)) == 1
    assert ("sign_up", "ana@example.com", None, False) in audit.entries


@pytest.mark.asyncio
async def test_sign_in_with_wrong_password():
    auth, _, _, _, _ = build()
    await auth.sign_up("ana@example.com", "secret1", "Ana", UserType.PATIENT)
    await auth.sign_out()
    with pytest.raises(AuthError, match="Invalid login credentials"):
        await auth.sign_in("ana@example.com", "wrong-pass")
    assert await auth.get_current_session() is None


@pytest.mark.asyncio
async def test_expired_session_signs_out():
    auth, _, _, audit, events = build(expire_minutes=-1)
    await auth.sign_up("ana@example.com", "secret1", "Ana", UserType.PATIENT)
    await settle()

    assert [e for e, _ in events] == [AuthEvent.SIGNED_IN, AuthEvent.SIGNED_OUT]
    assert audit.entries[-1][0] == "session_expired"
    assert await auth.get_current_session() is None


@pytest.mark.asyncio
async def test_session_expiry_is_announced_without_a_call():
    auth, _, _, audit, events = build(expire_minutes=0.001)
    await auth.sign_up("ana@example.com", "secret1", "Ana", UserType.PATIENT)
    await settle()
    assert [e for e, _ in events] == [AuthEvent.SIGNED_IN]

    await asyncio.sleep(0.2)
    await settle()
    assert [e for e, _ in events] == [AuthEvent.SIGNED_IN, AuthEvent.SIGNED_OUT]
    assert events[-1][1] is None
    assert audit.entries[-1][0] == "session_expired"
    auth.close()


@pytest.mark.asyncio
async def test_sign_out_cancels_expiry_timer():
    auth, _, _, audit, events = build(expire_minutes=0.001)
    await auth.sign_up("ana@example.com", "secret1", "Ana", UserType.PATIENT)
    await auth.sign_out()
    await asyncio.sleep(0.2)
    await settle()
    assert [e for e, _ in events] == [AuthEvent.SIGNED_IN, AuthEvent.SIGNED_OUT]
    assert "session_expired" not in [action for action, *_ in audit.entries]


@pytest.mark.asyncio
async def test_refresh_keeps_identity():
    auth, _, _, _, events = build()
    first = await auth.sign_up("ana@example.com", "secret1", "Ana", UserType.PATIENT)
    refreshed = await auth.refresh_session()
    await settle()
    assert refreshed.user == first.user
    assert events[-1] == (AuthEvent.TOKEN_REFRESHED, refreshed)


@pytest.mark.asyncio
async def test_refresh_without_session():
    auth, _, _, _, _ = build()
    with pytest.raises(AuthError):
        await auth.refresh_session()


@pytest.mark.asyncio
async def test_calls_from_inside_a_notification_are_rejected():
    auth, _, _, _, _ = build()
    failures = []

    def reenter(event, session):
        coro = auth.sign_out()
        try:
            coro.send(None)
        except AuthError as e:
            failures.append(e.message)
        except StopIteration:
            failures.append("accepted")

    auth.subscribe(reenter)
    await auth.sign_up("ana@example.com", "secret1", "Ana", UserType.PATIENT)
    await settle()
    assert failures == ["Auth service called from inside its own change notification"]


@pytest.mark.asyncio
async def test_sign_in_flow_rejects_other_portal_role():
    auth, _, profiles, _, _ = build()
    notifier = FakeNotifier()
    flow = AuthFlowService(auth, profiles, notifier)
    await flow.sign_up("doc@example.com", "secret1", "Dr Who", UserType.DOCTOR)
    assert notifier.messages == [("success", "Doctor account created successfully!")]
    await flow.sign_out()

    with pytest.raises(AuthError, match="not registered as a patient"):
        await flow.sign_in("doc@example.com", "secret1", UserType.PATIENT)
    assert await auth.get_current_session() is None

    session = await flow.sign_in("Doc@Example.com ", "secret1", UserType.DOCTOR)
    assert session.user.email == "doc@example.com"
    assert notifier.messages[-1] == ("success", "Welcome back, Doctor!")


@pytest.mark.asyncio
async def test_sign_up_flow_validates_input():
    auth, store, profiles, _, _ = build()
    notifier = FakeNotifier()
    flow = AuthFlowService(auth, profiles, notifier)
    with pytest.raises(AuthError):
        await flow.sign_up("not-an-email", "secret1", "Ana", UserType.PATIENT)
    with pytest.raises(AuthError):
        await flow.sign_up("ana@example.com", "123", "Ana", UserType.PATIENT)
    with pytest.raises(AuthError):
        await flow.sign_up("ana@example.com", "secret1", "  ", UserType.PATIENT)
    assert store.rows(AUTH_USERS) == []
    assert len(notifier.errors()) == 3
