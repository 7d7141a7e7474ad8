import asyncio
import pytest

from eyeportal.application.ports.capability_source import AuthEvent
from eyeportal.application.services.session_synchronizer import SessionSynchronizer
from eyeportal.exceptions import ProfileFetchError
from eyeportal.schemas.profile import Profile, UserType

from fakes import FakeCapabilitySource, FakeProfiles, make_session, settle


def patient(user_id):
    return Profile(id=user_id, user_type=UserType.PATIENT, full_name=f"Patient {user_id}", email=f"{user_id}@example.com")


def doctor(user_id):
    return Profile(id=user_id, user_type=UserType.DOCTOR, full_name=f"Dr {user_id}", email=f"{user_id}@example.com")


@pytest.mark.asyncio
async def test_no_session_becomes_ready_without_identity():
    sync = SessionSynchronizer(FakeCapabilitySource(snapshot=None), FakeProfiles())
    assert sync.state.ready is False
    await sync.start()
    state = await sync.wait_ready(1)
    assert state.ready is True
    assert state.identity is None
    assert state.profile is None
    await sync.close()


@pytest.mark.asyncio
async def test_snapshot_session_loads_profile():
    profiles = FakeProfiles({"u1": patient("u1")})
    sync = SessionSynchronizer(FakeCapabilitySource(snapshot=make_session("u1")), profiles)
    await sync.start()
    state = await sync.wait_ready(1)
    assert state.identity.id == "u1"
    assert state.profile.user_type == UserType.PATIENT
    await sync.close()


@pytest.mark.asyncio
async def test_snapshot_error_treated_as_signed_out():
    sync = SessionSynchronizer(FakeCapabilitySource(snapshot=RuntimeError("offline")), FakeProfiles())
    await sync.start()
    state = await sync.wait_ready(1)
    assert state.ready is True
    assert state.session is None
    await sync.close()


@pytest.mark.asyncio
async def test_change_before_snapshot_resolves_wins():
    loop = asyncio.get_running_loop()
    snapshot = loop.create_future()
    source = FakeCapabilitySource(snapshot=snapshot)
    profiles = FakeProfiles({"a": patient("a"), "b": doctor("b")})
    sync = SessionSynchronizer(source, profiles)
    await sync.start()
    await settle()

    source.emit(AuthEvent.SIGNED_IN, make_session("b"))
    snapshot.set_result(make_session("a"))
    await settle()

    assert sync.state.ready is True
    assert sync.state.identity.id == "b"
    assert sync.state.profile.id == "b"
    assert "a" not in profiles.calls
    await sync.close()


@pytest.mark.asyncio
async def test_profile_fetch_is_deferred_out_of_the_callback():
    source = FakeCapabilitySource()
    profiles = FakeProfiles({"u1": patient("u1")})
    sync = SessionSynchronizer(source, profiles)
    await sync.start()
    await sync.wait_ready(1)

    source.emit(AuthEvent.SIGNED_IN, make_session("u1"))
    # Nothing requested synchronously from inside the notification.
    assert profiles.calls == []
    assert sync.state.ready is False
    await settle()
    assert profiles.calls == ["u1"]
    assert sync.state.ready is True
    await sync.close()


@pytest.mark.asyncio
async def test_stale_profile_from_previous_identity_is_discarded():
    loop = asyncio.get_running_loop()
    source = FakeCapabilitySource()
    profiles = FakeProfiles()
    profiles.gates["a"] = loop.create_future()
    profiles.gates["b"] = loop.create_future()
    sync = SessionSynchronizer(source, profiles)
    await sync.start()
    await sync.wait_ready(1)

    source.emit(AuthEvent.SIGNED_IN, make_session("a"))
    await settle()
    source.emit(AuthEvent.SIGNED_IN, make_session("b"))
    await settle()

    # A's profile arrives first but belongs to a superseded identity.
    profiles.gates["a"].set_result(patient("a"))
    await settle()
    assert sync.state.ready is False
    assert sync.state.profile is None
    assert sync.state.identity.id == "b"

    profiles.gates["b"].set_result(doctor("b"))
    await settle()
    assert sync.state.ready is True
    assert sync.state.profile.id == "b"
    await sync.close()


@pytest.mark.asyncio
async def test_late_profile_after_sign_out_is_discarded():
    loop = asyncio.get_running_loop()
    source = FakeCapabilitySource()
    profiles = FakeProfiles()
    profiles.gates["a"] = loop.create_future()
    sync = SessionSynchronizer(source, profiles)
    await sync.start()
    await sync.wait_ready(1)

    source.emit(AuthEvent.SIGNED_IN, make_session("a"))
    await settle()
    source.emit(AuthEvent.SIGNED_OUT, None)
    profiles.gates["a"].set_result(patient("a"))
    await settle()

    assert sync.state.ready is True
    assert sync.state.session is None
    assert sync.state.profile is None
    await sync.close()


@pytest.mark.asyncio
async def test_profile_failure_still_becomes_ready():
    source = FakeCapabilitySource()
    profiles = FakeProfiles({"u1": ProfileFetchError("Could not load profile")})
    sync = SessionSynchronizer(source, profiles)
    await sync.start()
    await sync.wait_ready(1)

    source.emit(AuthEvent.SIGNED_IN, make_session("u1"))
    await settle()
    assert sync.state.ready is True
    assert sync.state.identity.id == "u1"
    assert sync.state.profile is None
    await sync.close()


@pytest.mark.asyncio
async def test_token_refresh_keeps_profile_visible():
    source = FakeCapabilitySource(snapshot=make_session("u1"))
    profiles = FakeProfiles({"u1": patient("u1")})
    sync = SessionSynchronizer(source, profiles)
    await sync.start()
    await sync.wait_ready(1)

    seen = []
    sync.subscribe(seen.append)
    refreshed = make_session("u1")
    source.emit(AuthEvent.TOKEN_REFRESHED, refreshed)
    assert seen[0].ready is True
    assert seen[0].profile.id == "u1"
    assert sync.state.session is refreshed
    await settle()
    assert sync.state.ready is True
    await sync.close()


@pytest.mark.asyncio
async def test_close_unsubscribes_and_ignores_later_events():
    source = FakeCapabilitySource()
    profiles = FakeProfiles({"u1": patient("u1")})
    async with SessionSynchronizer(source, profiles) as sync:
        await sync.wait_ready(1)
        assert len(source.callbacks) == 1
    assert source.callbacks == []

    sync._on_change(AuthEvent.SIGNED_IN, make_session("u1"))
    await settle()
    assert sync.state.session is None
    assert profiles.calls == []
