import pytest

from eyeportal.application.ports.record_store import PROFILES
from eyeportal.application.services.profile_service import ProfileService
from eyeportal.exceptions import PersistenceError, ProfileFetchError
from eyeportal.infrastructure.persistence.memory_record_store import InMemoryRecordStore
from eyeportal.schemas.profile import Profile, UserType


class BrokenStore:
    async def query(self, table, filters=(), order_by=None, descending=False, limit=None):
        raise ConnectionError("database unreachable")

    async def insert(self, table, row):
        raise ConnectionError("database unreachable")

    async def count(self, table, filters=()):
        raise ConnectionError("database unreachable")


@pytest.mark.asyncio
async def test_get_profile_missing_returns_none():
    svc = ProfileService(InMemoryRecordStore())
    assert await svc.get_profile("nobody") is None


@pytest.mark.asyncio
async def test_create_then_get_profile():
    svc = ProfileService(InMemoryRecordStore())
    await svc.create_profile(Profile(id="u1", user_type=UserType.DOCTOR, full_name="Dr Iris", email="iris@example.com"))
    profile = await svc.get_profile("u1")
    assert profile.user_type == UserType.DOCTOR


@pytest.mark.asyncio
async def test_store_failure_becomes_profile_fetch_error():
    svc = ProfileService(BrokenStore())
    with pytest.raises(ProfileFetchError):
        await svc.get_profile("u1")
    with pytest.raises(PersistenceError):
        await svc.create_profile(Profile(id="u1", user_type=UserType.PATIENT, full_name="Pat", email="p@example.com"))


@pytest.mark.asyncio
async def test_malformed_row_becomes_profile_fetch_error():
    store = InMemoryRecordStore()
    await store.insert(PROFILES, {"id": "u1", "user_type": "nurse", "full_name": "X", "email": "x@example.com"})
    with pytest.raises(ProfileFetchError):
        await ProfileService(store).get_profile("u1")
