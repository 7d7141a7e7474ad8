from dataclasses import dataclass
from typing import List, Optional
import logging

from pydantic import ValidationError as SchemaError

from ..ports.record_store import RecordStore, PROFILES, eq
from ...exceptions import ProfileFetchError, PersistenceError
from ...schemas.profile import Profile, UserType

logger = logging.getLogger(__name__)


@dataclass
class ProfileService:
    store: RecordStore

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            rows = await self.store.query(PROFILES, [eq("id", user_id)], limit=1)
        except Exception as e:
            logger.error(f"Error fetching profile {user_id}: {e}")
            raise ProfileFetchError("Could not load profile") from e
        if not rows:
            return None
        try:
            return Profile.model_validate(rows[0])
        except SchemaError as e:
            logger.error(f"Malformed profile row for {user_id}: {e}")
            raise ProfileFetchError("Could not load profile") from e

    async def create_profile(self, profile: Profile) -> Profile:
        try:
            row = await self.store.insert(PROFILES, profile.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Error creating profile {profile.id}: {e}")
            raise PersistenceError("Could not create profile") from e
        return Profile.model_validate(row)

    async def list_doctors(self) -> List[Profile]:
        rows = await self.store.query(PROFILES, [eq("user_type", UserType.DOCTOR.value)], order_by="full_name")
        return [Profile.model_validate(r) for r in rows]
