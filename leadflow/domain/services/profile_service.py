"""
Profile Service
Staff profiles: listing, creation with a sign-in account, edits and
soft termination.
"""
import asyncio
import logging
from datetime import date
from typing import Any, List, Optional, Sequence, Set

from supabase import Client

from leadflow.domain.errors import NotFoundError, PersistenceError, ValidationError
from leadflow.domain.models.lead import Lead
from leadflow.domain.models.profile import Profile, ProfileCreate, ProfileUpdate, Role
from leadflow.domain.models.session import SessionContext
from leadflow.domain.services import access_policy
from leadflow.domain.services.access_policy import Capability
from leadflow.domain.services.aggregation import EmployeeStats, employee_stats

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"


class ProfileService:
    """CEO-managed staff records; terminated profiles are kept, never deleted"""
    
    def __init__(self, supabase: Client, session: SessionContext):
        self.supabase = supabase
        self.session = session
    
    async def _execute(self, query: Any) -> Any:
        return await asyncio.to_thread(query.execute)
    
    async def list_profiles(self, role: Optional[Role] = None) -> List[Profile]:
        query = self.supabase.table(PROFILES_TABLE).select("*").order("name")
        if role is not None:
            query = query.eq("role", role.value)
        try:
            response = await self._execute(query)
        except Exception as e:
            logger.error(f"Failed to list profiles: {e}")
            raise PersistenceError(f"Failed to load profiles: {str(e)}")
        return [Profile.model_validate(row) for row in response.data or []]
    
    async def assignee_names(self) -> Set[str]:
        """Names of active Employees, the only valid lead assignees"""
        profiles = await self.list_profiles(Role.EMPLOYEE)
        return {profile.name for profile in profiles if profile.is_assignable}
    
    async def get(self, profile_id: str) -> Profile:
        try:
            response = await self._execute(
                self.supabase.table(PROFILES_TABLE).select("*").eq("id", profile_id).limit(1)
            )
        except Exception as e:
            logger.error(f"Failed to load profile {profile_id}: {e}")
            raise PersistenceError(f"Failed to load profile: {str(e)}")
        if not response.data:
            raise NotFoundError("Profile", profile_id)
        return Profile.model_validate(response.data[0])
    
    async def create_profile(self, payload: ProfileCreate) -> Profile:
        """
        Create the sign-in account, then the profile row with the same id.
        
        Raises:
            PermissionDeniedError: Actor cannot manage profiles
            ValidationError: Account could not be created (e.g. email taken)
            PersistenceError: Profile row could not be written
        """
        access_policy.require(self.session, Capability.MANAGE_PROFILES)
        
        try:
            created = await asyncio.to_thread(
                self.supabase.auth.admin.create_user,
                {"email": payload.email, "password": payload.password, "email_confirm": True},
            )
        except Exception as e:
            logger.warning(f"Could not create account for {payload.email}: {e}")
            raise ValidationError(f"Could not create account: {str(e)}", {"email": str(e)})
        
        if not created or not created.user:
            raise PersistenceError("Account creation returned no user")
        
        row = payload.model_dump(mode="json", exclude={"password"})
        row["id"] = str(created.user.id)
        try:
            response = await self._execute(self.supabase.table(PROFILES_TABLE).insert(row))
        except Exception as e:
            logger.error(f"Failed to insert profile for {payload.email}: {e}")
            raise PersistenceError(f"Failed to save profile: {str(e)}")
        
        profile = Profile.model_validate(response.data[0] if response.data else row)
        logger.info(f"Profile created: {profile.name} ({profile.role.value})")
        return profile
    
    async def update_profile(self, profile_id: str, payload: ProfileUpdate) -> Profile:
        access_policy.require(self.session, Capability.MANAGE_PROFILES)
        
        changes = payload.model_dump(mode="json", exclude_unset=True)
        if not changes:
            return await self.get(profile_id)
        return await self._write(profile_id, changes)
    
    async def terminate_profile(self, profile_id: str, today: Optional[date] = None) -> Profile:
        """Mark a profile terminated; the row and its history stay in place"""
        access_policy.require(self.session, Capability.MANAGE_PROFILES)
        
        if profile_id == self.session.user_id:
            raise ValidationError("You cannot terminate your own profile.")
        
        today = today or date.today()
        profile = await self._write(
            profile_id,
            {"is_terminated": True, "termination_date": today.isoformat()},
        )
        logger.info(f"Profile terminated: {profile.name}")
        return profile
    
    async def _write(self, profile_id: str, changes: dict) -> Profile:
        try:
            response = await self._execute(
                self.supabase.table(PROFILES_TABLE).update(changes).eq("id", profile_id)
            )
        except Exception as e:
            logger.error(f"Failed to update profile {profile_id}: {e}")
            raise PersistenceError(f"Failed to update profile: {str(e)}")
        if not response.data:
            raise NotFoundError("Profile", profile_id)
        return Profile.model_validate(response.data[0])
    
    async def stats(self, profile_id: str, leads: Sequence[Lead], today: date) -> EmployeeStats:
        access_policy.require(self.session, Capability.MANAGE_PROFILES)
        profile = await self.get(profile_id)
        return employee_stats(profile.name, leads, today)
