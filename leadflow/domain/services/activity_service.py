"""
Activity Service
Field-level audit trail for leads: recording, listing, dismissing and
reverting changes.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client

from leadflow.domain.errors import NotFoundError, PersistenceError, ValidationError
from leadflow.domain.models.activity import LeadActivity
from leadflow.domain.models.lead import Lead
from leadflow.domain.models.session import SessionContext
from leadflow.domain.services import access_policy
from leadflow.domain.services.access_policy import Capability

logger = logging.getLogger(__name__)

ACTIVITY_TABLE = "lead_activities"
DEFAULT_RECENCY_HOURS = 3


def as_text(value: Any) -> Optional[str]:
    """Stored representation of a field value"""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ActivityService:
    """
    Audit records for lead changes.
    
    Records are immutable except for is_dismissed, which only moves from
    False to True. Viewing, dismissing and reverting are CEO-only.
    """
    
    def __init__(
        self,
        supabase: Client,
        session: SessionContext,
        recency_hours: float = DEFAULT_RECENCY_HOURS,
    ):
        self.supabase = supabase
        self.session = session
        self.window = timedelta(hours=recency_hours)
    
    async def _execute(self, query: Any) -> Any:
        return await asyncio.to_thread(query.execute)
    
    async def record_changes(
        self,
        lead: Lead,
        diff: Dict[str, Tuple[Any, Any]],
    ) -> List[LeadActivity]:
        """
        Write one activity per changed field, attributed to the current actor.
        
        The lead change has already been saved when this runs, so a failure
        here is logged rather than raised.
        
        Args:
            lead: The lead as it was before the change
            diff: field -> (old value, new value)
        """
        if not diff:
            return []
        
        rows = [
            {
                "employee_name": self.session.actor_name,
                "lead_id": lead.id,
                "customer_name": lead.customer_name,
                "field_changed": field_name,
                "old_value": as_text(old),
                "new_value": as_text(new),
                "is_dismissed": False,
            }
            for field_name, (old, new) in diff.items()
        ]
        
        try:
            response = await self._execute(self.supabase.table(ACTIVITY_TABLE).insert(rows))
        except Exception as e:
            logger.error(f"Failed to record activity for lead {lead.id}: {e}")
            return []
        
        return [LeadActivity.model_validate(row) for row in response.data or []]
    
    async def list_recent(self, now: Optional[datetime] = None) -> List[LeadActivity]:
        """
        Non-dismissed activities inside the recency window, newest first.
        """
        access_policy.require(self.session, Capability.VIEW_ACTIVITY_LOG)
        now = now or datetime.now(timezone.utc)
        
        try:
            response = await self._execute(
                self.supabase.table(ACTIVITY_TABLE)
                .select("*")
                .eq("is_dismissed", False)
                .order("created_at", desc=True)
            )
        except Exception as e:
            logger.error(f"Failed to fetch activities: {e}")
            raise PersistenceError(f"Failed to fetch activities: {str(e)}")
        
        activities = [LeadActivity.model_validate(row) for row in response.data or []]
        return [a for a in activities if not a.is_dismissed and a.is_recent(now, self.window)]
    
    async def get(self, activity_id: str) -> LeadActivity:
        try:
            response = await self._execute(
                self.supabase.table(ACTIVITY_TABLE).select("*").eq("id", activity_id)
            )
        except Exception as e:
            raise PersistenceError(f"Failed to fetch activity: {str(e)}")
        
        if not response.data:
            raise NotFoundError("Activity", activity_id)
        return LeadActivity.model_validate(response.data[0])
    
    async def dismiss(self, activity_id: str) -> LeadActivity:
        """Hide an activity from the log. Dismissing twice is a no-op."""
        access_policy.require(self.session, Capability.VIEW_ACTIVITY_LOG)
        activity = await self.get(activity_id)
        if activity.is_dismissed:
            return activity
        
        try:
            await self._execute(
                self.supabase.table(ACTIVITY_TABLE)
                .update({"is_dismissed": True})
                .eq("id", activity_id)
            )
        except Exception as e:
            logger.error(f"Failed to dismiss activity {activity_id}: {e}")
            raise PersistenceError(f"Failed to dismiss activity: {str(e)}")
        
        return activity.model_copy(update={"is_dismissed": True})
    
    async def revert(self, activity_id: str, repository: Any) -> Lead:
        """
        Restore the old value recorded by an activity, then dismiss it.
        
        The restore goes through the lead repository, so it is
        policy-checked and logged like any other edit.
        
        Raises:
            NotFoundError: The activity or its lead no longer exists
            ValidationError: The recorded old value is not a valid value today
        """
        access_policy.require(self.session, Capability.VIEW_ACTIVITY_LOG)
        activity = await self.get(activity_id)
        if not activity.lead_id:
            raise NotFoundError("Lead", "(unknown)")
        
        old_value = activity.old_value if activity.old_value is not None else ""
        try:
            lead = await repository.update(activity.lead_id, {activity.field_changed: old_value})
        except ValidationError as e:
            logger.warning(f"Cannot revert activity {activity_id}: {e.message}")
            raise ValidationError(
                f"The recorded old value of {activity.field_changed} cannot be restored ({e.message})",
                e.fields or {activity.field_changed: "Recorded value is not valid for this field"},
            )
        await self.dismiss(activity_id)
        
        logger.info(
            f"Reverted {activity.field_changed} on lead {activity.lead_id} "
            f"(changed by {activity.employee_name})"
        )
        return lead
