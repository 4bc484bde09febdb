"""
Lead Activity Models
Audit records of single field changes on a lead
"""
from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime, timedelta, timezone


class LeadActivity(BaseModel):
    """
    One field change on a lead.
    
    Immutable apart from is_dismissed, which only ever goes from False to True.
    lead_id is a weak reference: the record outlives the lead it describes.
    """
    model_config = ConfigDict(extra="ignore")
    
    id: str
    employee_name: str
    lead_id: Optional[str] = None
    customer_name: str = ""
    field_changed: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: datetime
    is_dismissed: bool = False
    
    def is_recent(self, now: datetime, window: timedelta) -> bool:
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now - created <= window
    
    def describe(self) -> str:
        return f"{self.employee_name} has changed {self.field_changed} for {self.customer_name}"
