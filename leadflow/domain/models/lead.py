"""
Lead Domain Models
Leads, their pipeline enums, and the create/update payloads
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, ClassVar, Dict, Optional, Tuple
from datetime import date, datetime
from enum import Enum


class DealStatus(str, Enum):
    """Pipeline stage of a lead"""
    NOT_CONTACTED = "Not Contacted"
    FOLLOW_UP = "Follow-up"
    SITE_VISIT = "Site Visit"
    CLOSED = "Closed"
    DROPPED = "Dropped"


class InterestLevel(str, Enum):
    """Traffic-light rating of a lead's enthusiasm"""
    RED = "Red"
    YELLOW = "Yellow"
    GREEN = "Green"


class PropertyType(str, Enum):
    """Kind of property the lead is looking for"""
    APARTMENT = "apartment"
    HOUSE = "house"
    VILLA = "villa"
    PLOT = "plot"
    COMMERCIAL = "commercial"


# Fields that must be non-empty when a lead is entered manually
REQUIRED_FIELDS: Tuple[str, ...] = (
    "customer_name",
    "email",
    "mobile_number",
    "project_name",
    "preferred_area",
)

# Fields a bulk-imported row cannot do without
IDENTITY_FIELDS: Tuple[str, ...] = ("customer_name", "email")


def _blank_date_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class LeadFields(BaseModel):
    """Editable fields of a lead, as submitted on create or import"""
    model_config = ConfigDict(str_strip_whitespace=True)
    
    customer_name: str = ""
    email: str = ""
    mobile_number: str = ""
    project_name: str = ""
    budget: float = Field(default=0, ge=0)
    preferred_area: str = ""
    property_type: PropertyType = PropertyType.APARTMENT
    team_leader: str = ""
    assigned_to: str = ""
    deal_status: DealStatus = DealStatus.NOT_CONTACTED
    interest_level: InterestLevel = InterestLevel.YELLOW
    site_visit_done: bool = False
    last_contacted_date: Optional[date] = None
    next_followup_date: Optional[date] = None
    comments: str = ""
    
    normalize_dates = field_validator(
        "last_contacted_date", "next_followup_date", mode="before"
    )(_blank_date_to_none)
    
    @field_validator(
        "customer_name", "email", "mobile_number", "project_name",
        "preferred_area", "team_leader", "assigned_to", "comments",
        mode="before",
    )
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value
    
    def missing_fields(self, required: Tuple[str, ...] = REQUIRED_FIELDS) -> list[str]:
        """Names of required fields that are blank"""
        return [name for name in required if not getattr(self, name)]
    
    def to_row(self) -> Dict[str, Any]:
        """Serialize for the leads table"""
        return self.model_dump(mode="json")


class Lead(LeadFields):
    """A lead as stored by the backend"""
    model_config = ConfigDict(extra="ignore")
    
    id: str
    created_at: Optional[datetime] = None
    
    @property
    def is_closed(self) -> bool:
        return self.deal_status == DealStatus.CLOSED


class LeadUpdate(BaseModel):
    """Partial update payload - only the fields that were sent are applied"""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)
    
    customer_name: Optional[str] = None
    email: Optional[str] = None
    mobile_number: Optional[str] = None
    project_name: Optional[str] = None
    budget: Optional[float] = Field(default=None, ge=0)
    preferred_area: Optional[str] = None
    property_type: Optional[PropertyType] = None
    team_leader: Optional[str] = None
    assigned_to: Optional[str] = None
    deal_status: Optional[DealStatus] = None
    interest_level: Optional[InterestLevel] = None
    site_visit_done: Optional[bool] = None
    last_contacted_date: Optional[date] = None
    next_followup_date: Optional[date] = None
    comments: Optional[str] = None
    
    NON_NULLABLE: ClassVar[Tuple[str, ...]] = (
        "budget", "property_type", "deal_status", "interest_level", "site_visit_done",
    )
    
    normalize_dates = field_validator(
        "last_contacted_date", "next_followup_date", mode="before"
    )(_blank_date_to_none)
    
    def changes(self) -> Dict[str, Any]:
        """Fields explicitly set on this payload, JSON-ready"""
        return self.model_dump(mode="json", exclude_unset=True)
