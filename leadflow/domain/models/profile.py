"""
Profile Domain Models
Staff members and their roles
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional
from datetime import date, datetime
from enum import Enum


class Role(str, Enum):
    """Staff role - exactly one per profile"""
    CEO = "CEO"
    EMPLOYEE = "Employee"


class Profile(BaseModel):
    """A staff member"""
    model_config = ConfigDict(extra="ignore")
    
    id: str
    name: str
    email: str
    role: Role = Role.EMPLOYEE
    mobile_number: Optional[str] = None
    salary: Optional[float] = Field(default=None, ge=0)
    is_terminated: bool = False
    termination_date: Optional[date] = None
    created_at: Optional[datetime] = None
    
    @property
    def is_ceo(self) -> bool:
        return self.role == Role.CEO
    
    @property
    def is_assignable(self) -> bool:
        """Active employees can receive new leads"""
        return self.role == Role.EMPLOYEE and not self.is_terminated


class ProfileCreate(BaseModel):
    """New staff member; a sign-in account is created alongside the profile"""
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = Role.EMPLOYEE
    mobile_number: Optional[str] = None
    salary: Optional[float] = Field(default=None, ge=0)


class ProfileUpdate(BaseModel):
    """Editable profile fields"""
    model_config = ConfigDict(extra="forbid")
    
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    mobile_number: Optional[str] = None
    salary: Optional[float] = Field(default=None, ge=0)
