"""
RFP Schemas

Milestones and the write payloads accepted by the lifecycle and workflow
services.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from dateutil import tz
from dateutil.parser import isoparse
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from database.models import RFPStatus, RFPVisibility, UserRole, CompanyRole


class Milestone(BaseModel):
    """A dated step on an RFP timeline."""
    id: str = Field(..., description="Client-generated milestone identifier")
    title: str = Field(..., min_length=1)
    date: str = Field(..., description="ISO date or datetime, local to `timezone`")
    timezone: str = Field(default="UTC", description="IANA zone name")
    has_time: bool = Field(default=False, description="Whether `date` carries a time of day")
    description: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        isoparse(v)
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if tz.gettz(v) is None:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    def as_utc(self) -> datetime:
        """
        Resolve the milestone to an aware UTC datetime.

        Date-only milestones are pinned to noon UTC so they render on the same
        calendar day in every zone; timed milestones without an explicit
        offset are read in the milestone's own zone.
        """
        parsed = isoparse(self.date)
        if not self.has_time:
            return datetime(parsed.year, parsed.month, parsed.day, 12, tzinfo=timezone.utc)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=tz.gettz(self.timezone))
        return parsed.astimezone(timezone.utc)


def order_milestones(milestones: list[Milestone]) -> list[Milestone]:
    """Chronological order; ties keep their given order."""
    return sorted(milestones, key=lambda m: m.as_utc())


class RFPUpdate(BaseModel):
    """Admin edit of an RFP. Only fields explicitly set are applied."""
    model_config = ConfigDict(use_enum_values=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    client_name: Optional[str] = None
    description: Optional[str] = None
    visibility: Optional[RFPVisibility] = None
    status: Optional[RFPStatus] = None
    issue_date: Optional[datetime] = None
    closing_date: Optional[datetime] = None
    milestones: Optional[list[Milestone]] = None

    @field_validator("title", "visibility", "closing_date")
    @classmethod
    def reject_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be cleared")
        return v


class ProfileUpdate(BaseModel):
    """Profile edit; self-service callers may only touch the contact fields."""
    model_config = ConfigDict(use_enum_values=True)

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    title: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    company_id: Optional[uuid.UUID] = None
    company_role: Optional[CompanyRole] = None


class CompanyCreate(BaseModel):
    """New company registration."""
    name: str = Field(..., min_length=1, max_length=255)
    website: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    email_domain: Optional[str] = None
