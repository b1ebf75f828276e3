"""
Event & Result Schemas

Transition events consumed by the notification dispatcher and the result
objects returned by the lifecycle and company-linkage batch operations.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from database.models import NotificationType


class TransitionEvent(BaseModel):
    """A committed state change that may fan out notifications."""
    model_config = ConfigDict(frozen=True)

    kind: NotificationType = Field(..., description="Notification content key")
    reference_id: uuid.UUID = Field(..., description="Row the notification points at")
    rfp_id: uuid.UUID = Field(..., description="RFP the transition concerns")
    rfp_title: str = Field(..., description="RFP title used in the message")
    recipient_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Single recipient; RFP-wide events resolve recipients themselves"
    )
    company_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Notify every primary member of this company instead of one recipient"
    )
    detail: Optional[str] = Field(default=None, description="Extra message text (e.g. rejection reason)")


class ExpiredRFP(BaseModel):
    """One RFP closed by the expiry sweep."""
    id: uuid.UUID
    title: str
    closing_date: datetime
    days_overdue: int = Field(..., ge=0)


class CloseResult(BaseModel):
    """Result of `close_expired_rfps`."""
    updated_count: int = 0
    closed_ids: list[uuid.UUID] = Field(default_factory=list)
    details: list[ExpiredRFP] = Field(default_factory=list)
    notifications_sent: int = 0


class ExpirationCheck(BaseModel):
    """Result of `check_rfp_expiration` for a single RFP."""
    rfp_id: uuid.UUID
    status: str
    was_updated: bool = False
    is_expired: bool = False
    days_until_close: int


class LinkFailure(BaseModel):
    """A profile whose free-text company could not be linked."""
    user_id: uuid.UUID
    company_text: str
    reason: str


class ReconcileResult(BaseModel):
    """Result of `reconcile_all`."""
    attempted: int = 0
    linked_count: int = 0
    failures: list[LinkFailure] = Field(default_factory=list)


class CompanyMemberCount(BaseModel):
    """De-duplicated member count for one company."""
    company_id: uuid.UUID
    name: str
    total: int = 0
    primary: int = 0
    text_matched: int = 0
    secondary: int = 0
