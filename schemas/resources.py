"""
Authorization Schemas

Actions, resource snapshots, grant facts and decisions consumed and produced
by the policy engine. Snapshots are frozen copies of the rows being protected;
the engine never sees a session.
"""

import uuid
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field

from database.models import (
    RFPStatus,
    RFPVisibility,
    UserRole,
    NDAStatus,
    AccessStatus,
    QuestionStatus,
    SubmissionStatus,
)
from schemas.common import UTCDateTime


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXECUTE = "execute"


class ResourceKind(str, Enum):
    PROFILE = "profile"
    RFP = "rfp"
    RFP_COMPONENT = "rfp_component"
    DOCUMENT = "document"
    NDA = "nda"
    COMPANY_NDA = "company_nda"
    ACCESS_GRANT = "access_grant"
    NOTIFICATION = "notification"
    COMPANY = "company"
    QUESTION = "question"
    SUBMISSION = "submission"
    SYSTEM = "system"


# ============================================================================
# SNAPSHOTS
# ============================================================================

class Snapshot(BaseModel):
    """Frozen view of a protected row."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    kind: ClassVar[ResourceKind]


class ProfileSnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.PROFILE

    id: uuid.UUID
    role: UserRole
    company_id: Optional[uuid.UUID] = None


class RFPSnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.RFP

    id: Optional[uuid.UUID] = Field(default=None, description="None for an RFP being created")
    visibility: RFPVisibility = RFPVisibility.PUBLIC
    status: RFPStatus = RFPStatus.DRAFT
    closing_date: Optional[UTCDateTime] = None
    client_id: Optional[uuid.UUID] = None

    @property
    def is_public(self) -> bool:
        return self.visibility == RFPVisibility.PUBLIC


class ComponentSnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.RFP_COMPONENT

    id: Optional[uuid.UUID] = None
    rfp: RFPSnapshot
    requires_nda: bool = False


class DocumentSnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.DOCUMENT

    id: Optional[uuid.UUID] = None
    rfp: RFPSnapshot
    requires_nda: bool = False
    parent_folder: Optional[uuid.UUID] = None


class NDASnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.NDA

    id: Optional[uuid.UUID] = None
    rfp: RFPSnapshot
    user_id: uuid.UUID
    status: NDAStatus = NDAStatus.SIGNED


class CompanyNDASnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.COMPANY_NDA

    id: Optional[uuid.UUID] = None
    rfp: RFPSnapshot
    company_id: uuid.UUID
    signed_by: uuid.UUID
    status: NDAStatus = NDAStatus.PENDING


class AccessGrantSnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.ACCESS_GRANT

    id: Optional[uuid.UUID] = None
    rfp_id: uuid.UUID
    user_id: uuid.UUID
    status: AccessStatus = AccessStatus.PENDING
    rfp: Optional[RFPSnapshot] = Field(default=None, description="Parent RFP when loaded from the store")


class NotificationSnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.NOTIFICATION

    id: uuid.UUID
    user_id: uuid.UUID
    read_at: Optional[UTCDateTime] = None
    created_at: Optional[UTCDateTime] = None


class CompanySnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.COMPANY

    id: Optional[uuid.UUID] = None
    created_by: Optional[uuid.UUID] = None


class QuestionSnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.QUESTION

    id: Optional[uuid.UUID] = None
    rfp: RFPSnapshot
    user_id: uuid.UUID
    status: QuestionStatus = QuestionStatus.PENDING


class SubmissionSnapshot(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.SUBMISSION

    id: Optional[uuid.UUID] = None
    rfp: RFPSnapshot
    user_id: uuid.UUID
    company_id: Optional[uuid.UUID] = None
    status: SubmissionStatus = SubmissionStatus.SUBMITTED


class SystemResource(Snapshot):
    """Operator maintenance surface (sweeps, reconciliation, role sync)."""
    kind: ClassVar[ResourceKind] = ResourceKind.SYSTEM

    name: str


# ============================================================================
# FACTS & DECISIONS
# ============================================================================

class GrantFacts(BaseModel):
    """Grant facts for one (principal, RFP) pair, loaded before deciding."""
    model_config = ConfigDict(frozen=True)

    access_approved: bool = Field(default=False, description="Approved rfp_access row")
    nda_approved: bool = Field(default=False, description="Signed or approved individual NDA")
    company_nda_approved: bool = Field(
        default=False,
        description="Approved NDA for the principal's primary company"
    )
    invitation_accepted: bool = Field(default=False, description="Accepted RFP invitation")

    @property
    def has_nda(self) -> bool:
        return self.nda_approved or self.company_nda_approved


class Decision(BaseModel):
    """Outcome of an authorization check. Denials are data, not exceptions."""
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str

    @classmethod
    def allow(cls, reason: str) -> "Decision":
        return cls(allowed=True, reason=reason)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed

    def require(self) -> "Decision":
        """Return self when allowed; otherwise refuse the write."""
        if not self.allowed:
            from services.errors import NotPermitted
            raise NotPermitted(self)
        return self
