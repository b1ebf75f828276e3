"""
RFP Marketplace - Pydantic Schemas

Value objects for principals, authorization decisions, lifecycle events and
batch results.
"""

from schemas.common import utcnow, ensure_utc, UTCDateTime
from schemas.principal import Principal
from schemas.resources import (
    Action,
    ResourceKind,
    Snapshot,
    ProfileSnapshot,
    RFPSnapshot,
    ComponentSnapshot,
    DocumentSnapshot,
    NDASnapshot,
    CompanyNDASnapshot,
    AccessGrantSnapshot,
    NotificationSnapshot,
    CompanySnapshot,
    QuestionSnapshot,
    SubmissionSnapshot,
    SystemResource,
    GrantFacts,
    Decision,
)
from schemas.events import (
    TransitionEvent,
    ExpiredRFP,
    CloseResult,
    ExpirationCheck,
    LinkFailure,
    ReconcileResult,
    CompanyMemberCount,
)
from schemas.rfp import (
    Milestone,
    order_milestones,
    RFPUpdate,
    ProfileUpdate,
    CompanyCreate,
)

__all__ = [
    # Time
    "utcnow",
    "ensure_utc",
    "UTCDateTime",
    # Principal
    "Principal",
    # Authorization
    "Action",
    "ResourceKind",
    "Snapshot",
    "ProfileSnapshot",
    "RFPSnapshot",
    "ComponentSnapshot",
    "DocumentSnapshot",
    "NDASnapshot",
    "CompanyNDASnapshot",
    "AccessGrantSnapshot",
    "NotificationSnapshot",
    "CompanySnapshot",
    "QuestionSnapshot",
    "SubmissionSnapshot",
    "SystemResource",
    "GrantFacts",
    "Decision",
    # Events & results
    "TransitionEvent",
    "ExpiredRFP",
    "CloseResult",
    "ExpirationCheck",
    "LinkFailure",
    "ReconcileResult",
    "CompanyMemberCount",
    # RFP payloads
    "Milestone",
    "order_milestones",
    "RFPUpdate",
    "ProfileUpdate",
    "CompanyCreate",
]
