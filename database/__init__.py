"""
Database Package

SQLAlchemy models and connection management for the marketplace store.
"""

from database.connection import (
    get_db,
    get_db_context,
    init_db,
    close_db,
    build_engine,
    get_engine,
    get_session_factory,
    use_engine
)

from database.models import (
    Base,
    UserRole,
    CompanyRole,
    RFPStatus,
    RFPVisibility,
    NDAStatus,
    AccessStatus,
    QuestionStatus,
    NotificationType,
    ReviewStatus,
    InvitationStatus,
    InvitationType,
    SubmissionStatus,
    NDA_GRANTING_STATUSES,
    Identity,
    Profile,
    Company,
    CompanyMembership,
    CompanyJoinAudit,
    CompanyJoinRequest,
    CompanyInvitation,
    RFP,
    RFPComponent,
    Document,
    NDA,
    CompanyNDA,
    RFPAccess,
    RFPInvitation,
    RFPInterestRegistration,
    ProposalSubmission,
    Question,
    Notification,
    AnalyticsEvent
)

__all__ = [
    # Connection
    "get_db",
    "get_db_context",
    "init_db",
    "close_db",
    "build_engine",
    "get_engine",
    "get_session_factory",
    "use_engine",
    # Enumerations
    "UserRole",
    "CompanyRole",
    "RFPStatus",
    "RFPVisibility",
    "NDAStatus",
    "AccessStatus",
    "QuestionStatus",
    "NotificationType",
    "ReviewStatus",
    "InvitationStatus",
    "InvitationType",
    "SubmissionStatus",
    "NDA_GRANTING_STATUSES",
    # Models
    "Base",
    "Identity",
    "Profile",
    "Company",
    "CompanyMembership",
    "CompanyJoinAudit",
    "CompanyJoinRequest",
    "CompanyInvitation",
    "RFP",
    "RFPComponent",
    "Document",
    "NDA",
    "CompanyNDA",
    "RFPAccess",
    "RFPInvitation",
    "RFPInterestRegistration",
    "ProposalSubmission",
    "Question",
    "Notification",
    "AnalyticsEvent"
]
