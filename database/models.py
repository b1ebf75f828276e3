"""
Database Models

SQLAlchemy models for the RFP marketplace: identities, profiles, companies,
RFPs and their gated content, grants, questions and notifications.
"""

import secrets
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List, Type

from sqlalchemy import (
    JSON, String, Text, Integer, Boolean, DateTime, Uuid,
    CheckConstraint, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""
    # Server-generated timestamps are loaded on flush, never lazily
    __mapper_args__ = {"eager_defaults": True}


# ============================================================================
# ENUMERATIONS
# ============================================================================

class UserRole(str, Enum):
    ADMIN = "admin"
    CLIENT_REVIEWER = "client_reviewer"
    BIDDER = "bidder"


class CompanyRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"
    PENDING = "pending"
    COLLABORATOR = "collaborator"


class RFPStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class RFPVisibility(str, Enum):
    PUBLIC = "public"
    CONFIDENTIAL = "confidential"


class NDAStatus(str, Enum):
    PENDING = "pending"
    SIGNED = "signed"
    APPROVED = "approved"
    REJECTED = "rejected"


class AccessStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class QuestionStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    PUBLISHED = "published"


class NotificationType(str, Enum):
    RFP_PUBLISHED = "rfp_published"
    RFP_UPDATED = "rfp_updated"
    RFP_CLOSED = "rfp_closed"
    QUESTION_ANSWERED = "question_answered"
    NDA_APPROVED = "nda_approved"
    NDA_REJECTED = "nda_rejected"
    ACCESS_GRANTED = "access_granted"
    ACCESS_DENIED = "access_denied"
    SYSTEM_NOTICE = "system_notice"
    RFP_INVITATION = "rfp_invitation"
    REGISTRATION_APPROVED = "registration_approved"
    REGISTRATION_REJECTED = "registration_rejected"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class InvitationType(str, Enum):
    USER = "user"
    COMPANY = "company"
    EMAIL = "email"


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


# Individual NDAs grant access once signed (and stay granted after countersignature)
NDA_GRANTING_STATUSES = (NDAStatus.SIGNED.value, NDAStatus.APPROVED.value)


def _one_of(column: str, enum: Type[Enum], name: str, nullable: bool = False) -> CheckConstraint:
    values = ", ".join(f"'{member.value}'" for member in enum)
    clause = f"{column} IN ({values})"
    if nullable:
        clause = f"{column} IS NULL OR {clause}"
    return CheckConstraint(clause, name=name)


def new_token() -> str:
    """URL-safe invitation token."""
    return secrets.token_urlsafe(32)


# ============================================================================
# IDENTITY & PROFILES
# ============================================================================

class Identity(Base):
    """
    Authentication identity and its claim store.

    `app_metadata` is what gets embedded into issued tokens; it can lag behind
    the profile until `sync_role` pushes the persisted role into it.
    """
    __tablename__ = "identities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    app_metadata: Mapped[dict] = mapped_column(JSONType, default=dict)
    claims_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    profile: Mapped[Optional["Profile"]] = relationship(
        back_populates="identity",
        uselist=False,
        cascade="all, delete-orphan"
    )


class Profile(Base):
    """Persisted principal record; the source of truth for roles."""
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("identities.id", ondelete="CASCADE"),
        primary_key=True
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(255))
    last_name: Mapped[Optional[str]] = mapped_column(String(255))
    company: Mapped[Optional[str]] = mapped_column(String(255))  # free text, legacy
    role: Mapped[str] = mapped_column(String(32), default=UserRole.BIDDER.value, nullable=False)
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="SET NULL")
    )
    company_role: Mapped[Optional[str]] = mapped_column(String(32))
    title: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    identity: Mapped["Identity"] = relationship(back_populates="profile")
    primary_company: Mapped[Optional["Company"]] = relationship(back_populates="primary_members")
    memberships: Mapped[List["CompanyMembership"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="CompanyMembership.user_id"
    )

    __table_args__ = (
        _one_of("role", UserRole, "ck_profiles_role"),
        _one_of("company_role", CompanyRole, "ck_profiles_company_role", nullable=True),
        Index("idx_profiles_role", "role"),
        Index("idx_profiles_company", "company_id"),
    )


# ============================================================================
# COMPANIES
# ============================================================================

class Company(Base):
    """Company that aggregates bidder and reviewer profiles."""
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website: Mapped[Optional[str]] = mapped_column(String(512))
    industry: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, index=True)
    email_domain: Mapped[Optional[str]] = mapped_column(String(255))
    verified_domain: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    auto_join_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    blocked_domains: Mapped[list] = mapped_column(JSONType, default=list)
    verification_status: Mapped[str] = mapped_column(String(32), default="unverified")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    primary_members: Mapped[List["Profile"]] = relationship(back_populates="primary_company")
    memberships: Mapped[List["CompanyMembership"]] = relationship(
        back_populates="company",
        cascade="all, delete-orphan"
    )


class CompanyMembership(Base):
    """Secondary (collaborator) company membership."""
    __tablename__ = "company_memberships"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )
    role: Mapped[str] = mapped_column(String(32), default=CompanyRole.COLLABORATOR.value)
    status: Mapped[str] = mapped_column(String(32), default="active")
    joined_via: Mapped[str] = mapped_column(String(32), default="admin_added")
    invited_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    user: Mapped["Profile"] = relationship(back_populates="memberships", foreign_keys=[user_id])
    company: Mapped["Company"] = relationship(back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_membership_user_company"),
        CheckConstraint("status IN ('active', 'inactive')", name="ck_membership_status"),
        Index("idx_memberships_company", "company_id"),
    )


class CompanyJoinAudit(Base):
    """Audit trail for company joins, role changes and auto-links."""
    __tablename__ = "company_join_audit"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    company_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    join_method: Mapped[Optional[str]] = mapped_column(String(32))
    from_role: Mapped[Optional[str]] = mapped_column(String(32))
    to_role: Mapped[Optional[str]] = mapped_column(String(32))
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    details: Mapped[dict] = mapped_column("metadata", JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "action IN ('joined', 'left', 'promoted', 'demoted', 'blocked', 'auto_joined')",
            name="ck_join_audit_action"
        ),
    )


class CompanyJoinRequest(Base):
    """A profile's request to join a company, decided by that company's admin."""
    __tablename__ = "company_join_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    status: Mapped[str] = mapped_column(String(32), default=ReviewStatus.PENDING.value)
    message: Mapped[Optional[str]] = mapped_column(Text)
    response_message: Mapped[Optional[str]] = mapped_column(Text)
    decided_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uq_join_request_company_user"),
        _one_of("status", ReviewStatus, "ck_join_requests_status"),
        Index("idx_join_requests_company_status", "company_id", "status"),
    )


class CompanyInvitation(Base):
    """E-mail invitation into a company; accepting it sets the primary company."""
    __tablename__ = "company_invitations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    inviter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id"),
        nullable=False
    )
    role: Mapped[str] = mapped_column(String(32), default=CompanyRole.MEMBER.value)
    status: Mapped[str] = mapped_column(String(32), default=InvitationStatus.PENDING.value)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, default=new_token)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_company_invitation_email"),
        CheckConstraint("role IN ('admin', 'member')", name="ck_company_invitations_role"),
        _one_of("status", InvitationStatus, "ck_company_invitations_status"),
    )


# ============================================================================
# RFP MODELS
# ============================================================================

class RFP(Base):
    """Request for proposal with its lifecycle status and deadline."""
    __tablename__ = "rfps"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="SET NULL")
    )
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    visibility: Mapped[str] = mapped_column(
        String(32), default=RFPVisibility.PUBLIC.value, nullable=False
    )
    status: Mapped[str] = mapped_column(String(32), default=RFPStatus.DRAFT.value, nullable=False)
    issue_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    closing_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    milestones: Mapped[list] = mapped_column(JSONType, default=list)
    allow_late_submissions: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    components: Mapped[List["RFPComponent"]] = relationship(
        back_populates="rfp",
        cascade="all, delete-orphan"
    )
    documents: Mapped[List["Document"]] = relationship(
        back_populates="rfp",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        _one_of("status", RFPStatus, "ck_rfps_status"),
        _one_of("visibility", RFPVisibility, "ck_rfps_visibility"),
        Index("idx_rfps_status_closing", "status", "closing_date"),
    )


class RFPComponent(Base):
    """Structured section of an RFP shown on its detail page."""
    __tablename__ = "rfp_components"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text)
    requires_nda: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    rfp: Mapped["RFP"] = relationship(back_populates="components")

    __table_args__ = (
        Index("idx_components_rfp", "rfp_id"),
    )


class Document(Base):
    """RFP document or folder; folders form a tree through `parent_folder`."""
    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[Optional[str]] = mapped_column(Text)
    file_type: Mapped[str] = mapped_column(String(64), default="file")
    requires_nda: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    version: Mapped[int] = mapped_column(Integer, default=1)
    parent_folder: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    rfp: Mapped["RFP"] = relationship(back_populates="documents")

    __table_args__ = (
        Index("idx_documents_rfp", "rfp_id"),
        Index("idx_documents_parent", "parent_folder"),
    )


# ============================================================================
# GRANTS
# ============================================================================

class NDA(Base):
    """Individual NDA for one RFP."""
    __tablename__ = "ndas"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    document_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="SET NULL")
    )
    status: Mapped[str] = mapped_column(String(32), default=NDAStatus.SIGNED.value)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    company: Mapped[Optional[str]] = mapped_column(String(255))
    signature_data: Mapped[Optional[dict]] = mapped_column(JSONType)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    countersigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    countersigner_name: Mapped[Optional[str]] = mapped_column(String(255))
    countersigner_title: Mapped[Optional[str]] = mapped_column(String(255))
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    rejection_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejection_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("rfp_id", "user_id", name="uq_nda_rfp_user"),
        _one_of("status", NDAStatus, "ck_ndas_status"),
        Index("idx_ndas_status", "status"),
    )


class CompanyNDA(Base):
    """Company-level NDA for one RFP, signed on behalf of every member."""
    __tablename__ = "company_ndas"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )
    signed_by: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    status: Mapped[str] = mapped_column(String(32), default=NDAStatus.PENDING.value)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    signature_data: Mapped[Optional[dict]] = mapped_column(JSONType)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    countersigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("rfp_id", "company_id", name="uq_company_nda_rfp_company"),
        _one_of("status", NDAStatus, "ck_company_ndas_status"),
    )


class RFPAccess(Base):
    """Admin-managed access grant to a confidential RFP."""
    __tablename__ = "rfp_access"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    status: Mapped[str] = mapped_column(String(32), default=AccessStatus.PENDING.value)
    granted_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("rfp_id", "user_id", name="uq_rfp_access_rfp_user"),
        _one_of("status", AccessStatus, "ck_rfp_access_status"),
        Index("idx_rfp_access_rfp_status", "rfp_id", "status"),
    )


# ============================================================================
# PARTICIPATION
# ============================================================================

class RFPInvitation(Base):
    """Admin invitation to an RFP; once accepted it opens a confidential RFP to the invitee."""
    __tablename__ = "rfp_invitations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    invited_by: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id"),
        nullable=False
    )
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="SET NULL")
    )
    recipient_company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="SET NULL")
    )
    invitation_type: Mapped[str] = mapped_column(String(32), default=InvitationType.EMAIL.value)
    status: Mapped[str] = mapped_column(String(32), default=InvitationStatus.PENDING.value)
    message: Mapped[Optional[str]] = mapped_column(Text)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, default=new_token)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    __table_args__ = (
        _one_of("invitation_type", InvitationType, "ck_rfp_invitations_type"),
        _one_of("status", InvitationStatus, "ck_rfp_invitations_status"),
        Index("idx_rfp_invitations_rfp", "rfp_id"),
        Index("idx_rfp_invitations_recipient", "recipient_user_id", "status"),
        Index("idx_rfp_invitations_email", "recipient_email"),
    )


class RFPInterestRegistration(Base):
    """A company's registered interest in an RFP, reviewed by an admin."""
    __tablename__ = "rfp_interest_registrations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id"),
        nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(32), default=ReviewStatus.PENDING.value)
    decided_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("rfp_id", "company_id", name="uq_interest_rfp_company"),
        _one_of("status", ReviewStatus, "ck_interest_status"),
        Index("idx_interest_company", "company_id"),
    )


class ProposalSubmission(Base):
    """A bidder's proposal for an RFP, optionally on behalf of their company."""
    __tablename__ = "proposal_submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id"),
        nullable=False
    )
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("companies.id")
    )
    submission_method: Mapped[str] = mapped_column(String(32), default="manual")
    status: Mapped[str] = mapped_column(String(32), default=SubmissionStatus.SUBMITTED.value)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_late_submission: Mapped[bool] = mapped_column(Boolean, default=False)
    file_count: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    details: Mapped[dict] = mapped_column("metadata", JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("rfp_id", "user_id", "company_id", name="uq_submission_rfp_user_company"),
        CheckConstraint(
            "submission_method IN ('sharefile', 'manual')",
            name="ck_submissions_method"
        ),
        _one_of("status", SubmissionStatus, "ck_submissions_status"),
        Index("idx_submissions_rfp", "rfp_id"),
        Index("idx_submissions_company", "company_id"),
    )


# ============================================================================
# WORKFLOW & NOTIFICATIONS
# ============================================================================

class Question(Base):
    """Bidder question about an RFP, answered and published by an admin."""
    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rfp_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rfps.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    topic: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(32), default=QuestionStatus.PENDING.value)
    answer: Mapped[Optional[str]] = mapped_column(Text)
    answered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    __table_args__ = (
        _one_of("status", QuestionStatus, "ck_questions_status"),
        Index("idx_questions_rfp", "rfp_id"),
    )


class Notification(Base):
    """Per-user notification row; delivery drains this table elsewhere."""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    __table_args__ = (
        _one_of("type", NotificationType, "ck_notifications_type"),
        Index("idx_notifications_user", "user_id"),
        Index("idx_notifications_read_at", "read_at"),
    )


class AnalyticsEvent(Base):
    """Append-only operational audit sink."""
    __tablename__ = "analytics_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    rfp_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    details: Mapped[dict] = mapped_column("metadata", JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    __table_args__ = (
        Index("idx_analytics_events_type", "event_type"),
    )
