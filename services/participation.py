"""
Participation Writers

RFP invitations, company interest registrations and proposal submissions.
An accepted invitation is a read grant on the invited RFP (see
`services.grants`); the rest of this module only records who takes part.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import (
    InvitationStatus,
    InvitationType,
    NotificationType,
    ReviewStatus,
    RFPStatus,
    SubmissionStatus,
    RFP,
    RFPInvitation,
    RFPInterestRegistration,
    ProposalSubmission,
)
from schemas.common import ensure_utc, utcnow
from schemas.events import TransitionEvent
from schemas.principal import Principal
from schemas.resources import Action, ResourceKind, SubmissionSnapshot, Decision
from services.authorization import rfp_snapshot
from services.errors import (
    ConstraintViolation,
    IneligibleTarget,
    InvalidStateTransition,
    NotPermitted,
    ReferenceNotFound,
    constraint_guard,
)
from services.grants import load_grant_facts
from services.notifications import on_transition
from services.policy import authorize
from services.workflow import _get_rfp, _require


logger = logging.getLogger("rfp_marketplace.services.participation")


def _same_email(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


# ============================================================================
# RFP INVITATIONS
# ============================================================================

async def send_rfp_invitation(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
    recipient_email: str,
    recipient_user_id: Optional[uuid.UUID] = None,
    recipient_company_id: Optional[uuid.UUID] = None,
    message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RFPInvitation:
    """
    Invite someone to an RFP (admin only).

    A still-pending, unexpired invitation for the same address is a
    `ConstraintViolation`. A known recipient is notified.
    """
    now = ensure_utc(now or utcnow())
    rfp = await _get_rfp(db, principal, rfp_id)
    authorize(principal, rfp_snapshot(rfp), Action.UPDATE).require()

    email = recipient_email.strip().lower()
    result = await db.execute(
        select(RFPInvitation).where(
            RFPInvitation.rfp_id == rfp.id,
            RFPInvitation.recipient_email == email,
            RFPInvitation.status == InvitationStatus.PENDING.value
        )
    )
    for existing in result.scalars().all():
        if ensure_utc(existing.expires_at) > now:
            raise ConstraintViolation(f"A pending invitation for {email} already exists")

    if recipient_user_id is not None:
        invitation_type = InvitationType.USER
    elif recipient_company_id is not None:
        invitation_type = InvitationType.COMPANY
    else:
        invitation_type = InvitationType.EMAIL

    invitation = RFPInvitation(
        rfp_id=rfp.id,
        invited_by=principal.id,
        recipient_email=email,
        recipient_user_id=recipient_user_id,
        recipient_company_id=recipient_company_id,
        invitation_type=invitation_type.value,
        status=InvitationStatus.PENDING.value,
        message=message,
        expires_at=now + timedelta(days=settings.rfp_invitation_days),
    )
    async with constraint_guard(db, "RFP invitation"):
        db.add(invitation)

    logger.info(f"Invitation {invitation.id} to RFP {rfp.id} sent to {email}")
    if recipient_user_id is not None:
        await on_transition(db, TransitionEvent(
            kind=NotificationType.RFP_INVITATION,
            reference_id=invitation.id,
            rfp_id=rfp.id,
            rfp_title=rfp.title,
            recipient_id=recipient_user_id
        ))
    return invitation


async def _open_invitation(
    db: AsyncSession,
    principal: Principal,
    token: str,
    now: datetime,
) -> RFPInvitation:
    result = await db.execute(select(RFPInvitation).where(RFPInvitation.token == token))
    invitation = result.scalar_one_or_none()
    if invitation is None or invitation.status != InvitationStatus.PENDING.value:
        raise IneligibleTarget("Invalid or expired invitation")
    if ensure_utc(invitation.expires_at) <= now:
        invitation.status = InvitationStatus.EXPIRED.value
        await db.flush()
        raise IneligibleTarget("Invalid or expired invitation")
    if not _same_email(invitation.recipient_email, principal.email):
        raise IneligibleTarget("This invitation was sent to a different email address")
    return invitation


async def accept_rfp_invitation(
    db: AsyncSession,
    principal: Principal,
    token: str,
    now: Optional[datetime] = None,
) -> RFPInvitation:
    """
    Accept an RFP invitation addressed to the principal's e-mail.

    The invitation becomes a read grant on the RFP. When the principal has a
    company, that company's interest registration is recorded as approved.

    Raises:
        IneligibleTarget: unknown, used or expired token, or another recipient
    """
    now = ensure_utc(now or utcnow())
    invitation = await _open_invitation(db, principal, token, now)

    registration = None
    if principal.company_id is not None:
        result = await db.execute(
            select(RFPInterestRegistration).where(
                RFPInterestRegistration.rfp_id == invitation.rfp_id,
                RFPInterestRegistration.company_id == principal.company_id
            )
        )
        registration = result.scalar_one_or_none()

    async with constraint_guard(db, "RFP invitation"):
        invitation.status = InvitationStatus.ACCEPTED.value
        invitation.accepted_at = now
        invitation.recipient_user_id = principal.id
        if principal.company_id is not None:
            if registration is None:
                registration = RFPInterestRegistration(
                    rfp_id=invitation.rfp_id,
                    company_id=principal.company_id,
                    user_id=principal.id,
                )
                db.add(registration)
            registration.status = ReviewStatus.APPROVED.value
            registration.decided_by = invitation.invited_by
            registration.decided_at = now
            registration.rejection_reason = None

    logger.info(f"Invitation {invitation.id} accepted by {principal.id}")
    return invitation


async def decline_rfp_invitation(
    db: AsyncSession,
    principal: Principal,
    token: str,
    now: Optional[datetime] = None,
) -> RFPInvitation:
    now = ensure_utc(now or utcnow())
    invitation = await _open_invitation(db, principal, token, now)
    invitation.status = InvitationStatus.DECLINED.value
    invitation.recipient_user_id = principal.id
    await db.flush()

    logger.info(f"Invitation {invitation.id} declined by {principal.id}")
    return invitation


# ============================================================================
# INTEREST REGISTRATIONS
# ============================================================================

async def register_interest(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
    notes: Optional[str] = None,
) -> RFPInterestRegistration:
    """
    Register the principal's company as interested in an RFP it can read.

    Registering twice returns the existing registration unchanged.

    Raises:
        IneligibleTarget: the principal has no company
    """
    rfp = await _get_rfp(db, principal, rfp_id)
    facts = await load_grant_facts(db, principal, rfp.id)
    authorize(principal, rfp_snapshot(rfp), Action.READ, facts=facts).require()
    if principal.company_id is None:
        raise IneligibleTarget("You must be part of a company to register interest")

    result = await db.execute(
        select(RFPInterestRegistration).where(
            RFPInterestRegistration.rfp_id == rfp.id,
            RFPInterestRegistration.company_id == principal.company_id
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        return existing

    registration = RFPInterestRegistration(
        rfp_id=rfp.id,
        company_id=principal.company_id,
        user_id=principal.id,
        notes=notes,
        status=ReviewStatus.PENDING.value,
    )
    async with constraint_guard(db, "Interest registration"):
        db.add(registration)

    logger.info(f"Company {principal.company_id} registered interest in RFP {rfp.id}")
    return registration


async def decide_registration(
    db: AsyncSession,
    principal: Principal,
    registration_id: uuid.UUID,
    approve: bool,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RFPInterestRegistration:
    """
    Approve or reject an interest registration (admin only).

    Approval notifies every member of the company; rejection notifies the
    registrant. Re-deciding to the same status is a no-op.
    """
    now = ensure_utc(now or utcnow())
    registration = await db.get(RFPInterestRegistration, registration_id)
    if registration is None:
        if principal.is_admin:
            raise ReferenceNotFound("interest_registration", registration_id)
        raise NotPermitted(Decision.deny("not_visible"))

    rfp = await db.get(RFP, registration.rfp_id)
    facts = await load_grant_facts(db, principal, rfp.id)
    authorize(principal, rfp_snapshot(rfp), Action.UPDATE, facts=facts).require()

    target = ReviewStatus.APPROVED if approve else ReviewStatus.REJECTED
    if registration.status == target.value:
        return registration

    registration.status = target.value
    registration.decided_by = principal.id
    registration.decided_at = now
    registration.rejection_reason = None if approve else reason
    await db.flush()

    logger.info(f"Interest registration {registration.id} {target.value} by {principal.id}")
    if approve:
        event = TransitionEvent(
            kind=NotificationType.REGISTRATION_APPROVED,
            reference_id=registration.id,
            rfp_id=rfp.id,
            rfp_title=rfp.title,
            company_id=registration.company_id
        )
    else:
        event = TransitionEvent(
            kind=NotificationType.REGISTRATION_REJECTED,
            reference_id=registration.id,
            rfp_id=rfp.id,
            rfp_title=rfp.title,
            recipient_id=registration.user_id,
            detail=reason
        )
    await on_transition(db, event)
    return registration


# ============================================================================
# PROPOSAL SUBMISSIONS
# ============================================================================

async def submit_proposal(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
    notes: Optional[str] = None,
    on_behalf_of_company: bool = True,
    file_count: int = 0,
    now: Optional[datetime] = None,
) -> ProposalSubmission:
    """
    Record a proposal for an RFP the principal can read.

    Submissions after the closing date are flagged late, and refused unless
    the RFP allows late submissions. One submission per principal and
    company.

    Raises:
        InvalidStateTransition: draft RFP, or late submissions not allowed
        ConstraintViolation: the principal already submitted
    """
    now = ensure_utc(now or utcnow())
    rfp = await _get_rfp(db, principal, rfp_id)
    company_id = principal.company_id if on_behalf_of_company else None

    facts = await load_grant_facts(db, principal, rfp.id)
    snapshot = SubmissionSnapshot(rfp=rfp_snapshot(rfp), user_id=principal.id, company_id=company_id)
    authorize(principal, snapshot, Action.CREATE, facts=facts).require()

    if rfp.status == RFPStatus.DRAFT.value:
        raise InvalidStateTransition(rfp.status, SubmissionStatus.SUBMITTED.value,
                                     "RFP is not open for submissions")
    late = now > ensure_utc(rfp.closing_date)
    if rfp.status == RFPStatus.CLOSED.value and not late:
        raise InvalidStateTransition(rfp.status, SubmissionStatus.SUBMITTED.value,
                                     "RFP is closed")
    if late and not rfp.allow_late_submissions:
        raise InvalidStateTransition(rfp.status, SubmissionStatus.SUBMITTED.value,
                                     "The deadline has passed and late submissions are not accepted")

    query = select(ProposalSubmission.id).where(
        ProposalSubmission.rfp_id == rfp.id,
        ProposalSubmission.user_id == principal.id
    )
    if company_id is None:
        query = query.where(ProposalSubmission.company_id.is_(None))
    else:
        query = query.where(ProposalSubmission.company_id == company_id)
    if (await db.execute(query)).first() is not None:
        raise ConstraintViolation("A proposal has already been submitted for this RFP")

    submission = ProposalSubmission(
        rfp_id=rfp.id,
        user_id=principal.id,
        company_id=company_id,
        status=SubmissionStatus.SUBMITTED.value,
        submitted_at=now,
        is_late_submission=late,
        file_count=file_count,
        notes=notes,
        details={},
    )
    async with constraint_guard(db, "Proposal submission"):
        db.add(submission)

    logger.info(f"Submission {submission.id} for RFP {rfp.id} (late={late})")
    return submission


async def review_submission(
    db: AsyncSession,
    principal: Principal,
    submission_id: uuid.UUID,
    status,
) -> ProposalSubmission:
    """Move a submission through review (admin only)."""
    status = SubmissionStatus(status)
    await _require(db, principal, ResourceKind.SUBMISSION, submission_id, Action.UPDATE)

    submission = await db.get(ProposalSubmission, submission_id)
    submission.status = status.value
    await db.flush()

    logger.info(f"Submission {submission.id} marked {status.value} by {principal.id}")
    return submission


async def list_submissions(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
) -> list[ProposalSubmission]:
    """Submissions on one RFP the principal may read, oldest first."""
    rfp = await db.get(RFP, rfp_id)
    if rfp is None:
        return []

    facts = await load_grant_facts(db, principal, rfp.id)
    snapshot_rfp = rfp_snapshot(rfp)
    result = await db.execute(
        select(ProposalSubmission)
        .where(ProposalSubmission.rfp_id == rfp.id)
        .order_by(ProposalSubmission.submitted_at, ProposalSubmission.id)
    )
    return [
        submission for submission in result.scalars().all()
        if authorize(
            principal,
            SubmissionSnapshot(
                id=submission.id,
                rfp=snapshot_rfp,
                user_id=submission.user_id,
                company_id=submission.company_id,
                status=submission.status,
            ),
            Action.READ,
            facts=facts,
        )
    ]
