"""
Workflow Writers

Questions, NDAs, company NDAs and access grants. Each writer authorizes,
applies the state change, flushes, and only then hands the transition to the
notification dispatcher, all inside the caller's transaction.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    AccessStatus,
    NDAStatus,
    NotificationType,
    QuestionStatus,
    UserRole,
    RFP,
    NDA,
    CompanyNDA,
    RFPAccess,
    Question,
    Profile,
)
from schemas.common import ensure_utc, utcnow
from schemas.events import TransitionEvent
from schemas.principal import Principal
from schemas.resources import (
    Action,
    ResourceKind,
    AccessGrantSnapshot,
    CompanyNDASnapshot,
    NDASnapshot,
    QuestionSnapshot,
    Decision,
)
from services.authorization import check, rfp_snapshot
from services.errors import (
    IneligibleTarget,
    NotPermitted,
    ReferenceNotFound,
    constraint_guard,
)
from services.grants import load_grant_facts
from services.notifications import on_transition
from services.policy import authorize


logger = logging.getLogger("rfp_marketplace.services.workflow")


async def _get_rfp(db: AsyncSession, principal: Optional[Principal], rfp_id: uuid.UUID) -> RFP:
    rfp = await db.get(RFP, rfp_id)
    if rfp is None:
        if principal is not None and principal.is_admin:
            raise ReferenceNotFound("rfp", rfp_id)
        raise NotPermitted(Decision.deny("not_visible"))
    return rfp


async def _require(
    db: AsyncSession,
    principal: Optional[Principal],
    kind: ResourceKind,
    resource_id: uuid.UUID,
    action: Action,
) -> None:
    decision = await check(db, principal, kind, resource_id, action)
    if not decision.allowed and decision.reason == "not_visible" \
            and principal is not None and principal.is_admin:
        raise ReferenceNotFound(kind.value, resource_id)
    decision.require()


# ============================================================================
# QUESTIONS
# ============================================================================

async def submit_question(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
    question: str,
    topic: Optional[str] = None,
) -> Question:
    """Ask a question about an RFP the principal can read."""
    rfp = await _get_rfp(db, principal, rfp_id)
    facts = await load_grant_facts(db, principal, rfp.id)
    snapshot = QuestionSnapshot(rfp=rfp_snapshot(rfp), user_id=principal.id)
    authorize(principal, snapshot, Action.CREATE, facts=facts).require()

    row = Question(rfp_id=rfp.id, user_id=principal.id, question=question, topic=topic)
    async with constraint_guard(db, "Question"):
        db.add(row)

    logger.info(f"Question {row.id} submitted on RFP {rfp.id}")
    return row


async def answer_question(
    db: AsyncSession,
    principal: Principal,
    question_id: uuid.UUID,
    answer: str,
    publish: bool = True,
    now: Optional[datetime] = None,
) -> Question:
    """
    Answer a question (admin only). Publishing notifies the asker once;
    re-answering a published question does not notify again.
    """
    now = ensure_utc(now or utcnow())
    await _require(db, principal, ResourceKind.QUESTION, question_id, Action.UPDATE)

    question = await db.get(Question, question_id)
    rfp = await db.get(RFP, question.rfp_id)
    previous = QuestionStatus(question.status)

    question.answer = answer
    question.answered_at = now
    question.status = (QuestionStatus.PUBLISHED if publish else QuestionStatus.IN_REVIEW).value
    await db.flush()

    if publish and previous != QuestionStatus.PUBLISHED:
        await on_transition(db, TransitionEvent(
            kind=NotificationType.QUESTION_ANSWERED,
            reference_id=question.id,
            rfp_id=rfp.id,
            rfp_title=rfp.title,
            recipient_id=question.user_id
        ))
    return question


# ============================================================================
# INDIVIDUAL NDAs
# ============================================================================

async def sign_nda(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
    full_name: str,
    title: Optional[str] = None,
    company: Optional[str] = None,
    signature_data: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> NDA:
    """
    Sign the principal's NDA for an RFP.

    A previously rejected NDA is re-signed in place (and the signer is
    notified of the status change); any other existing NDA for the pair is a
    `ConstraintViolation`.
    """
    now = ensure_utc(now or utcnow())
    rfp = await _get_rfp(db, principal, rfp_id)
    facts = await load_grant_facts(db, principal, rfp.id)
    snapshot = NDASnapshot(rfp=rfp_snapshot(rfp), user_id=principal.id)
    authorize(principal, snapshot, Action.CREATE, facts=facts).require()

    result = await db.execute(
        select(NDA).where(NDA.rfp_id == rfp.id, NDA.user_id == principal.id)
    )
    existing = result.scalar_one_or_none()

    if existing is not None and existing.status == NDAStatus.REJECTED.value:
        existing.status = NDAStatus.SIGNED.value
        existing.full_name = full_name
        existing.title = title
        existing.company = company
        existing.signature_data = signature_data
        existing.signed_at = now
        existing.rejection_reason = None
        existing.rejection_date = None
        existing.rejection_by = None
        await db.flush()

        logger.info(f"NDA {existing.id} re-signed after rejection")
        await on_transition(db, TransitionEvent(
            kind=NotificationType.NDA_APPROVED,
            reference_id=existing.id,
            rfp_id=rfp.id,
            rfp_title=rfp.title,
            recipient_id=principal.id
        ))
        return existing

    nda = NDA(
        rfp_id=rfp.id,
        user_id=principal.id,
        status=NDAStatus.SIGNED.value,
        full_name=full_name,
        title=title,
        company=company,
        signature_data=signature_data,
        signed_at=now,
    )
    async with constraint_guard(db, "NDA"):
        db.add(nda)

    logger.info(f"NDA {nda.id} signed for RFP {rfp.id}")
    return nda


async def decide_nda(
    db: AsyncSession,
    principal: Principal,
    nda_id: uuid.UUID,
    approve: bool,
    countersigner_name: Optional[str] = None,
    countersigner_title: Optional[str] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> NDA:
    """Countersign or reject an NDA (admin only); notifies on status change."""
    now = ensure_utc(now or utcnow())
    await _require(db, principal, ResourceKind.NDA, nda_id, Action.UPDATE)

    nda = await db.get(NDA, nda_id)
    rfp = await db.get(RFP, nda.rfp_id)
    target = NDAStatus.APPROVED if approve else NDAStatus.REJECTED
    if nda.status == target.value:
        return nda

    nda.status = target.value
    if approve:
        nda.countersigned_at = now
        nda.countersigner_name = countersigner_name
        nda.countersigner_title = countersigner_title
    else:
        nda.rejection_reason = reason
        nda.rejection_date = now
        nda.rejection_by = principal.id
    await db.flush()

    logger.info(f"NDA {nda.id} {target.value} by {principal.id}")
    await on_transition(db, TransitionEvent(
        kind=NotificationType.NDA_APPROVED if approve else NotificationType.NDA_REJECTED,
        reference_id=nda.id,
        rfp_id=rfp.id,
        rfp_title=rfp.title,
        recipient_id=nda.user_id,
        detail=None if approve else reason
    ))
    return nda


# ============================================================================
# COMPANY NDAs
# ============================================================================

async def sign_company_nda(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
    full_name: str,
    title: Optional[str] = None,
    signature_data: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> CompanyNDA:
    """Sign an NDA on behalf of the principal's company (company admins only)."""
    now = ensure_utc(now or utcnow())
    if principal.company_id is None:
        raise NotPermitted(Decision.deny("forbidden"))

    rfp = await _get_rfp(db, principal, rfp_id)
    facts = await load_grant_facts(db, principal, rfp.id)
    snapshot = CompanyNDASnapshot(
        rfp=rfp_snapshot(rfp),
        company_id=principal.company_id,
        signed_by=principal.id,
    )
    authorize(principal, snapshot, Action.CREATE, facts=facts).require()

    result = await db.execute(
        select(CompanyNDA).where(
            CompanyNDA.rfp_id == rfp.id,
            CompanyNDA.company_id == principal.company_id
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None and existing.status == NDAStatus.REJECTED.value:
        existing.status = NDAStatus.PENDING.value
        existing.signed_by = principal.id
        existing.full_name = full_name
        existing.title = title
        existing.signature_data = signature_data
        existing.signed_at = now
        existing.rejection_reason = None
        await db.flush()
        return existing

    company_nda = CompanyNDA(
        rfp_id=rfp.id,
        company_id=principal.company_id,
        signed_by=principal.id,
        status=NDAStatus.PENDING.value,
        full_name=full_name,
        title=title,
        signature_data=signature_data,
        signed_at=now,
    )
    async with constraint_guard(db, "Company NDA"):
        db.add(company_nda)

    logger.info(f"Company NDA {company_nda.id} signed for company {principal.company_id}")
    return company_nda


async def decide_company_nda(
    db: AsyncSession,
    principal: Principal,
    company_nda_id: uuid.UUID,
    approve: bool,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CompanyNDA:
    """Approve or reject a company NDA (admin only); the signer is notified."""
    now = ensure_utc(now or utcnow())
    await _require(db, principal, ResourceKind.COMPANY_NDA, company_nda_id, Action.UPDATE)

    company_nda = await db.get(CompanyNDA, company_nda_id)
    rfp = await db.get(RFP, company_nda.rfp_id)
    target = NDAStatus.APPROVED if approve else NDAStatus.REJECTED
    if company_nda.status == target.value:
        return company_nda

    company_nda.status = target.value
    if approve:
        company_nda.countersigned_at = now
    else:
        company_nda.rejection_reason = reason
    await db.flush()

    logger.info(f"Company NDA {company_nda.id} {target.value} by {principal.id}")
    await on_transition(db, TransitionEvent(
        kind=NotificationType.NDA_APPROVED if approve else NotificationType.NDA_REJECTED,
        reference_id=company_nda.id,
        rfp_id=rfp.id,
        rfp_title=rfp.title,
        recipient_id=company_nda.signed_by,
        detail=None if approve else reason
    ))
    return company_nda


# ============================================================================
# ACCESS GRANTS
# ============================================================================

async def set_access(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
    user_id: uuid.UUID,
    status,
    now: Optional[datetime] = None,
) -> RFPAccess:
    """
    Grant, deny or reset a client reviewer's access to an RFP (admin only).

    Notifies the reviewer only when the stored status actually changes to
    approved or rejected.

    Raises:
        IneligibleTarget: the target is not a client reviewer
    """
    now = ensure_utc(now or utcnow())
    status = AccessStatus(status)

    snapshot = AccessGrantSnapshot(rfp_id=rfp_id, user_id=user_id, status=status)
    authorize(principal, snapshot, Action.UPDATE).require()

    rfp = await _get_rfp(db, principal, rfp_id)
    target = await db.get(Profile, user_id)
    if target is None:
        raise ReferenceNotFound("profile", user_id)
    if target.role != UserRole.CLIENT_REVIEWER.value:
        raise IneligibleTarget(f"Profile {user_id} is not a client reviewer")

    result = await db.execute(
        select(RFPAccess).where(RFPAccess.rfp_id == rfp.id, RFPAccess.user_id == user_id)
    )
    grant = result.scalar_one_or_none()

    if grant is None:
        grant = RFPAccess(
            rfp_id=rfp.id,
            user_id=user_id,
            status=status.value,
            granted_by=principal.id,
        )
        async with constraint_guard(db, "Access grant"):
            db.add(grant)
    elif grant.status == status.value:
        return grant
    else:
        grant.status = status.value
        grant.granted_by = principal.id
        grant.updated_at = now
        await db.flush()

    logger.info(f"Access to RFP {rfp.id} for {user_id} set to {status.value}")

    kind = {
        AccessStatus.APPROVED: NotificationType.ACCESS_GRANTED,
        AccessStatus.REJECTED: NotificationType.ACCESS_DENIED,
    }.get(status)
    if kind is not None:
        await on_transition(db, TransitionEvent(
            kind=kind,
            reference_id=rfp.id,
            rfp_id=rfp.id,
            rfp_title=rfp.title,
            recipient_id=user_id
        ))
    return grant
