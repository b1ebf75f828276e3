"""
Store-Backed Authorization

Loads resource snapshots and grant facts, then defers to the pure policy
engine. Missing rows and forbidden rows produce the same `not_visible`
decision.
"""

import logging
import uuid
from datetime import datetime
from typing import Awaitable, Callable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import (
    RFP,
    RFPComponent,
    Document,
    NDA,
    CompanyNDA,
    RFPAccess,
    Notification,
    Company,
    Question,
    Profile,
    ProposalSubmission,
)
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
from services import visibility
from services.grants import load_grant_facts, approved_access_rfp_ids, accepted_invitation_rfp_ids
from services.lifecycle import close_expired_rfps
from services.policy import authorize


logger = logging.getLogger("rfp_marketplace.services.authorization")

# (snapshot, rfp_id the grant facts are loaded for)
Loaded = Optional[Tuple[Snapshot, Optional[uuid.UUID]]]


# ============================================================================
# SNAPSHOT BUILDERS
# ============================================================================

def rfp_snapshot(rfp: RFP) -> RFPSnapshot:
    return RFPSnapshot.model_validate(rfp)


def document_snapshot(document: Document, rfp: RFP) -> DocumentSnapshot:
    return DocumentSnapshot(
        id=document.id,
        rfp=rfp_snapshot(rfp),
        requires_nda=document.requires_nda,
        parent_folder=document.parent_folder,
    )


def component_snapshot(component: RFPComponent, rfp: RFP) -> ComponentSnapshot:
    return ComponentSnapshot(
        id=component.id,
        rfp=rfp_snapshot(rfp),
        requires_nda=component.requires_nda,
    )


# ============================================================================
# LOADERS
# ============================================================================

async def _with_rfp(db: AsyncSession, model, resource_id: uuid.UUID):
    result = await db.execute(
        select(model, RFP).join(RFP, model.rfp_id == RFP.id).where(model.id == resource_id)
    )
    return result.first()


async def _load_profile(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    profile = await db.get(Profile, resource_id)
    if profile is None:
        return None
    return ProfileSnapshot(id=profile.id, role=profile.role, company_id=profile.company_id), None


async def _load_rfp(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    rfp = await db.get(RFP, resource_id)
    if rfp is None:
        return None
    return rfp_snapshot(rfp), rfp.id


async def _load_component(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    row = await _with_rfp(db, RFPComponent, resource_id)
    if row is None:
        return None
    component, rfp = row
    return component_snapshot(component, rfp), rfp.id


async def _load_document(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    row = await _with_rfp(db, Document, resource_id)
    if row is None:
        return None
    document, rfp = row
    return document_snapshot(document, rfp), rfp.id


async def _load_nda(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    row = await _with_rfp(db, NDA, resource_id)
    if row is None:
        return None
    nda, rfp = row
    snapshot = NDASnapshot(id=nda.id, rfp=rfp_snapshot(rfp), user_id=nda.user_id, status=nda.status)
    return snapshot, rfp.id


async def _load_company_nda(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    row = await _with_rfp(db, CompanyNDA, resource_id)
    if row is None:
        return None
    nda, rfp = row
    snapshot = CompanyNDASnapshot(
        id=nda.id,
        rfp=rfp_snapshot(rfp),
        company_id=nda.company_id,
        signed_by=nda.signed_by,
        status=nda.status,
    )
    return snapshot, rfp.id


async def _load_question(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    row = await _with_rfp(db, Question, resource_id)
    if row is None:
        return None
    question, rfp = row
    snapshot = QuestionSnapshot(
        id=question.id,
        rfp=rfp_snapshot(rfp),
        user_id=question.user_id,
        status=question.status,
    )
    return snapshot, rfp.id


async def _load_access_grant(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    row = await _with_rfp(db, RFPAccess, resource_id)
    if row is None:
        return None
    grant, rfp = row
    snapshot = AccessGrantSnapshot(
        id=grant.id,
        rfp_id=rfp.id,
        user_id=grant.user_id,
        status=grant.status,
        rfp=rfp_snapshot(rfp),
    )
    return snapshot, rfp.id


async def _load_submission(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    row = await _with_rfp(db, ProposalSubmission, resource_id)
    if row is None:
        return None
    submission, rfp = row
    snapshot = SubmissionSnapshot(
        id=submission.id,
        rfp=rfp_snapshot(rfp),
        user_id=submission.user_id,
        company_id=submission.company_id,
        status=submission.status,
    )
    return snapshot, rfp.id


async def _load_notification(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    notification = await db.get(Notification, resource_id)
    if notification is None:
        return None
    return NotificationSnapshot.model_validate(notification), None


async def _load_company(db: AsyncSession, resource_id: uuid.UUID) -> Loaded:
    company = await db.get(Company, resource_id)
    if company is None:
        return None
    return CompanySnapshot(id=company.id, created_by=company.created_by), None


_LOADERS: dict[ResourceKind, Callable[[AsyncSession, uuid.UUID], Awaitable[Loaded]]] = {
    ResourceKind.PROFILE: _load_profile,
    ResourceKind.RFP: _load_rfp,
    ResourceKind.RFP_COMPONENT: _load_component,
    ResourceKind.DOCUMENT: _load_document,
    ResourceKind.NDA: _load_nda,
    ResourceKind.COMPANY_NDA: _load_company_nda,
    ResourceKind.QUESTION: _load_question,
    ResourceKind.ACCESS_GRANT: _load_access_grant,
    ResourceKind.SUBMISSION: _load_submission,
    ResourceKind.NOTIFICATION: _load_notification,
    ResourceKind.COMPANY: _load_company,
}


# ============================================================================
# DECISIONS
# ============================================================================

async def check(
    db: AsyncSession,
    principal: Optional[Principal],
    kind: ResourceKind,
    resource_id,
    action: Action,
    changes: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> Decision:
    """
    Authorize an action on a stored resource.

    Args:
        db: Database session
        principal: Materialized principal, or None for anonymous callers
        kind: Resource type
        resource_id: Row id (operation name for `ResourceKind.SYSTEM`)
        action: Requested action
        changes: Field changes for update actions
        now: Reference time

    Returns:
        The policy decision; `not_visible` when the row does not exist
    """
    kind = ResourceKind(kind)
    if kind == ResourceKind.SYSTEM:
        return authorize(principal, SystemResource(name=str(resource_id)), action)

    loaded = await _LOADERS[kind](db, resource_id)
    if loaded is None:
        logger.debug(f"Denied {Action(action).value} on {kind.value}: not_visible")
        return Decision.deny("not_visible")

    snapshot, rfp_id = loaded
    facts = await load_grant_facts(db, principal, rfp_id)
    return authorize(principal, snapshot, action, facts=facts, changes=changes, now=now)


async def visible_rfps(
    db: AsyncSession,
    principal: Optional[Principal],
    status: Optional[str] = None,
    visibility_filter: Optional[str] = None,
    limit: int = 100,
    now: Optional[datetime] = None,
) -> list[RFP]:
    """
    RFPs the principal may read, ordered by closing date.

    Status-filtered listings first close expired RFPs so a listing never
    reports an RFP as active after its deadline.
    """
    if status is not None and settings.lazy_close_on_read:
        await close_expired_rfps(db, now)

    query = select(RFP)
    if status is not None:
        query = query.where(RFP.status == status)
    if visibility_filter is not None:
        query = query.where(RFP.visibility == visibility_filter)
    query = query.order_by(RFP.closing_date, RFP.id)

    rfps = (await db.execute(query)).scalars().all()

    granted, invited = set(), set()
    if principal is not None and not principal.is_admin:
        granted = await approved_access_rfp_ids(db, principal)
        invited = await accepted_invitation_rfp_ids(db, principal)

    visible = [
        rfp for rfp in rfps
        if visibility.rfp_read_reason(
            principal,
            rfp_snapshot(rfp),
            GrantFacts(access_approved=rfp.id in granted, invitation_accepted=rfp.id in invited),
        )
    ]
    return visible[:limit]


async def visible_documents(
    db: AsyncSession,
    principal: Optional[Principal],
    rfp_id: uuid.UUID,
) -> list[Document]:
    """Documents of one RFP the principal may read."""
    rfp = await db.get(RFP, rfp_id)
    if rfp is None:
        return []

    facts = await load_grant_facts(db, principal, rfp.id)
    result = await db.execute(
        select(Document)
        .where(Document.rfp_id == rfp.id)
        .order_by(Document.title, Document.id)
    )
    return [
        document for document in result.scalars().all()
        if visibility.document_read_reason(principal, document_snapshot(document, rfp), facts)
    ]


async def visible_components(
    db: AsyncSession,
    principal: Optional[Principal],
    rfp_id: uuid.UUID,
) -> list[RFPComponent]:
    """Components of one RFP the principal may read, in display order."""
    rfp = await db.get(RFP, rfp_id)
    if rfp is None:
        return []

    facts = await load_grant_facts(db, principal, rfp.id)
    result = await db.execute(
        select(RFPComponent)
        .where(RFPComponent.rfp_id == rfp.id)
        .order_by(RFPComponent.sort_order, RFPComponent.id)
    )
    return [
        component for component in result.scalars().all()
        if visibility.component_read_reason(principal, component_snapshot(component, rfp), facts)
    ]
