"""
RFP Lifecycle Manager

State machine for RFP status:

    draft --publish--> active --close / deadline--> closed

Nothing leaves `closed`. Deadline passage is enforced twice: a write-time
guard recomputes status before any admin edit is flushed, and a batch
conditional update (`close_expired_rfps`) closes every active RFP whose
closing date has passed. Both are idempotent.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    NotificationType,
    RFPStatus,
    RFP,
    AnalyticsEvent,
)
from schemas.common import ensure_utc, utcnow
from schemas.events import (
    TransitionEvent,
    ExpiredRFP,
    CloseResult,
    ExpirationCheck,
)
from schemas.principal import Principal
from schemas.resources import Action, Decision, RFPSnapshot
from schemas.rfp import RFPUpdate, order_milestones
from services.errors import InvalidStateTransition, NotPermitted, ReferenceNotFound, constraint_guard
from services.grants import load_grant_facts
from services.notifications import on_transition
from services.policy import authorize


logger = logging.getLogger("rfp_marketplace.services.lifecycle")

SECONDS_PER_DAY = 86400


def guard_status(status, closing_date: Optional[datetime], now: datetime) -> RFPStatus:
    """Status an RFP must have at `now`: active RFPs past their closing date are closed."""
    status = RFPStatus(status)
    if status == RFPStatus.ACTIVE and closing_date is not None:
        if ensure_utc(closing_date) < ensure_utc(now):
            return RFPStatus.CLOSED
    return status


def _event(kind: NotificationType, rfp: RFP) -> TransitionEvent:
    return TransitionEvent(kind=kind, reference_id=rfp.id, rfp_id=rfp.id, rfp_title=rfp.title)


async def _load_for_write(db: AsyncSession, principal: Principal, rfp_id: uuid.UUID) -> RFP:
    """Lock the RFP row and check the principal may edit it."""
    result = await db.execute(select(RFP).where(RFP.id == rfp_id).with_for_update())
    rfp = result.scalar_one_or_none()

    if rfp is None:
        if principal is not None and principal.is_admin:
            raise ReferenceNotFound("rfp", rfp_id)
        raise NotPermitted(Decision.deny("not_visible"))

    facts = await load_grant_facts(db, principal, rfp.id)
    authorize(principal, RFPSnapshot.model_validate(rfp), Action.UPDATE, facts=facts).require()
    return rfp


async def _activate(db: AsyncSession, rfp: RFP, now: datetime) -> int:
    if guard_status(RFPStatus.ACTIVE, rfp.closing_date, now) == RFPStatus.CLOSED:
        raise InvalidStateTransition(
            RFPStatus.DRAFT.value,
            RFPStatus.ACTIVE.value,
            f"RFP {rfp.id} cannot be published: closing date has already passed"
        )
    rfp.status = RFPStatus.ACTIVE.value
    rfp.updated_at = now
    await db.flush()

    logger.info(f"RFP {rfp.id} published (draft -> active)")
    return await on_transition(db, _event(NotificationType.RFP_PUBLISHED, rfp))


async def _close(db: AsyncSession, rfp: RFP, now: datetime, cause: str) -> int:
    rfp.status = RFPStatus.CLOSED.value
    rfp.updated_at = now
    await db.flush()

    logger.info(f"RFP {rfp.id} closed (active -> closed, {cause})")
    return await on_transition(db, _event(NotificationType.RFP_CLOSED, rfp))


# ============================================================================
# ADMIN TRANSITIONS
# ============================================================================

async def publish_rfp(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> RFP:
    """
    Publish a draft RFP and notify every bidder.

    Raises:
        InvalidStateTransition: the RFP is not a draft or its deadline has passed
    """
    now = ensure_utc(now or utcnow())
    rfp = await _load_for_write(db, principal, rfp_id)

    if RFPStatus(rfp.status) != RFPStatus.DRAFT:
        raise InvalidStateTransition(rfp.status, RFPStatus.ACTIVE.value)

    await _activate(db, rfp, now)
    return rfp


async def close_rfp(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> RFP:
    """
    Manually close an active RFP. Closing a closed RFP is a no-op.

    Raises:
        InvalidStateTransition: the RFP is still a draft
    """
    now = ensure_utc(now or utcnow())
    rfp = await _load_for_write(db, principal, rfp_id)
    status = RFPStatus(rfp.status)

    if status == RFPStatus.CLOSED:
        logger.debug(f"RFP {rfp.id} already closed")
        return rfp
    if status == RFPStatus.DRAFT:
        raise InvalidStateTransition(status.value, RFPStatus.CLOSED.value)

    await _close(db, rfp, now, "manual")
    return rfp


async def update_rfp(
    db: AsyncSession,
    principal: Principal,
    rfp_id: uuid.UUID,
    changes: RFPUpdate,
    now: Optional[datetime] = None,
) -> RFP:
    """
    Apply an admin edit under a row lock.

    A requested status change goes through the same transitions as
    `publish_rfp` / `close_rfp`. After the edit the write-time guard runs, so
    an edit that lands after the deadline (or moves the deadline into the
    past) leaves the RFP closed.
    """
    now = ensure_utc(now or utcnow())
    rfp = await _load_for_write(db, principal, rfp_id)

    fields = changes.model_dump(exclude_unset=True, exclude={"status", "milestones"})
    async with constraint_guard(db, "RFP update"):
        for key, value in fields.items():
            setattr(rfp, key, value)
        if changes.milestones is not None:
            rfp.milestones = [m.model_dump() for m in order_milestones(changes.milestones)]
        rfp.updated_at = now

    current = RFPStatus(rfp.status)
    target = changes.status
    if target is not None and RFPStatus(target) != current:
        target = RFPStatus(target)
        if current == RFPStatus.DRAFT and target == RFPStatus.ACTIVE:
            await _activate(db, rfp, now)
        elif current == RFPStatus.ACTIVE and target == RFPStatus.CLOSED:
            await _close(db, rfp, now, "manual")
        else:
            raise InvalidStateTransition(current.value, target.value)

    if guard_status(rfp.status, rfp.closing_date, now) != RFPStatus(rfp.status):
        await _close(db, rfp, now, "deadline passed")

    await db.flush()
    return rfp


# ============================================================================
# DEADLINE ENFORCEMENT
# ============================================================================

async def close_expired_rfps(db: AsyncSession, now: Optional[datetime] = None) -> CloseResult:
    """
    Close every active RFP whose closing date has passed.

    A single conditional UPDATE ... RETURNING: concurrent callers split the
    eligible rows between them, so each RFP is closed and notified exactly
    once. Safe to retry; a second call finds nothing to do.
    """
    now = ensure_utc(now or utcnow())

    result = await db.execute(
        update(RFP)
        .where(
            RFP.status == RFPStatus.ACTIVE.value,
            RFP.closing_date < now
        )
        .values(status=RFPStatus.CLOSED.value, updated_at=now)
        .returning(RFP.id, RFP.title, RFP.closing_date)
        .execution_options(synchronize_session="fetch")
    )
    rows = sorted(result.all(), key=lambda row: (ensure_utc(row.closing_date), str(row.id)))

    if not rows:
        logger.debug("Expiry sweep: no active RFPs past their closing date")
        return CloseResult()

    details = []
    sent = 0
    for row in rows:
        closing_date = ensure_utc(row.closing_date)
        details.append(ExpiredRFP(
            id=row.id,
            title=row.title,
            closing_date=closing_date,
            days_overdue=max(0, int((now - closing_date).total_seconds() // SECONDS_PER_DAY))
        ))
        sent += await on_transition(db, TransitionEvent(
            kind=NotificationType.RFP_CLOSED,
            reference_id=row.id,
            rfp_id=row.id,
            rfp_title=row.title
        ))

    closed_ids = [d.id for d in details]
    db.add(AnalyticsEvent(
        event_type="rfp_status_auto_update",
        details={
            "updated_count": len(closed_ids),
            "closed_ids": [str(rfp_id) for rfp_id in closed_ids],
            "executed_at": now.isoformat(),
        }
    ))
    await db.flush()

    logger.info(f"Expiry sweep closed {len(closed_ids)} RFP(s), {sent} notification(s)")
    return CloseResult(
        updated_count=len(closed_ids),
        closed_ids=closed_ids,
        details=details,
        notifications_sent=sent
    )


async def check_rfp_expiration(
    db: AsyncSession,
    rfp_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> ExpirationCheck:
    """Close a single RFP if its deadline has passed and report its expiry state."""
    now = ensure_utc(now or utcnow())

    rfp = await db.get(RFP, rfp_id)
    if rfp is None:
        raise ReferenceNotFound("rfp", rfp_id)

    result = await db.execute(
        update(RFP)
        .where(
            RFP.id == rfp_id,
            RFP.status == RFPStatus.ACTIVE.value,
            RFP.closing_date < now
        )
        .values(status=RFPStatus.CLOSED.value, updated_at=now)
        .returning(RFP.id)
        .execution_options(synchronize_session="fetch")
    )
    was_updated = result.first() is not None
    if was_updated:
        logger.info(f"RFP {rfp_id} closed (active -> closed, deadline passed)")
        await on_transition(db, _event(NotificationType.RFP_CLOSED, rfp))

    closing_date = ensure_utc(rfp.closing_date)
    return ExpirationCheck(
        rfp_id=rfp.id,
        status=RFPStatus.CLOSED.value if was_updated else rfp.status,
        was_updated=was_updated,
        is_expired=closing_date < now,
        days_until_close=int((closing_date - now).total_seconds() / SECONDS_PER_DAY)
    )
