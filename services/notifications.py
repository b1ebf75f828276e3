"""
Notification Dispatcher

Fans a committed transition out into one notification row per recipient and
serves the owner-only read side. Delivery (e-mail, push) drains the table
elsewhere; this module only writes rows.
"""

import logging
import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import NotificationType, UserRole, Profile, Notification
from schemas.common import utcnow
from schemas.events import TransitionEvent
from schemas.principal import Principal
from services.grants import approved_access_user_ids


logger = logging.getLogger("rfp_marketplace.services.notifications")


# (title, message) per notification type; `{title}` is the RFP title
TEMPLATES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.RFP_PUBLISHED: (
        "New RFP Published",
        "A new RFP has been published: {title}"
    ),
    NotificationType.RFP_CLOSED: (
        "RFP Closed",
        'The RFP "{title}" has been closed.'
    ),
    NotificationType.QUESTION_ANSWERED: (
        "Question Answered",
        'Your question about "{title}" has been answered.'
    ),
    NotificationType.NDA_APPROVED: (
        "NDA Approved",
        'Your NDA for "{title}" has been approved.'
    ),
    NotificationType.NDA_REJECTED: (
        "NDA Rejected",
        'Your NDA for "{title}" has been rejected.'
    ),
    NotificationType.ACCESS_GRANTED: (
        "RFP Access Granted",
        "You have been granted access to review {title}"
    ),
    NotificationType.ACCESS_DENIED: (
        "RFP Access Denied",
        "Your request for access to {title} has been denied."
    ),
    NotificationType.RFP_INVITATION: (
        "RFP Invitation Received",
        "You have been invited to participate in RFP: {title}"
    ),
    NotificationType.REGISTRATION_APPROVED: (
        "Company Registration Approved",
        'Your company has been approved to participate in "{title}".'
    ),
    NotificationType.REGISTRATION_REJECTED: (
        "Company Registration Rejected",
        'Your company registration for "{title}" was not approved.'
    ),
}


def render(event: TransitionEvent) -> tuple[str, str]:
    """Build the notification title and message for an event."""
    title, template = TEMPLATES[event.kind]
    message = template.format(title=event.rfp_title)
    if event.detail:
        message = f"{message} Reason: {event.detail}"
    return title, message


async def recipients_for(db: AsyncSession, event: TransitionEvent) -> list[uuid.UUID]:
    """Resolve who receives an event."""
    if event.recipient_id is not None:
        return [event.recipient_id]

    if event.company_id is not None:
        result = await db.execute(
            select(Profile.id)
            .where(Profile.company_id == event.company_id)
            .order_by(Profile.id)
        )
        return list(result.scalars().all())

    if event.kind == NotificationType.RFP_PUBLISHED:
        result = await db.execute(
            select(Profile.id)
            .where(Profile.role == UserRole.BIDDER.value)
            .order_by(Profile.id)
        )
        return list(result.scalars().all())

    if event.kind == NotificationType.RFP_CLOSED:
        return await approved_access_user_ids(db, event.rfp_id)

    logger.warning(f"No recipients resolvable for {event.kind.value} on {event.reference_id}")
    return []


async def on_transition(db: AsyncSession, event: TransitionEvent) -> int:
    """
    Write one notification per recipient of a transition.

    Runs inside the caller's transaction so a rolled-back write leaves no
    notifications behind. Callers transition state at most once per event;
    this function does not deduplicate.

    Returns:
        Number of notification rows written
    """
    if event.kind not in TEMPLATES:
        raise ValueError(f"Unsupported transition event: {event.kind.value}")

    recipients = await recipients_for(db, event)
    if not recipients:
        logger.debug(f"No recipients for {event.kind.value} on RFP {event.rfp_id}")
        return 0

    title, message = render(event)
    db.add_all([
        Notification(
            id=uuid.uuid4(),
            user_id=user_id,
            title=title,
            message=message,
            type=event.kind.value,
            reference_id=event.reference_id,
        )
        for user_id in recipients
    ])
    await db.flush()

    logger.info(
        f"Dispatched {len(recipients)} {event.kind.value} notification(s) for RFP {event.rfp_id}"
    )
    return len(recipients)


# ============================================================================
# READ SIDE
# ============================================================================

async def list_notifications(
    db: AsyncSession,
    principal: Principal,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    """The principal's own notifications, newest first."""
    query = select(Notification).where(Notification.user_id == principal.id)
    if unread_only:
        query = query.where(Notification.read_at.is_(None))
    query = query.order_by(Notification.created_at.desc(), Notification.id).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def unread_count(db: AsyncSession, principal: Principal) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == principal.id,
            Notification.read_at.is_(None)
        )
    )
    return result.scalar_one()


async def mark_read(
    db: AsyncSession,
    principal: Principal,
    notification_ids: Iterable[uuid.UUID],
    now: Optional[datetime] = None,
) -> int:
    """
    Set `read_at` on the principal's unread notifications among `notification_ids`.

    A single conditional update: rows owned by someone else, or already read,
    are left untouched, so `read_at` is never moved or cleared.

    Returns:
        Number of notifications marked
    """
    ids = list(notification_ids)
    if not ids:
        return 0
    return await _mark(db, principal, now, Notification.id.in_(ids))


async def mark_all_read(
    db: AsyncSession,
    principal: Principal,
    now: Optional[datetime] = None,
) -> int:
    return await _mark(db, principal, now)


async def _mark(db: AsyncSession, principal: Principal, now: Optional[datetime], *criteria) -> int:
    now = now or utcnow()
    result = await db.execute(
        update(Notification)
        .where(
            Notification.user_id == principal.id,
            Notification.read_at.is_(None),
            *criteria
        )
        .values(read_at=now)
        .returning(Notification.id)
        .execution_options(synchronize_session="fetch")
    )
    marked = len(result.all())
    logger.debug(f"Marked {marked} notification(s) read for {principal.id}")
    return marked
