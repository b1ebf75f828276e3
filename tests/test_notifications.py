from datetime import timedelta

import pytest
from sqlalchemy import select

from database.models import Notification
from schemas.events import TransitionEvent
from services.notifications import (
    list_notifications,
    mark_all_read,
    mark_read,
    on_transition,
    render,
    unread_count,
)

from factories import NOW, make_profile, make_rfp, principal_of


def test_render_appends_reason():
    event = TransitionEvent(
        kind="nda_rejected",
        reference_id="6f1c0c64-4d0e-4f36-9a2b-1f4d9c2b7e10",
        rfp_id="6f1c0c64-4d0e-4f36-9a2b-1f4d9c2b7e10",
        rfp_title="Bridge Inspection",
        detail="Signature missing",
    )
    title, message = render(event)
    assert title == "NDA Rejected"
    assert message == 'Your NDA for "Bridge Inspection" has been rejected. Reason: Signature missing'


def test_unsupported_event_is_rejected(run_db):
    async def scenario(db):
        rfp = await make_rfp(db)
        with pytest.raises(ValueError):
            await on_transition(db, TransitionEvent(
                kind="system_notice", reference_id=rfp.id, rfp_id=rfp.id, rfp_title=rfp.title
            ))

    run_db(scenario)


def test_read_marker_is_monotonic(run_db):
    async def scenario(db):
        owner = await make_profile(db)
        stranger = await make_profile(db)
        rfp = await make_rfp(db)
        for _ in range(2):
            await on_transition(db, TransitionEvent(
                kind="access_granted", reference_id=rfp.id, rfp_id=rfp.id,
                rfp_title=rfp.title, recipient_id=owner.id,
            ))

        owner_principal = principal_of(owner)
        first, second = await list_notifications(db, owner_principal)
        assert await unread_count(db, owner_principal) == 2

        # Someone else cannot mark them
        assert await mark_read(db, principal_of(stranger), [first.id], now=NOW) == 0

        assert await mark_read(db, owner_principal, [first.id], now=NOW) == 1
        # A second, later mark leaves the original timestamp in place
        assert await mark_read(db, owner_principal, [first.id], now=NOW + timedelta(hours=1)) == 0
        assert await mark_all_read(db, owner_principal, now=NOW + timedelta(hours=2)) == 1
        assert await unread_count(db, owner_principal) == 0

        rows = {
            n.id: n.read_at.replace(tzinfo=None)
            for n in (await db.execute(select(Notification))).scalars().all()
        }
        assert rows[first.id] == NOW.replace(tzinfo=None)
        assert rows[second.id] == (NOW + timedelta(hours=2)).replace(tzinfo=None)

    run_db(scenario)


def test_unread_filter(run_db):
    async def scenario(db):
        owner = await make_profile(db)
        rfp = await make_rfp(db)
        await on_transition(db, TransitionEvent(
            kind="question_answered", reference_id=rfp.id, rfp_id=rfp.id,
            rfp_title=rfp.title, recipient_id=owner.id,
        ))
        principal = principal_of(owner)

        await mark_all_read(db, principal, now=NOW)

        assert await list_notifications(db, principal, unread_only=True) == []
        assert len(await list_notifications(db, principal)) == 1

    run_db(scenario)
