from datetime import timedelta

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from database.models import AnalyticsEvent, Notification
from schemas.rfp import Milestone, RFPUpdate
from services.errors import ConstraintViolation, InvalidStateTransition, NotPermitted
from services.lifecycle import (
    check_rfp_expiration,
    close_expired_rfps,
    close_rfp,
    guard_status,
    publish_rfp,
    update_rfp,
)

from factories import NOW, days, grant_access, make_profile, make_rfp, principal_of


async def count_notifications(db, **filters) -> int:
    query = select(func.count(Notification.id))
    for key, value in filters.items():
        query = query.where(getattr(Notification, key) == value)
    return (await db.execute(query)).scalar_one()


def test_guard_status_only_closes_active_rfps_past_deadline():
    assert guard_status("active", NOW - timedelta(seconds=1), NOW) == "closed"
    assert guard_status("active", NOW, NOW) == "active"
    assert guard_status("draft", NOW - days(1), NOW) == "draft"
    assert guard_status("closed", NOW + days(1), NOW) == "closed"


def test_close_expired_rfps_is_idempotent(run_db):
    async def scenario(db):
        reviewer = await make_profile(db, role="client_reviewer")
        expired = await make_rfp(db, title="Expired", closing_date=NOW - days(3))
        await make_rfp(db, title="Open", closing_date=NOW + days(3))
        await make_rfp(db, title="Draft", status="draft", closing_date=NOW - days(3))
        await grant_access(db, expired, reviewer)

        first = await close_expired_rfps(db, NOW)
        second = await close_expired_rfps(db, NOW)

        assert first.updated_count == 1
        assert first.closed_ids == [expired.id]
        assert first.details[0].days_overdue == 3
        assert first.notifications_sent == 1
        assert second.updated_count == 0
        assert second.closed_ids == []

        assert await count_notifications(db, type="rfp_closed", user_id=reviewer.id) == 1
        events = (await db.execute(
            select(func.count(AnalyticsEvent.id)).where(AnalyticsEvent.event_type == "rfp_status_auto_update")
        )).scalar_one()
        assert events == 1

    run_db(scenario)


def test_closed_rfps_never_reopen(run_db):
    async def scenario(db):
        admin = principal_of(await make_profile(db, role="admin"))
        rfp = await make_rfp(db, status="closed", closing_date=NOW - days(1))

        with pytest.raises(InvalidStateTransition):
            await update_rfp(db, admin, rfp.id, RFPUpdate(status="active"), now=NOW)
        with pytest.raises(InvalidStateTransition):
            await publish_rfp(db, admin, rfp.id, now=NOW)

        # Moving the deadline forward does not revive it
        await update_rfp(db, admin, rfp.id, RFPUpdate(closing_date=NOW + days(10)), now=NOW)
        assert rfp.status == "closed"

        # Manual close of a closed RFP is a no-op
        await close_rfp(db, admin, rfp.id, now=NOW)
        assert await count_notifications(db, type="rfp_closed") == 0

    run_db(scenario)


def test_publish_notifies_every_bidder_once(run_db):
    async def scenario(db):
        admin = principal_of(await make_profile(db, role="admin"))
        bidders = [await make_profile(db, role="bidder") for _ in range(3)]
        await make_profile(db, role="client_reviewer")
        rfp = await make_rfp(db, status="draft", closing_date=NOW + days(5))

        await publish_rfp(db, admin, rfp.id, now=NOW)

        assert rfp.status == "active"
        assert await count_notifications(db, type="rfp_published") == len(bidders)
        with pytest.raises(InvalidStateTransition):
            await publish_rfp(db, admin, rfp.id, now=NOW)
        assert await count_notifications(db, type="rfp_published") == len(bidders)

    run_db(scenario)


def test_publish_rejects_past_deadline(run_db):
    async def scenario(db):
        admin = principal_of(await make_profile(db, role="admin"))
        rfp = await make_rfp(db, status="draft", closing_date=NOW - days(1))

        with pytest.raises(InvalidStateTransition):
            await publish_rfp(db, admin, rfp.id, now=NOW)
        assert rfp.status == "draft"

    run_db(scenario)


def test_update_rfp_applies_write_time_guard(run_db):
    async def scenario(db):
        admin = principal_of(await make_profile(db, role="admin"))
        reviewer = await make_profile(db, role="client_reviewer")
        rfp = await make_rfp(db, status="active", closing_date=NOW + days(2))
        await grant_access(db, rfp, reviewer)

        await update_rfp(db, admin, rfp.id, RFPUpdate(closing_date=NOW - days(1)), now=NOW)

        assert rfp.status == "closed"
        assert await count_notifications(db, type="rfp_closed", user_id=reviewer.id) == 1

    run_db(scenario)


def test_required_rfp_fields_cannot_be_cleared():
    for field in ("title", "visibility", "closing_date"):
        with pytest.raises(ValidationError):
            RFPUpdate(**{field: None})

    assert RFPUpdate(description=None).model_dump(exclude_unset=True) == {"description": None}


def test_update_rfp_surfaces_store_rejections_as_constraint_violations(run_db):
    async def scenario(db):
        admin = principal_of(await make_profile(db, role="admin"))
        rfp = await make_rfp(db, status="active", closing_date=NOW + days(2))

        # Bypasses payload validation to reach the store's NOT NULL check
        changes = RFPUpdate.model_construct(closing_date=None)
        with pytest.raises(ConstraintViolation):
            await update_rfp(db, admin, rfp.id, changes, now=NOW)

    run_db(scenario)


def test_draft_cannot_be_closed_directly(run_db):
    async def scenario(db):
        admin = principal_of(await make_profile(db, role="admin"))
        rfp = await make_rfp(db, status="draft")

        with pytest.raises(InvalidStateTransition):
            await close_rfp(db, admin, rfp.id, now=NOW)

    run_db(scenario)


def test_non_admin_edits_are_refused(run_db):
    async def scenario(db):
        bidder = principal_of(await make_profile(db, role="bidder"))
        public = await make_rfp(db, visibility="public")
        hidden = await make_rfp(db, visibility="confidential")

        with pytest.raises(NotPermitted) as exc:
            await update_rfp(db, bidder, public.id, RFPUpdate(title="Mine now"), now=NOW)
        assert exc.value.decision.reason == "admin_only"

        with pytest.raises(NotPermitted) as exc:
            await close_rfp(db, bidder, hidden.id, now=NOW)
        assert exc.value.decision.reason == "not_visible"

    run_db(scenario)


def test_milestones_are_stored_in_chronological_order(run_db):
    async def scenario(db):
        admin = principal_of(await make_profile(db, role="admin"))
        rfp = await make_rfp(db, status="draft")
        milestones = [
            Milestone(id="m2", title="Site visit", date="2026-03-10T09:00:00",
                      timezone="America/New_York", has_time=True),
            Milestone(id="m1", title="Questions due", date="2026-03-10"),
        ]

        await update_rfp(db, admin, rfp.id, RFPUpdate(milestones=milestones), now=NOW)

        # 09:00 New York is 13:00 UTC, after the noon-UTC date-only milestone
        assert [m["id"] for m in rfp.milestones] == ["m1", "m2"]

    run_db(scenario)


def test_check_rfp_expiration(run_db):
    async def scenario(db):
        expired = await make_rfp(db, closing_date=NOW - days(2))
        upcoming = await make_rfp(db, closing_date=NOW + days(4) + timedelta(hours=6))

        result = await check_rfp_expiration(db, expired.id, NOW)
        assert result.was_updated and result.is_expired
        assert result.status == "closed"

        again = await check_rfp_expiration(db, expired.id, NOW)
        assert not again.was_updated and again.status == "closed"

        ahead = await check_rfp_expiration(db, upcoming.id, NOW)
        assert not ahead.was_updated and not ahead.is_expired
        assert ahead.days_until_close == 4

    run_db(scenario)
