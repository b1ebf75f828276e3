from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from schemas.common import ensure_utc
from schemas.rfp import Milestone, order_milestones


def test_date_only_milestone_pins_to_noon_utc():
    milestone = Milestone(id="m1", title="Site visit", date="2026-03-10", timezone="Asia/Tokyo")
    assert milestone.as_utc() == datetime(2026, 3, 10, 12, tzinfo=timezone.utc)


def test_timed_milestone_uses_its_zone():
    milestone = Milestone(id="m2", title="Briefing", date="2026-07-01T09:00:00",
                          timezone="Europe/London", has_time=True)
    assert milestone.as_utc() == datetime(2026, 7, 1, 8, tzinfo=timezone.utc)


def test_explicit_offset_is_kept():
    milestone = Milestone(id="m3", title="Deadline", date="2026-07-01T09:00:00+02:00",
                          timezone="America/Chicago", has_time=True)
    assert milestone.as_utc() == datetime(2026, 7, 1, 7, tzinfo=timezone.utc)


def test_ordering_is_stable_for_ties():
    first = Milestone(id="a", title="A", date="2026-05-01")
    second = Milestone(id="b", title="B", date="2026-05-01T12:00:00Z", has_time=True)
    earlier = Milestone(id="c", title="C", date="2026-04-30")

    assert [m.id for m in order_milestones([first, second, earlier])] == ["c", "a", "b"]


def test_invalid_milestone_values_are_rejected():
    with pytest.raises(ValidationError):
        Milestone(id="x", title="Bad zone", date="2026-05-01", timezone="Mars/Olympus")
    with pytest.raises(ValidationError):
        Milestone(id="y", title="Bad date", date="first of May")


def test_ensure_utc_treats_naive_values_as_utc():
    assert ensure_utc(datetime(2026, 1, 1, 8)) == datetime(2026, 1, 1, 8, tzinfo=timezone.utc)
    assert ensure_utc(None) is None
