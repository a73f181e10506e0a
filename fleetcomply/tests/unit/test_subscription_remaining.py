from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fleetcomply.domain.models import UserSubscription
from fleetcomply.services.subscriptions import compute_remaining


NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _record(*, end_date: datetime | None, is_lifetime: bool = False) -> UserSubscription:
    return UserSubscription(
        id="s1",
        user_id="u1",
        status="active",
        start_date=NOW - timedelta(days=10),
        end_date=end_date,
        is_lifetime=is_lifetime,
        created_at=NOW - timedelta(days=10),
    )


def test_no_record_is_expired() -> None:
    state = compute_remaining(None, NOW)
    assert state.expired is True
    assert state.days_remaining == 0
    assert state.is_lifetime is False


def test_end_equal_to_now_is_expired_with_zero_days() -> None:
    state = compute_remaining(_record(end_date=NOW), NOW)
    assert state.expired is True
    assert state.days_remaining == 0


def test_partial_day_rounds_up() -> None:
    state = compute_remaining(_record(end_date=NOW + timedelta(hours=1)), NOW)
    assert state.expired is False
    assert state.days_remaining == 1
    state = compute_remaining(_record(end_date=NOW + timedelta(days=2, seconds=1)), NOW)
    assert state.days_remaining == 3


def test_past_end_clamps_to_zero() -> None:
    state = compute_remaining(_record(end_date=NOW - timedelta(days=3)), NOW)
    assert state.expired is True
    assert state.days_remaining == 0


def test_lifetime_never_expires() -> None:
    state = compute_remaining(_record(end_date=None, is_lifetime=True), NOW)
    assert state.expired is False
    assert state.is_lifetime is True
    assert state.days_remaining is None


def test_missing_end_date_is_expired() -> None:
    assert compute_remaining(_record(end_date=None), NOW).expired is True


def test_naive_end_date_is_treated_as_utc() -> None:
    naive_end = (NOW + timedelta(days=2)).replace(tzinfo=None)
    assert compute_remaining(_record(end_date=naive_end), NOW).days_remaining == 2
