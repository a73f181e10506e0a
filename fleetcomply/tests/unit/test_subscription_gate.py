from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from fleetcomply.core.config import get_settings
from fleetcomply.core.errors import (
    SubscriptionAlreadyActiveError,
    SubscriptionExpiredError,
    TrialAlreadyUsedError,
)
from fleetcomply.domain.state import SubscriptionStatus
from fleetcomply.persistence.db import SessionLocal
from fleetcomply.services import subscriptions
from fleetcomply.tests.utils.auth import create_test_user


NOW = datetime(2026, 7, 1, 9, 0, tzinfo=timezone.utc)


async def _user() -> str:
    user_id, _headers = await create_test_user(role="standalone_user")
    return user_id


@pytest.mark.asyncio
async def test_user_without_records_is_expired() -> None:
    user_id = await _user()
    async with SessionLocal() as session:
        state = await subscriptions.remaining(session, user_id, now=NOW)
        assert state.expired is True
        assert state.days_remaining == 0
        with pytest.raises(SubscriptionExpiredError):
            await subscriptions.require_active_subscription(session, user_id, now=NOW)


@pytest.mark.asyncio
async def test_most_recent_gating_record_wins() -> None:
    user_id = await _user()
    async with SessionLocal() as session:
        await subscriptions.record_subscription(
            session,
            user_id=user_id,
            status=SubscriptionStatus.ACTIVE,
            start_date=NOW - timedelta(days=40),
            end_date=NOW + timedelta(days=90),
            created_at=NOW - timedelta(days=40),
        )
        # A newer record supersedes the older, longer one.
        await subscriptions.record_subscription(
            session,
            user_id=user_id,
            status=SubscriptionStatus.ACTIVE,
            start_date=NOW - timedelta(days=1),
            end_date=NOW + timedelta(days=5),
            created_at=NOW - timedelta(days=1),
        )
        # Non-gating statuses are ignored even when newest.
        await subscriptions.record_subscription(
            session,
            user_id=user_id,
            status=SubscriptionStatus.CANCELLED,
            end_date=NOW + timedelta(days=365),
            created_at=NOW,
        )
        state = await subscriptions.remaining(session, user_id, now=NOW)
        assert state.days_remaining == 5
        assert state.expired is False


@pytest.mark.asyncio
async def test_gates_are_opposite_policies() -> None:
    user_id = await _user()
    async with SessionLocal() as session:
        await subscriptions.record_subscription(
            session,
            user_id=user_id,
            status=SubscriptionStatus.ACTIVE,
            start_date=NOW - timedelta(days=1),
            end_date=NOW + timedelta(days=2),
            created_at=NOW - timedelta(days=1),
        )
        await subscriptions.require_active_subscription(session, user_id, now=NOW)
        with pytest.raises(SubscriptionAlreadyActiveError):
            await subscriptions.require_no_active_subscription(session, user_id, now=NOW)

        later = NOW + timedelta(days=2)
        with pytest.raises(SubscriptionExpiredError):
            await subscriptions.require_active_subscription(session, user_id, now=later)
        await subscriptions.require_no_active_subscription(session, user_id, now=later)


@pytest.mark.asyncio
async def test_lifetime_subscription_never_blocks() -> None:
    user_id = await _user()
    async with SessionLocal() as session:
        await subscriptions.record_subscription(
            session,
            user_id=user_id,
            status=SubscriptionStatus.ACTIVE,
            is_lifetime=True,
            created_at=NOW - timedelta(days=1000),
        )
        state = await subscriptions.require_active_subscription(
            session, user_id, now=NOW + timedelta(days=5000)
        )
        assert state.is_lifetime is True
        assert state.days_remaining is None


@pytest.mark.asyncio
async def test_trial_is_granted_once(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(get_settings(), "subscription_trial_days", 14)
    user_id = await _user()
    async with SessionLocal() as session:
        trial = await subscriptions.start_trial(session, user_id, now=NOW)
        assert trial.status == SubscriptionStatus.TRIAL.value
        state = await subscriptions.remaining(session, user_id, now=NOW)
        assert state.days_remaining == 14

        with pytest.raises(SubscriptionAlreadyActiveError):
            await subscriptions.start_trial(session, user_id, now=NOW + timedelta(days=1))
        with pytest.raises(TrialAlreadyUsedError):
            await subscriptions.start_trial(session, user_id, now=NOW + timedelta(days=30))
