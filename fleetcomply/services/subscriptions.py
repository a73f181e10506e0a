from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import math
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.core.config import get_settings
from fleetcomply.core.errors import (
    SubscriptionAlreadyActiveError,
    SubscriptionExpiredError,
    TrialAlreadyUsedError,
)
from fleetcomply.domain.models import UserSubscription
from fleetcomply.domain.state import SubscriptionStatus
from fleetcomply.persistence.repos import subscriptions as subscriptions_repo


logger = logging.getLogger(__name__)

_DAY_SECONDS = 86400


@dataclass(frozen=True)
class SubscriptionRemaining:
    # days_remaining is None for lifetime plans, which never run out.
    days_remaining: int | None
    expired: bool
    is_lifetime: bool
    record: UserSubscription | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Some drivers hand back naive timestamps; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_remaining(record: UserSubscription | None, now: datetime) -> SubscriptionRemaining:
    """Evaluate one subscription record at ``now``.

    Days are the ceiling of the remaining time in whole days, so any partial
    day counts as a full one, and zero or less is expired. A non-lifetime
    record without an end date cannot be evaluated and counts as expired.
    """
    if record is None:
        return SubscriptionRemaining(days_remaining=0, expired=True, is_lifetime=False)
    if record.is_lifetime:
        return SubscriptionRemaining(days_remaining=None, expired=False, is_lifetime=True, record=record)
    if record.end_date is None:
        return SubscriptionRemaining(days_remaining=0, expired=True, is_lifetime=False, record=record)
    delta = _as_utc(record.end_date) - _as_utc(now)
    days = math.ceil(delta.total_seconds() / _DAY_SECONDS)
    if days <= 0:
        return SubscriptionRemaining(days_remaining=0, expired=True, is_lifetime=False, record=record)
    return SubscriptionRemaining(days_remaining=days, expired=False, is_lifetime=False, record=record)


async def remaining(
    session: AsyncSession, user_id: str, *, now: datetime | None = None
) -> SubscriptionRemaining:
    record = await subscriptions_repo.get_latest_gating_subscription(session, user_id)
    return compute_remaining(record, now or _utc_now())


async def require_active_subscription(
    session: AsyncSession, user_id: str, *, now: datetime | None = None
) -> SubscriptionRemaining:
    # Mutation gate: blocks writes once the subscription has lapsed.
    state = await remaining(session, user_id, now=now)
    if state.expired:
        logger.info("subscription_gate_blocked user_id=%s", user_id)
        raise SubscriptionExpiredError(
            "Your subscription has expired. Please renew to continue."
        )
    return state


async def require_no_active_subscription(
    session: AsyncSession, user_id: str, *, now: datetime | None = None
) -> SubscriptionRemaining:
    # Purchase gate: a running plan or trial cannot be stacked.
    state = await remaining(session, user_id, now=now)
    if not state.expired:
        raise SubscriptionAlreadyActiveError("An active subscription or trial already exists")
    return state


async def record_subscription(
    session: AsyncSession,
    *,
    user_id: str,
    status: SubscriptionStatus,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    is_lifetime: bool = False,
    plan_id: str | None = None,
    created_at: datetime | None = None,
) -> UserSubscription:
    """Append a subscription record; billing events never edit existing rows."""
    subscription = UserSubscription(
        id=uuid4().hex,
        user_id=user_id,
        status=SubscriptionStatus(status).value,
        plan_id=plan_id,
        start_date=start_date,
        end_date=end_date,
        is_lifetime=is_lifetime,
        created_at=created_at or _utc_now(),
    )
    await subscriptions_repo.add_subscription(session, subscription)
    await session.commit()
    logger.info(
        "subscription_recorded user_id=%s status=%s lifetime=%s",
        user_id,
        subscription.status,
        is_lifetime,
    )
    return subscription


async def start_trial(
    session: AsyncSession, user_id: str, *, now: datetime | None = None
) -> UserSubscription:
    current = now or _utc_now()
    await require_no_active_subscription(session, user_id, now=current)
    if await subscriptions_repo.has_trial(session, user_id):
        raise TrialAlreadyUsedError("Trial has already been used for this account")
    days = int(get_settings().subscription_trial_days)
    return await record_subscription(
        session,
        user_id=user_id,
        status=SubscriptionStatus.TRIAL,
        start_date=current,
        end_date=current + timedelta(days=days),
        created_at=current,
    )
