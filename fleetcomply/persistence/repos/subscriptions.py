from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.domain.models import UserSubscription
from fleetcomply.domain.state import GATING_SUBSCRIPTION_STATUSES, SubscriptionStatus


async def get_latest_gating_subscription(
    session: AsyncSession, user_id: str
) -> UserSubscription | None:
    # Only the most recently created active/trial record is authoritative.
    result = await session.execute(
        select(UserSubscription)
        .where(
            UserSubscription.user_id == user_id,
            UserSubscription.status.in_([status.value for status in GATING_SUBSCRIPTION_STATUSES]),
        )
        .order_by(UserSubscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def has_trial(session: AsyncSession, user_id: str) -> bool:
    result = await session.execute(
        select(UserSubscription.id)
        .where(
            UserSubscription.user_id == user_id,
            UserSubscription.status == SubscriptionStatus.TRIAL.value,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def add_subscription(session: AsyncSession, subscription: UserSubscription) -> UserSubscription:
    session.add(subscription)
    await session.flush()
    return subscription
