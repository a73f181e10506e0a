from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetcomply.domain.models import User


async def get_user(session: AsyncSession, user_id: str) -> User | None:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def list_active_by_role(session: AsyncSession, role: str) -> list[User]:
    # Stable ordering keeps directory listings deterministic.
    result = await session.execute(
        select(User)
        .where(User.role == role, User.is_active.is_(True))
        .order_by(User.full_name, User.id)
    )
    return list(result.scalars().all())
