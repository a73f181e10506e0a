from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from fleetcomply.domain.state import LIVE_STATUSES


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    # Role is fixed at creation; authorization never re-derives it.
    role: Mapped[str] = mapped_column(String, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    # Keep a short prefix for operator display without exposing the secret.
    key_prefix: Mapped[str] = mapped_column(String)
    # Store only the hashed key to avoid plaintext credentials at rest.
    key_hash: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ClientRoster(Base):
    __tablename__ = "client_rosters"

    # One roster per transport manager.
    manager_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), primary_key=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    # Bumped by every successful roster write; compare-and-swap target for concurrent updates.
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


LIVE_ENTRY_CLAUSE = "status IN ({})".format(
    ", ".join(f"'{status.value}'" for status in sorted(LIVE_STATUSES, key=lambda s: s.value))
)


class ClientRosterEntry(Base):
    __tablename__ = "client_roster_entries"
    __table_args__ = (
        UniqueConstraint("manager_id", "client_id", name="uq_client_roster_entries_pair"),
        Index("ix_client_roster_entries_client_status", "client_id", "status"),
        # A client may hold at most one live entry across every roster.
        Index(
            "uq_client_roster_entries_live_client",
            "client_id",
            unique=True,
            postgresql_where=text(LIVE_ENTRY_CLAUSE),
            sqlite_where=text(LIVE_ENTRY_CLAUSE),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    manager_id: Mapped[str] = mapped_column(
        String, ForeignKey("client_rosters.manager_id"), index=True
    )
    client_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"))
    status: Mapped[str] = mapped_column(String, nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"
    __table_args__ = (
        Index("ix_user_subscriptions_user_created", "user_id", "created_at"),
    )

    # Append-only: billing events supersede records instead of mutating them.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"))
    status: Mapped[str] = mapped_column(String, nullable=False)
    plan_id: Mapped[str | None] = mapped_column(String, nullable=True)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_lifetime: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class RenewalItem(Base):
    __tablename__ = "renewal_items"
    __table_args__ = (
        Index("ix_renewal_items_created_by", "created_by"),
        Index("ix_renewal_items_stand_alone_id", "stand_alone_id"),
        Index("ix_renewal_items_status", "status"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    type: Mapped[str] = mapped_column(String)
    item: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider_or_issuer: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_or_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    reminder_set: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # Cached derivation of the date fields; reconciliation repairs drift.
    status: Mapped[str] = mapped_column(String, nullable=False)
    # Writer identity (manager or standalone user).
    created_by: Mapped[str] = mapped_column(String, ForeignKey("users.id"))
    # Set only when a manager writes on behalf of a delegated client.
    stand_alone_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
