"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

_LIVE_ENTRY_CLAUSE = "status IN ('approved', 'leave_requested', 'pending', 'remove_requested')"


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=True, unique=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "api_keys",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("key_prefix", sa.String(), nullable=False),
        sa.Column("key_hash", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])
    # Hash lookups drive every authenticated request.
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"], unique=True)

    op.create_table(
        "client_rosters",
        sa.Column("manager_id", sa.String(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        # Compare-and-swap counter for concurrent roster writes.
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "client_roster_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "manager_id",
            sa.String(),
            sa.ForeignKey("client_rosters.manager_id"),
            nullable=False,
        ),
        sa.Column("client_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("manager_id", "client_id", name="uq_client_roster_entries_pair"),
    )
    op.create_index("ix_client_roster_entries_manager_id", "client_roster_entries", ["manager_id"])
    # Cross-roster lookups of a client's live assignment.
    op.create_index(
        "ix_client_roster_entries_client_status",
        "client_roster_entries",
        ["client_id", "status"],
    )
    # At most one live entry per client across all rosters.
    op.create_index(
        "uq_client_roster_entries_live_client",
        "client_roster_entries",
        ["client_id"],
        unique=True,
        postgresql_where=sa.text(_LIVE_ENTRY_CLAUSE),
        sqlite_where=sa.text(_LIVE_ENTRY_CLAUSE),
    )

    op.create_table(
        "user_subscriptions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("plan_id", sa.String(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_lifetime", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_user_subscriptions_user_created",
        "user_subscriptions",
        ["user_id", "created_at"],
    )

    op.create_table(
        "renewal_items",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("item", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("provider_or_issuer", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("expiry_or_due_date", sa.Date(), nullable=True),
        sa.Column("reminder_set", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reminder_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_by", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("stand_alone_id", sa.String(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_renewal_items_created_by", "renewal_items", ["created_by"])
    op.create_index("ix_renewal_items_stand_alone_id", "renewal_items", ["stand_alone_id"])
    op.create_index("ix_renewal_items_status", "renewal_items", ["status"])


def downgrade() -> None:
    op.drop_index("ix_renewal_items_status", table_name="renewal_items")
    op.drop_index("ix_renewal_items_stand_alone_id", table_name="renewal_items")
    op.drop_index("ix_renewal_items_created_by", table_name="renewal_items")
    op.drop_table("renewal_items")

    op.drop_index("ix_user_subscriptions_user_created", table_name="user_subscriptions")
    op.drop_table("user_subscriptions")

    op.drop_index("uq_client_roster_entries_live_client", table_name="client_roster_entries")
    op.drop_index("ix_client_roster_entries_client_status", table_name="client_roster_entries")
    op.drop_index("ix_client_roster_entries_manager_id", table_name="client_roster_entries")
    op.drop_table("client_roster_entries")
    op.drop_table("client_rosters")

    op.drop_index("ix_api_keys_key_hash", table_name="api_keys")
    op.drop_index("ix_api_keys_user_id", table_name="api_keys")
    op.drop_table("api_keys")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_table("users")
