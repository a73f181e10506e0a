from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    PLATFORM_ADMIN = "platform_admin"
    TRANSPORT_MANAGER = "transport_manager"
    STANDALONE_USER = "standalone_user"
    STAFF = "staff"
    OTHER = "other"


class DelegationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REVOKED = "revoked"
    LEAVE_REQUESTED = "leave_requested"
    REMOVE_REQUESTED = "remove_requested"


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"


class RenewalStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    DUE_SOON = "due_soon"
    EXPIRED = "expired"


# Entries that occupy a roster slot.
CAPACITY_STATUSES = frozenset({DelegationStatus.PENDING, DelegationStatus.APPROVED})
# Entries that bind a client to a manager; a client holds at most one across all rosters.
LIVE_STATUSES = frozenset(
    {
        DelegationStatus.PENDING,
        DelegationStatus.APPROVED,
        DelegationStatus.LEAVE_REQUESTED,
        DelegationStatus.REMOVE_REQUESTED,
    }
)
# Subscription records that can gate access.
GATING_SUBSCRIPTION_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL})
