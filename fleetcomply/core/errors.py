from __future__ import annotations


class FleetComplyError(Exception):
    """Base error for fleetcomply."""


class DelegationError(FleetComplyError):
    """Roster rule violation; safe to describe to the roster's own parties."""


class CapacityExceededError(DelegationError):
    """Roster already holds `capacity` pending or approved entries."""

    def __init__(self, *, capacity: int, current: int) -> None:
        super().__init__(f"Client limit reached. Maximum: {capacity}. Current: {current}")
        self.capacity = capacity
        self.current = current


class AlreadyPresentError(DelegationError):
    """Client already holds a non-revoked entry in this roster."""


class AlreadyAssignedError(DelegationError):
    """Client already holds a live entry in another manager's roster."""


class NotATransportManagerError(DelegationError):
    """Target of a join request is not an active transport manager."""


class EntryNotFoundError(DelegationError):
    """No roster entry exists for the manager/client pair."""


class InvalidTransitionError(DelegationError):
    """Requested status change is not an edge of the delegation state machine."""

    def __init__(self, *, current: str, requested: str) -> None:
        super().__init__(f"Cannot move client from {current} to {requested}")
        self.current = current
        self.requested = requested


class RosterConflictError(DelegationError):
    """Concurrent roster updates kept winning the compare-and-swap."""


class AuthorizationError(FleetComplyError):
    """Base for denials; the HTTP boundary collapses every subclass into one response."""

    reason = "denied"


class DelegateNotApprovedError(AuthorizationError):
    reason = "delegate_not_approved"


class AccessDeniedError(AuthorizationError):
    reason = "access_denied"


class ImpersonationNotAllowedError(AuthorizationError):
    reason = "impersonation_rejected"


class StandAloneIdRequiredError(AuthorizationError):
    reason = "stand_alone_id_required"


class RoleNotPermittedError(AuthorizationError):
    reason = "role_not_permitted"


class SubscriptionError(FleetComplyError):
    """Subscription gate rejection."""


class SubscriptionExpiredError(SubscriptionError):
    """No active subscription or trial; the caller needs to renew."""


class SubscriptionAlreadyActiveError(SubscriptionError):
    """Caller already holds a running subscription or trial."""


class TrialAlreadyUsedError(SubscriptionError):
    """Caller has consumed their one trial."""


class ResourceNotFoundError(AuthorizationError):
    """Record missing; rendered exactly like a denial so existence never leaks."""

    reason = "not_found"
