from __future__ import annotations

from typing import Any

from fleetcomply.persistence.guards import OWNER_FIELDS


def resolve(resource: Any, acting_id: str | None) -> bool:
    """Return True iff ``acting_id`` owns ``resource``.

    Ownership is ``created_by`` or, when set, ``stand_alone_id``. There is no
    role override here; an admin bypass belongs to the caller. Works on ORM
    rows, dataclasses and plain mappings so services and tests share one rule.
    """
    if not acting_id:
        return False
    for field in OWNER_FIELDS:
        value = resource.get(field) if isinstance(resource, dict) else getattr(resource, field, None)
        if value is not None and str(value) == str(acting_id):
            return True
    return False


def ownership_stamp(*, caller_id: str, effective_id: str) -> dict[str, str | None]:
    # Direct writes rely on created_by alone; delegated writes also record the client.
    return {
        "created_by": caller_id,
        "stand_alone_id": effective_id if effective_id != caller_id else None,
    }
