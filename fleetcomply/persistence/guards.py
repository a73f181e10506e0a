from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import or_


# Columns that grant access to an owned record. The ownership resolver and the
# list filter both read this tuple so single-record and list checks cannot drift.
OWNER_FIELDS: tuple[str, ...] = ("created_by", "stand_alone_id")


@dataclass(frozen=True)
class OwnerPredicateError(RuntimeError):
    # Surface list queries issued without an effective identity.
    message: str


def require_owner_id(owner_id: str | None) -> None:
    # An empty owner id would match rows with a null stand_alone_id.
    if not owner_id:
        raise OwnerPredicateError("Owner predicate required but owner id is missing")


def owner_predicate(model, owner_id: str) -> object:
    # Build ownership predicates through a single helper to guarantee list/record parity.
    require_owner_id(owner_id)
    return or_(*(getattr(model, field) == owner_id for field in OWNER_FIELDS))
