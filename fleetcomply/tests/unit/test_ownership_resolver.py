from __future__ import annotations

from types import SimpleNamespace

import pytest

from fleetcomply.domain.models import RenewalItem
from fleetcomply.services.authz.ownership import ownership_stamp, resolve


def _record(created_by: str, stand_alone_id: str | None = None) -> RenewalItem:
    return RenewalItem(
        id="r1",
        type="insurance",
        item="Fleet policy",
        status="active",
        created_by=created_by,
        stand_alone_id=stand_alone_id,
    )


def test_delegated_record_is_owned_by_manager_and_client() -> None:
    record = _record("manager-1", "client-1")
    assert resolve(record, "client-1") is True
    assert resolve(record, "manager-1") is True
    assert resolve(record, "manager-2") is False


def test_direct_record_is_owned_only_by_creator() -> None:
    record = _record("client-1")
    assert resolve(record, "client-1") is True
    assert resolve(record, "client-2") is False


@pytest.mark.parametrize("acting_id", [None, ""])
def test_missing_acting_id_never_matches_null_stand_alone_id(acting_id: str | None) -> None:
    assert resolve(_record("client-1"), acting_id) is False


def test_resolver_accepts_mappings_and_plain_objects() -> None:
    assert resolve({"created_by": "a", "stand_alone_id": "b"}, "b") is True
    assert resolve(SimpleNamespace(created_by="a"), "a") is True
    assert resolve(SimpleNamespace(owner="a"), "a") is False


def test_resolver_has_no_role_override() -> None:
    # An admin id that is neither creator nor client is simply not an owner.
    assert resolve(_record("manager-1", "client-1"), "platform-admin") is False


def test_ownership_stamp_records_client_only_when_delegated() -> None:
    assert ownership_stamp(caller_id="client-1", effective_id="client-1") == {
        "created_by": "client-1",
        "stand_alone_id": None,
    }
    assert ownership_stamp(caller_id="manager-1", effective_id="client-1") == {
        "created_by": "manager-1",
        "stand_alone_id": "client-1",
    }
