from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from fleetcomply.core.errors import (
    AccessDeniedError,
    DelegateNotApprovedError,
    ResourceNotFoundError,
    SubscriptionExpiredError,
)
from fleetcomply.domain.state import RenewalStatus
from fleetcomply.persistence.db import SessionLocal
from fleetcomply.services import delegation
from fleetcomply.services.authz.gateway import Identity
from fleetcomply.services.renewals import service as renewals_service
from fleetcomply.tests.utils.auth import create_test_user, grant_subscription


NOW = datetime.now(timezone.utc)
TODAY = NOW.date()


def _values(**overrides) -> dict:
    values = {
        "type": "MOT",
        "item": "Vehicle AB12 CDE",
        "provider_or_issuer": "DVSA",
        "expiry_or_due_date": TODAY + timedelta(days=60),
    }
    values.update(overrides)
    return values


async def _subscribed(role: str) -> Identity:
    user_id, _headers = await create_test_user(role=role)
    await grant_subscription(user_id)
    return Identity(user_id=user_id, role=role)


@pytest.mark.asyncio
async def test_create_derives_status_and_stamps_direct_owner() -> None:
    client = await _subscribed("standalone_user")
    async with SessionLocal() as session:
        renewal = await renewals_service.create_renewal(
            session, caller=client, values=_values(expiry_or_due_date=TODAY + timedelta(days=3))
        )
        assert renewal.status == RenewalStatus.DUE_SOON.value
        assert renewal.created_by == client.user_id
        assert renewal.stand_alone_id is None


@pytest.mark.asyncio
async def test_manager_writes_are_stamped_with_client_and_visible_to_both() -> None:
    manager = await _subscribed("transport_manager")
    client = await _subscribed("standalone_user")
    async with SessionLocal() as session:
        await delegation.enroll_client(session, manager_id=manager.user_id, client_id=client.user_id)
        renewal = await renewals_service.create_renewal(
            session,
            caller=manager,
            values=_values(),
            target_stand_alone_id=client.user_id,
        )
        assert renewal.created_by == manager.user_id
        assert renewal.stand_alone_id == client.user_id

        fetched = await renewals_service.get_renewal(session, caller=client, renewal_id=renewal.id)
        assert fetched.id == renewal.id
        rows, total = await renewals_service.list_renewals(
            session, caller=manager, target_stand_alone_id=client.user_id
        )
        assert total == 1 and rows[0].id == renewal.id


@pytest.mark.asyncio
async def test_list_is_scoped_and_searchable() -> None:
    client = await _subscribed("standalone_user")
    other = await _subscribed("standalone_user")
    async with SessionLocal() as session:
        await renewals_service.create_renewal(session, caller=client, values=_values(item="Tachograph calibration"))
        await renewals_service.create_renewal(session, caller=client, values=_values(type="Insurance", item="Fleet"))
        await renewals_service.create_renewal(session, caller=other, values=_values(item="Tachograph other"))

        rows, total = await renewals_service.list_renewals(session, caller=client)
        assert total == 2
        rows, total = await renewals_service.list_renewals(session, caller=client, search="TACHO")
        assert total == 1 and rows[0].item == "Tachograph calibration"
        rows, total = await renewals_service.list_renewals(session, caller=client, offset=1, limit=1)
        assert total == 2 and len(rows) == 1


@pytest.mark.asyncio
async def test_update_recomputes_status_from_merged_dates() -> None:
    client = await _subscribed("standalone_user")
    async with SessionLocal() as session:
        renewal = await renewals_service.create_renewal(session, caller=client, values=_values())
        assert renewal.status == RenewalStatus.ACTIVE.value

        updated = await renewals_service.update_renewal(
            session,
            caller=client,
            renewal_id=renewal.id,
            changes={"expiry_or_due_date": TODAY - timedelta(days=1)},
        )
        assert updated.status == RenewalStatus.EXPIRED.value

        # A future start date outranks the past due date.
        updated = await renewals_service.update_renewal(
            session,
            caller=client,
            renewal_id=renewal.id,
            changes={"notes": "renewal booked", "start_date": TODAY + timedelta(days=10)},
        )
        assert updated.notes == "renewal booked"
        assert updated.status == RenewalStatus.SCHEDULED.value

        updated = await renewals_service.update_renewal(
            session,
            caller=client,
            renewal_id=renewal.id,
            changes={
                "start_date": None,
                "expiry_or_due_date": None,
                "reminder_set": None,
                "status": "expired",
            },
        )
        # Caller-supplied status is ignored and required fields survive explicit nulls.
        assert updated.status == RenewalStatus.ACTIVE.value
        assert updated.reminder_set is False


@pytest.mark.asyncio
async def test_foreign_and_missing_records_are_indistinguishable() -> None:
    owner = await _subscribed("standalone_user")
    stranger = await _subscribed("standalone_user")
    async with SessionLocal() as session:
        renewal = await renewals_service.create_renewal(session, caller=owner, values=_values())
        with pytest.raises(AccessDeniedError):
            await renewals_service.get_renewal(session, caller=stranger, renewal_id=renewal.id)
        with pytest.raises(ResourceNotFoundError):
            await renewals_service.get_renewal(session, caller=stranger, renewal_id="missing")
        with pytest.raises(AccessDeniedError):
            await renewals_service.delete_renewal(session, caller=stranger, renewal_id=renewal.id)


@pytest.mark.asyncio
async def test_unapproved_manager_is_denied() -> None:
    manager = await _subscribed("transport_manager")
    client = await _subscribed("standalone_user")
    async with SessionLocal() as session:
        renewal = await renewals_service.create_renewal(session, caller=client, values=_values())
        await delegation.request_join(session, client_id=client.user_id, manager_id=manager.user_id)
        with pytest.raises(DelegateNotApprovedError):
            await renewals_service.get_renewal(
                session, caller=manager, renewal_id=renewal.id, target_stand_alone_id=client.user_id
            )
        with pytest.raises(DelegateNotApprovedError):
            await renewals_service.list_renewals(
                session, caller=manager, target_stand_alone_id=client.user_id
            )


@pytest.mark.asyncio
async def test_expired_subscription_blocks_mutations_but_not_reads() -> None:
    client_id, _headers = await create_test_user(role="standalone_user")
    client = Identity(user_id=client_id, role="standalone_user")
    await grant_subscription(client_id, days=30)
    async with SessionLocal() as session:
        renewal = await renewals_service.create_renewal(session, caller=client, values=_values())

    await grant_subscription(client_id, days=-1)
    async with SessionLocal() as session:
        with pytest.raises(SubscriptionExpiredError):
            await renewals_service.create_renewal(session, caller=client, values=_values())
        with pytest.raises(SubscriptionExpiredError):
            await renewals_service.update_renewal(
                session, caller=client, renewal_id=renewal.id, changes={"notes": "x"}
            )
        with pytest.raises(SubscriptionExpiredError):
            await renewals_service.delete_renewal(session, caller=client, renewal_id=renewal.id)
        fetched = await renewals_service.get_renewal(session, caller=client, renewal_id=renewal.id)
        assert fetched.id == renewal.id


@pytest.mark.asyncio
async def test_delete_removes_record() -> None:
    client = await _subscribed("standalone_user")
    async with SessionLocal() as session:
        renewal = await renewals_service.create_renewal(session, caller=client, values=_values())
        await renewals_service.delete_renewal(session, caller=client, renewal_id=renewal.id)
        with pytest.raises(ResourceNotFoundError):
            await renewals_service.get_renewal(session, caller=client, renewal_id=renewal.id)
