from datetime import timedelta

import pytest

from models import BloodGroup, BloodUnitCreate, ComponentType, ComponentSpec, UnitStatus
from services.errors import InvalidTransition, NotFound, ValidationFailed, VolumeExceeded
from services.inventory import (
    days_until_expiry, is_expired, is_expiring_soon, list_inventory, inventory_summary,
    sweep_expired, add_unit, discard_unit, get_unit, load_unit, reconcile_expiry
)
from services.separation import separate_components
from conftest import NOW, make_unit, unit_status, create_tested_donation


async def test_days_until_expiry_rounds_up(db):
    unit = await make_unit(db, expires_in_days=3)

    assert days_until_expiry(unit, NOW) == 3
    assert days_until_expiry(unit, NOW + timedelta(hours=1)) == 3
    assert days_until_expiry(unit, NOW + timedelta(days=2, hours=23)) == 1
    assert days_until_expiry(unit, NOW + timedelta(days=3)) == 0
    assert is_expired(unit, NOW + timedelta(days=3))
    assert not is_expired(unit, NOW + timedelta(days=2, hours=23))


@pytest.mark.parametrize("days,expected", [(8, False), (7, True), (1, True), (0, False), (-2, False)])
async def test_expiring_soon_window(db, days, expected):
    unit = await make_unit(db, expires_in_days=days)
    assert is_expiring_soon(unit, NOW) is expected


@pytest.mark.parametrize("status", [UnitStatus.RESERVED, UnitStatus.USED, UnitStatus.DISCARDED])
async def test_only_available_units_are_expiring_soon(db, status):
    unit = await make_unit(db, expires_in_days=3, status=status)
    assert not is_expiring_soon(unit, NOW)


async def test_list_reports_expired_without_writing(db):
    stale = await make_unit(db, expires_in_days=-1)
    await make_unit(db, expires_in_days=10)

    expired = await list_inventory(db, status="expired", now=NOW)

    assert [v.id for v in expired] == [stale.id]
    assert expired[0].effective_status == UnitStatus.EXPIRED
    assert await unit_status(db, stale.id) == "available"


async def test_list_filters_and_orders_by_expiry(db):
    late = await make_unit(db, BloodGroup.A_POSITIVE, expires_in_days=30)
    soon = await make_unit(db, BloodGroup.A_POSITIVE, expires_in_days=2)
    await make_unit(db, BloodGroup.B_POSITIVE, expires_in_days=1)
    await make_unit(db, BloodGroup.A_POSITIVE, expires_in_days=5, component_type=ComponentType.PLASMA)

    units = await list_inventory(db, blood_group="A+", component_type="red_cells", now=NOW)

    assert [u.id for u in units] == [soon.id, late.id]
    assert units[0].expiring_soon
    assert not units[1].expiring_soon


async def test_scan_limit_keeps_soonest_expiry(db, monkeypatch):
    import config
    monkeypatch.setattr(config, "INVENTORY_SCAN_LIMIT", 1)
    await make_unit(db, BloodGroup.A_POSITIVE, expires_in_days=30)
    soonest = await make_unit(db, BloodGroup.A_POSITIVE, expires_in_days=3)

    assert [v.id for v in await list_inventory(db, now=NOW)] == [soonest.id]


async def test_list_expiring_within_days(db):
    soon = await make_unit(db, expires_in_days=3)
    await make_unit(db, expires_in_days=12)
    await make_unit(db, expires_in_days=2, status=UnitStatus.RESERVED)
    await make_unit(db, expires_in_days=-1)

    units = await list_inventory(db, expiring_within_days=7, now=NOW)

    assert [u.id for u in units] == [soon.id]


async def test_inventory_summary_counts_usable_units(db):
    await make_unit(db, BloodGroup.O_NEGATIVE, expires_in_days=3)
    await make_unit(db, BloodGroup.O_NEGATIVE, expires_in_days=30, component_type=ComponentType.PLASMA)
    await make_unit(db, BloodGroup.A_POSITIVE, expires_in_days=-1)
    await make_unit(db, BloodGroup.A_POSITIVE, status=UnitStatus.RESERVED)

    summary = await inventory_summary(db, now=NOW)

    assert summary["available_units"] == 2
    assert summary["by_blood_group"] == {"O-": 2}
    assert summary["by_component_type"] == {"red_cells": 1, "plasma": 1}
    assert summary["expiring_soon"] == 1


async def test_reconcile_expiry_writes_expired_status(db):
    unit = await make_unit(db, expires_in_days=-1)

    reconciled = await reconcile_expiry(db, unit, now=NOW)

    assert reconciled.status == UnitStatus.EXPIRED
    assert await db.audit_logs.count_documents({"record_id": unit.id, "action": "expire"}) == 1


async def test_reconcile_leaves_reserved_units_alone(db):
    unit = await make_unit(db, expires_in_days=-1, status=UnitStatus.RESERVED)
    reconciled = await reconcile_expiry(db, unit, now=NOW)
    assert reconciled.status == UnitStatus.RESERVED


async def test_sweep_expired(db):
    first = await make_unit(db, expires_in_days=-3)
    second = await make_unit(db, expires_in_days=0)
    fresh = await make_unit(db, expires_in_days=4)

    assert await sweep_expired(db, now=NOW) == 2
    assert await unit_status(db, first.id) == "expired"
    assert await unit_status(db, second.id) == "expired"
    assert await unit_status(db, fresh.id) == "available"
    assert await sweep_expired(db, now=NOW) == 0


async def test_add_unit_without_donation(db, user):
    unit = await add_unit(db, BloodUnitCreate(
        blood_group=BloodGroup.AB_POSITIVE, volume=450,
        collection_date=NOW, expiry_date=NOW + timedelta(days=35),
    ), user)

    assert unit.unit_number.startswith("BU-")
    assert unit.status == UnitStatus.AVAILABLE
    assert unit.donation_id is None
    assert unit.quality_control is None
    assert (await get_unit(db, unit.unit_number, now=NOW)).days_until_expiry == 35


async def test_add_unit_rejects_backwards_dates(db):
    with pytest.raises(ValidationFailed):
        await add_unit(db, BloodUnitCreate(
            blood_group=BloodGroup.AB_POSITIVE, volume=450,
            collection_date=NOW, expiry_date=NOW - timedelta(days=1),
        ))


async def test_add_unit_requires_processed_donation(db):
    donation = await create_tested_donation(db)

    with pytest.raises(ValidationFailed):
        await add_unit(db, BloodUnitCreate(
            blood_group=donation.blood_group, volume=100, donation_id=donation.id,
            collection_date=NOW, expiry_date=NOW + timedelta(days=5),
        ))

    await separate_components(db, donation.id, [ComponentSpec(component_type=ComponentType.PLASMA, volume=200)])
    unit = await add_unit(db, BloodUnitCreate(
        blood_group=donation.blood_group, volume=100, donation_id=donation.donation_id,
        collection_date=NOW, expiry_date=NOW + timedelta(days=5),
    ))
    assert unit.donation_id == donation.id


async def test_add_unit_with_unknown_donation(db):
    with pytest.raises(NotFound):
        await add_unit(db, BloodUnitCreate(
            blood_group=BloodGroup.O_POSITIVE, volume=100, donation_id="nope",
            collection_date=NOW, expiry_date=NOW + timedelta(days=5),
        ))


async def test_discard_available_unit(db, user):
    unit = await make_unit(db)

    discarded = await discard_unit(db, unit.id, "Bag punctured", user, now=NOW)

    assert discarded.status == UnitStatus.DISCARDED
    assert discarded.discard_reason == "Bag punctured"


async def test_discard_reserved_unit_is_illegal(db):
    unit = await make_unit(db, status=UnitStatus.RESERVED)

    with pytest.raises(InvalidTransition) as excinfo:
        await discard_unit(db, unit.id, "Bag punctured", now=NOW)
    assert excinfo.value.context["current_state"] == "reserved"


@pytest.mark.parametrize("status", [UnitStatus.USED, UnitStatus.DISCARDED, UnitStatus.EXPIRED])
async def test_terminal_units_cannot_be_discarded(db, status):
    unit = await make_unit(db, status=status)
    with pytest.raises(InvalidTransition):
        await discard_unit(db, unit.id, "Cleanup", now=NOW)
    assert (await load_unit(db, unit.id)).status == status


async def test_add_unit_respects_donation_volume(db):
    donation = await create_tested_donation(db, volume=450)
    await separate_components(db, donation.id, [ComponentSpec(component_type=ComponentType.RED_CELLS, volume=300)])

    with pytest.raises(VolumeExceeded):
        await add_unit(db, BloodUnitCreate(
            blood_group=donation.blood_group, volume=200, donation_id=donation.id,
            collection_date=NOW, expiry_date=NOW + timedelta(days=5),
        ))
    assert await db.blood_units.count_documents({"donation_id": donation.id}) == 1
