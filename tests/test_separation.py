from datetime import timedelta

import pytest

from models import BloodGroup, ComponentSpec, ComponentType, DonationStatus, UnitStatus
from services.donations import get_donation, collect_donation, record_test_results
from services.donors import get_donor
from services.errors import VolumeExceeded, InvalidComponent, InvalidTransition
from services.separation import separate_components
from conftest import NOW, create_tested_donation, create_scheduled_donation, good_vitals, clean_results


def components(*specs):
    return [ComponentSpec(component_type=t, volume=v) for t, v in specs]


async def test_separation_within_volume_creates_units(db, user):
    donation = await create_tested_donation(db, BloodGroup.B_NEGATIVE)

    units = await separate_components(
        db, donation.id,
        components((ComponentType.RED_CELLS, 200), (ComponentType.PLASMA, 200)),
        user,
    )

    assert len(units) == 2
    assert sum(u.volume for u in units) <= donation.volume
    assert all(u.blood_group == BloodGroup.B_NEGATIVE for u in units)
    assert all(u.status == UnitStatus.AVAILABLE for u in units)
    assert all(u.quality_control is None for u in units)
    assert all(u.donation_id == donation.id for u in units)
    assert await db.blood_units.count_documents({"donation_id": donation.id}) == 2
    assert (await get_donation(db, donation.id)).status == DonationStatus.PROCESSED


async def test_default_shelf_life_by_component(db):
    donation = await create_tested_donation(db)

    units = await separate_components(db, donation.id, components(
        (ComponentType.RED_CELLS, 250), (ComponentType.PLASMA, 150), (ComponentType.PLATELETS, 50),
    ))

    expiry = {u.component_type: u.expiry_date for u in units}
    assert expiry[ComponentType.RED_CELLS] == NOW + timedelta(days=42)
    assert expiry[ComponentType.PLASMA] == NOW + timedelta(days=365)
    assert expiry[ComponentType.PLATELETS] == NOW + timedelta(days=5)


async def test_explicit_expiry_days_override_default(db):
    donation = await create_tested_donation(db)
    component = ComponentSpec(component_type=ComponentType.RED_CELLS, volume=300, expiry_days=35)

    [unit] = await separate_components(db, donation.id, [component])

    assert unit.expiry_date == NOW + timedelta(days=35)


async def test_volume_exceeded_creates_nothing(db):
    donation = await create_tested_donation(db)

    with pytest.raises(VolumeExceeded) as excinfo:
        await separate_components(db, donation.id, components(
            (ComponentType.RED_CELLS, 300), (ComponentType.PLASMA, 300),
        ))

    assert excinfo.value.context["requested_volume"] == 600
    assert await db.blood_units.count_documents({}) == 0
    assert (await get_donation(db, donation.id)).status == DonationStatus.TESTED


@pytest.mark.parametrize("component", [
    ComponentSpec(component_type=ComponentType.PLASMA, volume=0),
    ComponentSpec(component_type=ComponentType.PLASMA, volume=-10),
    ComponentSpec(component_type=ComponentType.PLASMA, volume=100, expiry_days=0),
])
async def test_invalid_component_rejected(db, component):
    donation = await create_tested_donation(db)

    with pytest.raises(InvalidComponent):
        await separate_components(db, donation.id, [component])
    assert await db.blood_units.count_documents({}) == 0


async def test_empty_component_list_rejected(db):
    donation = await create_tested_donation(db)
    with pytest.raises(InvalidComponent):
        await separate_components(db, donation.id, [])


async def test_rejected_donation_never_separated(db):
    donation = await create_scheduled_donation(db)
    await collect_donation(db, donation.id, good_vitals(), now=NOW)
    await record_test_results(db, donation.id, clean_results(hiv=True), now=NOW)

    with pytest.raises(InvalidTransition) as excinfo:
        await separate_components(db, donation.id, components((ComponentType.PLASMA, 200)))

    assert excinfo.value.context["current_state"] == "rejected"
    assert await db.blood_units.count_documents({}) == 0


async def test_untested_donation_cannot_be_separated(db):
    donation = await create_scheduled_donation(db)
    await collect_donation(db, donation.id, good_vitals(), now=NOW)

    with pytest.raises(InvalidTransition):
        await separate_components(db, donation.id, components((ComponentType.PLASMA, 200)))


async def test_second_separation_is_illegal(db):
    donation = await create_tested_donation(db)
    await separate_components(db, donation.id, components((ComponentType.PLASMA, 200)))

    with pytest.raises(InvalidTransition):
        await separate_components(db, donation.id, components((ComponentType.PLASMA, 200)))
    assert await db.blood_units.count_documents({}) == 1


async def test_processing_updates_donor_eligibility(db):
    donation = await create_tested_donation(db)
    await separate_components(db, donation.id, components((ComponentType.WHOLE_BLOOD, 450)))

    donor = await get_donor(db, donation.donor_id, now=NOW + timedelta(days=1))

    assert donor.last_donation_date == NOW
    assert donor.total_donations == 1
    assert donor.eligible_to_donate_since == NOW + timedelta(days=56)
    assert donor.eligible is False


async def test_qc_bypass_marks_units_inspected(db, monkeypatch):
    import config
    monkeypatch.setattr(config, "QC_BYPASS", True)
    donation = await create_tested_donation(db)

    [unit] = await separate_components(db, donation.id, components((ComponentType.RED_CELLS, 280)))

    assert unit.quality_control is not None
    assert unit.quality_control.passed
