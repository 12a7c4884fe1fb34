from datetime import datetime, timedelta, timezone

import pytest
from mongomock_motor import AsyncMongoMockClient

from models import (
    BloodGroup, BloodUnit, ComponentType, CollectionVitals, DonationCreate, DonorCreate,
    LabResults, QualityControlRecord, UnitStatus
)
from services import to_document
from services.donations import schedule_donation, collect_donation, record_test_results
from services.donors import register_donor

NOW = datetime.now(timezone.utc).replace(microsecond=0)

STAFF = {"id": "tech-1", "full_name": "Lab Technician", "role": "lab_tech"}


@pytest.fixture
def db():
    client = AsyncMongoMockClient()
    return client["blood_bank_test"]


@pytest.fixture
def user():
    return dict(STAFF)


def good_vitals(**overrides):
    values = {"hemoglobin": 13.0, "weight": 60, "temperature": 36.8, "pulse": 70}
    values.update(overrides)
    return CollectionVitals(**values)


def clean_results(**overrides):
    values = {
        "hiv": False, "hepatitis_b": False, "hepatitis_c": False,
        "syphilis": False, "malaria": False, "hemoglobin": 13.5,
    }
    values.update(overrides)
    return LabResults(**values)


async def create_donor(db, blood_group=BloodGroup.O_POSITIVE, name="Jane Donor"):
    return await register_donor(db, DonorCreate(full_name=name, blood_group=blood_group, weight=62))


async def create_scheduled_donation(db, blood_group=BloodGroup.O_POSITIVE):
    donor = await create_donor(db, blood_group)
    return await schedule_donation(db, DonationCreate(donor_id=donor.id, scheduled_date=NOW), now=NOW)


async def create_tested_donation(db, blood_group=BloodGroup.O_POSITIVE, volume=450.0):
    donation = await create_scheduled_donation(db, blood_group)
    await collect_donation(db, donation.id, good_vitals(volume=volume), now=NOW)
    return await record_test_results(db, donation.id, clean_results(), now=NOW)


async def make_unit(
    db,
    blood_group=BloodGroup.O_NEGATIVE,
    expires_in_days=20,
    status=UnitStatus.AVAILABLE,
    component_type=ComponentType.RED_CELLS,
    inspected=True,
    volume=250.0,
):
    """Insert a unit straight into inventory."""
    unit = BloodUnit(
        unit_number=f"BU-TEST-{blood_group.value}-{expires_in_days}-{datetime.now().timestamp()}",
        blood_group=blood_group,
        component_type=component_type,
        volume=volume,
        collection_date=NOW - timedelta(days=5),
        expiry_date=NOW + timedelta(days=expires_in_days),
        status=status,
    )
    if inspected:
        unit.quality_control = QualityControlRecord(
            appearance_ok=True, storage_temperature_ok=True,
            packaging_intact=True, labeling_accurate=True, passed=True,
            inspected_by="qc-1", inspected_at=NOW - timedelta(days=4),
        )
    await db.blood_units.insert_one(to_document(unit))
    return unit


async def unit_status(db, unit_id):
    doc = await db.blood_units.find_one({"id": unit_id}, {"_id": 0})
    return doc["status"]
