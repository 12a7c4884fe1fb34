"""
Donation lifecycle: scheduling, collection, laboratory screening and
cancellation. Component separation lives in services.separation.
"""
import logging
from datetime import datetime
from typing import List, Optional

import config
from models import (
    Donation, DonationCreate, DonationStatus, CollectionVitals, LabResults,
    AuditAction, AuditModule
)
from services import generate_donation_id, to_document, utcnow, as_utc, user_id
from services.audit_service import audit_create, audit_transition
from services.donors import load_donor
from services.eligibility import can_schedule, vitals_failures
from services.errors import NotFound, IneligibleDonor, InvalidTestValue
from services.transitions import apply_transition, next_state

logger = logging.getLogger(__name__)

INFECTION_REJECTION_REASON = "Failed infectious disease screening"


async def load_donation(db, donation_id: str) -> Donation:
    doc = await db.donations.find_one(
        {"$or": [{"id": donation_id}, {"donation_id": donation_id}]},
        {"_id": 0}
    )
    if not doc:
        raise NotFound("donation", donation_id)
    return Donation(**doc)


async def schedule_donation(
    db,
    data: DonationCreate,
    user: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> Donation:
    donor = await load_donor(db, data.donor_id)
    scheduled_date = as_utc(data.scheduled_date)

    # Eligibility is judged on the appointment date, not the booking date
    decision = can_schedule(donor, max(scheduled_date, as_utc(now) if now else utcnow()))
    if not decision.eligible:
        raise IneligibleDonor(decision.reason)

    donation = Donation(
        donation_id=await generate_donation_id(db),
        donor_id=donor.id,
        blood_group=donor.blood_group,
        scheduled_date=scheduled_date,
        notes=data.notes,
    )
    await db.donations.insert_one(to_document(donation))
    await audit_create(db, AuditModule.DONATIONS, user, donation.id, "donation",
                       {"donor_id": donor.id, "scheduled_date": scheduled_date.isoformat()},
                       description=f"Scheduled donation {donation.donation_id} for donor {donor.donor_id}")
    return donation


async def get_donation(db, donation_id: str) -> Donation:
    return await load_donation(db, donation_id)


async def list_donations(db, status: Optional[str] = None, donor_id: Optional[str] = None) -> List[Donation]:
    query = {}
    if status:
        query["status"] = status
    if donor_id:
        query["donor_id"] = donor_id

    docs = await db.donations.find(query, {"_id": 0}).sort("scheduled_date", -1).to_list(1000)
    return [Donation(**doc) for doc in docs]


async def collect_donation(
    db,
    donation_id: str,
    vitals: CollectionVitals,
    user: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> Donation:
    now = as_utc(now) if now else utcnow()
    donation = await load_donation(db, donation_id)
    next_state("donation", donation.status, "collect")

    # Deferrals and other donations may have landed since the booking
    donor = await load_donor(db, donation.donor_id)
    decision = can_schedule(donor, now)
    if not decision.eligible:
        raise IneligibleDonor(decision.reason)
    in_progress = await db.donations.find_one(
        {"donor_id": donor.id, "id": {"$ne": donation.id},
         "status": {"$in": [DonationStatus.COLLECTED.value, DonationStatus.TESTED.value]}},
        {"_id": 0, "donation_id": 1}
    )
    if in_progress:
        raise IneligibleDonor(f"Donor has donation {in_progress['donation_id']} still in processing")

    failures = vitals_failures(vitals)
    if failures:
        raise IneligibleDonor("Donor does not meet collection criteria", failures)

    volume = vitals.volume or vitals.units * config.STANDARD_UNIT_VOLUME_ML
    changes = {
        "vitals": vitals.model_dump(mode="json"),
        "units": vitals.units,
        "volume": volume,
        "collection_date": now.isoformat(),
        "collected_by": user_id(user),
    }
    new_status = await apply_transition(db.donations, "donation", to_document(donation), "collect", changes)
    await audit_transition(db, AuditAction.COLLECT, AuditModule.DONATIONS, user,
                           donation.id, "donation", donation.status.value, new_status.value,
                           changes={"volume": volume, "units": vitals.units})
    return await load_donation(db, donation.id)


async def record_test_results(
    db,
    donation_id: str,
    results: LabResults,
    user: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> Donation:
    now = as_utc(now) if now else utcnow()
    donation = await load_donation(db, donation_id)
    next_state("donation", donation.status, "pass_screening")

    low, high = config.TEST_HEMOGLOBIN_RANGE
    if not low <= results.hemoglobin <= high:
        raise InvalidTestValue(
            f"Hemoglobin {results.hemoglobin} g/dL outside valid range {low:g}-{high:g}",
            field="hemoglobin", value=results.hemoglobin,
        )

    changes = {
        "test_results": results.model_dump(mode="json"),
        "tested_by": user_id(user),
        "tested_at": now.isoformat(),
    }
    if results.has_infection:
        action = "fail_screening"
        changes["rejection_reason"] = INFECTION_REJECTION_REASON
    else:
        action = "pass_screening"

    new_status = await apply_transition(db.donations, "donation", to_document(donation), action, changes)
    if new_status == DonationStatus.REJECTED:
        logger.warning("Donation %s rejected: %s", donation.donation_id, INFECTION_REJECTION_REASON)

    await audit_transition(db, AuditAction.TEST, AuditModule.LAB_TESTS, user,
                           donation.id, "donation", donation.status.value, new_status.value,
                           changes={"rejection_reason": changes.get("rejection_reason")})
    return await load_donation(db, donation.id)


async def cancel_donation(
    db,
    donation_id: str,
    reason: str,
    user: Optional[dict] = None,
) -> Donation:
    donation = await load_donation(db, donation_id)
    new_status = await apply_transition(db.donations, "donation", to_document(donation), "cancel",
                                        {"cancellation_reason": reason})
    await audit_transition(db, AuditAction.CANCEL, AuditModule.DONATIONS, user,
                           donation.id, "donation", donation.status.value, new_status.value,
                           changes={"cancellation_reason": reason})
    return await load_donation(db, donation.id)


async def donation_stats(db) -> dict:
    by_status = {}
    for status in DonationStatus:
        by_status[status.value] = await db.donations.count_documents({"status": status.value})

    collected = await db.donations.find(
        {"status": {"$in": [DonationStatus.COLLECTED.value, DonationStatus.TESTED.value,
                            DonationStatus.PROCESSED.value, DonationStatus.REJECTED.value]}},
        {"_id": 0, "volume": 1}
    ).to_list(10000)

    return {
        "total_donations": sum(by_status.values()),
        "by_status": by_status,
        "total_volume_ml": sum(d.get("volume") or 0 for d in collected),
    }
