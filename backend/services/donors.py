from datetime import datetime, timedelta
from typing import List, Optional

import config
from models import Donor, DonorCreate, DonorView, DeferralPeriod, AuditAction, AuditModule
from services import generate_donor_id, to_document, utcnow, as_utc
from services.audit_service import audit_create, AuditService
from services.eligibility import donor_view
from services.errors import NotFound


async def load_donor(db, donor_id: str) -> Donor:
    doc = await db.donors.find_one(
        {"$or": [{"id": donor_id}, {"donor_id": donor_id}]},
        {"_id": 0}
    )
    if not doc:
        raise NotFound("donor", donor_id)
    return Donor(**doc)


async def register_donor(db, data: DonorCreate, user: Optional[dict] = None) -> Donor:
    donor = Donor(**data.model_dump())
    donor.donor_id = await generate_donor_id(db)

    await db.donors.insert_one(to_document(donor))
    await audit_create(db, AuditModule.DONORS, user, donor.id, "donor",
                       {"donor_id": donor.donor_id, "blood_group": donor.blood_group.value})
    return donor


async def get_donor(db, donor_id: str, now: Optional[datetime] = None) -> DonorView:
    donor = await load_donor(db, donor_id)
    return donor_view(donor, as_utc(now) if now else utcnow())


async def list_donors(db, blood_group: Optional[str] = None, now: Optional[datetime] = None) -> List[DonorView]:
    query = {}
    if blood_group:
        query["blood_group"] = blood_group

    now = as_utc(now) if now else utcnow()
    docs = await db.donors.find(query, {"_id": 0}).to_list(1000)
    return [donor_view(Donor(**doc), now) for doc in docs]


async def defer_donor(
    db,
    donor_id: str,
    period: DeferralPeriod,
    reason: str,
    user: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> DonorView:
    """Record a screening deferral on the donor."""
    now = as_utc(now) if now else utcnow()
    donor = await load_donor(db, donor_id)

    if period == DeferralPeriod.PERMANENT:
        changes = {"permanently_deferred": True, "deferral_end_date": None}
    else:
        end = now + timedelta(days=config.DEFERRAL_PERIOD_DAYS[period.value])
        # A shorter deferral never shortens one already in force
        if donor.deferral_end_date and as_utc(donor.deferral_end_date) > end:
            end = as_utc(donor.deferral_end_date)
        changes = {"deferral_end_date": end.isoformat()}
    changes["deferral_reason"] = reason
    changes["updated_at"] = now.isoformat()

    await db.donors.update_one({"id": donor.id}, {"$set": changes})
    await AuditService.log(
        db, AuditAction.DEFER, AuditModule.DONORS, user, "donor", donor.id,
        changes={"period": period.value, "reason": reason},
        description=f"Deferred donor {donor.donor_id} ({period.value})"
    )
    return await get_donor(db, donor.id, now)
