"""
Inventory and expiry management.

Expiry is derived from the stored expiry date and the read time. Read paths
report the effective status without writing; any operation that is about to
change a unit first calls ``reconcile_expiry`` so a stale AVAILABLE unit is
moved to EXPIRED before anything else can happen to it.
"""
import logging
import math
from datetime import datetime
from typing import List, Optional

import config
from models import (
    BloodUnit, BloodUnitView, BloodUnitCreate, UnitStatus, DonationStatus,
    AuditAction, AuditModule
)
from services import generate_unit_number, to_document, utcnow, as_utc, user_id
from services.audit_service import audit_create, audit_transition
from services.errors import NotFound, ValidationFailed, ConcurrentModification, VolumeExceeded
from services.transitions import apply_transition

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def days_until_expiry(unit: BloodUnit, now: datetime) -> int:
    remaining = as_utc(unit.expiry_date) - as_utc(now)
    return math.ceil(remaining.total_seconds() / SECONDS_PER_DAY)


def is_expired(unit: BloodUnit, now: datetime) -> bool:
    return days_until_expiry(unit, now) <= 0


def is_expiring_soon(unit: BloodUnit, now: datetime) -> bool:
    if unit.status != UnitStatus.AVAILABLE:
        return False
    return 0 < days_until_expiry(unit, now) <= config.EXPIRING_SOON_DAYS


def effective_status(unit: BloodUnit, now: datetime) -> UnitStatus:
    if unit.status == UnitStatus.AVAILABLE and is_expired(unit, now):
        return UnitStatus.EXPIRED
    return unit.status


def unit_view(unit: BloodUnit, now: datetime) -> BloodUnitView:
    return BloodUnitView(
        **unit.model_dump(),
        days_until_expiry=days_until_expiry(unit, now),
        expiring_soon=is_expiring_soon(unit, now),
        effective_status=effective_status(unit, now),
    )


async def load_unit(db, unit_id: str) -> BloodUnit:
    doc = await db.blood_units.find_one(
        {"$or": [{"id": unit_id}, {"unit_number": unit_id}]},
        {"_id": 0}
    )
    if not doc:
        raise NotFound("blood_unit", unit_id)
    return BloodUnit(**doc)


async def reconcile_expiry(db, unit: BloodUnit, user: Optional[dict] = None, now: Optional[datetime] = None) -> BloodUnit:
    """Write EXPIRED onto an AVAILABLE unit whose expiry date has passed."""
    now = as_utc(now) if now else utcnow()
    if unit.status != UnitStatus.AVAILABLE or not is_expired(unit, now):
        return unit

    try:
        await apply_transition(db.blood_units, "blood_unit", to_document(unit), "expire")
    except ConcurrentModification:
        # Someone else moved it first; their write wins
        return await load_unit(db, unit.id)

    logger.info("Unit %s expired on %s", unit.unit_number, as_utc(unit.expiry_date).isoformat())
    await audit_transition(db, AuditAction.EXPIRE, AuditModule.INVENTORY, user,
                           unit.id, "blood_unit", UnitStatus.AVAILABLE.value, UnitStatus.EXPIRED.value,
                           description=f"Unit {unit.unit_number} reached expiry")
    return await load_unit(db, unit.id)


async def get_unit(db, unit_id: str, now: Optional[datetime] = None) -> BloodUnitView:
    now = as_utc(now) if now else utcnow()
    unit = await load_unit(db, unit_id)
    return unit_view(unit, now)


async def list_inventory(
    db,
    blood_group: Optional[str] = None,
    status: Optional[str] = None,
    component_type: Optional[str] = None,
    expiring_within_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[BloodUnitView]:
    """Units matching the filters, soonest expiry first."""
    now = as_utc(now) if now else utcnow()

    query = {}
    if blood_group:
        query["blood_group"] = blood_group
    if component_type:
        query["component_type"] = component_type

    cursor = db.blood_units.find(query, {"_id": 0}).sort("expiry_date", 1).limit(config.INVENTORY_SCAN_LIMIT)
    docs = await cursor.to_list(config.INVENTORY_SCAN_LIMIT)
    views = [unit_view(BloodUnit(**doc), now) for doc in docs]

    if status:
        views = [v for v in views if v.effective_status.value == status]
    if expiring_within_days is not None:
        views = [
            v for v in views
            if v.effective_status == UnitStatus.AVAILABLE and 0 < v.days_until_expiry <= expiring_within_days
        ]

    views.sort(key=lambda v: as_utc(v.expiry_date))
    return views


async def inventory_summary(db, now: Optional[datetime] = None) -> dict:
    """Counts of usable units per blood group and component type."""
    views = await list_inventory(db, status=UnitStatus.AVAILABLE.value, now=now)

    by_blood_group = {}
    by_component = {}
    expiring_soon = 0
    for view in views:
        by_blood_group[view.blood_group.value] = by_blood_group.get(view.blood_group.value, 0) + 1
        by_component[view.component_type.value] = by_component.get(view.component_type.value, 0) + 1
        if view.expiring_soon:
            expiring_soon += 1

    return {
        "available_units": len(views),
        "by_blood_group": by_blood_group,
        "by_component_type": by_component,
        "expiring_soon": expiring_soon,
        "total_volume_ml": sum(v.volume for v in views),
    }


async def sweep_expired(db, user: Optional[dict] = None, now: Optional[datetime] = None) -> int:
    now = as_utc(now) if now else utcnow()
    query = {"status": UnitStatus.AVAILABLE.value}
    cursor = db.blood_units.find(query, {"_id": 0}).sort("expiry_date", 1).limit(config.INVENTORY_SCAN_LIMIT)
    docs = await cursor.to_list(config.INVENTORY_SCAN_LIMIT)

    expired = 0
    for doc in docs:
        unit = BloodUnit(**doc)
        if not is_expired(unit, now):
            continue
        reconciled = await reconcile_expiry(db, unit, user, now)
        if reconciled.status == UnitStatus.EXPIRED:
            expired += 1
    return expired


async def add_unit(
    db,
    data: BloodUnitCreate,
    user: Optional[dict] = None,
) -> BloodUnit:
    """Register a unit that did not come through component separation."""
    collection_date = as_utc(data.collection_date)
    expiry_date = as_utc(data.expiry_date)
    if expiry_date <= collection_date:
        raise ValidationFailed("Expiry date must be after collection date")

    if data.donation_id:
        donation = await db.donations.find_one(
            {"$or": [{"id": data.donation_id}, {"donation_id": data.donation_id}]},
            {"_id": 0}
        )
        if not donation:
            raise NotFound("donation", data.donation_id)
        if donation["status"] != DonationStatus.PROCESSED.value:
            raise ValidationFailed("Units can only be added to a processed donation",
                                   current_state=donation["status"])
        if donation["blood_group"] != data.blood_group.value:
            raise ValidationFailed("Unit blood group must match its donation",
                                   donation_blood_group=donation["blood_group"])

        existing = await db.blood_units.find({"donation_id": donation["id"]}, {"_id": 0, "volume": 1}).to_list(1000)
        requested = sum(u["volume"] for u in existing) + data.volume
        if requested > (donation.get("volume") or 0):
            raise VolumeExceeded(requested, donation.get("volume") or 0)
        donation_id = donation["id"]
    else:
        donation_id = None

    unit = BloodUnit(
        unit_number=await generate_unit_number(db),
        donation_id=donation_id,
        blood_group=data.blood_group,
        component_type=data.component_type,
        volume=data.volume,
        collection_date=collection_date,
        expiry_date=expiry_date,
        notes=data.notes,
        created_by=user_id(user),
    )
    await db.blood_units.insert_one(to_document(unit))
    await audit_create(db, AuditModule.INVENTORY, user, unit.id, "blood_unit",
                       {"unit_number": unit.unit_number, "blood_group": unit.blood_group.value,
                        "component_type": unit.component_type.value, "volume": unit.volume})
    return unit


async def discard_unit(
    db,
    unit_id: str,
    reason: str,
    user: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> BloodUnit:
    unit = await reconcile_expiry(db, await load_unit(db, unit_id), user, now)
    new_status = await apply_transition(db.blood_units, "blood_unit", to_document(unit), "discard",
                                        {"discard_reason": reason})
    await audit_transition(db, AuditAction.DISCARD, AuditModule.DISCARDS, user,
                           unit.id, "blood_unit", unit.status.value, new_status.value,
                           changes={"discard_reason": reason})
    return await load_unit(db, unit.id)
