"""
Component separation: one tested donation becomes one or more blood units.

All checks run before anything is written, so a rejected separation leaves
no units behind and the donation untouched.
"""
import logging
from datetime import timedelta
from typing import List, Optional

import config
from models import (
    BloodUnit, ComponentSpec, DonationStatus, QualityControlRecord,
    AuditAction, AuditModule
)
from services import generate_unit_number, to_document, utcnow, as_utc, user_id
from services.audit_service import audit_transition
from services.donations import load_donation
from services.errors import InvalidComponent, VolumeExceeded, ValidationFailed
from services.transitions import apply_transition, next_state

logger = logging.getLogger(__name__)


def resolve_expiry_days(component: ComponentSpec) -> int:
    if component.expiry_days is not None:
        return component.expiry_days
    return config.DEFAULT_EXPIRY_DAYS[component.component_type.value]


def validate_components(components: List[ComponentSpec], donation_volume: float) -> None:
    if not components:
        raise InvalidComponent("At least one component is required")

    for index, component in enumerate(components):
        if component.volume <= 0:
            raise InvalidComponent(f"Component {index + 1} volume must be positive",
                                   index=index, volume=component.volume)
        if resolve_expiry_days(component) <= 0:
            raise InvalidComponent(f"Component {index + 1} expiry days must be positive",
                                   index=index, expiry_days=component.expiry_days)

    requested = sum(c.volume for c in components)
    if requested > donation_volume:
        raise VolumeExceeded(requested, donation_volume)


async def separate_components(
    db,
    donation_id: str,
    components: List[ComponentSpec],
    user: Optional[dict] = None,
) -> List[BloodUnit]:
    donation = await load_donation(db, donation_id)
    next_state("donation", donation.status, "separate")

    if not donation.volume or not donation.collection_date:
        raise ValidationFailed("Donation has no recorded collection")
    validate_components(components, donation.volume)

    collection_date = as_utc(donation.collection_date)
    units = []
    for component in components:
        unit = BloodUnit(
            unit_number=await generate_unit_number(db),
            donation_id=donation.id,
            blood_group=donation.blood_group,
            component_type=component.component_type,
            volume=component.volume,
            collection_date=collection_date,
            expiry_date=collection_date + timedelta(days=resolve_expiry_days(component)),
            notes=component.notes,
            created_by=user_id(user),
        )
        if config.QC_BYPASS:
            unit.quality_control = QualityControlRecord(
                appearance_ok=True, storage_temperature_ok=True,
                packaging_intact=True, labeling_accurate=True,
                passed=True, notes="Quality control bypassed", inspected_by="system",
            )
        units.append(unit)

    now = utcnow()
    new_status = await apply_transition(db.donations, "donation", to_document(donation), "separate",
                                        {"processed_at": now.isoformat()})
    try:
        await db.blood_units.insert_many([to_document(u) for u in units])
    except Exception:
        # Put the donation back so the separation can be retried
        await db.donations.update_one(
            {"id": donation.id, "status": DonationStatus.PROCESSED.value},
            {"$set": {"status": DonationStatus.TESTED.value}, "$unset": {"processed_at": ""}}
        )
        logger.exception("Failed to store units for donation %s", donation.donation_id)
        raise

    await db.donors.update_one(
        {"id": donation.donor_id},
        {"$set": {"last_donation_date": collection_date.isoformat(), "updated_at": now.isoformat()},
         "$inc": {"total_donations": 1}}
    )

    waste = donation.volume - sum(u.volume for u in units)
    await audit_transition(db, AuditAction.SEPARATE, AuditModule.COMPONENTS, user,
                           donation.id, "donation", donation.status.value, new_status.value,
                           changes={"unit_ids": [u.id for u in units], "waste_volume": waste})
    return units
