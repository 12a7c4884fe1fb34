"""
Quality control gate. A unit is inspected exactly once: a pass keeps it
AVAILABLE with the inspection on record, a failure discards it.
"""
import logging
from datetime import datetime
from typing import Optional

from models import (
    BloodUnit, QualityControlFindings, QualityControlRecord, UnitStatus,
    AuditAction, AuditModule
)
from services import to_document, utcnow, as_utc, user_id
from services.audit_service import audit_transition
from services.errors import InvalidTransition, ValidationFailed, ConcurrentModification
from services.inventory import load_unit, reconcile_expiry
from services.transitions import apply_transition

logger = logging.getLogger(__name__)

FAILED_QC_REASON = "Failed quality control"

CHECKS = {
    "appearance_ok": "appearance",
    "storage_temperature_ok": "storage temperature",
    "packaging_intact": "packaging integrity",
    "labeling_accurate": "labeling accuracy",
}


def failed_checks(findings: QualityControlFindings) -> list:
    return [label for field, label in CHECKS.items() if not getattr(findings, field)]


def discard_reason(findings: QualityControlFindings) -> str:
    if findings.notes:
        return f"{FAILED_QC_REASON}: {findings.notes}"
    failed = failed_checks(findings)
    if failed:
        return f"{FAILED_QC_REASON}: {', '.join(failed)}"
    return FAILED_QC_REASON


async def inspect_unit(
    db,
    unit_id: str,
    findings: QualityControlFindings,
    user: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> BloodUnit:
    now = as_utc(now) if now else utcnow()
    unit = await reconcile_expiry(db, await load_unit(db, unit_id), user, now)

    if unit.quality_control is not None:
        raise InvalidTransition("blood_unit", "inspected", "inspect")
    if unit.status != UnitStatus.AVAILABLE:
        raise InvalidTransition("blood_unit", unit.status.value, "inspect")

    failed = failed_checks(findings)
    if findings.passed and failed:
        raise ValidationFailed("Inspection cannot pass with failed checks", failed_checks=failed)

    record = QualityControlRecord(**findings.model_dump(), inspected_by=user_id(user), inspected_at=now)

    if findings.passed:
        result = await db.blood_units.update_one(
            {"id": unit.id, "status": UnitStatus.AVAILABLE.value, "quality_control": None},
            {"$set": {"quality_control": record.model_dump(mode="json"), "updated_at": now.isoformat()}}
        )
        if result.modified_count == 0:
            raise ConcurrentModification("blood_unit", unit.id)
        await audit_transition(db, AuditAction.INSPECT, AuditModule.QC_VALIDATION, user,
                               unit.id, "blood_unit", unit.status.value, UnitStatus.AVAILABLE.value,
                               changes={"passed": True},
                               description=f"Unit {unit.unit_number} passed quality control")
    else:
        reason = discard_reason(findings)
        await apply_transition(
            db.blood_units, "blood_unit", to_document(unit), "discard",
            {"quality_control": record.model_dump(mode="json"), "discard_reason": reason},
            extra_filter={"quality_control": None},
        )
        logger.warning("Unit %s discarded: %s", unit.unit_number, reason)
        await audit_transition(db, AuditAction.DISCARD, AuditModule.QC_VALIDATION, user,
                               unit.id, "blood_unit", unit.status.value, UnitStatus.DISCARDED.value,
                               changes={"passed": False, "discard_reason": reason})

    return await load_unit(db, unit.id)
