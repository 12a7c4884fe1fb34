"""
Transfusion lifecycle. Completing a transfusion consumes the units reserved
for its request; consumed units are USED for good.
"""
import logging
from datetime import datetime
from typing import List, Optional

from models import (
    BloodUnit, Transfusion, TransfusionSchedule, TransfusionStatus, RequestStatus,
    UnitStatus, AuditAction, AuditModule
)
from services import generate_transfusion_id, to_document, utcnow, as_utc
from services.audit_service import audit_create, audit_transition
from services.allocation import load_request
from services.errors import NotFound, ValidationFailed, InvalidTransition, ConcurrentModification
from services.inventory import is_expired
from services.transitions import apply_transition, next_state

logger = logging.getLogger(__name__)


async def load_transfusion(db, transfusion_id: str) -> Transfusion:
    doc = await db.transfusions.find_one(
        {"$or": [{"id": transfusion_id}, {"transfusion_id": transfusion_id}]},
        {"_id": 0}
    )
    if not doc:
        raise NotFound("transfusion", transfusion_id)
    return Transfusion(**doc)


async def _reserved_units(db, request_id: str) -> List[BloodUnit]:
    docs = await db.blood_units.find(
        {"status": UnitStatus.RESERVED.value, "reservation.request_id": request_id},
        {"_id": 0}
    ).to_list(1000)
    return [BloodUnit(**doc) for doc in docs]


async def _active_transfusion(db, request_id: str) -> Optional[Transfusion]:
    doc = await db.transfusions.find_one(
        {"request_id": request_id, "status": TransfusionStatus.SCHEDULED.value},
        {"_id": 0}
    )
    return Transfusion(**doc) if doc else None


async def schedule_transfusion(db, data: TransfusionSchedule, user: Optional[dict] = None) -> Transfusion:
    request = await load_request(db, data.request_id)
    if request.status != RequestStatus.APPROVED:
        raise InvalidTransition("blood_request", request.status.value, "schedule_transfusion")
    if await _active_transfusion(db, request.id):
        raise ValidationFailed("A transfusion is already scheduled for this request",
                               request_id=request.id)

    transfusion = Transfusion(
        transfusion_id=await generate_transfusion_id(db),
        request_id=request.id,
        patient_id=request.patient_id,
        unit_ids=list(request.reserved_unit_ids),
        performed_by=data.performed_by,
        transfusion_date=as_utc(data.transfusion_date),
    )
    await db.transfusions.insert_one(to_document(transfusion))
    await audit_create(db, AuditModule.TRANSFUSIONS, user, transfusion.id, "transfusion",
                       {"request_id": request.id, "unit_ids": transfusion.unit_ids})
    return transfusion


async def complete_transfusion(
    db,
    request_id: str,
    performed_by: str,
    user: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> Transfusion:
    now = as_utc(now) if now else utcnow()
    request = await load_request(db, request_id)
    next_state("blood_request", request.status, "fulfill")

    units = await _reserved_units(db, request.id)
    if {u.id for u in units} != set(request.reserved_unit_ids):
        raise ConcurrentModification("blood_request", request.id)
    expired = [u.unit_number for u in units if is_expired(u, now)]
    if expired:
        raise ValidationFailed("Reserved units expired before transfusion", unit_numbers=expired)

    # Fulfilling the request first stops a concurrent rejection from releasing the units
    request_status = await apply_transition(db.blood_requests, "blood_request", to_document(request), "fulfill")

    transfusion = await _active_transfusion(db, request.id)
    if transfusion is None:
        transfusion = Transfusion(
            transfusion_id=await generate_transfusion_id(db),
            request_id=request.id,
            patient_id=request.patient_id,
            unit_ids=[u.id for u in units],
            performed_by=performed_by,
            transfusion_date=now,
        )
        await db.transfusions.insert_one(to_document(transfusion))

    for unit in units:
        await apply_transition(db.blood_units, "blood_unit", to_document(unit), "consume",
                               {"transfusion_id": transfusion.id},
                               extra_filter={"reservation.request_id": request.id})
        await audit_transition(db, AuditAction.TRANSFUSE, AuditModule.INVENTORY, user,
                               unit.id, "blood_unit", UnitStatus.RESERVED.value, UnitStatus.USED.value,
                               changes={"transfusion_id": transfusion.id})

    status = await apply_transition(
        db.transfusions, "transfusion", to_document(transfusion), "complete",
        {"unit_ids": [u.id for u in units], "performed_by": performed_by, "completed_at": now.isoformat()}
    )
    await audit_transition(db, AuditAction.FULFILL, AuditModule.REQUESTS, user,
                           request.id, "blood_request", request.status.value, request_status.value)
    await audit_transition(db, AuditAction.TRANSFUSE, AuditModule.TRANSFUSIONS, user,
                           transfusion.id, "transfusion", TransfusionStatus.SCHEDULED.value, status.value,
                           changes={"performed_by": performed_by})
    logger.info("Transfusion %s completed with %d unit(s)", transfusion.transfusion_id, len(units))
    return await load_transfusion(db, transfusion.id)


async def cancel_transfusion(db, transfusion_id: str, reason: str, user: Optional[dict] = None) -> Transfusion:
    """Cancel a scheduled transfusion; its units stay reserved for the request."""
    transfusion = await load_transfusion(db, transfusion_id)
    status = await apply_transition(db.transfusions, "transfusion", to_document(transfusion), "cancel",
                                    {"cancellation_reason": reason})
    await audit_transition(db, AuditAction.CANCEL, AuditModule.TRANSFUSIONS, user,
                           transfusion.id, "transfusion", transfusion.status.value, status.value,
                           changes={"cancellation_reason": reason})
    return await load_transfusion(db, transfusion.id)


async def list_transfusions(db, patient_id: Optional[str] = None, request_id: Optional[str] = None) -> List[Transfusion]:
    query = {}
    if patient_id:
        query["patient_id"] = patient_id
    if request_id:
        query["request_id"] = request_id

    docs = await db.transfusions.find(query, {"_id": 0}).sort("transfusion_date", -1).to_list(1000)
    return [Transfusion(**doc) for doc in docs]
