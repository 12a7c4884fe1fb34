"""
Compatibility & allocation engine for clinical blood requests.

Units are claimed one at a time with a compare-and-set on their status, so
two requests racing for the same unit can never both hold it. A request is
satisfied in full or not at all: if the claim loop comes up short, every
unit it already claimed is released again before the error is raised.
"""
import logging
from datetime import datetime
from typing import List, Optional

import config
from models import (
    BloodUnit, BloodRequest, BloodRequestCreate, AllocationResult, QueueAllocationResult,
    Reservation, RequestPriority, RequestStatus, TransfusionStatus, UnitStatus, AuditAction, AuditModule
)
from services import generate_request_id, to_document, utcnow, as_utc, user_id
from services.audit_service import audit_create, audit_transition
from services.compatibility import compatible_donor_groups
from services.errors import (
    NotFound, AllocationShortfall, ConcurrentModification, InvalidTransition
)
from services.inventory import is_expired, reconcile_expiry
from services.transitions import apply_transition, next_state

logger = logging.getLogger(__name__)

PRIORITY_RANK = {
    RequestPriority.EMERGENCY: 0,
    RequestPriority.URGENT: 1,
    RequestPriority.STANDARD: 2,
}


async def load_request(db, request_id: str) -> BloodRequest:
    doc = await db.blood_requests.find_one(
        {"$or": [{"id": request_id}, {"request_id": request_id}]},
        {"_id": 0}
    )
    if not doc:
        raise NotFound("blood_request", request_id)
    return BloodRequest(**doc)


async def submit_request(db, data: BloodRequestCreate, user: Optional[dict] = None) -> BloodRequest:
    request = BloodRequest(**data.model_dump(), requested_by=user_id(user))
    request.request_id = await generate_request_id(db)

    await db.blood_requests.insert_one(to_document(request))
    await audit_create(db, AuditModule.REQUESTS, user, request.id, "blood_request",
                       {"blood_group": request.blood_group.value, "quantity": request.quantity,
                        "priority": request.priority.value})
    return request


async def get_request(db, request_id: str) -> BloodRequest:
    return await load_request(db, request_id)


async def list_requests(db, status: Optional[str] = None, priority: Optional[str] = None) -> List[BloodRequest]:
    query = {}
    if status:
        query["status"] = status
    if priority:
        query["priority"] = priority

    docs = await db.blood_requests.find(query, {"_id": 0}).to_list(1000)
    requests = [BloodRequest(**doc) for doc in docs]
    requests.sort(key=lambda r: (PRIORITY_RANK[r.priority], as_utc(r.created_at)))
    return requests


async def find_candidates(db, request: BloodRequest, user: Optional[dict], now: datetime) -> List[BloodUnit]:
    """Usable units for the request: exact group first, then by soonest expiry."""
    groups = compatible_donor_groups(request.blood_group)
    query = {
        "status": UnitStatus.AVAILABLE.value,
        "blood_group": {"$in": [g.value for g in groups]},
    }
    if request.component_type:
        query["component_type"] = request.component_type.value

    cursor = db.blood_units.find(query, {"_id": 0}).sort("expiry_date", 1).limit(config.INVENTORY_SCAN_LIMIT)
    docs = await cursor.to_list(config.INVENTORY_SCAN_LIMIT)

    candidates = []
    for doc in docs:
        unit = BloodUnit(**doc)
        if is_expired(unit, now):
            await reconcile_expiry(db, unit, user, now)
            continue
        if config.REQUIRE_QC_BEFORE_ALLOCATION and unit.quality_control is None:
            continue
        candidates.append(unit)

    candidates.sort(key=lambda u: (u.blood_group != request.blood_group, as_utc(u.expiry_date)))
    return candidates


async def _claim(db, unit: BloodUnit, request: BloodRequest, user: Optional[dict], now: datetime) -> bool:
    reservation = Reservation(
        request_id=request.id,
        patient_id=request.patient_id,
        reserved_by=user_id(user),
        reserved_at=now,
    )
    try:
        await apply_transition(db.blood_units, "blood_unit", to_document(unit), "reserve",
                               {"reservation": reservation.model_dump(mode="json")})
    except ConcurrentModification:
        logger.info("Unit %s taken by another allocation", unit.unit_number)
        return False
    return True


async def release_units(db, unit_ids: List[str], request_id: str, user: Optional[dict] = None) -> List[str]:
    """Return reserved units held for the request to AVAILABLE."""
    released = []
    for unit_id in unit_ids:
        record = {"id": unit_id, "status": UnitStatus.RESERVED.value}
        try:
            await apply_transition(db.blood_units, "blood_unit", record, "release",
                                   unset=["reservation"],
                                   extra_filter={"reservation.request_id": request_id})
        except ConcurrentModification:
            continue
        released.append(unit_id)
        await audit_transition(db, AuditAction.RELEASE, AuditModule.INVENTORY, user,
                               unit_id, "blood_unit", UnitStatus.RESERVED.value, UnitStatus.AVAILABLE.value,
                               changes={"request_id": request_id})
    return released


async def reserve_units(db, request: BloodRequest, user: Optional[dict] = None,
                        now: Optional[datetime] = None) -> List[BloodUnit]:
    """Reserve ``request.quantity`` compatible units or none at all."""
    now = as_utc(now) if now else utcnow()

    for attempt in range(config.ALLOCATION_RETRY_LIMIT + 1):
        candidates = await find_candidates(db, request, user, now)
        if len(candidates) < request.quantity:
            raise AllocationShortfall(request.id, request.quantity, len(candidates))

        claimed = []
        for unit in candidates:
            if len(claimed) == request.quantity:
                break
            if await _claim(db, unit, request, user, now):
                claimed.append(unit)

        if len(claimed) == request.quantity:
            for unit in claimed:
                await audit_transition(db, AuditAction.RESERVE, AuditModule.INVENTORY, user,
                                       unit.id, "blood_unit", UnitStatus.AVAILABLE.value,
                                       UnitStatus.RESERVED.value,
                                       changes={"request_id": request.id})
            return claimed

        await release_units(db, [u.id for u in claimed], request.id, user)
        logger.warning("Allocation for request %s lost a race (attempt %d)", request.request_id, attempt + 1)

    raise ConcurrentModification("blood_request", request.id)


async def approve_request(db, request_id: str, user: Optional[dict] = None,
                          now: Optional[datetime] = None) -> AllocationResult:
    now = as_utc(now) if now else utcnow()
    request = await load_request(db, request_id)
    next_state("blood_request", request.status, "approve")

    units = await reserve_units(db, request, user, now)
    unit_ids = [u.id for u in units]
    try:
        new_status = await apply_transition(
            db.blood_requests, "blood_request", to_document(request), "approve",
            {"approved_by": user_id(user), "approval_date": now.isoformat(), "reserved_unit_ids": unit_ids}
        )
    except ConcurrentModification:
        await release_units(db, unit_ids, request.id, user)
        raise

    await audit_transition(db, AuditAction.APPROVE, AuditModule.REQUESTS, user,
                           request.id, "blood_request", request.status.value, new_status.value,
                           changes={"reserved_unit_ids": unit_ids})

    reserved = await db.blood_units.find({"id": {"$in": unit_ids}}, {"_id": 0}).to_list(len(unit_ids))
    return AllocationResult(
        request=await load_request(db, request.id),
        reserved_units=[BloodUnit(**doc) for doc in reserved],
    )


async def reject_request(db, request_id: str, reason: str, user: Optional[dict] = None) -> BloodRequest:
    request = await load_request(db, request_id)
    new_status = await apply_transition(db.blood_requests, "blood_request", to_document(request), "reject",
                                        {"rejection_reason": reason})

    held = await db.blood_units.find(
        {"status": UnitStatus.RESERVED.value, "reservation.request_id": request.id},
        {"_id": 0, "id": 1}
    ).to_list(1000)
    released = await release_units(db, [doc["id"] for doc in held], request.id, user)

    scheduled = await db.transfusions.find(
        {"request_id": request.id, "status": TransfusionStatus.SCHEDULED.value},
        {"_id": 0, "id": 1, "status": 1}
    ).to_list(100)
    for transfusion in scheduled:
        cancellation_reason = f"Request rejected: {reason}"
        try:
            status = await apply_transition(db.transfusions, "transfusion", transfusion, "cancel",
                                            {"cancellation_reason": cancellation_reason})
        except ConcurrentModification:
            # Completed or cancelled in the meantime
            continue
        await audit_transition(db, AuditAction.CANCEL, AuditModule.TRANSFUSIONS, user,
                               transfusion["id"], "transfusion", TransfusionStatus.SCHEDULED.value, status.value,
                               changes={"cancellation_reason": cancellation_reason})

    await audit_transition(db, AuditAction.REJECT, AuditModule.REQUESTS, user,
                           request.id, "blood_request", request.status.value, new_status.value,
                           changes={"rejection_reason": reason, "released_unit_ids": released})
    return await load_request(db, request.id)


async def allocate_pending(db, user: Optional[dict] = None, now: Optional[datetime] = None) -> QueueAllocationResult:
    """Approve pending requests, most urgent first, oldest first within a priority."""
    now = as_utc(now) if now else utcnow()
    outcome = QueueAllocationResult()

    for request in await list_requests(db, status=RequestStatus.PENDING.value):
        try:
            await approve_request(db, request.id, user, now)
        except AllocationShortfall as exc:
            outcome.shortfalls.append(exc.detail)
        except (InvalidTransition, ConcurrentModification):
            logger.info("Request %s changed while queued, skipping", request.request_id)
            outcome.skipped.append(request.id)
        else:
            outcome.approved.append(request.id)
    return outcome
