"""
Legal state transitions for every aggregate, keyed by (current state, action).

Any pair missing from a table is an illegal transition. Writes go through
``apply_transition`` which re-checks the current state inside the update
filter, so a record changed by someone else is never overwritten.
"""
from typing import Optional

from models import DonationStatus, UnitStatus, RequestStatus, TransfusionStatus
from services import utcnow
from services.errors import InvalidTransition, ConcurrentModification


DONATION_TRANSITIONS = {
    (DonationStatus.SCHEDULED, "collect"): DonationStatus.COLLECTED,
    (DonationStatus.SCHEDULED, "cancel"): DonationStatus.CANCELLED,
    (DonationStatus.COLLECTED, "pass_screening"): DonationStatus.TESTED,
    (DonationStatus.COLLECTED, "fail_screening"): DonationStatus.REJECTED,
    (DonationStatus.TESTED, "separate"): DonationStatus.PROCESSED,
}

UNIT_TRANSITIONS = {
    (UnitStatus.AVAILABLE, "reserve"): UnitStatus.RESERVED,
    (UnitStatus.AVAILABLE, "expire"): UnitStatus.EXPIRED,
    (UnitStatus.AVAILABLE, "discard"): UnitStatus.DISCARDED,
    (UnitStatus.RESERVED, "release"): UnitStatus.AVAILABLE,
    (UnitStatus.RESERVED, "consume"): UnitStatus.USED,
}

REQUEST_TRANSITIONS = {
    (RequestStatus.PENDING, "approve"): RequestStatus.APPROVED,
    (RequestStatus.PENDING, "reject"): RequestStatus.REJECTED,
    (RequestStatus.APPROVED, "reject"): RequestStatus.REJECTED,
    (RequestStatus.APPROVED, "fulfill"): RequestStatus.FULFILLED,
}

TRANSFUSION_TRANSITIONS = {
    (TransfusionStatus.SCHEDULED, "complete"): TransfusionStatus.COMPLETED,
    (TransfusionStatus.SCHEDULED, "cancel"): TransfusionStatus.CANCELLED,
}

_TABLES = {
    "donation": (DONATION_TRANSITIONS, DonationStatus),
    "blood_unit": (UNIT_TRANSITIONS, UnitStatus),
    "blood_request": (REQUEST_TRANSITIONS, RequestStatus),
    "transfusion": (TRANSFUSION_TRANSITIONS, TransfusionStatus),
}


def next_state(record_type: str, current, action: str):
    table, status_enum = _TABLES[record_type]
    current = status_enum(current)
    try:
        return table[(current, action)]
    except KeyError:
        raise InvalidTransition(record_type, current.value, action) from None


async def apply_transition(
    collection,
    record_type: str,
    record: dict,
    action: str,
    changes: Optional[dict] = None,
    unset: Optional[list] = None,
    extra_filter: Optional[dict] = None,
):
    """Compare-and-set the record from its current status to the next one."""
    new_status = next_state(record_type, record["status"], action)

    update = {"$set": {"status": new_status.value, "updated_at": utcnow().isoformat()}}
    if changes:
        update["$set"].update(changes)
    if unset:
        update["$unset"] = {field: "" for field in unset}

    query = {"id": record["id"], "status": record["status"]}
    if extra_filter:
        query.update(extra_filter)

    result = await collection.update_one(query, update)
    if result.modified_count == 0:
        raise ConcurrentModification(record_type, record["id"])
    return new_status
