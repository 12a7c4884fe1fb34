"""
Audit trail entries. Every create and every lifecycle transition of a donor,
donation, unit, request or transfusion leaves one entry.
"""
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional
from enum import Enum
import uuid


class AuditAction(str, Enum):
    CREATE = "create"

    # Donor / donation lifecycle
    DEFER = "defer"
    COLLECT = "collect"
    TEST = "test"
    SEPARATE = "separate"
    CANCEL = "cancel"

    # Unit disposition
    INSPECT = "inspect"
    DISCARD = "discard"
    EXPIRE = "expire"

    # Allocation
    APPROVE = "approve"
    REJECT = "reject"
    RESERVE = "reserve"
    RELEASE = "release"
    FULFILL = "fulfill"
    TRANSFUSE = "transfuse"


class AuditModule(str, Enum):
    DONORS = "donors"
    DONATIONS = "donations"
    LAB_TESTS = "lab_tests"
    COMPONENTS = "components"
    QC_VALIDATION = "qc_validation"
    INVENTORY = "inventory"
    DISCARDS = "discards"
    REQUESTS = "requests"
    TRANSFUSIONS = "transfusions"


class AuditLog(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    module: AuditModule
    record_type: str
    record_id: str

    # Unset for creates
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    changes: Optional[dict] = None
    description: Optional[str] = None

    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_role: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
