from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from .blood_unit import BloodUnit
from .enums import BloodGroup, ComponentType, RequestPriority, RequestStatus, TransfusionStatus

class BloodRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    request_id: str = ""
    patient_id: str
    blood_group: BloodGroup
    quantity: int
    component_type: Optional[ComponentType] = None
    priority: RequestPriority = RequestPriority.STANDARD
    status: RequestStatus = RequestStatus.PENDING
    reason: Optional[str] = None
    requested_by: Optional[str] = None
    approved_by: Optional[str] = None
    approval_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    reserved_unit_ids: List[str] = []
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class BloodRequestCreate(BaseModel):
    patient_id: str
    blood_group: BloodGroup
    quantity: int = Field(ge=1)
    component_type: Optional[ComponentType] = None
    priority: RequestPriority = RequestPriority.STANDARD
    reason: Optional[str] = None

class RequestReject(BaseModel):
    reason: str = Field(min_length=1)

class Transfusion(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    transfusion_id: str = ""
    request_id: str
    patient_id: str
    unit_ids: List[str] = []
    status: TransfusionStatus = TransfusionStatus.SCHEDULED
    performed_by: Optional[str] = None
    transfusion_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    cancellation_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class TransfusionSchedule(BaseModel):
    request_id: str
    transfusion_date: datetime
    performed_by: Optional[str] = None

class TransfusionComplete(BaseModel):
    performed_by: str = Field(min_length=1)

class TransfusionCancel(BaseModel):
    reason: str = Field(min_length=1)

class AllocationResult(BaseModel):
    request: BloodRequest
    reserved_units: List[BloodUnit]

class QueueAllocationResult(BaseModel):
    approved: List[str] = []
    shortfalls: List[dict] = []
    skipped: List[str] = []
