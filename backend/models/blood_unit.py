from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import datetime, timezone
import uuid
from .enums import BloodGroup, ComponentType, UnitStatus

class QualityControlFindings(BaseModel):
    appearance_ok: bool
    storage_temperature_ok: bool
    packaging_intact: bool
    labeling_accurate: bool
    passed: bool
    notes: Optional[str] = None

class QualityControlRecord(QualityControlFindings):
    inspected_by: Optional[str] = None
    inspected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class Reservation(BaseModel):
    request_id: str
    patient_id: str
    reserved_by: Optional[str] = None
    reserved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class BloodUnit(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    unit_number: str = ""
    donation_id: Optional[str] = None
    blood_group: BloodGroup
    component_type: ComponentType
    volume: float
    collection_date: datetime
    expiry_date: datetime
    status: UnitStatus = UnitStatus.AVAILABLE
    quality_control: Optional[QualityControlRecord] = None
    reservation: Optional[Reservation] = None
    transfusion_id: Optional[str] = None
    discard_reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_by: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class BloodUnitView(BloodUnit):
    """Unit with expiry fields computed against the read time."""
    days_until_expiry: int
    expiring_soon: bool
    effective_status: UnitStatus

class ComponentSpec(BaseModel):
    component_type: ComponentType
    volume: float
    expiry_days: Optional[int] = None
    notes: Optional[str] = None

class SeparationRequest(BaseModel):
    components: List[ComponentSpec]

class BloodUnitCreate(BaseModel):
    blood_group: BloodGroup
    component_type: ComponentType = ComponentType.WHOLE_BLOOD
    volume: float = Field(gt=0)
    collection_date: datetime
    expiry_date: datetime
    donation_id: Optional[str] = None
    notes: Optional[str] = None

class UnitDiscard(BaseModel):
    reason: str = Field(min_length=1)
