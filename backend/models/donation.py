from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime, timezone
import uuid
from .enums import BloodGroup, DonationStatus

class CollectionVitals(BaseModel):
    """Vitals and self-reported risk screening taken at the chair."""
    hemoglobin: float
    weight: float
    temperature: float
    pulse: int
    blood_pressure: Optional[str] = None
    units: int = Field(default=1, ge=1)
    volume: Optional[float] = Field(default=None, gt=0)

    # Risk screening, every answer must be negative
    recent_illness: bool = False
    recent_vaccination: bool = False
    recent_surgery: bool = False
    recent_tattoo: bool = False
    pregnant: bool = False
    high_risk_behavior: bool = False

class LabResults(BaseModel):
    hiv: bool
    hepatitis_b: bool
    hepatitis_c: bool
    syphilis: bool
    malaria: bool
    hemoglobin: float
    notes: Optional[str] = None

    @property
    def has_infection(self) -> bool:
        return any((self.hiv, self.hepatitis_b, self.hepatitis_c, self.syphilis, self.malaria))

class Donation(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    donation_id: str = ""
    donor_id: str
    blood_group: BloodGroup
    status: DonationStatus = DonationStatus.SCHEDULED
    scheduled_date: datetime
    notes: Optional[str] = None
    vitals: Optional[CollectionVitals] = None
    units: Optional[int] = None
    volume: Optional[float] = None
    collection_date: Optional[datetime] = None
    collected_by: Optional[str] = None
    test_results: Optional[LabResults] = None
    tested_by: Optional[str] = None
    tested_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class DonationCreate(BaseModel):
    donor_id: str
    scheduled_date: datetime
    notes: Optional[str] = None

class DonationCancel(BaseModel):
    reason: str = Field(min_length=1)
