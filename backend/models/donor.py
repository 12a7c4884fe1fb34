from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime, timezone
import uuid
from .enums import BloodGroup, DeferralPeriod

class Donor(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    donor_id: str = ""
    full_name: str
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    blood_group: BloodGroup
    phone: Optional[str] = None
    weight: Optional[float] = None
    total_donations: int = 0
    last_donation_date: Optional[datetime] = None
    # Screening deferral
    deferral_end_date: Optional[datetime] = None
    deferral_reason: Optional[str] = None
    permanently_deferred: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class DonorCreate(BaseModel):
    full_name: str
    blood_group: BloodGroup
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    weight: Optional[float] = Field(default=None, gt=0)

class DonorDeferral(BaseModel):
    period: DeferralPeriod
    reason: str = Field(min_length=1)

class DonorView(Donor):
    """Donor as returned to callers, with eligibility derived at read time.

    eligible_to_donate_since is None both for a donor who was never restricted
    and for one who is permanently deferred; the latter has eligible=False,
    permanently_deferred=True and the deferral named in ineligible_reason.
    """
    eligible_to_donate_since: Optional[datetime] = None
    eligible: bool = True
    ineligible_reason: Optional[str] = None
