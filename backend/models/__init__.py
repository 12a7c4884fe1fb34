from .enums import (
    BloodGroup, DonationStatus, ComponentType, UnitStatus,
    RequestStatus, RequestPriority, TransfusionStatus, DeferralPeriod
)
from .donor import Donor, DonorCreate, DonorDeferral, DonorView
from .donation import Donation, DonationCreate, DonationCancel, CollectionVitals, LabResults
from .blood_unit import (
    BloodUnit, BloodUnitView, BloodUnitCreate, ComponentSpec, SeparationRequest,
    QualityControlFindings, QualityControlRecord, Reservation, UnitDiscard
)
from .request import (
    BloodRequest, BloodRequestCreate, RequestReject, AllocationResult, QueueAllocationResult,
    Transfusion, TransfusionSchedule, TransfusionComplete, TransfusionCancel
)
from .audit import AuditLog, AuditAction, AuditModule
