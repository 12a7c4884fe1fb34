from enum import Enum

class BloodGroup(str, Enum):
    A_POSITIVE = "A+"
    A_NEGATIVE = "A-"
    B_POSITIVE = "B+"
    B_NEGATIVE = "B-"
    AB_POSITIVE = "AB+"
    AB_NEGATIVE = "AB-"
    O_POSITIVE = "O+"
    O_NEGATIVE = "O-"

class DonationStatus(str, Enum):
    SCHEDULED = "scheduled"
    COLLECTED = "collected"
    TESTED = "tested"
    REJECTED = "rejected"
    PROCESSED = "processed"
    CANCELLED = "cancelled"

class ComponentType(str, Enum):
    WHOLE_BLOOD = "whole_blood"
    RED_CELLS = "red_cells"
    PLASMA = "plasma"
    PLATELETS = "platelets"
    CRYOPRECIPITATE = "cryoprecipitate"

class UnitStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    USED = "used"
    EXPIRED = "expired"
    DISCARDED = "discarded"

class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FULFILLED = "fulfilled"

class RequestPriority(str, Enum):
    STANDARD = "standard"
    URGENT = "urgent"
    EMERGENCY = "emergency"

class TransfusionStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class DeferralPeriod(str, Enum):
    ONE_MONTH = "1-month"
    THREE_MONTHS = "3-months"
    SIX_MONTHS = "6-months"
    TWELVE_MONTHS = "12-months"
    PERMANENT = "permanent"
