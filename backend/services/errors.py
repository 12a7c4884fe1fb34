"""
Domain errors raised by the service layer.

Each error carries the HTTP status the API answers with and a ``detail``
payload; ``server.py`` renders them the same way FastAPI renders
``HTTPException``.
"""
from typing import Any, List, Optional


class BloodBankError(Exception):
    status_code = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    @property
    def detail(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.context}


class ValidationFailed(BloodBankError):
    status_code = 400


class IneligibleDonor(ValidationFailed):
    def __init__(self, message: str, failures: Optional[List[str]] = None):
        super().__init__(message, failures=failures or [])


class InvalidTestValue(ValidationFailed):
    pass


class InvalidComponent(ValidationFailed):
    pass


class NotFound(BloodBankError):
    status_code = 404

    def __init__(self, record_type: str, record_id: str):
        super().__init__(f"{record_type.replace('_', ' ').capitalize()} not found",
                         record_type=record_type, record_id=record_id)


class InvalidTransition(BloodBankError):
    status_code = 409

    def __init__(self, record_type: str, current_state: str, action: str):
        super().__init__(
            f"Cannot {action.replace('_', ' ')} {record_type.replace('_', ' ')} in state {current_state}",
            record_type=record_type, current_state=current_state, action=action,
        )


class VolumeExceeded(BloodBankError):
    status_code = 409

    def __init__(self, requested: float, available: float):
        super().__init__(
            f"Requested component volume {requested:g} mL exceeds donation volume {available:g} mL",
            requested_volume=requested, donation_volume=available,
        )


class AllocationShortfall(BloodBankError):
    status_code = 409

    def __init__(self, request_id: str, requested: int, available: int):
        super().__init__(
            f"Only {available} compatible unit(s) available, {requested} requested",
            request_id=request_id, requested=requested, available=available,
        )


class ConcurrentModification(BloodBankError):
    status_code = 409

    def __init__(self, record_type: str, record_id: str):
        super().__init__(
            f"{record_type.replace('_', ' ').capitalize()} {record_id} was modified concurrently",
            record_type=record_type, record_id=record_id,
        )
