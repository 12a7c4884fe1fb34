from fastapi import APIRouter, Depends
from typing import Optional, List

from database import get_db
from models import (
    BloodRequest, BloodRequestCreate, RequestReject, AllocationResult, QueueAllocationResult,
    Transfusion, TransfusionSchedule, TransfusionComplete, TransfusionCancel
)
from services import get_current_user
from services import allocation
from services import transfusions as transfusion_service

router = APIRouter(prefix="/requests", tags=["Blood Requests"])

@router.post("", response_model=BloodRequest, status_code=201)
async def submit_blood_request(
    request_data: BloodRequestCreate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await allocation.submit_request(db, request_data, current_user)

@router.get("", response_model=List[BloodRequest])
async def get_blood_requests(
    status: Optional[str] = None,
    priority: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await allocation.list_requests(db, status, priority)

@router.post("/allocate-pending", response_model=QueueAllocationResult)
async def allocate_pending(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await allocation.allocate_pending(db, current_user)

@router.get("/{request_id}", response_model=BloodRequest)
async def get_blood_request(request_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await allocation.get_request(db, request_id)

@router.put("/{request_id}/approve", response_model=AllocationResult)
async def approve_request(request_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await allocation.approve_request(db, request_id, current_user)

@router.put("/{request_id}/reject", response_model=BloodRequest)
async def reject_request(
    request_id: str,
    data: RequestReject,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await allocation.reject_request(db, request_id, data.reason, current_user)

@router.put("/{request_id}/complete-transfusion", response_model=Transfusion)
async def complete_transfusion(
    request_id: str,
    data: TransfusionComplete,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await transfusion_service.complete_transfusion(db, request_id, data.performed_by, current_user)

# Transfusion Router
transfusion_router = APIRouter(prefix="/transfusions", tags=["Transfusions"])

@transfusion_router.post("", response_model=Transfusion, status_code=201)
async def schedule_transfusion(
    data: TransfusionSchedule,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await transfusion_service.schedule_transfusion(db, data, current_user)

@transfusion_router.get("", response_model=List[Transfusion])
async def get_transfusions(
    patient_id: Optional[str] = None,
    request_id: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await transfusion_service.list_transfusions(db, patient_id, request_id)

@transfusion_router.get("/{transfusion_id}", response_model=Transfusion)
async def get_transfusion(transfusion_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await transfusion_service.load_transfusion(db, transfusion_id)

@transfusion_router.put("/{transfusion_id}/cancel", response_model=Transfusion)
async def cancel_transfusion(
    transfusion_id: str,
    data: TransfusionCancel,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await transfusion_service.cancel_transfusion(db, transfusion_id, data.reason, current_user)
