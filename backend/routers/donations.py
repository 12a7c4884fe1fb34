from fastapi import APIRouter, Depends
from typing import List, Optional

from database import get_db
from models import (
    Donation, DonationCreate, DonationCancel, CollectionVitals, LabResults,
    BloodUnit, SeparationRequest
)
from services import get_current_user
from services import donations as donation_service
from services.separation import separate_components

router = APIRouter(prefix="/donations", tags=["Donations"])

@router.post("", response_model=Donation, status_code=201)
async def schedule_donation(data: DonationCreate, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await donation_service.schedule_donation(db, data, current_user)

@router.get("", response_model=List[Donation])
async def get_donations(
    status: Optional[str] = None,
    donor_id: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await donation_service.list_donations(db, status, donor_id)

@router.get("/{donation_id}", response_model=Donation)
async def get_donation(donation_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await donation_service.get_donation(db, donation_id)

@router.post("/{donation_id}/collect", response_model=Donation)
async def collect_donation(
    donation_id: str,
    vitals: CollectionVitals,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await donation_service.collect_donation(db, donation_id, vitals, current_user)

@router.post("/{donation_id}/test", response_model=Donation)
async def record_test_results(
    donation_id: str,
    results: LabResults,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await donation_service.record_test_results(db, donation_id, results, current_user)

@router.post("/{donation_id}/cancel", response_model=Donation)
async def cancel_donation(
    donation_id: str,
    data: DonationCancel,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await donation_service.cancel_donation(db, donation_id, data.reason, current_user)

@router.post("/{donation_id}/separate", response_model=List[BloodUnit], status_code=201)
async def separate_donation(
    donation_id: str,
    data: SeparationRequest,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await separate_components(db, donation_id, data.components, current_user)
