from fastapi import APIRouter, Depends
from typing import List, Optional

from database import get_db
from models import DonorCreate, DonorDeferral, DonorView, Donor
from services import get_current_user
from services import donors as donor_service

router = APIRouter(prefix="/donors", tags=["Donors"])

@router.post("", response_model=Donor, status_code=201)
async def register_donor(data: DonorCreate, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await donor_service.register_donor(db, data, current_user)

@router.get("", response_model=List[DonorView])
async def get_donors(
    blood_group: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await donor_service.list_donors(db, blood_group)

@router.get("/{donor_id}", response_model=DonorView)
async def get_donor(donor_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await donor_service.get_donor(db, donor_id)

@router.post("/{donor_id}/defer", response_model=DonorView)
async def defer_donor(
    donor_id: str,
    data: DonorDeferral,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await donor_service.defer_donor(db, donor_id, data.period, data.reason, current_user)
