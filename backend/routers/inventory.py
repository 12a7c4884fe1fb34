"""
Inventory API: unit lookup, FEFO listing, direct intake, quality control
and the expiry sweep.
"""
from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from database import get_db
from models import BloodUnit, BloodUnitView, BloodUnitCreate, QualityControlFindings
from services import get_current_user
from services import inventory as inventory_service
from services.quality_control import inspect_unit

router = APIRouter(prefix="/inventory", tags=["Inventory"])

@router.get("", response_model=List[BloodUnitView])
async def list_inventory(
    blood_group: Optional[str] = None,
    status: Optional[str] = None,
    component_type: Optional[str] = None,
    expiring_within_days: Optional[int] = Query(default=None, ge=0),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await inventory_service.list_inventory(
        db, blood_group=blood_group, status=status,
        component_type=component_type, expiring_within_days=expiring_within_days,
    )

@router.get("/summary")
async def get_inventory_summary(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await inventory_service.inventory_summary(db)

@router.post("/sweep-expired")
async def sweep_expired(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    expired = await inventory_service.sweep_expired(db, current_user)
    return {"status": "success", "expired": expired}

@router.post("/units", response_model=BloodUnit, status_code=201)
async def add_unit(data: BloodUnitCreate, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await inventory_service.add_unit(db, data, current_user)

@router.get("/units/{unit_id}", response_model=BloodUnitView)
async def get_unit(unit_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await inventory_service.get_unit(db, unit_id)

@router.post("/units/{unit_id}/quality-control", response_model=BloodUnit)
async def inspect(
    unit_id: str,
    findings: QualityControlFindings,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await inspect_unit(db, unit_id, findings, current_user)
