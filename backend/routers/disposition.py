from fastapi import APIRouter, Depends
from typing import Optional

from database import get_db
from models import BloodUnit, UnitDiscard, UnitStatus
from services import get_current_user
from services.inventory import discard_unit

discard_router = APIRouter(prefix="/discards", tags=["Discards"])

@discard_router.post("/{unit_id}", response_model=BloodUnit)
async def create_discard(
    unit_id: str,
    data: UnitDiscard,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    return await discard_unit(db, unit_id, data.reason, current_user)

@discard_router.get("")
async def get_discards(
    reason: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    query = {"status": UnitStatus.DISCARDED.value}
    if reason:
        query["discard_reason"] = {"$regex": reason, "$options": "i"}

    discards = await db.blood_units.find(query, {"_id": 0}).to_list(1000)
    return discards
