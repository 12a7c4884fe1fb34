from fastapi import APIRouter, Depends

from database import get_db
from services import get_current_user, utcnow
from services.donations import donation_stats
from services.inventory import inventory_summary

router = APIRouter(prefix="/reports", tags=["Reports"])

@router.get("/donations")
async def get_donation_report(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    stats = await donation_stats(db)
    return {"report_date": utcnow().isoformat(), **stats}

@router.get("/inventory-status")
async def get_inventory_status_report(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    summary = await inventory_summary(db)
    return {"report_date": utcnow().isoformat(), **summary}
