from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import verify_cron_or_admin
from ..database import get_db
from ..models import User
from ..services.reminder_service import run_all

router = APIRouter(prefix="/reminders", tags=["Reminders"])


@router.get("/run")
@router.post("/run")
async def run_reminders(
    _: Optional[User] = Depends(verify_cron_or_admin),
    db: Session = Depends(get_db),
):
    """Hourly reminder sweep; callable by cron (bearer secret) or an admin"""
    results = await run_all(db)
    return {"success": True, "results": results, "timestamp": datetime.utcnow().isoformat()}
