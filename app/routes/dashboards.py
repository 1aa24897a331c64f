from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import Owner, User
from ..services.metrics_service import compute_manager_metrics, compute_owner_metrics

owner_router = APIRouter(prefix="/owner", tags=["Dashboards"])
manager_router = APIRouter(prefix="/manager", tags=["Dashboards"])


@owner_router.get("/metrics")
async def owner_metrics(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Dashboard for the owner linked to the logged-in OWNER account"""
    if current_user.role != "OWNER":
        raise HTTPException(status_code=403, detail="Forbidden")
    if not current_user.owner_id:
        raise HTTPException(status_code=403, detail="No owner linked")

    owner = db.query(Owner).filter(Owner.id == current_user.owner_id).first()
    if not owner:
        raise HTTPException(status_code=404, detail="Owner not found")
    return compute_owner_metrics(db, owner)


@manager_router.get("/metrics")
async def manager_metrics(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role != "MANAGER":
        raise HTTPException(status_code=403, detail="Forbidden")
    return compute_manager_metrics(db, current_user.id)
