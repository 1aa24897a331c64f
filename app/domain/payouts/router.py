"""Payout router"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import Payout, User
from ...services.notification_service import run_notification_job, send_payout_notification
from ...shared.serializers import row_to_dict
from .schemas import PayoutCreate
from .service import PayoutService

router = APIRouter(prefix="/payouts", tags=["Payouts"])


def get_payout_service(db: Session = Depends(get_db)) -> PayoutService:
    return PayoutService(db)


def serialize_payout(payout: Payout) -> dict:
    data = row_to_dict(payout)
    if payout.owner:
        data["owner"] = {"id": payout.owner.id, "name": payout.owner.name, "email": payout.owner.email}
    return data


@router.get("")
async def list_payouts(
    ownerId: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    return [serialize_payout(p) for p in service.list_payouts(current_user, ownerId)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_payout(
    data: PayoutCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin),
    service: PayoutService = Depends(get_payout_service),
):
    """Record a payout and notify the owner"""
    payout = service.create_payout(data)
    background_tasks.add_task(run_notification_job, send_payout_notification, payout.id, payout.owner_id)
    return serialize_payout(payout)
