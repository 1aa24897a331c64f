import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin
from ..database import get_db
from ..models import Notification, User
from ..services.notification_service import CHANNELS, resend_notification, send_notification
from ..shared.serializers import row_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class SendNotificationRequest(BaseModel):
    ownerId: str
    type: str = "GENERAL"
    channels: list[str] = ["EMAIL"]
    title: str
    message: str
    htmlContent: Optional[str] = None
    actionUrl: Optional[str] = None
    actionText: Optional[str] = None
    metadata: Optional[dict] = None
    templateType: Optional[str] = None
    templateVariables: Optional[dict] = None

    @field_validator("channels")
    @classmethod
    def check_channels(cls, v):
        if not v:
            raise ValueError("At least one channel is required")
        invalid = [c for c in v if c not in CHANNELS]
        if invalid:
            raise ValueError(f"Unsupported channel(s): {', '.join(invalid)}")
        return v


@router.get("")
async def list_notifications(
    ownerId: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    channel: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Owners only see their own notifications"""
    query = db.query(Notification)
    if current_user.role == "OWNER":
        if not current_user.owner_id:
            raise HTTPException(status_code=403, detail="No owner linked")
        query = query.filter(Notification.owner_id == current_user.owner_id)
    elif not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    elif ownerId:
        query = query.filter(Notification.owner_id == ownerId)
    if type:
        query = query.filter(Notification.type == type)
    if channel:
        query = query.filter(Notification.channel == channel)
    if status_filter:
        query = query.filter(Notification.status == status_filter)
    notifications = query.order_by(Notification.created_at.desc()).limit(limit).all()
    return [row_to_dict(n) for n in notifications]


@router.post("/send")
async def send_manual_notification(
    data: SendNotificationRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        results = await send_notification(
            db,
            owner_id=data.ownerId,
            notification_type=data.type,
            channels=data.channels,
            title=data.title,
            message=data.message,
            html_content=data.htmlContent,
            action_url=data.actionUrl,
            action_text=data.actionText,
            metadata=data.metadata,
            template_type=data.templateType,
            template_variables=data.templateVariables,
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": all(r["status"] == "SENT" for r in results), "results": results}


@router.post("/{notification_id}/resend")
async def resend(
    notification_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    try:
        results = await resend_notification(db, notification)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    logger.info(f"🔁 Notification {notification_id} resent on {notification.channel}")
    return {"success": all(r["status"] == "SENT" for r in results), "results": results}
