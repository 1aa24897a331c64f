"""Booking router - FastAPI endpoints for booking operations"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import Booking, User
from ...services.notification_service import run_notification_job, send_booking_notification
from ...shared.serializers import row_to_dict
from .schemas import BULK_ACTIONS, BookingBulkAction, BookingCreate, BookingUpdate, CheckInRequest
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def serialize_booking(booking: Booking) -> dict:
    data = row_to_dict(booking)
    # Clients read the period as checkIn/checkOut
    data["checkInDate"] = data["checkIn"]
    data["checkOutDate"] = data["checkOut"]
    if booking.property:
        data["property"] = {
            "id": booking.property.id,
            "name": booking.property.name,
            "nickname": booking.property.nickname,
        }
    if booking.owner:
        data["owner"] = {"id": booking.owner.id, "name": booking.owner.name}
    return data


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("")
async def list_bookings(
    propertyId: Optional[str] = Query(None),
    ownerId: Optional[str] = Query(None),
    source: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """List bookings visible to the current user"""
    bookings = service.list_bookings(
        current_user,
        property_id=propertyId,
        owner_id=ownerId,
        source=source,
        status=status_filter,
        start_date=startDate,
        end_date=endDate,
    )
    return [serialize_booking(b) for b in bookings]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking and notify the owner in the background"""
    booking = service.create_booking(data, current_user)
    background_tasks.add_task(
        run_notification_job, send_booking_notification, booking.id, "created", booking.owner_id
    )
    return serialize_booking(booking)


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.get_booking(booking_id)
    if current_user.role == "OWNER" and booking.owner_id != current_user.owner_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return serialize_booking(booking)


@router.patch("/{booking_id}")
async def update_booking(
    booking_id: str,
    data: BookingUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    """Update a booking, recomputing derived amounts"""
    booking = service.update_booking(booking_id, data, current_user)
    background_tasks.add_task(
        run_notification_job, send_booking_notification, booking.id, "updated", booking.owner_id
    )
    return serialize_booking(booking)


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: str,
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    service.delete_booking(booking_id)
    return {"success": True}


# ============================================================================
# BULK ACTIONS
# ============================================================================


@router.post("/bulk")
async def bulk_action(
    data: BookingBulkAction,
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    """updateStatus / delete / sendNotifications / export over a list of booking ids"""
    if not data.ids:
        raise HTTPException(status_code=400, detail="No booking IDs provided")
    if not data.action:
        raise HTTPException(status_code=400, detail="No action specified")
    if data.action not in BULK_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action")

    if data.action == "updateStatus":
        new_status = (data.data or {}).get("status")
        if not new_status:
            raise HTTPException(status_code=400, detail="Status is required")
        count = service.bulk_update_status(data.ids, new_status)
        return {"success": True, "message": f"Updated {count} booking(s)", "count": count}

    if data.action == "delete":
        count = service.bulk_delete(data.ids)
        return {"success": True, "message": f"Deleted {count} booking(s)", "count": count}

    if data.action == "sendNotifications":
        success_count = fail_count = 0
        for booking in service.bookings_by_ids(data.ids):
            try:
                await send_booking_notification(service.db, booking.id, "reminder", booking.owner_id)
                success_count += 1
            except Exception as e:
                logger.error(f"❌ Reminder for booking {booking.id} failed: {e}")
                fail_count += 1
        failed = f", {fail_count} failed" if fail_count else ""
        return {
            "success": True,
            "message": f"Sent notifications for {success_count} booking(s){failed}",
            "successCount": success_count,
            "failCount": fail_count,
        }

    filename = f"bookings-export-{datetime.utcnow():%Y-%m-%d}.csv"
    return StreamingResponse(
        iter([service.export_csv(data.ids)]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ============================================================================
# CHECK-IN
# ============================================================================


@router.post("/{booking_id}/check-in")
async def check_in_booking(
    booking_id: str,
    data: Optional[CheckInRequest] = None,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Mark the guest as checked in"""
    booking = service.check_in(booking_id, current_user, data.notes if data else None)
    return serialize_booking(booking)
