"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Booking, Document, Property, Task


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_booking(db: Session, booking_id: str) -> Optional[Booking]:
        return (
            db.query(Booking)
            .options(joinedload(Booking.property), joinedload(Booking.owner))
            .filter(Booking.id == booking_id)
            .first()
        )

    @staticmethod
    def get_property(db: Session, property_id: str) -> Optional[Property]:
        return db.query(Property).filter(Property.id == property_id).first()

    @staticmethod
    def managed_property_ids(db: Session, manager_id: str) -> list[str]:
        return [row.id for row in db.query(Property.id).filter(Property.manager_id == manager_id).all()]

    @staticmethod
    def list_bookings(
        db: Session,
        property_ids: Optional[list[str]] = None,
        property_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        source: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[Booking]:
        """Filtered bookings, newest check-in first"""
        query = db.query(Booking).options(joinedload(Booking.property), joinedload(Booking.owner))
        if property_ids is not None:
            query = query.filter(Booking.property_id.in_(property_ids))
        if property_id:
            query = query.filter(Booking.property_id == property_id)
        if owner_id:
            query = query.filter(Booking.owner_id == owner_id)
        if source:
            query = query.filter(Booking.source == source)
        if status:
            query = query.filter(Booking.status == status)
        if start_date:
            query = query.filter(Booking.check_in >= start_date)
        if end_date:
            query = query.filter(Booking.check_in <= end_date)
        return query.order_by(Booking.check_in.desc()).limit(limit).all()

    @staticmethod
    def tasks_for_booking(db: Session, booking_id: str) -> list[Task]:
        return db.query(Task).filter(Task.booking_id == booking_id).all()

    @staticmethod
    def delete_booking(db: Session, booking: Booking) -> None:
        """Delete a booking; generated tasks are detached rather than removed"""
        db.query(Task).filter(Task.booking_id == booking.id).update({Task.booking_id: None})
        db.query(Document).filter(Document.booking_id == booking.id).update({Document.booking_id: None})
        db.delete(booking)
        db.commit()
