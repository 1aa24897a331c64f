"""Booking service - Business logic for booking operations"""

import csv
import logging
from datetime import datetime
from io import StringIO
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import DEFAULT_COMMISSION_RATE
from ...currency import convert_currency, get_fx_rate
from ...models import ADMIN_ROLES, Booking, Task, User
from ...services.wallet_service import get_or_create_wallet
from .repository import BookingRepository
from .schemas import BOOKING_STATUSES, BookingCreate, BookingUpdate

logger = logging.getLogger(__name__)

CHECK_IN_ROLES = ("MANAGER", "GENERAL_MANAGER", *ADMIN_ROLES)


def commission_in_ghs(db: Session, gross: float, currency: str, rate: Optional[float]) -> float:
    """Management commission on a gross booking amount, stored in GHS"""
    return convert_currency(db, gross * (rate or DEFAULT_COMMISSION_RATE), currency, "GHS")


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()

    def list_bookings(
        self,
        user: User,
        property_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        source: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[Booking]:
        """Role-scoped booking list: owners see their own, managers their properties"""
        filters = {"source": source, "status": status, "start_date": start_date, "end_date": end_date}

        if user.role == "OWNER":
            if not user.owner_id:
                raise HTTPException(status_code=403, detail="No owner linked")
            return self.repo.list_bookings(self.db, owner_id=user.owner_id, **filters)

        if user.role == "MANAGER":
            property_ids = self.repo.managed_property_ids(self.db, user.id)
            if not property_ids:
                return []
            if property_id and property_id in property_ids:
                property_ids = [property_id]
            return self.repo.list_bookings(self.db, property_ids=property_ids, **filters)

        return self.repo.list_bookings(self.db, property_id=property_id, owner_id=owner_id, **filters)

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking

    def create_booking(self, data: BookingCreate, user: User) -> Booking:
        """Create a booking with derived totals, commission payable and cleaning task"""
        if user.role != "MANAGER" and user.role not in ADMIN_ROLES:
            raise HTTPException(status_code=403, detail="Forbidden")

        prop = self.repo.get_property(self.db, data.propertyId)
        if not prop:
            raise HTTPException(status_code=404, detail="Property not found")

        if user.role == "MANAGER" and prop.manager_id != user.id:
            raise HTTPException(
                status_code=403, detail="You can only create bookings for properties you manage"
            )

        logger.info(f"📥 Creating booking for property {prop.id} by user {user.id}")

        nights = (data.checkOutDate - data.checkInDate).days
        total_payout = data.baseAmount + data.cleaningFee - data.platformFees - data.taxes
        fx_rate = data.fxRateToBase or get_fx_rate(self.db, data.currency)
        total_payout_in_base = convert_currency(self.db, total_payout, data.currency)

        booking = Booking(
            property_id=prop.id,
            owner_id=prop.owner_id,
            source=data.source,
            external_reservation_code=data.externalReservationCode,
            guest_name=data.guestName,
            guest_email=data.guestEmail,
            guest_phone_number=data.guestPhoneNumber,
            guest_contact_id=data.guestContactId,
            check_in=data.checkInDate,
            check_out=data.checkOutDate,
            nights=nights,
            currency=data.currency,
            base_amount=data.baseAmount,
            cleaning_fee=data.cleaningFee,
            platform_fees=data.platformFees,
            taxes=data.taxes,
            total_payout=total_payout,
            fx_rate_to_base=fx_rate,
            total_payout_in_base=total_payout_in_base,
            payment_received_by=data.paymentReceivedBy,
            status="UPCOMING",
            notes=data.notes,
        )
        self.db.add(booking)
        self.db.flush()

        if data.paymentReceivedBy == "OWNER":
            # Owner holds the money, so the management commission is owed back to us
            wallet = get_or_create_wallet(self.db, prop.owner_id)
            wallet.commissions_payable = (wallet.commissions_payable or 0) + commission_in_ghs(
                self.db, data.baseAmount + data.cleaningFee, data.currency, prop.default_commission_rate
            )

        if data.autoCreateCleaningTask:
            self.db.add(
                Task(
                    property_id=prop.id,
                    booking_id=booking.id,
                    type="CLEANING",
                    title=f"Cleaning for {prop.name}",
                    description=f"Cleaning task for booking {data.externalReservationCode or booking.id}",
                    scheduled_at=data.checkOutDate,
                    due_at=data.checkOutDate,
                    status="PENDING",
                )
            )

        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} created ({nights} nights, {data.currency} {total_payout:.2f})")
        return booking

    def update_booking(self, booking_id: str, data: BookingUpdate, user: User) -> Booking:
        """Update a booking, recomputing totals and the owner's commissions payable"""
        booking = self.get_booking(booking_id)
        updates = data.model_dump(exclude_unset=True)

        old_receiver = booking.payment_received_by
        old_gross = booking.base_amount + booking.cleaning_fee
        old_currency = booking.currency
        rate = booking.property.default_commission_rate if booking.property else None

        field_map = {
            "source": "source",
            "externalReservationCode": "external_reservation_code",
            "guestName": "guest_name",
            "guestEmail": "guest_email",
            "guestPhoneNumber": "guest_phone_number",
            "checkInDate": "check_in",
            "checkOutDate": "check_out",
            "baseAmount": "base_amount",
            "cleaningFee": "cleaning_fee",
            "platformFees": "platform_fees",
            "taxes": "taxes",
            "currency": "currency",
            "fxRateToBase": "fx_rate_to_base",
            "paymentReceivedBy": "payment_received_by",
            "status": "status",
            "notes": "notes",
        }
        for key, value in updates.items():
            if key in field_map and value is not None:
                setattr(booking, field_map[key], value)

        if "checkInDate" in updates or "checkOutDate" in updates:
            booking.nights = (booking.check_out - booking.check_in).days

        money_fields = {"baseAmount", "cleaningFee", "platformFees", "taxes", "currency"}
        if money_fields & updates.keys():
            booking.total_payout = (
                booking.base_amount + booking.cleaning_fee - booking.platform_fees - booking.taxes
            )
            booking.total_payout_in_base = convert_currency(self.db, booking.total_payout, booking.currency)
            if not updates.get("fxRateToBase"):
                booking.fx_rate_to_base = get_fx_rate(self.db, booking.currency)

        if updates.get("status") == "CHECKED_IN" and not booking.checked_in_at:
            booking.checked_in_at = datetime.utcnow()
            booking.checked_in_by_id = user.id

        new_receiver = booking.payment_received_by
        if old_receiver == "OWNER" or new_receiver == "OWNER":
            wallet = get_or_create_wallet(self.db, booking.owner_id)
            old_commission = commission_in_ghs(self.db, old_gross, old_currency, rate)
            new_commission = commission_in_ghs(
                self.db, booking.base_amount + booking.cleaning_fee, booking.currency, rate
            )
            if old_receiver == "OWNER" and new_receiver == "COMPANY":
                wallet.commissions_payable -= old_commission
            elif old_receiver == "COMPANY" and new_receiver == "OWNER":
                wallet.commissions_payable += new_commission
            elif new_commission != old_commission:
                wallet.commissions_payable += new_commission - old_commission

        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} updated by user {user.id}")
        return booking

    def check_in(self, booking_id: str, user: User, notes: Optional[str] = None) -> Booking:
        """Record a guest check-in on an upcoming booking"""
        if user.role not in CHECK_IN_ROLES:
            raise HTTPException(status_code=403, detail="Forbidden")

        booking = self.get_booking(booking_id)
        if user.role == "MANAGER" and booking.property.manager_id != user.id:
            raise HTTPException(
                status_code=403, detail="You can only check in guests for properties you manage"
            )
        if booking.status != "UPCOMING":
            raise HTTPException(status_code=400, detail="Can only check in upcoming bookings")
        if booking.checked_in_at:
            raise HTTPException(status_code=400, detail="Guest already checked in")

        booking.status = "CHECKED_IN"
        booking.checked_in_at = datetime.utcnow()
        booking.checked_in_by_id = user.id
        if notes:
            booking.notes = f"{booking.notes}\n{notes}" if booking.notes else notes
        self.db.commit()
        self.db.refresh(booking)
        return booking

    def delete_booking(self, booking_id: str) -> None:
        booking = self.get_booking(booking_id)
        self.repo.delete_booking(self.db, booking)
        logger.info(f"✅ Booking {booking_id} deleted")

    # ========================================================================
    # BULK ACTIONS
    # ========================================================================

    def bulk_update_status(self, ids: list[str], status: str) -> int:
        if status not in BOOKING_STATUSES:
            raise HTTPException(status_code=400, detail=f"status must be one of {', '.join(BOOKING_STATUSES)}")
        count = (
            self.db.query(Booking)
            .filter(Booking.id.in_(ids))
            .update({Booking.status: status, Booking.updated_at: datetime.utcnow()}, synchronize_session=False)
        )
        self.db.commit()
        logger.info(f"✅ Bulk status {status} applied to {count} bookings")
        return count

    def bulk_delete(self, ids: list[str]) -> int:
        bookings = self.db.query(Booking).filter(Booking.id.in_(ids)).all()
        for booking in bookings:
            self.repo.delete_booking(self.db, booking)
        logger.info(f"✅ Bulk deleted {len(bookings)} bookings")
        return len(bookings)

    def bookings_by_ids(self, ids: list[str]) -> list[Booking]:
        return self.db.query(Booking).filter(Booking.id.in_(ids)).order_by(Booking.check_in.asc()).all()

    def export_csv(self, ids: list[str]) -> str:
        output = StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL)
        writer.writerow(
            [
                "ID",
                "Property",
                "Owner",
                "Guest Name",
                "Source",
                "Check-in Date",
                "Check-out Date",
                "Nights",
                "Base Amount",
                "Cleaning Fee",
                "Platform Fees",
                "Taxes",
                "Total Payout",
                "Currency",
                "Status",
            ]
        )
        for booking in self.bookings_by_ids(ids):
            writer.writerow(
                [
                    booking.id,
                    booking.property.name if booking.property else "",
                    booking.owner.name if booking.owner else "",
                    booking.guest_name or "",
                    booking.source,
                    booking.check_in.strftime("%Y-%m-%d"),
                    booking.check_out.strftime("%Y-%m-%d"),
                    booking.nights,
                    booking.base_amount or 0,
                    booking.cleaning_fee or 0,
                    booking.platform_fees or 0,
                    booking.taxes or 0,
                    booking.total_payout,
                    booking.currency,
                    booking.status,
                ]
            )
        return output.getvalue()
