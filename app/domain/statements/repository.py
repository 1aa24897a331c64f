"""Statement repository - Database operations for statements"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Booking, Expense, Owner, Statement


class StatementRepository:
    """Repository for statement database operations"""

    @staticmethod
    def get_owner(db: Session, owner_id: str) -> Optional[Owner]:
        return db.query(Owner).filter(Owner.id == owner_id).first()

    @staticmethod
    def get_statement(db: Session, statement_id: str) -> Optional[Statement]:
        return (
            db.query(Statement)
            .options(joinedload(Statement.lines), joinedload(Statement.owner))
            .filter(Statement.id == statement_id)
            .first()
        )

    @staticmethod
    def list_statements(
        db: Session, owner_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[Statement]:
        query = db.query(Statement).options(joinedload(Statement.owner))
        if owner_id:
            query = query.filter(Statement.owner_id == owner_id)
        if status:
            query = query.filter(Statement.status == status)
        return query.order_by(Statement.period_start.desc(), Statement.created_at.desc()).all()

    @staticmethod
    def bookings_in_period(db: Session, owner_id: str, start: datetime, end: datetime) -> list[Booking]:
        """Every booking of the owner checking in within the period, any status"""
        return (
            db.query(Booking)
            .options(joinedload(Booking.property))
            .filter(Booking.owner_id == owner_id, Booking.check_in >= start, Booking.check_in <= end)
            .order_by(Booking.check_in.asc())
            .all()
        )

    @staticmethod
    def list_owners(db: Session) -> list[Owner]:
        return db.query(Owner).options(joinedload(Owner.wallet)).order_by(Owner.name.asc()).all()

    @staticmethod
    def expenses_in_period(db: Session, owner_id: str, start: datetime, end: datetime) -> list[Expense]:
        return (
            db.query(Expense)
            .options(joinedload(Expense.property))
            .filter(Expense.owner_id == owner_id, Expense.date >= start, Expense.date <= end)
            .order_by(Expense.date.asc())
            .all()
        )
