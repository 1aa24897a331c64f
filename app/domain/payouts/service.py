"""Payout service - Records money paid out to owners"""

import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy.orm import Session, joinedload

from ...models import Owner, OwnerTransaction, Payout, User
from ...services.wallet_service import recompute_balance
from .schemas import PayoutCreate

logger = logging.getLogger(__name__)


def payout_notes(payout: Payout) -> str:
    notes = "Payout"
    if payout.method:
        notes += f" via {payout.method}"
    if payout.reference:
        notes += f" - Ref: {payout.reference}"
    return f"{notes} (Payout ID: {payout.id})"


class PayoutService:
    def __init__(self, db: Session):
        self.db = db

    def list_payouts(self, user: User, owner_id: str = None) -> list[Payout]:
        query = self.db.query(Payout).options(joinedload(Payout.owner))
        if user.role == "OWNER":
            if not user.owner_id:
                raise HTTPException(status_code=403, detail="No owner linked")
            query = query.filter(Payout.owner_id == user.owner_id)
        elif not user.is_admin:
            raise HTTPException(status_code=403, detail="Forbidden")
        elif owner_id:
            query = query.filter(Payout.owner_id == owner_id)
        return query.order_by(Payout.created_at.desc()).limit(100).all()

    def create_payout(self, data: PayoutCreate) -> Payout:
        """Payout row plus the matching negative PAYOUT transaction, in one commit"""
        if not data.ownerId or not data.amount or data.amount <= 0:
            raise HTTPException(status_code=400, detail="Owner ID and positive amount are required")

        owner = self.db.query(Owner).filter(Owner.id == data.ownerId).first()
        if not owner:
            raise HTTPException(status_code=404, detail="Owner not found")

        amount = round(data.amount, 2)
        processed_at = data.processedAt or datetime.utcnow()

        try:
            payout = Payout(
                owner_id=owner.id,
                amount=amount,
                currency=data.currency,
                method=data.method,
                reference=data.reference,
                processed_at=processed_at,
                notes=data.notes,
            )
            self.db.add(payout)
            self.db.flush()

            self.db.add(
                OwnerTransaction(
                    owner_id=owner.id,
                    type="PAYOUT",
                    amount=-amount,
                    currency=data.currency,
                    reference_id=payout.id,
                    notes=payout_notes(payout),
                    date=processed_at,
                )
            )
            recompute_balance(self.db, owner.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(payout)
        logger.info(f"✅ Payout {payout.id} of {data.currency} {amount:.2f} recorded for owner {owner.id}")
        return payout
