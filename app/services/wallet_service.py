"""
Owner wallet ledger helpers
The stored balance is a cache of the sum of the owner's transactions.
"""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import OwnerTransaction, OwnerWallet

logger = logging.getLogger(__name__)


def get_or_create_wallet(db: Session, owner_id: str) -> OwnerWallet:
    """Return the owner's wallet, creating an empty one when missing (caller commits)"""
    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == owner_id).first()
    if wallet is None:
        wallet = OwnerWallet(owner_id=owner_id, balance=0.0, commissions_payable=0.0)
        db.add(wallet)
        db.flush()
        logger.info(f"✅ Created wallet for owner {owner_id}")
    return wallet


def transactions_total(db: Session, owner_id: str) -> float:
    total = (
        db.query(func.coalesce(func.sum(OwnerTransaction.amount), 0.0))
        .filter(OwnerTransaction.owner_id == owner_id)
        .scalar()
    )
    return float(total or 0.0)


def recompute_balance(db: Session, owner_id: str) -> OwnerWallet:
    """Set wallet balance = sum of transactions (caller commits)"""
    db.flush()
    wallet = get_or_create_wallet(db, owner_id)
    wallet.balance = transactions_total(db, owner_id)
    return wallet
