"""Owner service - Business logic for owners, wallets and transactions"""

import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Owner, OwnerTransaction, Property, User
from ...security_utils import hash_password
from ...services.wallet_service import get_or_create_wallet, recompute_balance, transactions_total
from .repository import OwnerRepository
from .schemas import OwnerCreate, OwnerUpdate, TransactionCreate, WalletPayment

logger = logging.getLogger(__name__)

# Wallet drift below this is float noise, not a real mismatch
BALANCE_TOLERANCE = 0.01


def balance_payment_notes(payment: WalletPayment, amount: float) -> str:
    if payment.reference:
        notes = f"Balance payment received - Ref: {payment.reference}"
        if payment.notes:
            notes += f" - {payment.notes}"
        return notes
    return payment.notes or f"Balance payment received - {amount:.2f} {payment.currency}"


def commission_payment_notes(payment: WalletPayment, amount: float) -> str:
    notes = payment.notes or f"Commission payment of {amount:.2f} {payment.currency}"
    if payment.reference:
        notes += f" - Ref: {payment.reference}"
    return notes


class OwnerService:
    """Service layer for owner business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = OwnerRepository()

    def ensure_can_view(self, user: User, owner_id: str) -> None:
        """Owners may only look at their own records"""
        if user.role == "OWNER" and user.owner_id != owner_id:
            raise HTTPException(status_code=403, detail="Forbidden")
        if user.role != "OWNER" and not user.is_admin:
            raise HTTPException(status_code=403, detail="Forbidden")

    def get_owner(self, owner_id: str) -> Owner:
        owner = self.repo.get_owner(self.db, owner_id)
        if not owner:
            raise HTTPException(status_code=404, detail="Owner not found")
        return owner

    def list_owners(self) -> list[Owner]:
        return self.repo.list_owners(self.db)

    def create_owner(self, data: OwnerCreate) -> Owner:
        """Create an owner with an empty wallet and an optional OWNER login"""
        if data.createUserAccount:
            if not data.email or not data.password:
                raise HTTPException(
                    status_code=400, detail="Email and password are required to create a user account"
                )
            if self.repo.get_user_by_email(self.db, data.email):
                raise HTTPException(status_code=400, detail="User with this email already exists")

        owner = Owner(
            name=data.name,
            email=data.email,
            phone_number=data.phoneNumber,
            whatsapp_number=data.whatsappNumber,
            preferred_channel=data.preferredChannel,
            preferred_currency=data.preferredCurrency,
            payout_details=data.payoutDetails,
            status=data.status,
            notes=data.notes,
        )
        self.db.add(owner)
        self.db.flush()
        get_or_create_wallet(self.db, owner.id)

        if data.createUserAccount:
            self.db.add(
                User(
                    email=data.email,
                    name=data.name,
                    password_hash=hash_password(data.password),
                    role="OWNER",
                    owner_id=owner.id,
                )
            )

        self.db.commit()
        logger.info(f"✅ Owner {owner.id} created")
        return self.get_owner(owner.id)

    def update_owner(self, owner_id: str, data: OwnerUpdate) -> Owner:
        owner = self.get_owner(owner_id)
        field_map = {
            "name": "name",
            "email": "email",
            "phoneNumber": "phone_number",
            "whatsappNumber": "whatsapp_number",
            "preferredChannel": "preferred_channel",
            "preferredCurrency": "preferred_currency",
            "payoutDetails": "payout_details",
            "status": "status",
            "notes": "notes",
        }
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(owner, field_map[key], value)
        self.db.commit()
        self.db.refresh(owner)
        return owner

    def delete_owner(self, owner_id: str) -> None:
        owner = self.get_owner(owner_id)
        if self.db.query(Property).filter(Property.owner_id == owner_id).first():
            raise HTTPException(status_code=400, detail="Cannot delete owner with existing properties")
        self.repo.delete_owner(self.db, owner)
        logger.info(f"✅ Owner {owner_id} deleted")

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------

    def get_wallet(self, owner_id: str) -> dict:
        """Wallet with its transactions; a drifted stored balance is corrected"""
        self.get_owner(owner_id)
        wallet = get_or_create_wallet(self.db, owner_id)
        calculated = transactions_total(self.db, owner_id)

        if abs((wallet.balance or 0) - calculated) > BALANCE_TOLERANCE:
            logger.warning(
                f"⚠️ Wallet balance mismatch for owner {owner_id}: stored {wallet.balance}, calculated {calculated}"
            )
            wallet.balance = calculated
        self.db.commit()
        self.db.refresh(wallet)

        return {
            "wallet": wallet,
            "transactions": self.repo.list_transactions(self.db, owner_id),
            "calculatedBalance": calculated,
        }

    def pay_balance(self, owner_id: str, payment: WalletPayment) -> dict:
        """Record money received from an owner who owes the company"""
        self.get_owner(owner_id)
        amount = round(payment.amount, 2)
        if amount <= 0:
            raise HTTPException(status_code=400, detail="Invalid amount")

        wallet = get_or_create_wallet(self.db, owner_id)
        if wallet.balance >= 0:
            raise HTTPException(status_code=400, detail="Owner does not have an outstanding balance")

        outstanding = round(abs(wallet.balance), 2)
        if amount > outstanding:
            raise HTTPException(
                status_code=400, detail=f"Amount exceeds outstanding balance. Maximum: {outstanding:.2f}"
            )

        transaction = OwnerTransaction(
            owner_id=owner_id,
            type="MANUAL_ADJUSTMENT",
            amount=amount,
            currency=payment.currency,
            reference_id=payment.reference,
            notes=balance_payment_notes(payment, amount),
            date=datetime.utcnow(),
        )
        self.db.add(transaction)
        wallet.balance = round(wallet.balance + amount, 2)
        self.db.commit()
        self.db.refresh(wallet)
        self.db.refresh(transaction)
        logger.info(f"✅ Balance payment of {amount:.2f} recorded for owner {owner_id}")
        return {
            "success": True,
            "wallet": wallet,
            "transaction": transaction,
            "message": "Balance payment recorded successfully",
        }

    def pay_commission(self, owner_id: str, payment: WalletPayment) -> dict:
        """Record an owner settling management commission they collected"""
        self.get_owner(owner_id)
        amount = round(payment.amount, 2)
        if amount <= 0:
            raise HTTPException(status_code=400, detail="Invalid amount")

        wallet = get_or_create_wallet(self.db, owner_id)
        available = round(wallet.commissions_payable or 0, 2)
        if amount > available:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Amount exceeds commissions payable balance. "
                    f"Available: {available:.2f}, Requested: {amount:.2f}"
                ),
            )

        wallet.commissions_payable = round(available - amount, 2)
        transaction = OwnerTransaction(
            owner_id=owner_id,
            type="COMMISSION_PAYMENT",
            amount=-amount,
            currency=payment.currency,
            reference_id=payment.reference,
            notes=commission_payment_notes(payment, amount),
            date=datetime.utcnow(),
        )
        self.db.add(transaction)
        self.db.commit()
        self.db.refresh(wallet)
        self.db.refresh(transaction)
        logger.info(f"✅ Commission payment of {amount:.2f} recorded for owner {owner_id}")
        return {
            "success": True,
            "wallet": wallet,
            "transaction": transaction,
            "message": "Commission payment recorded successfully",
        }

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def list_transactions(self, owner_id: str) -> list[OwnerTransaction]:
        return self.repo.list_transactions(self.db, owner_id)

    def create_transaction(self, owner_id: str, data: TransactionCreate) -> OwnerTransaction:
        """Add a ledger entry and resync the wallet balance"""
        self.get_owner(owner_id)
        transaction = OwnerTransaction(
            owner_id=owner_id,
            type=data.type,
            amount=data.amount,
            currency=data.currency,
            reference_id=data.referenceId,
            notes=data.notes,
            date=data.date or datetime.utcnow(),
        )
        self.db.add(transaction)
        recompute_balance(self.db, owner_id)
        self.db.commit()
        self.db.refresh(transaction)
        return transaction
