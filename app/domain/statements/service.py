"""Statement service - Owner statement generation and finalization"""

import logging
import os
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import DEFAULT_COMMISSION_RATE
from ...currency import convert_currency
from ...models import Booking, Expense, OwnerTransaction, Statement, StatementLine, User
from ...services.statement_pdf import statement_pdf_path, statement_pdf_url, write_statement_pdf
from ...services.wallet_service import recompute_balance
from .repository import StatementRepository
from .schemas import StatementGenerate, StatementPreviewAll

logger = logging.getLogger(__name__)


def _property_name(entity) -> str:
    return entity.property.name if entity.property else "Unknown property"


def compute_statement(
    db: Session, bookings: list[Booking], expenses: list[Expense], display_currency: str
) -> tuple[dict, list[dict]]:
    """
    Totals and line items for a statement period, in the display currency.

    Revenue and commission are split by who received the guest payment: money
    the company holds is owed to the owner minus commission, commission on money
    the owner holds is owed back to the company.
    """
    company_revenue = owner_revenue = 0.0
    company_commission = owner_commission = 0.0
    owner_paid = company_paid = 0.0
    lines = []

    for booking in bookings:
        amount = booking.base_amount + booking.cleaning_fee
        gross = convert_currency(db, amount, booking.currency, display_currency)
        rate = (booking.property.default_commission_rate if booking.property else None) or DEFAULT_COMMISSION_RATE
        commission = gross * rate

        if booking.payment_received_by == "OWNER":
            owner_revenue += gross
            owner_commission += commission
            receiver = "Owner"
        else:
            company_revenue += gross
            company_commission += commission
            receiver = "Company"

        lines.append(
            {
                "type": "booking",
                "reference_id": booking.id,
                "description": (
                    f"Booking - {_property_name(booking)} ({booking.check_in:%Y-%m-%d}) "
                    f"[Payment received by {receiver}]"
                ),
                "amount": amount,
                "currency": booking.currency,
                "amount_in_display_currency": gross,
            }
        )

    for expense in expenses:
        converted = convert_currency(db, expense.amount, expense.currency, display_currency)
        if expense.paid_by == "owner":
            owner_paid += converted
            signed = converted
        elif expense.paid_by == "company":
            company_paid += converted
            signed = -converted
        else:
            logger.warning(f"⚠️ Expense {expense.id} has unknown paidBy '{expense.paid_by}', ignored")
            continue

        lines.append(
            {
                "type": "expense",
                "reference_id": expense.id,
                "description": f"{expense.category} - {_property_name(expense)}",
                "amount": expense.amount,
                "currency": expense.currency,
                "amount_in_display_currency": signed,
            }
        )

    commission_amount = company_commission + owner_commission
    lines.append(
        {
            "type": "commission",
            "reference_id": None,
            "description": "Management Commission",
            "amount": -commission_amount,
            "currency": display_currency,
            "amount_in_display_currency": -commission_amount,
        }
    )

    net_to_owner = (company_revenue - company_commission - company_paid) - owner_commission + owner_paid

    totals = {
        "gross_revenue": company_revenue + owner_revenue,
        "total_expenses": owner_paid + company_paid,
        "commission_amount": commission_amount,
        "net_to_owner": net_to_owner,
        "company_revenue": company_revenue,
        "owner_revenue": owner_revenue,
        "company_commission": company_commission,
        "owner_commission": owner_commission,
        "opening_balance": 0.0,
        "closing_balance": net_to_owner,
    }
    return totals, lines


class StatementService:
    """Service layer for statement business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = StatementRepository()

    def get_statement(self, statement_id: str, user: User = None) -> Statement:
        statement = self.repo.get_statement(self.db, statement_id)
        if not statement:
            raise HTTPException(status_code=404, detail="Statement not found")
        if user is not None and user.role == "OWNER" and statement.owner_id != user.owner_id:
            raise HTTPException(status_code=403, detail="Forbidden")
        return statement

    def list_statements(self, user: User, owner_id: str = None, status: str = None) -> list[Statement]:
        if user.role == "OWNER":
            if not user.owner_id:
                raise HTTPException(status_code=403, detail="No owner linked")
            owner_id = user.owner_id
        elif not user.is_admin:
            raise HTTPException(status_code=403, detail="Forbidden")
        return self.repo.list_statements(self.db, owner_id=owner_id, status=status)

    def generate(self, data: StatementGenerate) -> Statement:
        """Build a DRAFT statement for an owner and period"""
        owner = self.repo.get_owner(self.db, data.ownerId)
        if not owner:
            raise HTTPException(status_code=404, detail="Owner not found")

        display_currency = data.displayCurrency or owner.preferred_currency or "GHS"
        bookings = self.repo.bookings_in_period(self.db, owner.id, data.periodStart, data.periodEnd)
        expenses = self.repo.expenses_in_period(self.db, owner.id, data.periodStart, data.periodEnd)

        totals, lines = compute_statement(self.db, bookings, expenses, display_currency)

        statement = Statement(
            owner_id=owner.id,
            period_start=data.periodStart,
            period_end=data.periodEnd,
            display_currency=display_currency,
            status="DRAFT",
            **totals,
        )
        statement.lines = [StatementLine(**line) for line in lines]
        self.db.add(statement)
        self.db.commit()

        logger.info(
            f"✅ Statement {statement.id} generated for owner {owner.id}: "
            f"{len(bookings)} bookings, {len(expenses)} expenses, net {totals['net_to_owner']:.2f} {display_currency}"
        )
        return self.get_statement(statement.id)

    def finalize(self, statement_id: str, user: User) -> tuple[Statement, bytes]:
        """Lock the statement, post its net to the owner's ledger and render the PDF"""
        statement = self.get_statement(statement_id)
        if statement.status == "FINALIZED":
            raise HTTPException(status_code=400, detail="Statement already finalized")

        try:
            statement.status = "FINALIZED"
            statement.finalized_at = datetime.utcnow()
            statement.finalized_by_id = user.id
            statement.pdf_url = statement_pdf_url(statement.id)
            self.db.add(
                OwnerTransaction(
                    owner_id=statement.owner_id,
                    type="STATEMENT_NET",
                    amount=statement.net_to_owner,
                    currency=statement.display_currency,
                    reference_id=statement.id,
                    notes=(
                        f"Statement {statement.period_start:%Y-%m-%d} to {statement.period_end:%Y-%m-%d}"
                    ),
                    date=datetime.utcnow(),
                )
            )
            recompute_balance(self.db, statement.owner_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(statement)
        logger.info(f"✅ Statement {statement.id} finalized by user {user.id}")
        return statement, write_statement_pdf(statement)

    def get_pdf(self, statement_id: str, user: User) -> bytes:
        """Stored PDF when present, otherwise render it now"""
        statement = self.get_statement(statement_id, user)
        path = statement_pdf_path(statement.id)
        if os.path.exists(path):
            with open(path, "rb") as f:
                return f.read()
        return write_statement_pdf(statement)

    def delete(self, statement_id: str) -> None:
        statement = self.get_statement(statement_id)
        if statement.status == "FINALIZED":
            raise HTTPException(status_code=400, detail="Cannot delete a finalized statement")
        self.db.delete(statement)
        self.db.commit()
        logger.info(f"✅ Statement {statement_id} deleted")

    def preview_all(self, data: StatementPreviewAll) -> list[dict]:
        """
        Unsaved statements for every owner with COMPLETED bookings or expenses
        in the period. Opening balance is the owner's current wallet balance.
        """
        previews = []
        for owner in self.repo.list_owners(self.db):
            bookings = [
                b
                for b in self.repo.bookings_in_period(self.db, owner.id, data.periodStart, data.periodEnd)
                if b.status == "COMPLETED"
            ]
            expenses = self.repo.expenses_in_period(self.db, owner.id, data.periodStart, data.periodEnd)
            if not bookings and not expenses:
                continue

            totals, lines = compute_statement(self.db, bookings, expenses, data.displayCurrency)
            opening = owner.wallet.balance if owner.wallet else 0.0
            previews.append(
                {
                    "owner": {"id": owner.id, "name": owner.name, "email": owner.email},
                    "periodStart": data.periodStart.isoformat(),
                    "periodEnd": data.periodEnd.isoformat(),
                    "displayCurrency": data.displayCurrency,
                    "grossRevenue": totals["gross_revenue"],
                    "companyRevenue": totals["company_revenue"],
                    "ownerRevenue": totals["owner_revenue"],
                    "commissionAmount": totals["commission_amount"],
                    "companyCommission": totals["company_commission"],
                    "ownerCommission": totals["owner_commission"],
                    "totalExpenses": totals["total_expenses"],
                    "netToOwner": totals["net_to_owner"],
                    "openingBalance": opening,
                    "closingBalance": opening + totals["net_to_owner"],
                    "statementLines": [
                        {
                            "type": line["type"],
                            "description": line["description"],
                            "referenceId": line["reference_id"],
                            "amountInDisplayCurrency": line["amount_in_display_currency"],
                        }
                        for line in lines
                    ],
                    "bookingsCount": len(bookings),
                    "expensesCount": len(expenses),
                }
            )
        logger.info(f"📄 Previewed {len(previews)} statements for {data.periodStart:%Y-%m-%d} to {data.periodEnd:%Y-%m-%d}")
        return previews
