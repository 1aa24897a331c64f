"""
Admin dashboard metrics

All money is reported in GHS. Booking revenue is converted with each booking's
historical rate (totalPayoutInBase is USD); expenses and commissions use the
current rate table.
"""

import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session, joinedload

from ..config import DEFAULT_COMMISSION_RATE
from ..currency import batch_convert, get_fx_rate, safe_number
from ..models import Booking, Expense, InventoryItem, Issue, Owner, OwnerWallet, Property, Task

logger = logging.getLogger(__name__)

PERIODS = ("week", "month", "lastMonth", "quarter", "year", "lastYear")
OPEN_ISSUE_STATUSES = ("OPEN", "IN_PROGRESS")
OPEN_TASK_STATUSES = ("PENDING", "IN_PROGRESS")


def _day_start(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _day_end(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999999)


def _month_range(value: datetime) -> tuple[datetime, datetime]:
    start = _day_start(value.replace(day=1))
    return start, start + relativedelta(months=1) - timedelta(microseconds=1)


def _quarter_range(value: datetime) -> tuple[datetime, datetime]:
    first_month = 3 * ((value.month - 1) // 3) + 1
    start = _day_start(value.replace(month=first_month, day=1))
    return start, start + relativedelta(months=3) - timedelta(microseconds=1)


def _year_range(value: datetime) -> tuple[datetime, datetime]:
    start = _day_start(value.replace(month=1, day=1))
    return start, start + relativedelta(years=1) - timedelta(microseconds=1)


def _week_range(value: datetime) -> tuple[datetime, datetime]:
    start = _day_start(value - timedelta(days=value.weekday()))  # Monday
    return start, start + timedelta(days=7) - timedelta(microseconds=1)


def period_bounds(period: str, now: datetime) -> tuple[datetime, datetime, datetime, datetime]:
    """(start, end, previous_start, previous_end) for a dashboard period"""
    if period == "week":
        current, previous = _week_range(now), _week_range(now - timedelta(weeks=1))
    elif period == "lastMonth":
        current, previous = _month_range(now - relativedelta(months=1)), _month_range(now - relativedelta(months=2))
    elif period == "quarter":
        current, previous = _quarter_range(now), _quarter_range(now - relativedelta(months=3))
    elif period == "year":
        current, previous = _year_range(now), _year_range(now - relativedelta(years=1))
    elif period == "lastYear":
        current, previous = _year_range(now - relativedelta(years=1)), _year_range(now - relativedelta(years=2))
    else:
        current, previous = _month_range(now), _month_range(now - relativedelta(months=1))
    return current[0], current[1], previous[0], previous[1]


def historical_revenue_ghs(bookings: Iterable[Booking], usd_to_ghs: float) -> float:
    """
    Convert totalPayoutInBase (USD) back to GHS.

    GHS bookings invert their stored GHS->USD rate; USD and any other currency
    fall back to the current USD->GHS rate.
    """
    total = 0.0
    for booking in bookings:
        usd_amount = booking.total_payout_in_base or 0
        if booking.currency == "GHS":
            fx = booking.fx_rate_to_base or 1.0
            total += usd_amount * (1 / fx if fx > 0 else 0)
        else:
            total += usd_amount * usd_to_ghs
    return total


def _to_ghs(db: Session, items: list[tuple[float, str]]) -> float:
    if not items:
        return 0.0
    return sum(batch_convert(db, items, "GHS"))


def _change(current: float, previous: float) -> float:
    if previous > 0:
        return (current - previous) / previous * 100
    return 100.0 if current > 0 else 0.0


def _trend(current: float, previous: float) -> dict:
    current, previous = safe_number(current), safe_number(previous)
    return {"current": current, "previous": previous, "change": safe_number(_change(current, previous))}


def _days_in(start: datetime, end: datetime) -> int:
    return math.ceil((end - start).total_seconds() / 86400)


def _chart_label(day: datetime, period: str) -> str:
    if period == "week":
        return day.strftime("%a")
    if period in ("month", "quarter"):
        return day.strftime("%b %d")
    return day.strftime("%b")


def _property_name(prop) -> str:
    return (prop.nickname or prop.name) if prop else "Unknown"


def _booking_summary(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "guestName": booking.guest_name,
        "checkIn": booking.check_in.isoformat() if booking.check_in else None,
        "checkOut": booking.check_out.isoformat() if booking.check_out else None,
        "status": booking.status,
        "currency": booking.currency,
        "totalPayout": booking.total_payout,
        "property": {"id": booking.property.id, "name": _property_name(booking.property)} if booking.property else None,
        "owner": {"id": booking.owner.id, "name": booking.owner.name} if booking.owner else None,
    }


def compute_admin_metrics(db: Session, period: str = "month", now: datetime = None) -> dict:
    now = now or datetime.utcnow()
    if period not in PERIODS:
        period = "month"
    start, end, prev_start, prev_end = period_bounds(period, now)
    usd_to_ghs = get_fx_rate(db, "USD", "GHS")

    def completed_between(lo, hi, property_id=None):
        query = db.query(Booking).filter(Booking.status == "COMPLETED", Booking.check_in >= lo, Booking.check_in <= hi)
        if property_id:
            query = query.filter(Booking.property_id == property_id)
        return query.all()

    period_bookings = completed_between(start, end)
    prev_bookings = completed_between(prev_start, prev_end)
    period_expenses = db.query(Expense).filter(Expense.date >= start, Expense.date <= end).all()
    prev_expenses = db.query(Expense).filter(Expense.date >= prev_start, Expense.date <= prev_end).all()

    rates = {p.id: p.default_commission_rate for p in db.query(Property.id, Property.default_commission_rate)}

    def commission_items(bookings):
        return [
            (
                ((b.base_amount or 0) + (b.cleaning_fee or 0)) * (rates.get(b.property_id) or DEFAULT_COMMISSION_RATE),
                b.currency,
            )
            for b in bookings
        ]

    revenue = historical_revenue_ghs(period_bookings, usd_to_ghs)
    prev_revenue = historical_revenue_ghs(prev_bookings, usd_to_ghs)
    expenses_total = _to_ghs(db, [(e.amount, e.currency) for e in period_expenses])
    prev_expenses_total = _to_ghs(db, [(e.amount, e.currency) for e in prev_expenses])
    commission = _to_ghs(db, commission_items(period_bookings))
    prev_commission = _to_ghs(db, commission_items(prev_bookings))

    wallets = db.query(OwnerWallet).all()
    total_balances = sum(w.balance or 0 for w in wallets)
    total_receivable = sum(w.commissions_payable or 0 for w in wallets)

    # Last 30 days of revenue
    last30_start = _day_start(now - timedelta(days=30))
    by_day = defaultdict(list)
    for booking in completed_between(last30_start, now):
        by_day[booking.check_in.date()].append(booking)
    daily_revenue = []
    day = last30_start
    while day <= now:
        daily_revenue.append(safe_number(historical_revenue_ghs(by_day.get(day.date(), []), usd_to_ghs)))
        day += timedelta(days=1)

    # Per-day charts across the period
    bookings_by_day = defaultdict(list)
    for booking in period_bookings:
        bookings_by_day[booking.check_in.date()].append(booking)
    expenses_by_day = defaultdict(list)
    for expense in period_expenses:
        expenses_by_day[expense.date.date()].append((expense.amount, expense.currency))
    all_checkins = defaultdict(int)
    for (check_in,) in db.query(Booking.check_in).filter(Booking.check_in >= start, Booking.check_in <= end):
        all_checkins[check_in.date()] += 1

    revenue_expense_chart = []
    booking_trends = []
    day = start
    while day <= end:
        label = _chart_label(day, period)
        revenue_expense_chart.append(
            {
                "label": label,
                "revenue": safe_number(historical_revenue_ghs(bookings_by_day.get(day.date(), []), usd_to_ghs)),
                "expenses": safe_number(_to_ghs(db, expenses_by_day.get(day.date(), []))),
            }
        )
        booking_trends.append({"label": label, "value": all_checkins.get(day.date(), 0)})
        day += timedelta(days=1)

    by_category = defaultdict(list)
    for expense in period_expenses:
        by_category[expense.category or "OTHER"].append((expense.amount, expense.currency))
    expense_breakdown = [{"label": category, "value": _to_ghs(db, items)} for category, items in by_category.items()]

    with_relations = (joinedload(Booking.property), joinedload(Booking.owner))
    recent_bookings = db.query(Booking).options(*with_relations).order_by(Booking.check_in.desc()).limit(10).all()
    upcoming_bookings = (
        db.query(Booking).options(*with_relations).filter(Booking.check_in >= now).order_by(Booking.check_in.asc()).limit(10).all()
    )

    # Top properties by period revenue
    days_in_period = _days_in(start, end)
    active_properties = db.query(Property).options(joinedload(Property.owner)).filter(Property.status == "active").all()
    property_rows = []
    for prop in active_properties:
        current = [b for b in period_bookings if b.property_id == prop.id]
        previous = [b for b in prev_bookings if b.property_id == prop.id]
        prop_revenue = historical_revenue_ghs(current, usd_to_ghs)
        prop_prev_revenue = historical_revenue_ghs(previous, usd_to_ghs)
        nights = sum(b.nights or 0 for b in current)
        occupancy = nights / days_in_period * 100 if days_in_period > 0 else 0
        property_rows.append(
            {
                "id": prop.id,
                "name": _property_name(prop),
                "revenue": safe_number(prop_revenue),
                "occupancy": min(safe_number(occupancy), 100),
                "revenueChange": safe_number(_change(prop_revenue, prop_prev_revenue)),
                "ownerName": prop.owner.name if prop.owner else None,
            }
        )
    top_properties = sorted(property_rows, key=lambda p: p["revenue"], reverse=True)[:5]

    owner_rows = []
    for wallet in wallets:
        owner = db.query(Owner).filter(Owner.id == wallet.owner_id).first()
        if not owner:
            continue
        owner_rows.append(
            {
                "id": owner.id,
                "name": owner.name,
                "email": owner.email,
                "propertyCount": sum(1 for p in owner.properties if p.status == "active"),
                "currentBalance": wallet.balance or 0,
                "commissionsPayable": wallet.commissions_payable or 0,
                "netBalance": (wallet.balance or 0) - (wallet.commissions_payable or 0),
            }
        )
    owner_balances = sorted(owner_rows, key=lambda o: abs(o["netBalance"]), reverse=True)[:5]

    open_issues = db.query(Issue).filter(Issue.status.in_(OPEN_ISSUE_STATUSES)).count()
    urgent_issues = db.query(Issue).filter(Issue.status.in_(OPEN_ISSUE_STATUSES), Issue.priority == "URGENT").count()
    period_issues = db.query(Issue).filter(Issue.created_at >= start, Issue.created_at <= end).count()
    pending_tasks = db.query(Task).filter(Task.status.in_(OPEN_TASK_STATUSES)).count()
    overdue_tasks = db.query(Task).filter(Task.status.in_(OPEN_TASK_STATUSES), Task.due_at < now).count()
    period_tasks = db.query(Task).filter(Task.created_at >= start, Task.created_at <= end).count()

    recent_issues = db.query(Issue).options(joinedload(Issue.property)).order_by(Issue.created_at.desc()).limit(5).all()
    recent_tasks = db.query(Task).options(joinedload(Task.property)).order_by(Task.created_at.desc()).limit(5).all()
    recent_expenses = db.query(Expense).options(joinedload(Expense.property)).order_by(Expense.date.desc()).limit(5).all()

    low_stock = (
        db.query(InventoryItem)
        .filter(InventoryItem.category == "CONSUMABLE", InventoryItem.quantity <= InventoryItem.minimum_quantity)
        .count()
    )
    pending_cleaning = db.query(Task).filter(Task.type == "CLEANING", Task.status == "PENDING").count()

    nights_booked = sum(b.nights or 0 for b in period_bookings)
    available = len(active_properties) * days_in_period
    occupancy_rate = min(nights_booked / available * 100, 100) if available > 0 else 0

    today = _day_start(now)
    upcoming_checkins = (
        db.query(Booking)
        .options(joinedload(Booking.property))
        .filter(Booking.check_in >= today, Booking.check_in <= today + timedelta(days=7), Booking.checked_in_at.is_(None))
        .order_by(Booking.check_in.asc())
        .limit(5)
        .all()
    )

    return {
        "period": period,
        "periodStart": start.isoformat(),
        "periodEnd": end.isoformat(),
        "activeProperties": len(active_properties),
        "totalProperties": db.query(Property).count(),
        "totalOwners": db.query(Owner).count(),
        "mtdRevenue": safe_number(revenue),
        "mtdExpenses": safe_number(expenses_total),
        "mtdCommission": safe_number(commission),
        "totalBalances": safe_number(total_balances),
        "totalCommissionsReceivable": safe_number(total_receivable),
        "trends": {
            "revenue": _trend(revenue, prev_revenue),
            "expenses": _trend(expenses_total, prev_expenses_total),
            "commission": _trend(commission, prev_commission),
        },
        "dailyRevenueData": daily_revenue,
        "revenueExpenseChart": revenue_expense_chart,
        "bookingTrends": booking_trends,
        "expenseBreakdown": expense_breakdown,
        "recentBookings": [_booking_summary(b) for b in recent_bookings],
        "upcomingBookings": [_booking_summary(b) for b in upcoming_bookings],
        "topProperties": top_properties,
        "ownerBalances": owner_balances,
        "openIssues": open_issues,
        "urgentIssues": urgent_issues,
        "mtdIssues": period_issues,
        "pendingTasks": pending_tasks,
        "overdueTasks": overdue_tasks,
        "periodTasks": period_tasks,
        "recentIssues": [
            {
                "id": i.id,
                "type": "issue",
                "title": i.title,
                "status": i.status,
                "priority": i.priority,
                "propertyName": _property_name(i.property),
                "createdAt": i.created_at.isoformat() if i.created_at else None,
            }
            for i in recent_issues
        ],
        "recentTasks": [
            {
                "id": t.id,
                "type": "task",
                "title": t.title,
                "status": t.status,
                "propertyName": _property_name(t.property),
                "createdAt": t.created_at.isoformat() if t.created_at else None,
            }
            for t in recent_tasks
        ],
        "recentExpenses": [
            {
                "id": e.id,
                "type": "expense",
                "description": e.description,
                "amount": e.amount,
                "currency": e.currency,
                "propertyName": _property_name(e.property),
                "date": e.date.isoformat() if e.date else None,
            }
            for e in recent_expenses
        ],
        "lowStockCount": low_stock,
        "pendingCleaningTasks": pending_cleaning,
        "occupancyRate": safe_number(occupancy_rate),
        "upcomingCheckIns": [
            {
                "id": b.id,
                "checkInDate": b.check_in.isoformat(),
                "guestName": b.guest_name,
                "propertyName": _property_name(b.property),
                "propertyId": b.property_id,
            }
            for b in upcoming_checkins
        ],
    }


def _gross_items(bookings: Iterable[Booking]) -> list[tuple[float, str]]:
    return [((b.base_amount or 0) + (b.cleaning_fee or 0), b.currency) for b in bookings]


def _in_currency(db: Session, items: list[tuple[float, str]], currency: str) -> float:
    if not items:
        return 0.0
    return safe_number(sum(batch_convert(db, items, currency)))


def _net_change(current: float, previous: float) -> float:
    if previous != 0:
        return (current - previous) / abs(previous) * 100
    if current > 0:
        return 100.0
    return -100.0 if current < 0 else 0.0


def compute_owner_metrics(db: Session, owner: Owner, now: datetime = None) -> dict:
    """
    Owner dashboard for the current month, in the owner's preferred currency.
    Revenue is gross (base amount + cleaning fee) of COMPLETED bookings.
    """
    now = now or datetime.utcnow()
    currency = owner.preferred_currency or "GHS"
    month_start, month_end = _month_range(now)
    prev_start, prev_end = _month_range(now - relativedelta(months=1))

    def completed(lo, hi):
        return (
            db.query(Booking)
            .filter(
                Booking.owner_id == owner.id,
                Booking.status == "COMPLETED",
                Booking.check_in >= lo,
                Booking.check_in <= hi,
            )
            .all()
        )

    def expenses(lo, hi):
        rows = db.query(Expense).filter(Expense.owner_id == owner.id, Expense.date >= lo, Expense.date <= hi).all()
        return [(e.amount or 0, e.currency) for e in rows]

    month_bookings = completed(month_start, month_end)
    revenue = _in_currency(db, _gross_items(month_bookings), currency)
    prev_revenue = _in_currency(db, _gross_items(completed(prev_start, prev_end)), currency)
    expenses_total = _in_currency(db, expenses(month_start, month_end), currency)
    prev_expenses_total = _in_currency(db, expenses(prev_start, prev_end), currency)
    net, prev_net = revenue - expenses_total, prev_revenue - prev_expenses_total

    wallet = db.query(OwnerWallet).filter(OwnerWallet.owner_id == owner.id).first()
    properties = db.query(Property).filter(Property.owner_id == owner.id).all()
    property_ids = [p.id for p in properties]

    # Last 30 days, today included
    daily_start = _day_start(now - timedelta(days=29))
    by_day = defaultdict(list)
    for booking in completed(daily_start, _day_end(now)):
        by_day[booking.check_in.date()].append(booking)
    daily_revenue = [
        _in_currency(db, _gross_items(by_day.get((daily_start + timedelta(days=i)).date(), [])), currency)
        for i in range(30)
    ]

    property_rows = [
        {
            "id": p.id,
            "name": p.name,
            "revenue": _in_currency(
                db, _gross_items(b for b in month_bookings if b.property_id == p.id), currency
            ),
        }
        for p in properties
    ]

    recent = (
        db.query(Booking)
        .options(joinedload(Booking.property))
        .filter(Booking.owner_id == owner.id)
        .order_by(Booking.check_in.desc())
        .limit(5)
        .all()
    )
    upcoming = (
        db.query(Booking)
        .options(joinedload(Booking.property))
        .filter(Booking.owner_id == owner.id, Booking.check_in >= now, Booking.status == "UPCOMING")
        .order_by(Booking.check_in.asc())
        .limit(5)
        .all()
    )

    pending_cleaning = low_stock = 0
    if property_ids:
        pending_cleaning = (
            db.query(Task)
            .filter(Task.property_id.in_(property_ids), Task.type == "CLEANING", Task.status == "PENDING")
            .count()
        )
        low_stock = (
            db.query(InventoryItem)
            .filter(
                InventoryItem.property_id.in_(property_ids),
                InventoryItem.category == "CONSUMABLE",
                InventoryItem.quantity < InventoryItem.minimum_quantity,
            )
            .count()
        )

    return {
        "currency": currency,
        "monthRevenue": revenue,
        "monthExpenses": expenses_total,
        "monthNet": safe_number(net),
        "currentBalance": safe_number(wallet.balance if wallet else 0),
        "commissionsPayable": safe_number(wallet.commissions_payable if wallet else 0),
        "properties": property_rows,
        "recentBookings": [
            {
                "id": b.id,
                "propertyName": _property_name(b.property),
                "guestName": b.guest_name,
                "checkIn": b.check_in.isoformat(),
                "checkOut": b.check_out.isoformat(),
                "totalPayout": b.total_payout or 0,
                "currency": b.currency,
                "status": b.status,
            }
            for b in recent
        ],
        "upcomingBookings": [
            {
                "id": b.id,
                "propertyName": _property_name(b.property),
                "guestName": b.guest_name,
                "checkIn": b.check_in.isoformat(),
                "checkOut": b.check_out.isoformat(),
                "nights": b.nights,
                "totalPayout": b.total_payout or 0,
                "currency": b.currency,
            }
            for b in upcoming
        ],
        "trends": {
            "revenue": _trend(revenue, prev_revenue),
            "expenses": _trend(expenses_total, prev_expenses_total),
            "net": {
                "current": safe_number(net),
                "previous": safe_number(prev_net),
                "change": safe_number(_net_change(net, prev_net)),
            },
        },
        "dailyRevenueData": daily_revenue,
        "pendingCleaningTasks": pending_cleaning,
        "lowStockItems": low_stock,
    }


def compute_manager_metrics(db: Session, manager_id: str, now: datetime = None) -> dict:
    """Current-month totals in GHS across the properties assigned to a manager"""
    now = now or datetime.utcnow()
    month_start, month_end = _month_range(now)
    properties = (
        db.query(Property).options(joinedload(Property.owner)).filter(Property.manager_id == manager_id).all()
    )
    property_ids = [p.id for p in properties]

    revenue = expenses_total = 0.0
    pending_tasks = 0
    recent = []
    if property_ids:
        month_bookings = (
            db.query(Booking)
            .filter(Booking.property_id.in_(property_ids), Booking.check_in >= month_start, Booking.check_in <= month_end)
            .all()
        )
        revenue = _in_currency(db, _gross_items(month_bookings), "GHS")
        month_expenses = (
            db.query(Expense)
            .filter(Expense.property_id.in_(property_ids), Expense.date >= month_start, Expense.date <= month_end)
            .all()
        )
        expenses_total = _in_currency(db, [(e.amount or 0, e.currency) for e in month_expenses], "GHS")
        pending_tasks = (
            db.query(Task).filter(Task.property_id.in_(property_ids), Task.status.in_(OPEN_TASK_STATUSES)).count()
        )
        recent = (
            db.query(Booking)
            .options(joinedload(Booking.property), joinedload(Booking.owner))
            .filter(Booking.property_id.in_(property_ids))
            .order_by(Booking.check_in.desc())
            .limit(10)
            .all()
        )

    return {
        "assignedProperties": len(properties),
        "monthRevenue": revenue,
        "monthExpenses": expenses_total,
        "monthNet": safe_number(revenue - expenses_total),
        "pendingTasks": pending_tasks,
        "recentBookings": [_booking_summary(b) for b in recent],
        "properties": [
            {
                "id": p.id,
                "name": p.name,
                "nickname": p.nickname,
                "owner": p.owner.name if p.owner else "Unknown",
            }
            for p in properties
        ],
    }


def compute_property_metrics(
    db: Session, prop: Property, start: datetime = None, end: datetime = None, now: datetime = None
) -> dict:
    """Occupancy, revenue, expenses and net for one property in its own currency; defaults to this month"""
    default_start, default_end = _month_range(now or datetime.utcnow())
    start = start or default_start
    end = end or default_end

    bookings = (
        db.query(Booking)
        .filter(Booking.property_id == prop.id, Booking.check_in >= start, Booking.check_in <= end)
        .order_by(Booking.check_in.asc())
        .all()
    )
    expenses = (
        db.query(Expense)
        .filter(Expense.property_id == prop.id, Expense.date >= start, Expense.date <= end)
        .order_by(Expense.date.asc())
        .all()
    )

    total_nights = sum(b.nights or 0 for b in bookings)
    period_days = (end.date() - start.date()).days + 1
    occupancy = total_nights / period_days * 100 if period_days > 0 else 0
    revenue = _in_currency(db, _gross_items(bookings), prop.currency)
    expenses_total = _in_currency(db, [(e.amount or 0, e.currency) for e in expenses], prop.currency)

    return {
        "currency": prop.currency,
        "occupancy": min(safe_number(occupancy), 100),
        "revenue": revenue,
        "expenses": expenses_total,
        "net": safe_number(revenue - expenses_total),
        "bookings": [_booking_summary(b) for b in bookings],
        "expensesList": [
            {
                "id": e.id,
                "date": e.date.isoformat(),
                "category": e.category,
                "description": e.description,
                "amount": e.amount,
                "currency": e.currency,
            }
            for e in expenses
        ],
        "periodStart": start.isoformat(),
        "periodEnd": end.isoformat(),
    }
