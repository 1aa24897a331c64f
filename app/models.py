import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base


def generate_id():
    """Primary keys are string UUIDs so backups stay portable between installs"""
    return str(uuid.uuid4())


ADMIN_ROLES = ("SUPER_ADMIN", "ADMIN", "FINANCE", "OPERATIONS")


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=True)
    # SUPER_ADMIN, ADMIN, FINANCE, OPERATIONS, OWNER, MANAGER, GENERAL_MANAGER
    role = Column(String(50), nullable=False, default="OWNER")
    owner_id = Column(String(64), ForeignKey("owners.id"), unique=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("Owner", back_populates="user", foreign_keys=[owner_id])
    managed_properties = relationship("Property", back_populates="manager")

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


class Owner(Base):
    __tablename__ = "owners"

    id = Column(String(64), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    whatsapp_number = Column(String(50), nullable=True)
    preferred_channel = Column(String(20), nullable=True)  # EMAIL, SMS, WHATSAPP
    preferred_currency = Column(String(3), default="GHS", nullable=False)
    payout_details = Column(JSON, nullable=True)
    status = Column(String(20), default="active", nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="owner", uselist=False)
    wallet = relationship(
        "OwnerWallet", back_populates="owner", uselist=False, cascade="all, delete-orphan"
    )
    properties = relationship("Property", back_populates="owner")


class OwnerWallet(Base):
    __tablename__ = "owner_wallets"

    id = Column(String(64), primary_key=True, default=generate_id)
    owner_id = Column(String(64), ForeignKey("owners.id"), unique=True, nullable=False)
    balance = Column(Float, default=0.0, nullable=False)
    commissions_payable = Column(Float, default=0.0, nullable=False)
    currency = Column(String(3), default="GHS", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("Owner", back_populates="wallet")


class Property(Base):
    __tablename__ = "properties"

    id = Column(String(64), primary_key=True, default=generate_id)
    owner_id = Column(String(64), ForeignKey("owners.id"), nullable=False, index=True)
    manager_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    name = Column(String(255), nullable=False)
    nickname = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    currency = Column(String(3), default="GHS", nullable=False)
    airbnb_listing_id = Column(String(100), nullable=True)
    airbnb_listing_url = Column(String(500), nullable=True)
    booking_com_id = Column(String(100), nullable=True)
    instagram_handle = Column(String(100), nullable=True)
    default_commission_rate = Column(Float, default=0.15, nullable=False)
    cleaning_fee_rules = Column(JSON, nullable=True)
    status = Column(String(20), default="active", nullable=False)
    photos = Column(JSON, nullable=True)
    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Float, nullable=True)
    max_guests = Column(Integer, nullable=True)
    amenities = Column(JSON, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("Owner", back_populates="properties")
    manager = relationship("User", back_populates="managed_properties")


class GuestContact(Base):
    __tablename__ = "guest_contacts"

    id = Column(String(64), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    type = Column(String(20), default="LEAD", nullable=False)  # LEAD, INQUIRY, GUEST
    status = Column(String(20), default="NEW", nullable=False)  # NEW, CONTACTED, FOLLOW_UP, CONVERTED, LOST
    source = Column(String(50), nullable=True)
    property_id = Column(String(64), ForeignKey("properties.id"), nullable=True)
    notes = Column(Text, nullable=True)
    last_contacted_at = Column(DateTime, nullable=True)
    follow_up_date = Column(DateTime, nullable=True)
    converted_to_booking_id = Column(String(64), nullable=True)
    created_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True, default=generate_id)
    property_id = Column(String(64), ForeignKey("properties.id"), nullable=False, index=True)
    owner_id = Column(String(64), ForeignKey("owners.id"), nullable=False, index=True)
    source = Column(String(30), default="DIRECT", nullable=False)  # AIRBNB, BOOKING_COM, DIRECT, INSTAGRAM
    external_reservation_code = Column(String(100), nullable=True)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_phone_number = Column(String(50), nullable=True)
    guest_contact_id = Column(String(64), ForeignKey("guest_contacts.id"), nullable=True)
    check_in = Column(DateTime, nullable=False, index=True)
    check_out = Column(DateTime, nullable=False)
    nights = Column(Integer, default=0, nullable=False)
    currency = Column(String(3), default="GHS", nullable=False)
    base_amount = Column(Float, default=0.0, nullable=False)
    cleaning_fee = Column(Float, default=0.0, nullable=False)
    platform_fees = Column(Float, default=0.0, nullable=False)
    taxes = Column(Float, default=0.0, nullable=False)
    total_payout = Column(Float, default=0.0, nullable=False)
    fx_rate_to_base = Column(Float, nullable=True)
    total_payout_in_base = Column(Float, default=0.0, nullable=False)
    payment_received_by = Column(String(20), default="COMPANY", nullable=False)  # COMPANY, OWNER
    status = Column(String(20), default="UPCOMING", nullable=False)  # UPCOMING, CHECKED_IN, COMPLETED, CANCELLED
    checked_in_at = Column(DateTime, nullable=True)
    checked_in_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    property = relationship("Property")
    owner = relationship("Owner")


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String(64), primary_key=True, default=generate_id)
    property_id = Column(String(64), ForeignKey("properties.id"), nullable=False, index=True)
    owner_id = Column(String(64), ForeignKey("owners.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False)
    category = Column(String(50), default="OTHER", nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Float, default=0.0, nullable=False)
    currency = Column(String(3), default="GHS", nullable=False)
    fx_rate_to_base = Column(Float, nullable=True)
    amount_in_base = Column(Float, default=0.0, nullable=False)
    paid_by = Column(String(20), default="company", nullable=False)  # company, owner
    linked_task_id = Column(String(64), ForeignKey("tasks.id"), nullable=True)
    attachment_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    property = relationship("Property")


class Statement(Base):
    __tablename__ = "statements"

    id = Column(String(64), primary_key=True, default=generate_id)
    owner_id = Column(String(64), ForeignKey("owners.id"), nullable=False, index=True)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    display_currency = Column(String(3), default="GHS", nullable=False)
    gross_revenue = Column(Float, default=0.0, nullable=False)
    total_expenses = Column(Float, default=0.0, nullable=False)
    commission_amount = Column(Float, default=0.0, nullable=False)
    net_to_owner = Column(Float, default=0.0, nullable=False)
    company_revenue = Column(Float, default=0.0, nullable=False)
    owner_revenue = Column(Float, default=0.0, nullable=False)
    company_commission = Column(Float, default=0.0, nullable=False)
    owner_commission = Column(Float, default=0.0, nullable=False)
    opening_balance = Column(Float, default=0.0, nullable=False)
    closing_balance = Column(Float, default=0.0, nullable=False)
    status = Column(String(20), default="DRAFT", nullable=False)  # DRAFT, FINALIZED
    finalized_at = Column(DateTime, nullable=True)
    finalized_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    pdf_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("Owner")
    lines = relationship(
        "StatementLine", back_populates="statement", cascade="all, delete-orphan"
    )


class StatementLine(Base):
    __tablename__ = "statement_lines"

    id = Column(String(64), primary_key=True, default=generate_id)
    statement_id = Column(String(64), ForeignKey("statements.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # booking, expense, commission
    reference_id = Column(String(64), nullable=True)
    description = Column(String(500), nullable=True)
    amount = Column(Float, default=0.0, nullable=False)
    currency = Column(String(3), nullable=False)
    amount_in_display_currency = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    statement = relationship("Statement", back_populates="lines")


class OwnerTransaction(Base):
    __tablename__ = "owner_transactions"

    id = Column(String(64), primary_key=True, default=generate_id)
    owner_id = Column(String(64), ForeignKey("owners.id"), nullable=False, index=True)
    # STATEMENT_NET, PAYOUT, COMMISSION_PAYMENT, MANUAL_ADJUSTMENT, EXPENSE
    type = Column(String(30), nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="GHS", nullable=False)
    reference_id = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    date = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Payout(Base):
    __tablename__ = "payouts"

    id = Column(String(64), primary_key=True, default=generate_id)
    owner_id = Column(String(64), ForeignKey("owners.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="GHS", nullable=False)
    method = Column(String(50), nullable=True)
    reference = Column(String(255), nullable=True)
    processed_at = Column(DateTime, default=datetime.utcnow)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("Owner")


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(String(64), primary_key=True, default=generate_id)
    owner_id = Column(String(64), ForeignKey("owners.id"), nullable=True)
    name = Column(String(255), nullable=False)
    phone_number = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    type = Column(String(30), default="GENERAL", nullable=False)
    company = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("Owner")


class Issue(Base):
    __tablename__ = "issues"

    id = Column(String(64), primary_key=True, default=generate_id)
    property_id = Column(String(64), ForeignKey("properties.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default="OPEN", nullable=False)  # OPEN, IN_PROGRESS, RESOLVED, CLOSED
    priority = Column(String(20), default="MEDIUM", nullable=False)  # LOW, MEDIUM, HIGH, URGENT
    reported_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    assigned_to_user_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    assigned_contact_id = Column(String(64), ForeignKey("contacts.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    property = relationship("Property")
    assigned_contact = relationship("Contact")
    attachments = relationship(
        "IssueAttachment", back_populates="issue", cascade="all, delete-orphan"
    )
    comments = relationship("IssueComment", back_populates="issue", cascade="all, delete-orphan")


class IssueAttachment(Base):
    __tablename__ = "issue_attachments"

    id = Column(String(64), primary_key=True, default=generate_id)
    issue_id = Column(String(64), ForeignKey("issues.id"), nullable=False, index=True)
    file_url = Column(String(500), nullable=False)
    file_name = Column(String(255), nullable=True)
    mime_type = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    issue = relationship("Issue", back_populates="attachments")


class IssueComment(Base):
    __tablename__ = "issue_comments"

    id = Column(String(64), primary_key=True, default=generate_id)
    issue_id = Column(String(64), ForeignKey("issues.id"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    issue = relationship("Issue", back_populates="comments")


class RecurringTask(Base):
    __tablename__ = "recurring_tasks"

    id = Column(String(64), primary_key=True, default=generate_id)
    property_id = Column(String(64), ForeignKey("properties.id"), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(30), default="MAINTENANCE", nullable=False)
    frequency = Column(String(20), nullable=False)  # DAILY, WEEKLY, MONTHLY, QUARTERLY, YEARLY
    interval = Column(Integer, default=1, nullable=False)
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday
    day_of_month = Column(Integer, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    next_run_date = Column(DateTime, nullable=False)
    last_generated_at = Column(DateTime, nullable=True)
    total_generated = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    assigned_to_user_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    cost_estimate = Column(Float, nullable=True)
    created_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    property = relationship("Property")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(64), primary_key=True, default=generate_id)
    property_id = Column(String(64), ForeignKey("properties.id"), nullable=False, index=True)
    booking_id = Column(String(64), ForeignKey("bookings.id"), nullable=True)
    recurring_task_id = Column(String(64), ForeignKey("recurring_tasks.id"), nullable=True)
    type = Column(String(30), default="OTHER", nullable=False)  # CLEANING, MAINTENANCE, INSPECTION, OTHER
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    assigned_to_user_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    scheduled_at = Column(DateTime, nullable=True)
    due_at = Column(DateTime, nullable=True)
    cost_estimate = Column(Float, nullable=True)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, IN_PROGRESS, COMPLETED, CANCELLED
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    property = relationship("Property")


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(64), primary_key=True, default=generate_id)
    property_id = Column(String(64), ForeignKey("properties.id"), nullable=True)
    owner_id = Column(String(64), ForeignKey("owners.id"), nullable=True)
    booking_id = Column(String(64), ForeignKey("bookings.id"), nullable=True)
    expense_id = Column(String(64), ForeignKey("expenses.id"), nullable=True)
    type = Column(String(30), default="OTHER", nullable=False)
    title = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=True)
    file_url = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    uploaded_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(String(64), primary_key=True, default=generate_id)
    property_id = Column(String(64), ForeignKey("properties.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(30), default="CONSUMABLE", nullable=False)
    quantity = Column(Integer, default=0, nullable=False)
    minimum_quantity = Column(Integer, default=0, nullable=False)
    unit = Column(String(30), nullable=True)
    notes = Column(Text, nullable=True)
    last_checked_at = Column(DateTime, nullable=True)
    last_checked_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    history = relationship(
        "InventoryHistory", cascade="all, delete-orphan", order_by="InventoryHistory.created_at.desc()"
    )


class InventoryHistory(Base):
    __tablename__ = "inventory_history"

    id = Column(String(64), primary_key=True, default=generate_id)
    inventory_item_id = Column(
        String(64), ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    change_type = Column(String(20), nullable=False)  # restocked | consumed | adjustment
    notes = Column(Text, nullable=True)
    changed_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    changed_by = relationship("User")


class Report(Base):
    __tablename__ = "reports"

    id = Column(String(64), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)
    config = Column(JSON, nullable=True)
    schedule = Column(String(50), nullable=True)
    last_run_at = Column(DateTime, nullable=True)
    created_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True, default=generate_id)
    owner_id = Column(String(64), ForeignKey("owners.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    channel = Column(String(20), nullable=False)  # EMAIL, SMS, WHATSAPP
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, SENT, FAILED
    payload = Column(JSON, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("Owner")


class AIInsightCache(Base):
    __tablename__ = "ai_insight_cache"

    id = Column(String(64), primary_key=True, default=generate_id)
    page_type = Column(String(50), nullable=False)
    owner_id = Column(String(64), nullable=True)
    property_id = Column(String(64), nullable=True)
    period = Column(String(7), nullable=False)  # YYYY-MM
    content = Column(JSON, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    id = Column(String(64), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SmsTemplate(Base):
    __tablename__ = "sms_templates"

    id = Column(String(64), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)
    body = Column(Text, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Setting(Base):
    __tablename__ = "settings"

    id = Column(String(64), primary_key=True, default=generate_id)
    key = Column(String(100), unique=True, index=True, nullable=False)
    value = Column(Text, nullable=True)
    category = Column(String(50), default="general", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
