from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKeyConstraint,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

Base = declarative_base()
metadata = Base.metadata


def utcnow():
    return datetime.utcnow()


USER_ROLES = (
    "user",
    "admin",
    "superadmin",
    "cashier",
    "inventory_manager",
    "manager",
    "crew",
)
ADMIN_ROLES = ("admin", "superadmin", "manager")
BOOKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")
SUBSCRIPTION_STATUSES = ("pending", "approved", "rejected", "under_review")
CUSTOMER_STATUSES = ("active", "banned", "suspended")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (Index("users_email", "email", unique=True),)

    id = mapped_column(Integer, primary_key=True)
    email = mapped_column(String(255), nullable=False)
    full_name = mapped_column(String(255), nullable=False)
    password_hash = mapped_column(String(255), nullable=False)
    role = mapped_column(String(32), nullable=False, default="user")
    contact_number = mapped_column(String(50))
    branch_location = mapped_column(String(100))
    is_active = mapped_column(Boolean, nullable=False, default=True)
    loyalty_points = mapped_column(Integer, nullable=False, default=0)
    subscription_status = mapped_column(String(20), nullable=False, default="free")
    subscription_expiry = mapped_column(DateTime)
    last_login_at = mapped_column(DateTime)
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    bookings: Mapped[List["Booking"]] = relationship(
        "Booking", uselist=True, back_populates="user"
    )
    sessions: Mapped[List["UserSession"]] = relationship(
        "UserSession", uselist=True, back_populates="user"
    )
    subscription_requests: Mapped[List["SubscriptionRequest"]] = relationship(
        "SubscriptionRequest", uselist=True, back_populates="user"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "contact_number": self.contact_number,
            "branch_location": self.branch_location,
            "is_active": self.is_active,
            "loyalty_points": self.loyalty_points,
            "subscription_status": self.subscription_status,
            "subscription_expiry": (
                self.subscription_expiry.isoformat() if self.subscription_expiry else None
            ),
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class UserSession(Base):
    __tablename__ = "user_sessions"
    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"], ["users.id"], ondelete="CASCADE", name="fk_session_user"
        ),
        Index("user_sessions_token", "session_token", unique=True),
    )

    id = mapped_column(Integer, primary_key=True)
    user_id = mapped_column(Integer, nullable=False)
    session_token = mapped_column(String(128), nullable=False)
    expires_at = mapped_column(DateTime, nullable=False)
    ip_address = mapped_column(String(64))
    user_agent = mapped_column(String(255))
    is_active = mapped_column(Boolean, nullable=False, default=True)
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="sessions")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"], ["users.id"], ondelete="SET NULL", name="fk_booking_user"
        ),
        Index("bookings_slot", "date", "time_slot", "branch"),
        Index("bookings_confirmation_code", "confirmation_code", unique=True),
        {"comment": "Car wash, detailing and coating appointments."},
    )

    id = mapped_column(Integer, primary_key=True)
    user_id = mapped_column(Integer)
    guest_info = mapped_column(JSON)
    type = mapped_column(String(20), nullable=False, default="guest")
    confirmation_code = mapped_column(String(32), nullable=False)
    category = mapped_column(String(32), nullable=False)
    service = mapped_column(String(64), nullable=False)
    service_type = mapped_column(String(16), nullable=False, default="branch")
    unit_type = mapped_column(String(32))
    unit_size = mapped_column(String(32))
    plate_number = mapped_column(String(32))
    vehicle_model = mapped_column(String(100))
    date = mapped_column(Date, nullable=False)
    time_slot = mapped_column(String(5), nullable=False)
    branch = mapped_column(String(64), nullable=False)
    service_location = mapped_column(Text)
    base_price = mapped_column(Numeric(10, 2), nullable=False)
    total_price = mapped_column(Numeric(10, 2), nullable=False)
    currency = mapped_column(String(3), nullable=False, default="PHP")
    payment_method = mapped_column(String(32))
    payment_status = mapped_column(String(20), nullable=False, default="pending")
    status = mapped_column(String(20), nullable=False, default="pending")
    notes = mapped_column(Text)
    special_requests = mapped_column(Text)
    completed_at = mapped_column(DateTime)
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user: Mapped[Optional["User"]] = relationship("User", back_populates="bookings")
    status_history: Mapped[List["BookingStatusHistory"]] = relationship(
        "BookingStatusHistory",
        uselist=True,
        back_populates="booking",
        order_by="BookingStatusHistory.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "guest_info": self.guest_info,
            "type": self.type,
            "confirmation_code": self.confirmation_code,
            "category": self.category,
            "service": self.service,
            "service_type": self.service_type,
            "unit_type": self.unit_type,
            "unit_size": self.unit_size,
            "plate_number": self.plate_number,
            "vehicle_model": self.vehicle_model,
            "date": self.date.isoformat() if self.date else None,
            "time_slot": self.time_slot,
            "branch": self.branch,
            "service_location": self.service_location,
            "base_price": float(self.base_price) if self.base_price is not None else None,
            "total_price": float(self.total_price) if self.total_price is not None else None,
            "currency": self.currency,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "notes": self.notes,
            "special_requests": self.special_requests,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class BookingStatusHistory(Base):
    __tablename__ = "booking_status_history"
    __table_args__ = (
        ForeignKeyConstraint(
            ["booking_id"],
            ["bookings.id"],
            ondelete="CASCADE",
            name="fk_history_booking",
        ),
    )

    id = mapped_column(Integer, primary_key=True)
    booking_id = mapped_column(Integer, nullable=False)
    from_status = mapped_column(String(20))
    to_status = mapped_column(String(20), nullable=False)
    notes = mapped_column(Text)
    changed_by = mapped_column(String(255))
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="status_history")

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "notes": self.notes,
            "changed_by": self.changed_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class SubscriptionRequest(Base):
    __tablename__ = "subscription_requests"
    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"], ["users.id"], ondelete="CASCADE", name="fk_subreq_user"
        ),
        Index("subscription_requests_status", "status"),
    )

    id = mapped_column(Integer, primary_key=True)
    user_id = mapped_column(Integer, nullable=False)
    user_email = mapped_column(String(255), nullable=False)
    user_name = mapped_column(String(255), nullable=False)
    user_phone = mapped_column(String(50))
    package_type = mapped_column(String(64), nullable=False)
    package_price = mapped_column(Numeric(10, 2), nullable=False)
    payment_method = mapped_column(String(32), nullable=False)
    reference_number = mapped_column(String(100))
    account_name = mapped_column(String(255))
    amount = mapped_column(Numeric(10, 2))
    payment_date = mapped_column(String(32))
    receipt_url = mapped_column(String(512))
    receipt_file_name = mapped_column(String(255))
    receipt_file_size = mapped_column(Integer)
    status = mapped_column(String(20), nullable=False, default="pending")
    submission_date = mapped_column(DateTime, nullable=False, default=utcnow)
    reviewed_by = mapped_column(String(255))
    reviewed_date = mapped_column(DateTime)
    review_notes = mapped_column(Text)
    customer_status = mapped_column(String(20), nullable=False, default="active")

    user: Mapped["User"] = relationship("User", back_populates="subscription_requests")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "user_name": self.user_name,
            "user_phone": self.user_phone,
            "package_type": self.package_type,
            "package_price": float(self.package_price) if self.package_price is not None else None,
            "payment_method": self.payment_method,
            "payment_details": {
                "reference_number": self.reference_number,
                "account_name": self.account_name,
                "amount": float(self.amount) if self.amount is not None else None,
                "payment_date": self.payment_date,
            },
            "receipt": (
                {
                    "image_url": self.receipt_url,
                    "file_name": self.receipt_file_name,
                    "file_size": self.receipt_file_size,
                }
                if self.receipt_url
                else None
            ),
            "status": self.status,
            "submission_date": self.submission_date.isoformat() if self.submission_date else None,
            "reviewed_by": self.reviewed_by,
            "reviewed_date": self.reviewed_date.isoformat() if self.reviewed_date else None,
            "review_notes": self.review_notes,
            "customer_status": self.customer_status,
        }


class CustomerStatus(Base):
    __tablename__ = "customer_statuses"
    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"], ["users.id"], ondelete="CASCADE", name="fk_custstatus_user"
        ),
        Index("customer_statuses_user", "user_id", unique=True),
    )

    id = mapped_column(Integer, primary_key=True)
    user_id = mapped_column(Integer, nullable=False)
    email = mapped_column(String(255), nullable=False)
    status = mapped_column(String(20), nullable=False, default="active")
    ban_reason = mapped_column(Text)
    ban_date = mapped_column(DateTime)
    banned_by = mapped_column(String(255))
    suspension_end = mapped_column(DateTime)
    updated_at = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "email": self.email,
            "status": self.status,
            "ban_reason": self.ban_reason,
            "ban_date": self.ban_date.isoformat() if self.ban_date else None,
            "banned_by": self.banned_by,
            "suspension_end": self.suspension_end.isoformat() if self.suspension_end else None,
        }


class SystemNotification(Base):
    __tablename__ = "system_notifications"

    id = mapped_column(Integer, primary_key=True)
    type = mapped_column(String(50), nullable=False)
    title = mapped_column(String(255), nullable=False)
    message = mapped_column(Text, nullable=False)
    priority = mapped_column(String(10), nullable=False, default="medium")
    target_roles = mapped_column(JSON, nullable=False, default=list)
    target_users = mapped_column(JSON, nullable=False, default=list)
    data = mapped_column(JSON)
    read_by = mapped_column(JSON, nullable=False, default=list)
    action_url = mapped_column(String(255))
    action_text = mapped_column(String(100))
    play_sound = mapped_column(Boolean, nullable=False, default=False)
    sound_type = mapped_column(String(32))
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)

    def is_read_by(self, user_id):
        return any(entry.get("userId") == user_id for entry in (self.read_by or []))

    def to_dict(self, user_id=None):
        result = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "target_roles": self.target_roles or [],
            "target_users": self.target_users or [],
            "data": self.data,
            "read_by": self.read_by or [],
            "action_url": self.action_url,
            "action_text": self.action_text,
            "play_sound": self.play_sound,
            "sound_type": self.sound_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if user_id is not None:
            result["is_read"] = self.is_read_by(user_id)
        return result


class AdminSetting(Base):
    __tablename__ = "admin_settings"
    __table_args__ = (Index("admin_settings_key", "key", unique=True),)

    id = mapped_column(Integer, primary_key=True)
    key = mapped_column(String(100), nullable=False)
    value = mapped_column(JSON, nullable=False)
    description = mapped_column(Text)
    category = mapped_column(String(50), nullable=False, default="general")
    is_public = mapped_column(Boolean, nullable=False, default=False)
    updated_at = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = mapped_column(Integer, primary_key=True)
    name = mapped_column(String(255), nullable=False)
    category = mapped_column(String(100), nullable=False)
    description = mapped_column(Text)
    current_stock = mapped_column(Integer, nullable=False, default=0)
    min_stock_level = mapped_column(Integer, nullable=False, default=0)
    max_stock_level = mapped_column(Integer)
    unit_price = mapped_column(Numeric(10, 2), nullable=False, default=0)
    supplier = mapped_column(String(255))
    barcode = mapped_column(String(100))
    is_active = mapped_column(Boolean, nullable=False, default=True)
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    movements: Mapped[List["StockMovement"]] = relationship(
        "StockMovement", uselist=True, back_populates="item"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "current_stock": self.current_stock,
            "min_stock_level": self.min_stock_level,
            "max_stock_level": self.max_stock_level,
            "unit_price": float(self.unit_price) if self.unit_price is not None else 0.0,
            "supplier": self.supplier,
            "barcode": self.barcode,
            "is_active": self.is_active,
            "is_low_stock": self.current_stock <= self.min_stock_level,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class StockMovement(Base):
    __tablename__ = "stock_movements"
    __table_args__ = (
        ForeignKeyConstraint(
            ["item_id"],
            ["inventory_items.id"],
            ondelete="CASCADE",
            name="fk_movement_item",
        ),
    )

    id = mapped_column(Integer, primary_key=True)
    item_id = mapped_column(Integer, nullable=False)
    type = mapped_column(String(16), nullable=False)
    quantity = mapped_column(Integer, nullable=False)
    previous_stock = mapped_column(Integer, nullable=False)
    new_stock = mapped_column(Integer, nullable=False)
    reason = mapped_column(String(255))
    reference = mapped_column(String(100))
    performed_by = mapped_column(String(255))
    notes = mapped_column(Text)
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)

    item: Mapped["InventoryItem"] = relationship("InventoryItem", back_populates="movements")

    def to_dict(self):
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "type": self.type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "reference": self.reference,
            "performed_by": self.performed_by,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PosSession(Base):
    __tablename__ = "pos_sessions"
    __table_args__ = (Index("pos_sessions_cashier_date", "cashier_id", "session_date"),)

    id = mapped_column(Integer, primary_key=True)
    status = mapped_column(String(10), nullable=False, default="open")
    session_date = mapped_column(Date, nullable=False)
    cashier_id = mapped_column(String(64), nullable=False)
    cashier_name = mapped_column(String(255))
    branch_id = mapped_column(String(64), nullable=False, default="main")
    opening_balance = mapped_column(Numeric(12, 2), nullable=False, default=0)
    opened_at = mapped_column(DateTime, nullable=False, default=utcnow)
    closing_balance = mapped_column(Numeric(12, 2))
    closed_at = mapped_column(DateTime)
    total_cash_sales = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total_card_sales = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total_gcash_sales = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total_bank_sales = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total_expenses = mapped_column(Numeric(12, 2), nullable=False, default=0)
    expected_cash = mapped_column(Numeric(12, 2))
    actual_cash = mapped_column(Numeric(12, 2))
    cash_variance = mapped_column(Numeric(12, 2))
    expected_digital = mapped_column(Numeric(12, 2))
    actual_digital = mapped_column(Numeric(12, 2))
    digital_variance = mapped_column(Numeric(12, 2))
    remittance_notes = mapped_column(Text)
    is_balanced = mapped_column(Boolean)

    expenses: Mapped[List["PosExpense"]] = relationship(
        "PosExpense", uselist=True, back_populates="session"
    )

    def to_dict(self):
        def money(value):
            return float(value) if value is not None else None

        return {
            "id": self.id,
            "status": self.status,
            "session_date": self.session_date.isoformat() if self.session_date else None,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "branch_id": self.branch_id,
            "opening_balance": money(self.opening_balance),
            "opened_at": self.opened_at.isoformat() if self.opened_at else None,
            "closing_balance": money(self.closing_balance),
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "total_cash_sales": money(self.total_cash_sales),
            "total_card_sales": money(self.total_card_sales),
            "total_gcash_sales": money(self.total_gcash_sales),
            "total_bank_sales": money(self.total_bank_sales),
            "total_expenses": money(self.total_expenses),
            "expected_cash": money(self.expected_cash),
            "actual_cash": money(self.actual_cash),
            "cash_variance": money(self.cash_variance),
            "expected_digital": money(self.expected_digital),
            "actual_digital": money(self.actual_digital),
            "digital_variance": money(self.digital_variance),
            "remittance_notes": self.remittance_notes,
            "is_balanced": self.is_balanced,
        }


class PosTransaction(Base):
    __tablename__ = "pos_transactions"
    __table_args__ = (
        Index("pos_transactions_number", "transaction_number", unique=True),
    )

    id = mapped_column(Integer, primary_key=True)
    transaction_number = mapped_column(String(64), nullable=False)
    customer_id = mapped_column(Integer)
    customer_name = mapped_column(String(255))
    customer_phone = mapped_column(String(50))
    customer_email = mapped_column(String(255))
    type = mapped_column(String(20), nullable=False, default="sale")
    status = mapped_column(String(20), nullable=False, default="completed")
    branch_id = mapped_column(String(64), nullable=False, default="main")
    cashier_id = mapped_column(String(64))
    cashier_name = mapped_column(String(255))
    subtotal = mapped_column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = mapped_column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total_amount = mapped_column(Numeric(12, 2), nullable=False)
    payment_method = mapped_column(String(20), nullable=False)
    payment_reference = mapped_column(String(100))
    amount_paid = mapped_column(Numeric(12, 2))
    change_amount = mapped_column(Numeric(12, 2), nullable=False, default=0)
    notes = mapped_column(Text)
    receipt_data = mapped_column(JSON)
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)

    items: Mapped[List["PosTransactionItem"]] = relationship(
        "PosTransactionItem",
        uselist=True,
        back_populates="transaction",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items=False):
        result = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "type": self.type,
            "status": self.status,
            "branch_id": self.branch_id,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "subtotal": float(self.subtotal or 0),
            "tax_amount": float(self.tax_amount or 0),
            "discount_amount": float(self.discount_amount or 0),
            "total_amount": float(self.total_amount or 0),
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "amount_paid": float(self.amount_paid) if self.amount_paid is not None else None,
            "change_amount": float(self.change_amount or 0),
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_items:
            result["items"] = [item.to_dict() for item in self.items]
        return result


class PosTransactionItem(Base):
    __tablename__ = "pos_transaction_items"
    __table_args__ = (
        ForeignKeyConstraint(
            ["transaction_id"],
            ["pos_transactions.id"],
            ondelete="CASCADE",
            name="fk_item_transaction",
        ),
    )

    id = mapped_column(Integer, primary_key=True)
    transaction_id = mapped_column(Integer, nullable=False)
    product_id = mapped_column(Integer)
    item_name = mapped_column(String(255), nullable=False)
    item_sku = mapped_column(String(100))
    item_category = mapped_column(String(100))
    unit_price = mapped_column(Numeric(12, 2), nullable=False)
    quantity = mapped_column(Integer, nullable=False, default=1)
    subtotal = mapped_column(Numeric(12, 2), nullable=False)
    final_price = mapped_column(Numeric(12, 2), nullable=False)

    transaction: Mapped["PosTransaction"] = relationship(
        "PosTransaction", back_populates="items"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "item_name": self.item_name,
            "item_sku": self.item_sku,
            "item_category": self.item_category,
            "unit_price": float(self.unit_price),
            "quantity": self.quantity,
            "subtotal": float(self.subtotal),
            "final_price": float(self.final_price),
        }


class PosExpense(Base):
    __tablename__ = "pos_expenses"
    __table_args__ = (
        ForeignKeyConstraint(
            ["pos_session_id"],
            ["pos_sessions.id"],
            ondelete="SET NULL",
            name="fk_expense_session",
        ),
    )

    id = mapped_column(Integer, primary_key=True)
    pos_session_id = mapped_column(Integer)
    category = mapped_column(String(100), nullable=False)
    description = mapped_column(String(255), nullable=False)
    amount = mapped_column(Numeric(12, 2), nullable=False)
    payment_method = mapped_column(String(20), nullable=False, default="cash")
    notes = mapped_column(Text)
    recorded_by = mapped_column(String(64))
    recorded_by_name = mapped_column(String(255))
    created_at = mapped_column(DateTime, nullable=False, default=utcnow)

    session: Mapped[Optional["PosSession"]] = relationship(
        "PosSession", back_populates="expenses"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "pos_session_id": self.pos_session_id,
            "category": self.category,
            "description": self.description,
            "amount": float(self.amount),
            "payment_method": self.payment_method,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "recorded_by_name": self.recorded_by_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
