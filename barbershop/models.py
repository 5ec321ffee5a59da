# barbershop/models.py

from typing import Optional
from datetime import datetime, date as Date
from enum import Enum

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class UserRole(str, Enum):
    admin = "admin"
    cashier = "cashier"
    customer = "customer"


class SlotStatus(str, Enum):
    available = "available"
    booked = "booked"
    unavailable = "unavailable"
    completed = "completed"
    expired = "expired"


class ReservationStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class PaymentMethod(str, Enum):
    cash = "cash"
    bank_transfer = "bank_transfer"
    e_wallet = "e_wallet"


class PaymentStatus(str, Enum):
    pending = "pending"
    verified = "verified"
    rejected = "rejected"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    phone: Optional[str] = Field(default=None, index=True, unique=True)
    password_hash: str
    role: str = UserRole.customer.value  # admin, cashier or customer
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)


class Barber(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)  # BRB001
    name: str
    photo: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)


class Package(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)  # PKG001
    name: str
    description: str = ""
    price: int
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)


class Slot(SQLModel, table=True):
    """One bookable hour of one barber's day."""

    __table_args__ = (
        UniqueConstraint("barber_id", "date", "time_slot", name="uq_barber_date_slot"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    barber_id: int = Field(foreign_key="barber.id", index=True)
    date: Date = Field(index=True)
    time_slot: str  # "11:00"
    scheduled_time: datetime = Field(index=True)
    day_of_week: int  # date.weekday(): 0=Mon ... 6=Sun, Sunday is 6 not 0
    status: str = Field(default=SlotStatus.available.value, index=True)
    reservation_id: Optional[int] = Field(default=None, index=True)
    is_default_slot: bool = True
    completed_at: Optional[datetime] = None

    # last manual change
    modified_by: Optional[int] = None
    modified_at: Optional[datetime] = None
    modification_reason: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.now)


class Reservation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)  # RES0001

    # walk-ins have no account
    customer_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    created_by: Optional[int] = Field(default=None, foreign_key="user.id")

    package_id: int = Field(foreign_key="package.id")
    barber_id: int = Field(foreign_key="barber.id", index=True)
    slot_id: int = Field(index=True)  # no FK: old slots are purged, reservations stay

    total_price: int
    notes: str = ""
    service_notes: str = ""
    status: str = Field(default=ReservationStatus.pending.value, index=True)
    payment_method: str = PaymentMethod.cash.value
    payment_id: Optional[int] = None
    is_walk_in: bool = False

    confirmed_by: Optional[int] = None
    confirmed_at: Optional[datetime] = None
    completed_by: Optional[int] = None
    completed_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.now, index=True)
    updated_at: datetime = Field(default_factory=datetime.now)


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)  # PAY001
    reservation_id: int = Field(foreign_key="reservation.id", unique=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id")
    amount: int
    method: str  # bank_transfer or e_wallet
    account_name: Optional[str] = None
    account_number: Optional[str] = None
    provider: Optional[str] = None  # bank or wallet name
    proof_url: str
    status: str = PaymentStatus.pending.value
    verification_note: Optional[str] = None
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)


class Counter(SQLModel, table=True):
    name: str = Field(primary_key=True)
    value: int = 0
