# barbershop/schemas.py

import re
from datetime import datetime, date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from barbershop.models import PaymentMethod, PaymentStatus, SlotStatus, UserRole

PHONE_PATTERN = re.compile(r"^(\+62|62|0)8[1-9][0-9]{6,9}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_phone(phone: str) -> str:
    """Validate an Indonesian mobile number and rewrite it to the 08... form."""
    phone = phone.strip().replace(" ", "").replace("-", "")
    if not PHONE_PATTERN.match(phone):
        raise ValueError("Please enter a valid Indonesian mobile number")
    if phone.startswith("+62"):
        return "0" + phone[3:]
    if phone.startswith("62"):
        return "0" + phone[2:]
    return phone


def normalize_email(email: str) -> str:
    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Please enter a valid email address")
    return email


def title_case(value: str) -> str:
    return " ".join(word.capitalize() for word in value.strip().split())


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# -- users ------------------------------------------------------------------

class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str
    phone: str
    password: str = Field(min_length=8, max_length=72)

    @field_validator("email")
    @classmethod
    def check_email(cls, value):
        return normalize_email(value)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value):
        return normalize_phone(value)


class StaffCreate(UserCreate):
    role: UserRole = UserRole.cashier


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    phone: Optional[str] = None
    role: UserRole
    is_active: bool = True


class ContactData(BaseModel):
    name: str = Field(min_length=1)
    phone: str

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value):
        return normalize_phone(value)


# -- catalog ----------------------------------------------------------------

class BarberCreate(BaseModel):
    name: str = Field(min_length=1)
    photo: Optional[str] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value):
        return title_case(value)


class BarberUpdate(BaseModel):
    name: Optional[str] = None
    photo: Optional[str] = None
    is_active: Optional[bool] = None


class BarberPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    photo: Optional[str] = None
    is_active: bool


class PackageCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    price: int = Field(gt=0)

    @field_validator("name")
    @classmethod
    def check_name(cls, value):
        return title_case(value)


class PackageUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None


class PackagePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    description: str
    price: int
    is_active: bool


# -- schedules --------------------------------------------------------------

class SlotPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    barber_id: int
    date: date
    time_slot: str
    scheduled_time: datetime
    day_of_week: int
    status: SlotStatus
    reservation_id: Optional[int] = None
    is_default_slot: bool
    modified_by: Optional[int] = None
    modified_at: Optional[datetime] = None
    modification_reason: Optional[str] = None


class SlotCreate(BaseModel):
    barber_id: int
    scheduled_time: datetime


class SlotAvailabilityUpdate(BaseModel):
    status: SlotStatus
    reason: Optional[str] = None


class GenerateRequest(BaseModel):
    start_date: date
    end_date: date
    barber_id: Optional[int] = None


class GenerateResult(BaseModel):
    created: int


class CleanupResult(BaseModel):
    expired: int
    deleted: int
    cancelled_unpaid: int


# -- reservations -----------------------------------------------------------

class ReservationCreate(BaseModel):
    package_id: int
    barber_id: int
    slot_id: int
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    notes: str = ""
    payment_method: PaymentMethod = PaymentMethod.bank_transfer

    @field_validator("customer_phone")
    @classmethod
    def check_phone(cls, value):
        return normalize_phone(value) if value else value

    @field_validator("customer_email")
    @classmethod
    def check_email(cls, value):
        return normalize_email(value) if value else value


class WalkInCreate(BaseModel):
    package_id: int
    barber_id: int
    slot_id: int
    customer: ContactData
    customer_email: Optional[str] = None
    notes: str = ""
    payment_method: PaymentMethod = PaymentMethod.cash

    @field_validator("customer_email")
    @classmethod
    def check_email(cls, value):
        return normalize_email(value) if value else value


class ReservationPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    customer_id: Optional[int] = None
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    created_by: Optional[int] = None
    package_id: int
    barber_id: int
    slot_id: int
    total_price: int
    notes: str
    service_notes: str
    status: str
    payment_method: str
    payment_id: Optional[int] = None
    is_walk_in: bool
    confirmed_by: Optional[int] = None
    confirmed_at: Optional[datetime] = None
    completed_by: Optional[int] = None
    completed_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class CompleteRequest(BaseModel):
    payment_method: Optional[PaymentMethod] = None
    service_notes: Optional[str] = None


# -- payments ---------------------------------------------------------------

class PaymentCreate(BaseModel):
    reservation_id: int
    method: PaymentMethod
    proof_url: str = Field(min_length=1)
    provider: Optional[str] = None
    account_name: Optional[str] = None
    account_number: Optional[str] = None


class PaymentVerify(BaseModel):
    status: PaymentStatus
    verification_note: Optional[str] = None


class PaymentPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    reservation_id: int
    user_id: Optional[int] = None
    amount: int
    method: str
    provider: Optional[str] = None
    account_name: Optional[str] = None
    account_number: Optional[str] = None
    proof_url: str
    status: str
    verification_note: Optional[str] = None
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    created_at: datetime


# -- history ----------------------------------------------------------------

class HistoryItem(ReservationPublic):
    payment_status: Optional[str] = None
    display_status: str


class HistoryPage(BaseModel):
    items: List[HistoryItem]
    total: int
    page: int
    limit: int
