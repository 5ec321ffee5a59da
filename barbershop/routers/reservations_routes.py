# barbershop/routers/reservations_routes.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from barbershop.db import get_session
from barbershop.models import Reservation, User, UserRole
from barbershop.schemas import (
    CancelRequest,
    CompleteRequest,
    PaymentPublic,
    ReservationCreate,
    ReservationPublic,
    WalkInCreate,
)
from barbershop.auth import get_current_user
from barbershop.deps import require_role, role_required
from barbershop.services.booking import BookingService

router = APIRouter(
    prefix="/reservations",
    tags=["reservations"],
)

STAFF = (UserRole.admin.value, UserRole.cashier.value)
staff_only = role_required(*STAFF)


def _visible(session: Session, reservation_id: int, current_user: dict) -> Reservation:
    reservation = session.get(Reservation, reservation_id)
    if reservation is None:
        raise HTTPException(status_code=404, detail="Reservation not found")
    if current_user["role"] not in STAFF and reservation.customer_id != current_user["id"]:
        # don't reveal other customers' reservations
        raise HTTPException(status_code=404, detail="Reservation not found")
    return reservation


@router.post("", response_model=ReservationPublic, status_code=201)
def create_reservation(
    booking: ReservationCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, UserRole.customer.value)
    account = session.get(User, current_user["id"])

    # contact details are a snapshot, defaulting to what is on the account
    name = booking.customer_name or account.name
    phone = booking.customer_phone or account.phone
    if not phone:
        raise HTTPException(status_code=422, detail="Customer phone is required")

    return BookingService(session).create_reservation(
        package_id=booking.package_id,
        barber_id=booking.barber_id,
        slot_id=booking.slot_id,
        customer_name=name,
        customer_phone=phone,
        customer_email=booking.customer_email or account.email,
        customer_id=account.id,
        notes=booking.notes,
        payment_method=booking.payment_method,
    )


@router.post("/walk-in", response_model=ReservationPublic, status_code=201)
def create_walk_in(
    booking: WalkInCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(staff_only),
):
    return BookingService(session).create_walk_in(
        package_id=booking.package_id,
        barber_id=booking.barber_id,
        slot_id=booking.slot_id,
        customer_name=booking.customer.name,
        customer_phone=booking.customer.phone,
        customer_email=booking.customer_email,
        cashier_id=current_user["id"],
        notes=booking.notes,
        payment_method=booking.payment_method,
    )


@router.get("/{reservation_id}", response_model=ReservationPublic)
def get_reservation(
    reservation_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    return _visible(session, reservation_id, current_user)


@router.get("/{reservation_id}/payment", response_model=Optional[PaymentPublic])
def get_reservation_payment(
    reservation_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    _visible(session, reservation_id, current_user)
    return BookingService(session).payment_for(reservation_id)


@router.patch("/{reservation_id}/confirm", response_model=ReservationPublic)
def confirm_reservation(
    reservation_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(staff_only),
):
    return BookingService(session).confirm(reservation_id, actor_id=current_user["id"])


@router.patch("/{reservation_id}/start", response_model=ReservationPublic)
def start_service(
    reservation_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(staff_only),
):
    return BookingService(session).start(reservation_id, actor_id=current_user["id"])


@router.patch("/{reservation_id}/complete", response_model=ReservationPublic)
def complete_service(
    reservation_id: int,
    body: Optional[CompleteRequest] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(staff_only),
):
    body = body or CompleteRequest()
    return BookingService(session).complete(
        reservation_id,
        actor_id=current_user["id"],
        payment_method=body.payment_method,
        service_notes=body.service_notes,
    )


@router.patch("/{reservation_id}/cancel", response_model=ReservationPublic)
def cancel_reservation(
    reservation_id: int,
    body: Optional[CancelRequest] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    reason = body.reason if body else None
    owner = None if current_user["role"] in STAFF else current_user["id"]
    return BookingService(session).cancel(
        reservation_id,
        actor_id=current_user["id"],
        reason=reason or "Cancelled by user",
        customer_id=owner,
    )
