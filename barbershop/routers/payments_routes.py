# barbershop/routers/payments_routes.py

from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from barbershop.db import get_session
from barbershop.models import Payment, PaymentStatus, UserRole
from barbershop.schemas import PaymentCreate, PaymentPublic, PaymentVerify
from barbershop.auth import get_current_user
from barbershop.deps import require_role, role_required
from barbershop.services.booking import BookingService

router = APIRouter(
    prefix="/payments",
    tags=["payments"],
)

staff_only = role_required(UserRole.admin.value, UserRole.cashier.value)


@router.post("", response_model=PaymentPublic, status_code=201)
def upload_payment_proof(
    payment: PaymentCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    """The proof image is uploaded to the image host by the client; we keep its URL."""
    require_role(current_user, UserRole.customer.value)
    return BookingService(session).attach_payment(
        payment.reservation_id,
        user_id=current_user["id"],
        method=payment.method,
        proof_url=payment.proof_url,
        provider=payment.provider,
        account_name=payment.account_name,
        account_number=payment.account_number,
    )


@router.get("", response_model=List[PaymentPublic])
def list_payments(
    status: PaymentStatus = PaymentStatus.pending,
    session: Session = Depends(get_session),
    current_user: dict = Depends(staff_only),
):
    return session.exec(
        select(Payment).where(Payment.status == status.value).order_by(Payment.created_at)
    ).all()


@router.patch("/{payment_id}/verify", response_model=PaymentPublic)
def verify_payment(
    payment_id: int,
    verification: PaymentVerify,
    session: Session = Depends(get_session),
    current_user: dict = Depends(staff_only),
):
    return BookingService(session).verify_payment(
        payment_id,
        verification.status,
        actor_id=current_user["id"],
        note=verification.verification_note,
    )
