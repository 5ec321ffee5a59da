# barbershop/routers/history_routes.py

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from barbershop.db import get_session
from barbershop.models import Reservation, ReservationStatus, UserRole
from barbershop.schemas import HistoryItem, HistoryPage, ReservationPublic
from barbershop.auth import get_current_user
from barbershop.services import history

router = APIRouter(
    prefix="/history",
    tags=["history"],
)


def _scope(current_user: dict, customer_id: Optional[int], cashier_id: Optional[int]):
    """Admins see everything, cashiers what they handled, customers their own."""
    role = current_user["role"]
    if role == UserRole.customer.value:
        return [Reservation.customer_id == current_user["id"]]
    if role == UserRole.cashier.value:
        return [history.handled_by(current_user["id"])]

    conditions = []
    if customer_id is not None:
        conditions.append(Reservation.customer_id == customer_id)
    if cashier_id is not None:
        conditions.append(history.handled_by(cashier_id))
    return conditions


@router.get("", response_model=HistoryPage)
def reservation_history(
    status: Optional[ReservationStatus] = None,
    barber_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    cashier_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    rows, total = history.search_reservations(
        session,
        *_scope(current_user, customer_id, cashier_id),
        status=status.value if status else None,
        barber_id=barber_id,
        start=start,
        end=end,
        page=page,
        limit=limit,
        sort_by=sort_by,
        descending=sort_order == "desc",
    )

    items = []
    for reservation, payment in rows:
        payment_status = payment.status if payment else None
        data = ReservationPublic.model_validate(reservation).model_dump()
        items.append(
            HistoryItem(
                **data,
                payment_status=payment_status,
                display_status=history.display_status(reservation.status, payment_status),
            )
        )
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/stats")
def reservation_stats(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    role = current_user["role"]
    if role == UserRole.customer.value:
        return history.customer_stats(session, current_user["id"])
    if role == UserRole.cashier.value:
        return history.cashier_stats(session, current_user["id"])
    return history.reservation_stats(session)
