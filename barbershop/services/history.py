# barbershop/services/history.py

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlmodel import Session, col, select

from barbershop.models import Payment, Reservation, ReservationStatus

SORTABLE = {"created_at", "updated_at", "total_price", "status"}


def display_status(reservation_status: str, payment_status: Optional[str]) -> str:
    if reservation_status == ReservationStatus.completed.value:
        return "Completed"
    if reservation_status == ReservationStatus.cancelled.value:
        return "Cancelled"
    if reservation_status == ReservationStatus.in_progress.value:
        return "In Progress"
    if reservation_status == ReservationStatus.confirmed.value:
        return "Confirmed"
    if reservation_status == ReservationStatus.pending.value:
        return "Payment Verification" if payment_status else "Awaiting Payment"
    return "Unknown"


def loyalty_level(completed_count: int) -> str:
    if completed_count >= 20:
        return "VIP"
    if completed_count >= 10:
        return "Gold"
    if completed_count >= 5:
        return "Silver"
    return "Bronze"


def search_reservations(
    session: Session,
    *conditions,
    status: Optional[str] = None,
    barber_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    descending: bool = True,
) -> Tuple[List[Tuple[Reservation, Optional[Payment]]], int]:
    """Filtered, paginated reservations with their payment (if any)."""
    filters = list(conditions)
    if status:
        filters.append(Reservation.status == status)
    if barber_id is not None:
        filters.append(Reservation.barber_id == barber_id)
    if start is not None:
        filters.append(Reservation.created_at >= start)
    if end is not None:
        filters.append(Reservation.created_at <= end)

    total = session.exec(select(func.count()).select_from(Reservation).where(*filters)).one()

    order_col = col(getattr(Reservation, sort_by if sort_by in SORTABLE else "created_at"))
    stmt = (
        select(Reservation, Payment)
        .outerjoin(Payment, col(Payment.id) == col(Reservation.payment_id))
        .where(*filters)
        .order_by(*[(c.desc() if descending else c.asc()) for c in (order_col, col(Reservation.id))])
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(session.exec(stmt).all()), total


def handled_by(cashier_id: int):
    return or_(
        Reservation.created_by == cashier_id,
        Reservation.confirmed_by == cashier_id,
        Reservation.completed_by == cashier_id,
    )


def _count(session: Session, *conditions) -> int:
    return session.exec(select(func.count()).select_from(Reservation).where(*conditions)).one()


def _revenue(session: Session, *conditions) -> int:
    total = session.exec(
        select(func.coalesce(func.sum(Reservation.total_price), 0))
        .where(Reservation.status == ReservationStatus.completed.value)
        .where(*conditions)
    ).one()
    return int(total)


def reservation_stats(session: Session, *conditions, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now()
    start_of_month = datetime(now.year, now.month, 1)
    start_of_year = datetime(now.year, 1, 1)

    total = _count(session, *conditions)
    completed = _count(session, Reservation.status == ReservationStatus.completed.value, *conditions)
    cancelled = _count(session, Reservation.status == ReservationStatus.cancelled.value, *conditions)

    return {
        "total": total,
        "completed": completed,
        "cancelled": cancelled,
        "active": total - completed - cancelled,
        "monthly_count": _count(session, Reservation.created_at >= start_of_month, *conditions),
        "yearly_count": _count(session, Reservation.created_at >= start_of_year, *conditions),
        "total_revenue": _revenue(session, *conditions),
        "completion_rate": round(completed / total * 100, 2) if total else 0.0,
    }


def customer_stats(session: Session, customer_id: int, now: Optional[datetime] = None) -> dict:
    stats = reservation_stats(session, Reservation.customer_id == customer_id, now=now)
    stats["loyalty_level"] = loyalty_level(stats["completed"])
    return stats


def cashier_stats(session: Session, cashier_id: int, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now()
    start_of_month = datetime(now.year, now.month, 1)
    return {
        "total_confirmed": _count(session, Reservation.confirmed_by == cashier_id),
        "monthly_confirmed": _count(
            session, Reservation.confirmed_by == cashier_id, Reservation.confirmed_at >= start_of_month
        ),
        "walk_ins": _count(session, Reservation.created_by == cashier_id, Reservation.is_walk_in == True),  # noqa: E712
        "total_revenue": _revenue(session, handled_by(cashier_id)),
    }
