# barbershop/stores.py
"""
Data access for slots and reservations.

Every write that changes a status goes through ``compare_and_set``: an UPDATE
filtered on the status the caller expects. A rowcount of zero means another
request or a background job changed the row first.
"""

import logging
from datetime import date as Date, datetime
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from barbershop.models import (
    Counter,
    Reservation,
    ReservationStatus,
    Slot,
    SlotStatus,
)

logger = logging.getLogger(__name__)

SEQUENCES = {
    "barber": ("BRB", 3),
    "package": ("PKG", 3),
    "payment": ("PAY", 3),
    "reservation": ("RES", 4),
}


def ensure_counters(session: Session) -> None:
    for name in SEQUENCES:
        if session.get(Counter, name) is None:
            session.add(Counter(name=name, value=0))
    session.commit()


def next_code(session: Session, name: str) -> str:
    """
    Take the next value of a named sequence inside the caller's transaction.

    The increment is a single UPDATE, so two writers never read the same value;
    if the caller rolls back, the number is given back too.
    """
    prefix, width = SEQUENCES[name]
    result = session.exec(
        update(Counter)
        .where(Counter.name == name)
        .values(value=Counter.value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        session.add(Counter(name=name, value=1))
        session.flush()
    value = session.exec(select(Counter.value).where(Counter.name == name)).one()
    return f"{prefix}{value:0{width}d}"


def _values(statuses: Iterable) -> List[str]:
    return [getattr(s, "value", s) for s in statuses]


class ScheduleStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, slot_id: int) -> Optional[Slot]:
        return self.session.get(Slot, slot_id)

    def existing_keys(self, barber_ids: List[int], start: Date, end: Date) -> Set[Tuple[int, Date, str]]:
        rows = self.session.exec(
            select(Slot.barber_id, Slot.date, Slot.time_slot)
            .where(col(Slot.barber_id).in_(barber_ids))
            .where(Slot.date >= start)
            .where(Slot.date <= end)
        ).all()
        return {(barber_id, day, label) for barber_id, day, label in rows}

    def insert_many(self, rows: List[dict]) -> int:
        """
        Insert new slots and return how many were stored.

        A concurrent generator may have inserted some of the same natural keys;
        in that case the batch is retried row by row and duplicates are skipped.
        """
        if not rows:
            return 0

        self.session.add_all([Slot(**row) for row in rows])
        try:
            self.session.commit()
            return len(rows)
        except IntegrityError:
            self.session.rollback()
            logger.warning("Bulk slot insert hit existing keys, retrying %d rows one by one", len(rows))

        created = 0
        for row in rows:
            self.session.add(Slot(**row))
            try:
                self.session.commit()
                created += 1
            except IntegrityError:
                self.session.rollback()
        return created

    def compare_and_set(self, slot_id: int, expected: Iterable, *conditions, **values) -> bool:
        stmt = (
            update(Slot)
            .where(Slot.id == slot_id)
            .where(col(Slot.status).in_(_values(expected)))
        )
        if conditions:
            stmt = stmt.where(*conditions)
        result = self.session.exec(stmt.values(**values))
        return result.rowcount == 1

    def release(self, slot_id: int, reservation_id: int) -> bool:
        """Give a booked slot back, but only if it is still held by this reservation."""
        return self.compare_and_set(
            slot_id,
            [SlotStatus.booked],
            Slot.reservation_id == reservation_id,
            status=SlotStatus.available.value,
            reservation_id=None,
        )

    def expire_before(self, now: datetime) -> int:
        result = self.session.exec(
            update(Slot)
            .where(col(Slot.status).in_(_values([SlotStatus.available, SlotStatus.unavailable])))
            .where(Slot.scheduled_time < now)
            .values(status=SlotStatus.expired.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_dated_before(self, cutoff: Date) -> int:
        result = self.session.exec(
            delete(Slot)
            .where(col(Slot.status).in_(_values([SlotStatus.expired, SlotStatus.completed])))
            .where(Slot.date < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def available(self, barber_id: Optional[int], start: datetime, end: Optional[datetime] = None) -> List[Slot]:
        stmt = (
            select(Slot)
            .where(Slot.status == SlotStatus.available.value)
            .where(Slot.scheduled_time >= start)
        )
        if barber_id is not None:
            stmt = stmt.where(Slot.barber_id == barber_id)
        if end is not None:
            stmt = stmt.where(Slot.scheduled_time < end)
        stmt = stmt.order_by(Slot.scheduled_time, Slot.barber_id)
        return list(self.session.exec(stmt).all())


class ReservationStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, reservation_id: int) -> Optional[Reservation]:
        return self.session.get(Reservation, reservation_id)

    def holding(self, slot_id: int) -> List[Reservation]:
        return list(self.session.exec(select(Reservation).where(Reservation.slot_id == slot_id)).all())

    def compare_and_set(self, reservation_id: int, expected: Iterable, *conditions, **values) -> bool:
        values.setdefault("updated_at", datetime.now())
        stmt = (
            update(Reservation)
            .where(Reservation.id == reservation_id)
            .where(col(Reservation.status).in_(_values(expected)))
        )
        if conditions:
            stmt = stmt.where(*conditions)
        result = self.session.exec(stmt.values(**values))
        return result.rowcount == 1

    def unpaid_pending(self, created_before: datetime) -> List[Reservation]:
        return list(
            self.session.exec(
                select(Reservation)
                .where(Reservation.status == ReservationStatus.pending.value)
                .where(Reservation.created_at <= created_before)
                .where(col(Reservation.payment_id).is_(None))
                .order_by(Reservation.created_at)
            ).all()
        )
