# barbershop/services/scheduling.py

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from barbershop.errors import (
    ConflictError,
    InvalidRangeError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from barbershop.models import Barber, Slot, SlotStatus
from barbershop.slot_calendar import expand_range, slot_label
from barbershop.stores import ScheduleStore

logger = logging.getLogger(__name__)

TOGGLEABLE = (SlotStatus.available, SlotStatus.unavailable)


def active_barbers(session: Session, barber_id: Optional[int] = None) -> List[Barber]:
    if barber_id is not None:
        barber = session.get(Barber, barber_id)
        if barber is None:
            raise NotFoundError("Barber not found")
        if not barber.is_active:
            raise InvalidStateError("Barber is not active")
        return [barber]

    return list(session.exec(select(Barber).where(Barber.is_active == True)).all())  # noqa: E712


def generate_slots(
    session: Session,
    start: date,
    end: date,
    barber_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Materialize available slots for every active barber between start and end
    (inclusive). Existing (barber, date, time) keys and hours that have already
    started are skipped, so running it twice creates nothing the second time.

    Returns the number of slots actually inserted.
    """
    if start >= end:
        raise InvalidRangeError("start date must be before end date")

    now = now or datetime.now()
    barbers = active_barbers(session, barber_id)
    if not barbers:
        logger.info("No active barbers, nothing to generate")
        return 0

    store = ScheduleStore(session)
    barber_ids = [b.id for b in barbers]
    existing = store.existing_keys(barber_ids, start, end)

    staged = []
    for day, label, scheduled in expand_range(start, end, now):
        for barber_id_ in barber_ids:
            if (barber_id_, day, label) in existing:
                continue
            staged.append(
                {
                    "barber_id": barber_id_,
                    "date": day,
                    "time_slot": label,
                    "scheduled_time": scheduled,
                    "day_of_week": day.weekday(),
                    "status": SlotStatus.available.value,
                    "is_default_slot": True,
                }
            )

    created = store.insert_many(staged)
    logger.info(
        "Generated %d slots from %s to %s for %d barber(s), %d skipped",
        created, start, end, len(barbers), len(staged) - created,
    )
    return created


def create_slot(session: Session, barber_id: int, scheduled_time: datetime, actor_id: Optional[int] = None) -> Slot:
    """Create one slot outside the weekly rules (admin override)."""
    barber = session.get(Barber, barber_id)
    if barber is None:
        raise NotFoundError("Barber not found")
    if scheduled_time.minute != 0 or scheduled_time.second != 0:
        raise ValidationError("Slots must start on the hour")

    day = scheduled_time.date()
    slot = Slot(
        barber_id=barber_id,
        date=day,
        time_slot=slot_label(scheduled_time.hour),
        scheduled_time=scheduled_time,
        day_of_week=day.weekday(),
        is_default_slot=False,
        modified_by=actor_id,
        modified_at=datetime.now(),
    )
    session.add(slot)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError("A slot already exists for that barber and time")
    session.refresh(slot)
    return slot


def set_availability(
    session: Session,
    slot_id: int,
    status: SlotStatus,
    actor_id: Optional[int] = None,
    reason: Optional[str] = None,
) -> Slot:
    """Toggle a slot between available and unavailable."""
    if status not in TOGGLEABLE:
        raise ValidationError("status must be 'available' or 'unavailable'")

    store = ScheduleStore(session)
    slot = store.get(slot_id)
    if slot is None:
        raise NotFoundError("Slot not found")
    if slot.status not in [s.value for s in TOGGLEABLE]:
        raise InvalidStateError(f"Cannot change availability of a {slot.status} slot")

    changed = store.compare_and_set(
        slot_id,
        TOGGLEABLE,
        status=status.value,
        modified_by=actor_id,
        modified_at=datetime.now(),
        modification_reason=reason,
    )
    if not changed:
        session.rollback()
        raise ConflictError("Slot changed while updating, reload and try again")

    session.commit()
    session.refresh(slot)
    logger.info("Slot %s set to %s by user %s", slot_id, status.value, actor_id)
    return slot


def available_slots(
    session: Session,
    barber_id: Optional[int] = None,
    on_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> List[Slot]:
    """Bookable slots that have not started yet, earliest first."""
    now = now or datetime.now()
    if on_date is not None:
        start = max(datetime.combine(on_date, datetime.min.time()), now)
        end = datetime.combine(on_date + timedelta(days=1), datetime.min.time())
        return ScheduleStore(session).available(barber_id, start, end)
    return ScheduleStore(session).available(barber_id, now)


def slots_for_day(session: Session, barber_id: int, on_date: date) -> List[Slot]:
    stmt = (
        select(Slot)
        .where(Slot.barber_id == barber_id)
        .where(Slot.date == on_date)
        .order_by(Slot.scheduled_time)
    )
    return list(session.exec(stmt).all())
