# barbershop/services/reaper.py
"""
Time driven sweeps over slots and reservations.

All three are idempotent and independent of each other; the scheduler may run
them in any order, and a sweep interrupted half way just finishes on its next
tick.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlmodel import Session, col

from barbershop.config import get_settings
from barbershop.models import Reservation, ReservationStatus
from barbershop.stores import ReservationStore, ScheduleStore

logger = logging.getLogger(__name__)

settings = get_settings()

PAYMENT_TIMEOUT_REASON = "Payment timeout - No payment uploaded within {minutes} minutes"


@dataclass
class CleanupResult:
    expired: int = 0
    deleted: int = 0


def expire_past_slots(session: Session, now: Optional[datetime] = None) -> int:
    """Mark available/unavailable slots whose time has passed as expired."""
    now = now or datetime.now()
    expired = ScheduleStore(session).expire_before(now)
    session.commit()
    if expired:
        logger.info("Marked %d slots as expired", expired)
    return expired


def purge_old_slots(session: Session, now: Optional[datetime] = None, retention_days: Optional[int] = None) -> int:
    """Delete expired/completed slots dated more than ``retention_days`` ago."""
    now = now or datetime.now()
    if retention_days is None:
        retention_days = settings.SLOT_RETENTION_DAYS
    cutoff = now.date() - timedelta(days=retention_days)

    deleted = ScheduleStore(session).delete_dated_before(cutoff)
    session.commit()
    if deleted:
        logger.info("Deleted %d slots dated before %s", deleted, cutoff)
    return deleted


def cleanup_slots(session: Session, now: Optional[datetime] = None) -> CleanupResult:
    now = now or datetime.now()
    return CleanupResult(
        expired=expire_past_slots(session, now),
        deleted=purge_old_slots(session, now),
    )


def cancel_unpaid_reservations(
    session: Session,
    now: Optional[datetime] = None,
    timeout_minutes: Optional[int] = None,
) -> int:
    """
    Cancel pending reservations that got no payment proof within the timeout
    and release their slots.

    The cancel is guarded by "still pending and still without payment", so a
    reservation that received its payment after it was selected is skipped.
    Each reservation is committed on its own.
    """
    now = now or datetime.now()
    if timeout_minutes is None:
        timeout_minutes = settings.PAYMENT_TIMEOUT_MINUTES
    cutoff = now - timedelta(minutes=timeout_minutes)
    reason = PAYMENT_TIMEOUT_REASON.format(minutes=timeout_minutes)

    reservations = ReservationStore(session)
    slots = ScheduleStore(session)

    candidates = [(r.id, r.code, r.slot_id) for r in reservations.unpaid_pending(cutoff)]
    if not candidates:
        return 0

    logger.info("Found %d reservations past the payment window", len(candidates))
    cancelled = 0
    for reservation_id, code, slot_id in candidates:
        won = reservations.compare_and_set(
            reservation_id,
            [ReservationStatus.pending],
            col(Reservation.payment_id).is_(None),
            status=ReservationStatus.cancelled.value,
            cancelled_at=now,
            cancellation_reason=reason,
            updated_at=now,
        )
        if not won:
            session.rollback()
            logger.info("Reservation %s changed before timeout, skipped", code)
            continue

        released = slots.release(slot_id, reservation_id)
        session.commit()
        cancelled += 1
        logger.info(
            "Reservation %s cancelled for payment timeout, slot %s %s",
            code, slot_id, "freed" if released else "left as is",
        )

    return cancelled
