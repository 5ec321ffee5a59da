# barbershop/jobs.py
"""
Background jobs: slot regeneration and the cleanup/timeout sweeps.

Jobs run on APScheduler's BackgroundScheduler, each opening its own session.
A job never overlaps with its own previous run: APScheduler is told to keep a
single instance, and the wrapper also skips a tick while the last one holds
the job's lock.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from barbershop.config import Settings, get_settings
from barbershop.services.reaper import cancel_unpaid_reservations, cleanup_slots, expire_past_slots
from barbershop.services.scheduling import generate_slots

logger = logging.getLogger(__name__)


def regenerate_upcoming_slots(session: Session, now: Optional[datetime] = None, days_ahead: Optional[int] = None) -> int:
    """Generate slots for every active barber from today through the next month."""
    now = now or datetime.now()
    if days_ahead is None:
        days_ahead = get_settings().REGENERATION_DAYS_AHEAD
    today = now.date()
    return generate_slots(session, today, today + timedelta(days=days_ahead), now=now)


class GuardedJob:
    """Run a job function with its own session, logging and swallowing errors."""

    def __init__(self, name: str, func: Callable[[Session], object], engine):
        self.name = name
        self.func = func
        self.engine = engine
        self._lock = threading.Lock()

    def __call__(self):
        if not self._lock.acquire(blocking=False):
            logger.warning("Job %s is still running, skipping this tick", self.name)
            return None
        try:
            with Session(self.engine) as session:
                result = self.func(session)
            logger.info("Job %s finished: %s", self.name, result)
            return result
        except Exception:
            logger.exception("Job %s failed", self.name)
            return None
        finally:
            self._lock.release()

    @property
    def running(self) -> bool:
        return self._lock.locked()


class SweepScheduler:
    def __init__(self, engine, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.scheduler = BackgroundScheduler()
        self.jobs: Dict[str, GuardedJob] = {
            "payment_timeout": GuardedJob("payment_timeout", cancel_unpaid_reservations, engine),
            "cleanup": GuardedJob("cleanup", cleanup_slots, engine),
            "regenerate": GuardedJob("regenerate", regenerate_upcoming_slots, engine),
            "expire_check": GuardedJob("expire_check", expire_past_slots, engine),
        }

    def triggers(self):
        s = self.settings
        return {
            "payment_timeout": IntervalTrigger(seconds=s.PAYMENT_CHECK_INTERVAL_SECONDS),
            "cleanup": CronTrigger(hour=s.CLEANUP_HOUR, minute=0),
            "regenerate": CronTrigger(hour=s.REGENERATION_HOUR, minute=0),
            "expire_check": CronTrigger(hour=f"*/{s.EXPIRE_CHECK_INTERVAL_HOURS}", minute=0),
        }

    def start(self) -> None:
        for name, trigger in self.triggers().items():
            self.scheduler.add_job(
                self.jobs[name],
                trigger=trigger,
                id=name,
                name=name,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        self.scheduler.start()
        logger.info("Background jobs started: %s", ", ".join(self.jobs))

    def run(self, name: str):
        """Run one job now, in the calling thread."""
        return self.jobs[name]()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Background jobs stopped")
