import logging
from datetime import datetime

from sqlmodel import Session, select

from barbershop.config import Settings
from barbershop.jobs import GuardedJob, SweepScheduler, regenerate_upcoming_slots
from barbershop.models import Slot


def test_regenerate_covers_today_through_days_ahead(session, barber):
    now = datetime(2024, 1, 1, 8, 0)

    created = regenerate_upcoming_slots(session, now=now, days_ahead=2)
    again = regenerate_upcoming_slots(session, now=now, days_ahead=2)

    days = {s.date.isoformat() for s in session.exec(select(Slot)).all()}
    assert created == 39  # Monday, Tuesday, Wednesday
    assert again == 0
    assert days == {"2024-01-01", "2024-01-02", "2024-01-03"}


def test_guarded_job_opens_its_own_session(engine):
    seen = []

    def job(session):
        seen.append(session)
        return "ok"

    assert GuardedJob("noop", job, engine)() == "ok"
    assert isinstance(seen[0], Session)


def test_guarded_job_logs_and_swallows_errors(engine, caplog):
    def broken(session):
        raise RuntimeError("database went away")

    job = GuardedJob("broken", broken, engine)
    with caplog.at_level(logging.ERROR, logger="barbershop.jobs"):
        assert job() is None

    assert "Job broken failed" in caplog.text
    assert not job.running


def test_guarded_job_skips_overlapping_tick(engine):
    calls = []
    job = GuardedJob("slow", lambda session: calls.append(1), engine)

    job._lock.acquire()
    try:
        assert job.running
        assert job() is None
    finally:
        job._lock.release()

    assert calls == []
    job()
    assert calls == [1]


def test_scheduler_registers_single_instance_jobs(engine):
    settings = Settings(PAYMENT_CHECK_INTERVAL_SECONDS=30, CLEANUP_HOUR=3)
    sweeper = SweepScheduler(engine, settings)
    sweeper.start()
    try:
        jobs = {job.id: job for job in sweeper.scheduler.get_jobs()}
        assert set(jobs) == {"payment_timeout", "cleanup", "regenerate", "expire_check"}
        assert all(job.max_instances == 1 for job in jobs.values())
        assert jobs["payment_timeout"].trigger.interval.total_seconds() == 30
    finally:
        sweeper.shutdown()

    assert not sweeper.scheduler.running


def test_scheduler_runs_a_job_on_demand(engine):
    sweeper = SweepScheduler(engine, Settings())
    assert sweeper.run("expire_check") == 0
    assert sweeper.run("payment_timeout") == 0
