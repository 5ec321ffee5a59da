# barbershop/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session, select

from barbershop.config import get_settings
from barbershop.db import engine, init_db
from barbershop.errors import BookingError
from barbershop.jobs import SweepScheduler
from barbershop.models import User, UserRole
from barbershop.auth import hash_password
from barbershop.routers import (
    auth_routes,
    barbers_routes,
    history_routes,
    packages_routes,
    payments_routes,
    reservations_routes,
    schedules_routes,
    users_routes,
)

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def seed_admin(session: Session) -> None:
    if not (settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD):
        return
    email = settings.ADMIN_EMAIL.strip().lower()
    if session.exec(select(User).where(User.email == email)).first() is not None:
        return
    session.add(
        User(
            name="Administrator",
            email=email,
            password_hash=hash_password(settings.ADMIN_PASSWORD),
            role=UserRole.admin.value,
        )
    )
    session.commit()
    logger.info("Created bootstrap admin %s", email)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    with Session(engine) as session:
        seed_admin(session)

    jobs = None
    if settings.SCHEDULER_ENABLED:
        jobs = SweepScheduler(engine, settings)
        jobs.start()
    app.state.jobs = jobs

    yield

    if jobs is not None:
        jobs.shutdown()


app = FastAPI(title="Barbershop Booking API", lifespan=lifespan)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health")
def health_check():
    return {"status": "ok"}


app.include_router(auth_routes.router)
app.include_router(users_routes.router)
app.include_router(barbers_routes.router)
app.include_router(packages_routes.router)
app.include_router(schedules_routes.router)
app.include_router(reservations_routes.router)
app.include_router(payments_routes.router)
app.include_router(history_routes.router)
