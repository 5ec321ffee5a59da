# barbershop/db.py

from sqlmodel import SQLModel, Session, create_engine

from barbershop.config import get_settings

settings = get_settings()


def build_engine(url: str):
    if url.startswith("sqlite"):
        # required for SQLite + FastAPI + background jobs
        return create_engine(url, echo=settings.DEBUG, connect_args={"check_same_thread": False})
    return create_engine(url, echo=settings.DEBUG, pool_pre_ping=True)


# Engine = connection to the database
engine = build_engine(settings.DATABASE_URL)


# Dependency: one session per request
def get_session():
    with Session(engine) as session:
        yield session


def init_db(bind=None):
    # import so every table is registered on the metadata
    from barbershop import models  # noqa: F401
    from barbershop.stores import ensure_counters

    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    with Session(bind) as session:
        ensure_counters(session)
