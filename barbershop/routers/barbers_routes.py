# barbershop/routers/barbers_routes.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from barbershop.db import get_session
from barbershop.models import Barber, UserRole
from barbershop.schemas import BarberCreate, BarberPublic, BarberUpdate, title_case
from barbershop.deps import role_required
from barbershop.stores import next_code

router = APIRouter(
    prefix="/barbers",
    tags=["barbers"],
)

admin_only = role_required(UserRole.admin.value)


@router.get("", response_model=List[BarberPublic])
def list_active_barbers(session: Session = Depends(get_session)):
    return session.exec(
        select(Barber).where(Barber.is_active == True).order_by(Barber.name)  # noqa: E712
    ).all()


@router.get("/all", response_model=List[BarberPublic])
def list_all_barbers(
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    return session.exec(select(Barber).order_by(Barber.id)).all()


@router.get("/{barber_id}", response_model=BarberPublic)
def get_barber(barber_id: int, session: Session = Depends(get_session)):
    barber = session.get(Barber, barber_id)
    if barber is None:
        raise HTTPException(status_code=404, detail="Barber not found")
    return barber


@router.post("", response_model=BarberPublic, status_code=201)
def create_barber(
    barber: BarberCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    db_barber = Barber(
        code=next_code(session, "barber"),
        name=barber.name,
        photo=barber.photo,
    )
    session.add(db_barber)
    session.commit()
    session.refresh(db_barber)
    return db_barber


@router.patch("/{barber_id}", response_model=BarberPublic)
def update_barber(
    barber_id: int,
    changes: BarberUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    db_barber = session.get(Barber, barber_id)
    if db_barber is None:
        raise HTTPException(status_code=404, detail="Barber not found")

    data = changes.model_dump(exclude_unset=True, exclude_none=True)
    if data.get("name"):
        data["name"] = title_case(data["name"])
    for key, value in data.items():
        setattr(db_barber, key, value)

    session.add(db_barber)
    session.commit()
    session.refresh(db_barber)
    return db_barber


@router.delete("/{barber_id}", status_code=204)
def deactivate_barber(
    barber_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    # barbers are referenced by slots and reservations, so they are only deactivated
    db_barber = session.get(Barber, barber_id)
    if db_barber is None:
        raise HTTPException(status_code=404, detail="Barber not found")
    db_barber.is_active = False
    session.add(db_barber)
    session.commit()
