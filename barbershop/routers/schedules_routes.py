# barbershop/routers/schedules_routes.py

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from barbershop.db import get_session
from barbershop.models import Slot, UserRole
from barbershop.schemas import (
    CleanupResult,
    GenerateRequest,
    GenerateResult,
    SlotAvailabilityUpdate,
    SlotCreate,
    SlotPublic,
)
from barbershop.deps import role_required
from barbershop.services import reaper, scheduling

router = APIRouter(
    prefix="/schedules",
    tags=["schedules"],
)

admin_only = role_required(UserRole.admin.value)
staff_only = role_required(UserRole.admin.value, UserRole.cashier.value)


@router.get("/available", response_model=List[SlotPublic])
def list_available(
    barber_id: Optional[int] = None,
    on_date: Optional[date] = None,
    session: Session = Depends(get_session),
):
    return scheduling.available_slots(session, barber_id=barber_id, on_date=on_date)


@router.get("/barbers/{barber_id}", response_model=List[SlotPublic])
def barber_day(
    barber_id: int,
    on_date: date,
    session: Session = Depends(get_session),
    current_user: dict = Depends(staff_only),
):
    """Every slot of one barber on one day, whatever its status."""
    return scheduling.slots_for_day(session, barber_id, on_date)


@router.get("/{slot_id}", response_model=SlotPublic)
def get_slot(slot_id: int, session: Session = Depends(get_session)):
    slot = session.get(Slot, slot_id)
    if slot is None:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return slot


@router.post("", response_model=SlotPublic, status_code=201)
def create_slot(
    slot: SlotCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    return scheduling.create_slot(session, slot.barber_id, slot.scheduled_time, actor_id=current_user["id"])


@router.patch("/{slot_id}/availability", response_model=SlotPublic)
def set_availability(
    slot_id: int,
    update: SlotAvailabilityUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(staff_only),
):
    return scheduling.set_availability(
        session, slot_id, update.status, actor_id=current_user["id"], reason=update.reason
    )


@router.post("/generate", response_model=GenerateResult)
def generate(
    request: GenerateRequest,
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    created = scheduling.generate_slots(
        session, request.start_date, request.end_date, barber_id=request.barber_id
    )
    return {"created": created}


@router.post("/cleanup", response_model=CleanupResult)
def cleanup(
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    result = reaper.cleanup_slots(session)
    cancelled = reaper.cancel_unpaid_reservations(session)
    return {"expired": result.expired, "deleted": result.deleted, "cancelled_unpaid": cancelled}
