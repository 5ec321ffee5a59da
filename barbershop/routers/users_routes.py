# barbershop/routers/users_routes.py

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, or_, select

from barbershop.db import get_session
from barbershop.models import User, UserRole
from barbershop.schemas import ContactData, StaffCreate, UserCreate, UserPublic
from barbershop.auth import get_current_user, hash_password
from barbershop.deps import require_role, role_required

router = APIRouter(
    tags=["users"],
)


def _ensure_unique(session: Session, email: str, phone: str):
    existing = session.exec(
        select(User).where(or_(User.email == email, User.phone == phone))
    ).first()
    if existing is not None:
        if existing.email == email:
            raise HTTPException(status_code=409, detail="Email already registered")
        raise HTTPException(status_code=409, detail="Phone number already registered")


def _create_user(session: Session, data: UserCreate, role: UserRole) -> User:
    _ensure_unique(session, data.email, data.phone)

    db_user = User(
        name=data.name.strip(),
        email=data.email,
        phone=data.phone,
        password_hash=hash_password(data.password),
        role=role.value,
    )
    session.add(db_user)
    session.commit()
    session.refresh(db_user)  # fills db_user.id
    return db_user


@router.get("/me", response_model=UserPublic)
def me(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    return session.get(User, current_user["id"])


@router.post("/users", status_code=201, response_model=UserPublic)
def register_customer(
    user: UserCreate,
    session: Session = Depends(get_session),
):
    return _create_user(session, user, UserRole.customer)


@router.get("/me/contact", response_model=ContactData)
def registered_contact(current_user: dict = Depends(get_current_user)):
    """Name and phone for pre-filling the booking form."""
    require_role(current_user, UserRole.customer.value)
    if not current_user["phone"]:
        raise HTTPException(status_code=404, detail="No phone number on file")
    return {"name": current_user["name"], "phone": current_user["phone"]}


@router.post("/me/contact/validate", response_model=ContactData)
def validate_contact(
    contact: ContactData,
    current_user: dict = Depends(get_current_user),
):
    # normalisation happens in the schema
    return {"name": contact.name.strip(), "phone": contact.phone}


@router.post("/admin/staff", status_code=201, response_model=UserPublic)
def create_staff(
    staff: StaffCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(role_required(UserRole.admin.value)),
):
    if staff.role == UserRole.customer:
        raise HTTPException(status_code=422, detail="Use /users to register customers")
    return _create_user(session, staff, staff.role)


@router.get("/admin/users", response_model=List[UserPublic])
def list_users(
    role: Optional[UserRole] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(role_required(UserRole.admin.value)),
):
    stmt = select(User)
    if role is not None:
        stmt = stmt.where(User.role == role.value)
    return session.exec(stmt.order_by(User.id)).all()


@router.patch("/admin/users/{user_id}/active", response_model=UserPublic)
def set_user_active(
    user_id: int,
    is_active: bool,
    session: Session = Depends(get_session),
    current_user: dict = Depends(role_required(UserRole.admin.value)),
):
    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user.id == current_user["id"]:
        raise HTTPException(status_code=409, detail="You cannot deactivate your own account")

    user.is_active = is_active
    session.add(user)
    session.commit()
    session.refresh(user)
    return user
