# barbershop/routers/packages_routes.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from barbershop.db import get_session
from barbershop.models import Package, UserRole
from barbershop.schemas import PackageCreate, PackagePublic, PackageUpdate, title_case
from barbershop.deps import role_required
from barbershop.stores import next_code

router = APIRouter(
    prefix="/packages",
    tags=["packages"],
)

admin_only = role_required(UserRole.admin.value)


@router.get("", response_model=List[PackagePublic])
def list_active_packages(session: Session = Depends(get_session)):
    return session.exec(
        select(Package).where(Package.is_active == True).order_by(Package.price)  # noqa: E712
    ).all()


@router.get("/all", response_model=List[PackagePublic])
def list_all_packages(
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    return session.exec(select(Package).order_by(Package.id)).all()


@router.post("", response_model=PackagePublic, status_code=201)
def create_package(
    package: PackageCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    db_package = Package(
        code=next_code(session, "package"),
        name=package.name,
        description=package.description.strip(),
        price=package.price,
    )
    session.add(db_package)
    session.commit()
    session.refresh(db_package)
    return db_package


@router.patch("/{package_id}", response_model=PackagePublic)
def update_package(
    package_id: int,
    changes: PackageUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    # price changes never touch existing reservations, they keep their own total_price
    db_package = session.get(Package, package_id)
    if db_package is None:
        raise HTTPException(status_code=404, detail="Package not found")

    data = changes.model_dump(exclude_unset=True, exclude_none=True)
    if data.get("name"):
        data["name"] = title_case(data["name"])
    for key, value in data.items():
        setattr(db_package, key, value)

    session.add(db_package)
    session.commit()
    session.refresh(db_package)
    return db_package


@router.delete("/{package_id}", status_code=204)
def deactivate_package(
    package_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(admin_only),
):
    db_package = session.get(Package, package_id)
    if db_package is None:
        raise HTTPException(status_code=404, detail="Package not found")
    db_package.is_active = False
    session.add(db_package)
    session.commit()
