# barbershop/deps.py

from fastapi import Depends, HTTPException

from barbershop.auth import get_current_user


def require_role(user: dict, *roles: str):
    if user["role"] not in roles:
        raise HTTPException(status_code=403, detail="Forbidden")


def role_required(*roles: str):
    """Dependency form of require_role for whole routes."""

    def checker(current_user: dict = Depends(get_current_user)) -> dict:
        require_role(current_user, *roles)
        return current_user

    return checker
