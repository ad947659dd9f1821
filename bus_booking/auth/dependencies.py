from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from bus_booking.auth.schemas import ADMIN_ROLES, Principal
from bus_booking.auth.service import UserService
from bus_booking.auth.utils import verify_token
from bus_booking.config import settings
from bus_booking.database import get_db

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")

def get_current_principal(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Principal:
    """Resolve the bearer token to a customer or an active admin"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_token(token, credentials_exception)
    try:
        principal_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise credentials_exception

    if payload["kind"] == "admin":
        admin = UserService.get_admin_by_id(db, principal_id)
        if admin is None or not admin.is_active:
            raise credentials_exception
        return Principal(id=admin.id, kind="admin", role=admin.role)

    user = UserService.get_user_by_id(db, principal_id)
    if user is None:
        raise credentials_exception
    return Principal(id=user.id, kind="user", role=payload.get("role") or "customer")

def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Require the 'admin' role"""
    if not principal.is_admin or principal.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return principal

def require_admin_or_manager(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Require the 'admin' or 'manager' role"""
    if not principal.is_admin or principal.role not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin or manager access required"
        )
    return principal
