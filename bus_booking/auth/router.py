from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from datetime import timedelta

from bus_booking.database import get_db
from bus_booking.auth.schemas import UserCreate, User, LoginRequest, AuthResponse, UnifiedUser, Principal
from bus_booking.auth.service import UserService
from bus_booking.auth.utils import create_access_token
from bus_booking.auth.dependencies import get_current_principal
from bus_booking.config import settings

router = APIRouter()

@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
def register_user(user: UserCreate, db: Session = Depends(get_db)):
    """Register a new customer"""
    return UserService.create_user(db=db, user=user)

@router.post("/login", response_model=AuthResponse)
def login_unified(login_data: LoginRequest, db: Session = Depends(get_db)):
    """Unified login for both customers and admin users"""
    user = UserService.authenticate_unified(db, login_data)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": str(user.id), "kind": user.kind, "role": user.roles[0] if user.roles else None},
        expires_delta=access_token_expires
    )
    return AuthResponse(
        access_token=access_token,
        token_type="bearer",
        user=user
    )

@router.get("/me", response_model=UnifiedUser)
def read_users_me(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    """Get current principal profile"""
    unified_user = UserService.get_unified_principal(db, principal.kind, principal.id)
    if not unified_user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return unified_user
