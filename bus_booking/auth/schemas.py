from pydantic import BaseModel, EmailStr
from typing import Optional, List
from datetime import datetime

ADMIN_ROLES = {"admin", "manager"}

class UserBase(BaseModel):
    full_name: str
    email: EmailStr
    phone_number: Optional[str] = None

class UserCreate(UserBase):
    password: str

class User(UserBase):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True

# Unified Login Request
class LoginRequest(BaseModel):
    email: EmailStr
    password: str

# Unified User Response (for both customers and admins)
class UnifiedUser(BaseModel):
    id: int
    email: EmailStr
    kind: str  # user / admin
    is_admin: bool
    roles: List[str] = []

    # Fields for customers
    full_name: Optional[str] = None
    phone_number: Optional[str] = None

    # Fields for admin users
    username: Optional[str] = None
    is_active: Optional[bool] = None
    last_login: Optional[datetime] = None

class AuthResponse(BaseModel):
    access_token: str
    token_type: str
    user: UnifiedUser

class Principal(BaseModel):
    """Authenticated caller attached to a request"""
    id: int
    kind: str
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.kind == "admin"
