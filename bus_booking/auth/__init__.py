"""
Authentication Module

JWT bearer authentication shared by customers and admin users. Tokens carry
``sub`` (principal id), ``kind`` (``user`` or ``admin``) and ``role``.

Key Components:
- utils.py: password hashing and token encode/decode
- service.py: user lookup, registration and unified login
- dependencies.py: FastAPI dependencies resolving the current principal and
  enforcing admin/manager roles
- router.py: register, login and profile endpoints
"""

from .router import router
from .service import UserService
from .dependencies import get_current_principal, require_admin, require_admin_or_manager
from .schemas import Principal, UnifiedUser

__all__ = [
    "router",
    "UserService",
    "get_current_principal",
    "require_admin",
    "require_admin_or_manager",
    "Principal",
    "UnifiedUser",
]
