from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional

from bus_booking.models import User, Role, UserHasRole, AdminUser
from bus_booking.auth.schemas import UserCreate, LoginRequest, UnifiedUser
from bus_booking.auth.utils import get_password_hash, verify_password
from bus_booking.exceptions import ValidationError
from bus_booking.utils import utcnow

class UserService:
    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_admin_by_id(db: Session, admin_id: int) -> Optional[AdminUser]:
        return db.query(AdminUser).filter(AdminUser.id == admin_id).first()

    @staticmethod
    def get_admin_by_email(db: Session, email: str) -> Optional[AdminUser]:
        """Get admin user by email"""
        return db.query(AdminUser).filter(AdminUser.email == email).first()

    @staticmethod
    def create_user(db: Session, user: UserCreate) -> User:
        """Create a new customer with the default 'customer' role"""
        db_user = User(
            full_name=user.full_name,
            email=user.email,
            phone_number=user.phone_number,
            password=get_password_hash(user.password)
        )

        try:
            db.add(db_user)
            db.flush()

            customer_role = db.query(Role).filter(Role.name == "customer").first()
            if customer_role:
                db.add(UserHasRole(user_id=db_user.id, role_id=customer_role.id))

            db.commit()
            db.refresh(db_user)
            return db_user

        except IntegrityError:
            db.rollback()
            raise ValidationError("Email already registered")

    @staticmethod
    def get_user_roles(db: Session, user_id: int) -> list:
        """Get user's role names"""
        rows = (
            db.query(Role.name)
            .join(UserHasRole, UserHasRole.role_id == Role.id)
            .filter(UserHasRole.user_id == user_id)
            .all()
        )
        return [name for (name,) in rows]

    @staticmethod
    def authenticate_unified(db: Session, login_data: LoginRequest) -> Optional[UnifiedUser]:
        """Authenticate against customers first, then admin users"""
        user = UserService.get_user_by_email(db, login_data.email)
        if user and verify_password(login_data.password, user.password):
            return UserService._unified_from_user(db, user)

        admin = UserService.get_admin_by_email(db, login_data.email)
        if admin and admin.is_active and verify_password(login_data.password, admin.password_hash):
            admin.last_login = utcnow()
            db.commit()
            return UserService._unified_from_admin(admin)

        return None

    @staticmethod
    def get_unified_principal(db: Session, kind: str, principal_id: int) -> Optional[UnifiedUser]:
        if kind == "admin":
            admin = UserService.get_admin_by_id(db, principal_id)
            return UserService._unified_from_admin(admin) if admin else None
        user = UserService.get_user_by_id(db, principal_id)
        return UserService._unified_from_user(db, user) if user else None

    @staticmethod
    def _unified_from_user(db: Session, user: User) -> UnifiedUser:
        return UnifiedUser(
            id=user.id,
            email=user.email,
            kind="user",
            is_admin=False,
            roles=UserService.get_user_roles(db, user.id),
            full_name=user.full_name,
            phone_number=user.phone_number
        )

    @staticmethod
    def _unified_from_admin(admin: AdminUser) -> UnifiedUser:
        return UnifiedUser(
            id=admin.id,
            email=admin.email,
            kind="admin",
            is_admin=True,
            roles=[admin.role],
            full_name=admin.full_name,
            username=admin.username,
            is_active=admin.is_active,
            last_login=admin.last_login
        )
