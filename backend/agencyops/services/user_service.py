"""
User Service - Business Logic for User Operations
"""
from typing import Optional
from sqlalchemy.orm import Session

from agencyops.models import User, UserAccess
from agencyops.core.utils import utcnow


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def create(self, email: str, password: str, display_name: str = "", access: int = UserAccess.USER) -> User:
        from agencyops.core.security import get_password_hash

        email = email.strip().lower()
        if self.get_by_email(email):
            raise ValueError("Email already registered")

        user = User(
            email=email,
            hashed_password=get_password_hash(password),
            display_name=display_name or "",
            access=access,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        from agencyops.core.security import verify_password

        user = self.get_by_email(email)
        if not user:
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user

    def record_login(self, user: User):
        user.last_login_at = utcnow()
        self.db.flush()

    def update_profile(self, user_id: int, data: dict) -> Optional[User]:
        user = self.get_by_id(user_id)
        if not user:
            return None
        for key in ("display_name", "phone", "avatar"):
            if key in data and data[key] is not None:
                setattr(user, key, data[key])
        self.db.flush()
        return user

    def change_password(self, user_id: int, current_password: str, new_password: str) -> bool:
        from agencyops.core.security import get_password_hash, verify_password

        user = self.get_by_id(user_id)
        if not user or not verify_password(current_password, user.hashed_password):
            raise ValueError("Current password is incorrect")
        user.hashed_password = get_password_hash(new_password)
        self.db.flush()
        return True

