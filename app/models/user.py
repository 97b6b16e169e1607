from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.orm import validates
from app.core.constants import AuthProvider, UserRole
from app.core.database import Base
from app.core.security import verify_password
from app.models.base import ObjectIdMixin, utcnow


class User(ObjectIdMixin, Base):
    __tablename__ = "users"

    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=True)
    image = Column(Text, nullable=True)
    # Federated accounts never carry a password
    password_hash = Column(String(255), nullable=True)

    role = Column(String(20), nullable=False, default=UserRole.USER.value, index=True)
    provider = Column(String(50), nullable=False, default=AuthProvider.CREDENTIALS.value, index=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    last_login = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<User {self.email}>"

    @validates("email")
    def normalize_email(self, key, value):
        return value.strip().lower() if value else value

    def compare_password(self, candidate: str) -> bool:
        return verify_password(candidate, self.password_hash or "")
