"""
Modelo User
"""
from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint
from sqlalchemy.sql import func
from app.core.database import Base, UTCDateTime


STAFF_ROLES = ("admin",)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="ck_users_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)

    # Rol
    role = Column(String(20), default="user", nullable=False)  # 'user', 'admin'

    # Login tracking
    last_login = Column(UTCDateTime, nullable=True)

    # Estado
    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, onupdate=func.now())

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def __repr__(self):
        return f"<User #{self.id} {self.email} role:{self.role}>"
