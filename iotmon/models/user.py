"""
User model with three-tier role access control
"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from iotmon.models.database import Base, utcnow


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"
    DEV = "dev"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]


_ROLE_RANK = {UserRole.USER: 0, UserRole.ADMIN: 1, UserRole.DEV: 2}


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default=UserRole.USER.value, nullable=False)

    # Legacy flags kept in step with role; older rows may carry them alone
    is_admin = Column(Boolean, default=False, nullable=False)
    is_dev = Column(Boolean, default=False, nullable=False)

    invited_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    must_change_password = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    assignments = relationship(
        "UserControllerAssignment",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def set_role(self, role: UserRole) -> None:
        """Write role and its legacy flag projection together"""
        role = UserRole(role)
        self.role = role.value
        self.is_admin = role in (UserRole.ADMIN, UserRole.DEV)
        self.is_dev = role == UserRole.DEV

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
