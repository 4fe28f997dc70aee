"""
Controller (claimable device registration) and ownership assignments
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from iotmon.models.database import Base, utcnow


class Controller(Base):
    __tablename__ = "controllers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(100), unique=True, index=True, nullable=False)
    label = Column(String(255), nullable=True)

    # Kept after the claim for display; only unclaimed codes must be unique
    pairing_code = Column(String(5), nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    assignments = relationship(
        "UserControllerAssignment",
        back_populates="controller",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index(
            "uq_controllers_unclaimed_pairing_code",
            "pairing_code",
            unique=True,
            postgresql_where=claimed_at.is_(None),
            sqlite_where=claimed_at.is_(None),
        ),
    )

    @property
    def is_claimed(self) -> bool:
        return self.claimed_at is not None

    def __repr__(self):
        return f"<Controller {self.device_id}>"


class UserControllerAssignment(Base):
    __tablename__ = "user_controllers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    controller_id = Column(Integer, ForeignKey("controllers.id", ondelete="CASCADE"), nullable=False, index=True)
    label = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="assignments")
    controller = relationship("Controller", back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("user_id", "controller_id", name="uq_user_controller"),
    )

    def __repr__(self):
        return f"<Assignment user={self.user_id} controller={self.controller_id}>"
