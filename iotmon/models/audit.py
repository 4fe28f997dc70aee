"""
Audit log model for privileged and account actions
"""
from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from iotmon.models.database import Base, utcnow


class AuditAction(str, Enum):
    # Authentication
    USER_REGISTER = "user.register"
    USER_LOGIN = "user.login"
    USER_LOGIN_FAILED = "user.login_failed"
    USER_PASSWORD_CHANGE = "user.password_change"

    # Self service
    ME_UPDATE = "me.update"
    ME_DELETE = "me.delete"

    # User Management
    USER_INVITE = "user.invite"
    USER_UPDATE = "user.update"
    USER_ROLE_CHANGE = "user.role_change"
    USER_DELETE = "user.delete"

    # Controllers
    CONTROLLER_CREATE = "controller.create"
    CONTROLLER_DELETE = "controller.delete"
    CONTROLLER_CLAIM = "controller.claim"
    CONTROLLER_ASSIGN = "controller.assign"
    CONTROLLER_UNASSIGN = "controller.unassign"
    CONTROLLER_RELABEL = "controller.relabel"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Who performed the action (null = system)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    actor_email = Column(String(255), nullable=True)  # Denormalized for historical record

    # What action was performed
    action = Column(String(64), nullable=False, index=True)

    # Target of the action
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(100), nullable=True)

    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)

    # Context
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} by {self.actor_email} at {self.created_at}>"
