"""
Database models package
"""
from iotmon.models.database import Base, get_db, init_db, utcnow
from iotmon.models.user import User, UserRole
from iotmon.models.controller import Controller, UserControllerAssignment
from iotmon.models.audit import AuditLog, AuditAction
from iotmon.models.reading import Reading

__all__ = [
    "Base",
    "get_db",
    "init_db",
    "utcnow",
    "User",
    "UserRole",
    "Controller",
    "UserControllerAssignment",
    "AuditLog",
    "AuditAction",
    "Reading",
]
