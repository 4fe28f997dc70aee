"""
Services package
"""
from iotmon.services.audit_service import audit_service, AuditService
from iotmon.services.pairing_service import pairing_code_generator, PairingCodeGenerator
from iotmon.services.health_service import request_stats, RequestStats

__all__ = [
    "audit_service",
    "AuditService",
    "pairing_code_generator",
    "PairingCodeGenerator",
    "request_stats",
    "RequestStats",
]
