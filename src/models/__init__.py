"""
Models initialization file to handle circular dependencies
"""

# Import all models first
from .patient import Patient
from .healthcare_provider import HealthcareProvider
from .health_record import HealthRecord, RecordType
from .share_request import ShareRequest, ShareRequestRecord, ShareStatus
from .record_grant import RecordGrant
from .audit_log import AuditLog, AuditAction

from sqlalchemy.orm import configure_mappers

# Configure all mappers
configure_mappers()

__all__ = [
    "Patient",
    "HealthcareProvider",
    "HealthRecord",
    "RecordType",
    "ShareRequest",
    "ShareRequestRecord",
    "ShareStatus",
    "RecordGrant",
    "AuditLog",
    "AuditAction",
]
