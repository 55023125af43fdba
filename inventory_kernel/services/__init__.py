"""Kernel services (write side)."""

from inventory_kernel.services.audit_recorder import AuditRecorder, AuditTrace
from inventory_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditRecorder",
    "AuditTrace",
    "SequenceService",
]
