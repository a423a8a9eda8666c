"""Security utilities for the room program."""
from .audit import audit_logger, AuditEventType, AuditSeverity, AuditLogger

__all__ = ["audit_logger", "AuditEventType", "AuditSeverity", "AuditLogger"]
