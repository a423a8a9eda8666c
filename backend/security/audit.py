"""
Security audit logging.

Tracks admin actions, payments and recoveries for forensics. Events go to the
application log; the last few hundred are kept in memory for inspection.
Nothing is written to disk.
"""
import logging
from collections import Counter, deque
from datetime import datetime, timedelta
from enum import Enum
from typing import Deque, Dict, Optional

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Types of security events to audit."""
    # Admin Actions
    CONFIG_INITIALIZED = "config_initialized"
    CONFIG_UPDATED = "config_updated"
    EMERGENCY_PAUSE = "emergency_pause"
    REGISTRY_INITIALIZED = "registry_initialized"
    TOKEN_APPROVED = "token_approved"
    TOKEN_REMOVED = "token_removed"
    REGISTRY_MIGRATED = "registry_migrated"
    REGISTRY_VERSION_MISMATCH = "registry_version_mismatch"

    # Room Lifecycle
    ROOM_CREATED = "room_created"
    PLAYER_JOINED = "player_joined"
    DUPLICATE_SUBMISSION = "duplicate_submission"
    JOINING_CLOSED = "joining_closed"
    WINNERS_DECLARED = "winners_declared"
    ROOM_ENDED = "room_ended"
    ROOM_RECOVERED = "room_recovered"
    ROOM_CLEANED_UP = "room_cleaned_up"

    # Transaction Security
    SIMULATION_FAILED = "simulation_failed"
    UNAUTHORIZED_ATTEMPT = "unauthorized_attempt"

    # Infrastructure
    RPC_FAILURE = "rpc_failure"


class AuditSeverity(Enum):
    """Severity levels for audit events."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AuditLogger:
    """Audit logging system for security events."""

    def __init__(self, max_events: int = 500):
        self._events: Deque[dict] = deque(maxlen=max_events)

    def log(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity = AuditSeverity.INFO,
        actor: Optional[str] = None,
        details: Optional[str] = None,
    ):
        """Log a security event.

        Args:
            event_type: Type of event
            severity: Severity level
            actor: Wallet address that triggered the event, if any
            details: Additional details
        """
        event = {
            "event_type": event_type.value,
            "severity": severity.value,
            "actor": actor,
            "details": details,
            "timestamp": datetime.utcnow(),
        }
        self._events.append(event)

        log_msg = f"[AUDIT] {event_type.value}"
        if actor:
            log_msg += f" | actor={actor}"
        if details:
            log_msg += f" | {details}"

        if severity == AuditSeverity.CRITICAL:
            logger.critical(log_msg)
        elif severity == AuditSeverity.WARNING:
            logger.warning(log_msg)
        else:
            logger.info(log_msg)

    def get_recent_events(
        self,
        limit: int = 100,
        severity: Optional[AuditSeverity] = None,
        event_type: Optional[AuditEventType] = None,
        actor: Optional[str] = None,
    ) -> list:
        """Most recent events first, optionally filtered."""
        events = [
            e for e in reversed(self._events)
            if (severity is None or e["severity"] == severity.value)
            and (event_type is None or e["event_type"] == event_type.value)
            and (actor is None or e["actor"] == actor)
        ]
        return events[:limit]

    def get_security_summary(self, hours: int = 24) -> Dict:
        cutoff = datetime.utcnow() - timedelta(hours=hours)
        recent = [e for e in self._events if e["timestamp"] > cutoff]

        severity_counts = Counter(e["severity"] for e in recent)
        event_counts = Counter(e["event_type"] for e in recent)

        return {
            "period_hours": hours,
            "severity_counts": dict(severity_counts),
            "top_events": dict(event_counts.most_common(10)),
            "total_critical": severity_counts.get("critical", 0),
            "total_warnings": severity_counts.get("warning", 0),
        }

    def clear(self):
        self._events.clear()


# Global audit logger instance
audit_logger = AuditLogger()
