"""Audit trail: JSONL events for consolidation, compression and sharing."""

from marketmind.audit.schemas import AuditEvent
from marketmind.audit.schemas import AuditEventType
from marketmind.audit.store import AuditLogger

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
]
