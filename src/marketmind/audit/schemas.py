"""Audit event types and data models."""

from __future__ import annotations

from datetime import datetime
from datetime import timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field


class AuditEventType(str, Enum):
    """Memory and agent operations worth an audit trail."""

    CONSOLIDATION_RUN = "CONSOLIDATION_RUN"
    COMPRESSION_RUN = "COMPRESSION_RUN"
    KNOWLEDGE_SHARED = "KNOWLEDGE_SHARED"
    AGENT_ACTION = "AGENT_ACTION"
    CAMPAIGN_ESCALATED = "CAMPAIGN_ESCALATED"


class AuditEvent(BaseModel):
    """One append-only audit line."""

    model_config = {"frozen": True}

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC instant the event occurred.",
    )
    event_type: AuditEventType = Field(
        description="Category of the audited operation.",
    )
    agent_id: str | None = Field(
        default=None,
        description="Agent whose memory or behaviour the event concerns.",
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific counters and identifiers.",
    )
