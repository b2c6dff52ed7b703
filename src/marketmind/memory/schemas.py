"""Memory domain data models.

``MemoryRecord`` is the envelope every tier stores.  Its ``payload`` is a
plain dict so the router can dispatch on the record-type tag alone; the
typed payload models below describe the shapes the consolidation engine
reads and produces, and are stored as their JSON-mode ``model_dump()``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from datetime import timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field

# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_datetime(value: Any, default: datetime | None = None) -> datetime | None:
    """Coerce a payload timestamp (datetime, ISO string or epoch) to aware UTC.

    Returns *default* when the value is missing or unparseable.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return default
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds are common in dashboard payloads.
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return default
    else:
        return default
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def age_in_days(value: datetime, now: datetime) -> float:
    return (now - value).total_seconds() / 86400


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class MemoryTier(str, Enum):
    """The four memory categories owned by each agent."""

    short_term = "short_term"
    long_term = "long_term"
    episodic = "episodic"
    semantic = "semantic"

    @classmethod
    def parse(cls, value: str | MemoryTier) -> MemoryTier:
        """Accept canonical names plus the ``short`` / ``long`` shorthands."""
        if isinstance(value, MemoryTier):
            return value
        normalized = value.strip().lower()
        return cls(_TIER_ALIASES.get(normalized, normalized))


_TIER_ALIASES = {"short": "short_term", "long": "long_term"}


class InteractionType(str, Enum):
    email = "email"
    phone = "phone"
    chat = "chat"
    social_media = "social_media"
    meeting = "meeting"


class InteractionOutcome(str, Enum):
    positive = "positive"
    neutral = "neutral"
    negative = "negative"
    conversion = "conversion"
    escalation = "escalation"


SUCCESS_OUTCOMES = frozenset(
    {InteractionOutcome.positive.value, InteractionOutcome.conversion.value}
)


class RelationshipType(str, Enum):
    """Edge kinds between semantic knowledge nodes."""

    similar_to = "similar_to"
    part_of = "part_of"
    causes = "causes"
    related_to = "related_to"
    opposite_of = "opposite_of"


# ---------------------------------------------------------------------------
# Record envelope
# ---------------------------------------------------------------------------


class MemoryRecord(BaseModel):
    """A single stored memory, owned by exactly one agent memory."""

    model_config = {"frozen": True}

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="UUID assigned at store time.",
    )
    owner_agent_id: str = Field(
        description="Identity of the agent whose memory stored this record.",
    )
    record_type: str = Field(
        description="Free-form type tag used for routing, e.g. 'customer_profile'.",
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="UTC instant the record was stored.",
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured record content.",
    )
    relevance_score: float | None = Field(
        default=None,
        description="Ranking score, only set on retrieval results.",
    )


class MemoryStats(BaseModel):
    """Per-tier item counts for dashboards."""

    short_term_items: int = Field(default=0, serialization_alias="shortTermItems")
    long_term_items: int = Field(default=0, serialization_alias="longTermItems")
    episodic_items: int = Field(default=0, serialization_alias="episodicItems")
    semantic_items: int = Field(default=0, serialization_alias="semanticItems")

    @property
    def total(self) -> int:
        return (
            self.short_term_items
            + self.long_term_items
            + self.episodic_items
            + self.semantic_items
        )

    def to_dict(self) -> dict[str, int]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Typed payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = {"use_enum_values": True, "extra": "allow"}

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ContextMessage(_Payload):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: str = "user"
    content: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConversationContext(_Payload):
    """A live conversation held in short-term memory."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    lead_id: str | None = None
    agent_id: str | None = None
    intent: str = ""
    priority: int = 0
    sentiment: float = 0.0
    messages: list[ContextMessage] = Field(default_factory=list)


class Interaction(_Payload):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    customer_id: str | None = None
    agent_id: str | None = None
    type: InteractionType = InteractionType.email
    content: str = ""
    outcome: InteractionOutcome = InteractionOutcome.neutral
    sentiment: float = 0.0
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CustomerPreferences(_Payload):
    communication_channel: list[str] = Field(default_factory=lambda: ["email"])
    content_types: list[str] = Field(default_factory=lambda: ["text"])
    frequency: str = "weekly"
    topics: list[str] = Field(default_factory=list)
    timezone: str = "UTC"


class CustomerProfile(_Payload):
    """Long-term customer record, also produced by context promotion."""

    id: str | None = None
    email: str = ""
    name: str = ""
    company: str | None = None
    industry: str | None = None
    preferences: CustomerPreferences = Field(default_factory=CustomerPreferences)
    interaction_history: list[Interaction] = Field(default_factory=list)
    segment_tags: list[str] = Field(default_factory=list)
    lifetime_value: float = 0.0
    last_engagement: datetime = Field(default_factory=utcnow)


class LearningPattern(_Payload):
    """Aggregate of repeated episodic outcomes."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    pattern: str
    confidence: float = Field(ge=0.0, le=1.0)
    applications: int = 0
    success_rate: float = 0.0
    last_used: datetime = Field(default_factory=utcnow)
    context: list[str] = Field(default_factory=list)


class KnowledgeNode(_Payload):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    concept: str
    description: str = ""
    relationships: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    last_updated: datetime = Field(default_factory=utcnow)


class Relationship(_Payload):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source: str
    target: str
    type: RelationshipType = RelationshipType.related_to
    strength: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)


class ContextualLearning(_Payload):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    context: str
    learning: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    applications: int = 0
    timestamp: datetime = Field(default_factory=utcnow)


class InteractionSummary(BaseModel):
    """Digest of a group of similar interactions, folded by compression."""

    pattern: str
    confidence: float
    average_sentiment: float
    frequency: int
    timespan_start: datetime
    timespan_end: datetime
