"""Agent-side data models: actions, results, leads and campaigns."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field

from marketmind.memory.schemas import utcnow

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AgentType(str, Enum):
    lead_triage = "lead_triage"
    engagement = "engagement"
    campaign_optimization = "campaign_optimization"


class AgentStatus(str, Enum):
    active = "active"
    idle = "idle"
    processing = "processing"
    error = "error"


class ActionType(str, Enum):
    """Actions an agent can be asked to perform."""

    categorize_lead = "categorize_lead"
    send_email = "send_email"
    schedule_followup = "schedule_followup"
    update_campaign = "update_campaign"
    escalate = "escalate"
    analyze_performance = "analyze_performance"


class LeadCategory(str, Enum):
    campaign_qualified = "campaign_qualified"
    cold_lead = "cold_lead"
    general_inquiry = "general_inquiry"
    hot_prospect = "hot_prospect"
    existing_customer = "existing_customer"


class LeadStatus(str, Enum):
    new = "new"
    contacted = "contacted"
    engaged = "engaged"
    qualified = "qualified"
    converted = "converted"
    lost = "lost"


class CampaignType(str, Enum):
    email = "email"
    social_media = "social_media"
    content_marketing = "content_marketing"
    paid_ads = "paid_ads"
    webinar = "webinar"


class CampaignStatus(str, Enum):
    draft = "draft"
    active = "active"
    paused = "paused"
    completed = "completed"
    cancelled = "cancelled"


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class AgentAction(BaseModel):
    """A unit of work dispatched to an agent."""

    model_config = {"use_enum_values": True}

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    agent_id: str = Field(description="Agent expected to perform the action.")
    type: ActionType | str = Field(
        description="Action kind; unknown kinds are rejected by the agent."
    )
    target: str = Field(default="", description="Lead, campaign or customer id acted on.")
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class ActionResult(BaseModel):
    """Outcome of one action; failures never raise past the agent."""

    success: bool
    data: Any = None
    error: str | None = None
    metrics: dict[str, float] = Field(default_factory=dict)


class AgentMessage(BaseModel):
    """Inter-agent message routed by the orchestrator."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sender_id: str
    target: str = Field(description="Target agent id or alias, e.g. 'engagement_agent'.")
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Leads and campaigns
# ---------------------------------------------------------------------------


class Lead(BaseModel):
    model_config = {"use_enum_values": True}

    id: str = Field(default_factory=lambda: f"lead_{uuid.uuid4().hex[:12]}")
    email: str
    name: str = "Unknown"
    company: str | None = None
    source: str = "unknown"
    category: LeadCategory = LeadCategory.cold_lead
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    status: LeadStatus = LeadStatus.new
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LeadInput(BaseModel):
    """Partial lead as submitted for triage."""

    id: str | None = None
    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str | None = None
    company: str | None = None
    source: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class CampaignContent(BaseModel):
    subject: str | None = None
    body: str = ""
    attachments: list[str] = Field(default_factory=list)
    call_to_action: str = ""
    personalization_tokens: list[str] = Field(default_factory=list)


class CampaignMetrics(BaseModel):
    sent: int = 0
    delivered: int = 0
    opened: int = 0
    clicked: int = 0
    converted: int = 0
    bounced: int = 0
    unsubscribed: int = 0
    revenue: float = 0.0

    @property
    def open_rate(self) -> float:
        return self.opened / self.sent if self.sent else 0.0

    @property
    def click_rate(self) -> float:
        return self.clicked / self.opened if self.opened else 0.0

    @property
    def conversion_rate(self) -> float:
        return self.converted / self.sent if self.sent else 0.0

    @property
    def bounce_rate(self) -> float:
        return self.bounced / self.sent if self.sent else 0.0


class Campaign(BaseModel):
    model_config = {"use_enum_values": True}

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Untitled Campaign"
    type: CampaignType = CampaignType.email
    status: CampaignStatus = CampaignStatus.draft
    target_audience: list[str] = Field(default_factory=list)
    content: CampaignContent = Field(default_factory=CampaignContent)
    metrics: CampaignMetrics = Field(default_factory=CampaignMetrics)
    start_date: datetime = Field(default_factory=utcnow)
    end_date: datetime | None = None
    budget: float = Field(default=0.0, ge=0.0)
    created_by: str = ""


class CampaignInput(BaseModel):
    """Partial campaign as submitted for creation."""

    model_config = {"use_enum_values": True}

    id: str | None = None
    name: str | None = None
    type: CampaignType = CampaignType.email
    status: CampaignStatus = CampaignStatus.draft
    target_audience: list[str] = Field(default_factory=list)
    content: CampaignContent | None = None
    metrics: CampaignMetrics | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    budget: float = Field(default=0.0, ge=0.0)
