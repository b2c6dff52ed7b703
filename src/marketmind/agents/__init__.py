"""Agents domain: rule-based marketing agents, each owning one memory."""

from marketmind.agents.base import BaseAgent
from marketmind.agents.engagement import EngagementAgent
from marketmind.agents.optimization import CampaignOptimizationAgent
from marketmind.agents.schemas import ActionResult
from marketmind.agents.schemas import ActionType
from marketmind.agents.schemas import AgentAction
from marketmind.agents.schemas import AgentMessage
from marketmind.agents.schemas import AgentStatus
from marketmind.agents.schemas import AgentType
from marketmind.agents.schemas import Campaign
from marketmind.agents.schemas import CampaignInput
from marketmind.agents.schemas import Lead
from marketmind.agents.schemas import LeadInput
from marketmind.agents.triage import LeadTriageAgent

__all__ = [
    "ActionResult",
    "ActionType",
    "AgentAction",
    "AgentMessage",
    "AgentStatus",
    "AgentType",
    "BaseAgent",
    "Campaign",
    "CampaignInput",
    "CampaignOptimizationAgent",
    "EngagementAgent",
    "Lead",
    "LeadInput",
    "LeadTriageAgent",
]
