"""Engagement: personalized outreach, follow-ups and campaign creation."""

from __future__ import annotations

import logging
import random
import re
import uuid
from datetime import datetime
from datetime import timedelta
from typing import Any

from marketmind.agents.base import ActionHandler
from marketmind.agents.base import BaseAgent
from marketmind.agents.schemas import ActionResult
from marketmind.agents.schemas import ActionType
from marketmind.agents.schemas import AgentAction
from marketmind.agents.schemas import AgentMessage
from marketmind.agents.schemas import AgentType
from marketmind.agents.schemas import Campaign
from marketmind.agents.schemas import CampaignContent
from marketmind.agents.schemas import CampaignInput
from marketmind.agents.schemas import CampaignMetrics
from marketmind.agents.schemas import LeadStatus
from marketmind.memory.schemas import as_datetime
from marketmind.memory.schemas import Interaction
from marketmind.memory.schemas import InteractionOutcome
from marketmind.memory.schemas import InteractionType
from marketmind.memory.schemas import MemoryRecord
from marketmind.memory.schemas import MemoryTier

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

TEMPLATES: dict[str, dict[str, str]] = {
    "welcome": {
        "subject": "Welcome to {company}, {name}!",
        "body": "Hi {name}, welcome to {company}! We noticed you're interested in {topic}.",
        "call_to_action": "Schedule a demo to learn more",
    },
    "followup": {
        "subject": "Following up on your interest, {name}",
        "body": "Hi {name}, following up on your interest in {topic}. "
        "Here's some additional information...",
        "call_to_action": "Reply to continue the conversation",
    },
    "nurture": {
        "subject": "Thought you'd find this interesting, {name}",
        "body": "Hi {name}, thought you might find this {content_type} about {topic} valuable.",
        "call_to_action": "Read the full {content_type}",
    },
    "conversion": {
        "subject": "Ready for the next step, {name}?",
        "body": "Hi {name}, based on your engagement with {previous_content}, "
        "you might be ready for {next_step}.",
        "call_to_action": "Schedule your {next_step}",
    },
}

_APPROACH_TO_CAMPAIGN = {
    "immediate_personal_outreach": "welcome",
    "targeted_email_sequence": "nurture",
    "educational_content_series": "nurture",
    "nurture_campaign": "followup",
}

_TOPICS = ("AI/ML solutions", "marketing automation", "data analytics", "customer engagement")
_NEXT_STEPS = ("consultation call", "product demo", "free trial", "case study review")
_TOKEN_RE = re.compile(r"\{(\w+)\}")
_DEFAULT_HOUR = 10
_STRATEGY_CONVERSION_RATE = 0.1


def personalize(template: str, tokens: dict[str, str]) -> str:
    """Replace ``{token}`` placeholders; unknown tokens are left as-is."""
    return _TOKEN_RE.sub(lambda m: tokens.get(m.group(1), m.group(0)), template)


class EngagementAgent(BaseAgent):
    agent_type = AgentType.engagement
    display_name = "Engagement Agent"
    capabilities = (
        "email_campaigns",
        "personalization",
        "lead_nurturing",
        "social_media_engagement",
        "content_recommendation",
        "followup_scheduling",
        "sentiment_analysis",
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._rng = random.Random(self.config.random_seed)

    def _handlers(self) -> dict[str, ActionHandler]:
        return {
            ActionType.send_email.value: self._send_email,
            ActionType.schedule_followup.value: self._schedule_followup,
        }

    def _seed_knowledge(self) -> list[tuple[str, dict[str, Any]]]:
        strategies = [
            {
                "name": "value_first_approach",
                "description": "Lead with value proposition before asking for anything",
                "effectiveness": 0.85,
                "applicable_scenarios": ["cold_outreach", "first_contact"],
            },
            {
                "name": "social_proof_integration",
                "description": "Include testimonials and case studies in communications",
                "effectiveness": 0.78,
                "applicable_scenarios": ["nurture_campaigns", "conversion_focused"],
            },
            {
                "name": "problem_solution_fit",
                "description": "Align messaging with specific customer pain points",
                "effectiveness": 0.92,
                "applicable_scenarios": ["qualified_leads", "demo_requests"],
            },
        ]
        return [("engagement_strategy", strategy) for strategy in strategies]

    # ------------------------------------------------------------------
    # send_email
    # ------------------------------------------------------------------

    async def _send_email(self, action: AgentAction) -> ActionResult:
        lead: dict[str, Any] = dict(action.payload.get("lead") or {})
        campaign_type = str(action.payload.get("campaign_type") or "welcome")
        custom_message = action.payload.get("custom_message")
        lead_id = lead.get("id") or action.target

        query: dict[str, Any] = {"type": "customer_profile"}
        if lead.get("email"):
            query["email"] = lead["email"]
        history = await self.memory.retrieve(MemoryTier.long_term, query)

        content = self._generate_content(lead, campaign_type, history, custom_message)
        delivered = self._rng.random() < self.config.delivery_success_rate
        delivery_time_ms = self._rng.uniform(500, 2500)
        status = "delivered" if delivered else "failed"

        interaction = Interaction(
            customer_id=lead_id,
            agent_id=self.id,
            type=InteractionType.email,
            content=content["body"],
            outcome=InteractionOutcome.positive if delivered else InteractionOutcome.negative,
            sentiment=0.7,
            timestamp=self._clock(),
            metadata={
                "subject": content["subject"],
                "campaign_type": campaign_type,
                "delivery_status": status,
                "message_id": str(uuid.uuid4()),
            },
        )
        interaction_payload = interaction.to_payload()
        await self.memory.store(MemoryTier.episodic, "interaction", interaction_payload)
        await self._update_lead_status(lead_id, LeadStatus.contacted)

        return ActionResult(
            success=delivered,
            data={
                "interaction": interaction_payload,
                "delivery_status": status,
                "personalized_content": content,
            },
            error=None if delivered else "Email delivery failed",
            metrics={
                "personalization_score": content["personalization_score"],
                "delivery_time": delivery_time_ms,
                "content_length": len(content["body"]),
            },
        )

    def _generate_content(
        self,
        lead: dict[str, Any],
        campaign_type: str,
        history: list[MemoryRecord],
        custom_message: str | None,
    ) -> dict[str, Any]:
        template = TEMPLATES.get(campaign_type, TEMPLATES["welcome"])
        tokens = {
            "name": lead.get("name") or "there",
            "company": self.config.company_name,
            "topic": self._infer_topic(lead),
            "content_type": "article",
            "previous_content": "product demo",
            "next_step": self._suggest_next_step(lead),
        }
        score = 50
        if tokens["name"] != "there":
            score += 20
        if tokens["company"]:
            score += 15
        if history:
            score += 15
        return {
            "subject": personalize(template["subject"], tokens),
            "body": custom_message or personalize(template["body"], tokens),
            "call_to_action": personalize(template["call_to_action"], tokens),
            "personalization_score": min(score, 100),
        }

    def _infer_topic(self, lead: dict[str, Any]) -> str:
        source = str(lead.get("source") or "")
        if "ai" in source:
            return "AI/ML solutions"
        if "marketing" in source:
            return "marketing automation"
        return self._rng.choice(_TOPICS)

    def _suggest_next_step(self, lead: dict[str, Any]) -> str:
        score = lead.get("score") or 0
        if score > 80:
            return "consultation call"
        if score > 60:
            return "product demo"
        return self._rng.choice(_NEXT_STEPS)

    async def _update_lead_status(self, lead_id: str, status: LeadStatus) -> None:
        await self.memory.store(
            MemoryTier.short_term,
            "lead_status_update",
            {
                "lead_id": lead_id,
                "status": status.value,
                "updated_by": self.id,
                "timestamp": self._clock().isoformat(),
            },
        )

    # ------------------------------------------------------------------
    # Follow-ups
    # ------------------------------------------------------------------

    async def _schedule_followup(self, action: AgentAction) -> ActionResult:
        lead_id = str(action.payload.get("lead_id") or action.target)
        delay_seconds = float(action.payload.get("delay_seconds") or 0.0)
        message = str(action.payload.get("message") or "")
        now = self._clock()
        followup = {
            "id": str(uuid.uuid4()),
            "lead_id": lead_id,
            "agent_id": self.id,
            "scheduled_for": (now + timedelta(seconds=delay_seconds)).isoformat(),
            "message": message,
            "status": "scheduled",
            "created_at": now.isoformat(),
        }
        # Short-term slot keyed by tag: a new follow-up replaces the pending one.
        await self.memory.store(MemoryTier.short_term, "scheduled_followup", followup)
        return ActionResult(
            success=True,
            data=followup,
            metrics={
                "delay_hours": delay_seconds / 3600,
                "message_length": len(message),
            },
        )

    async def due_followups(self) -> list[dict[str, Any]]:
        records = await self.memory.retrieve(MemoryTier.short_term, {"type": "scheduled_followup"})
        now = self._clock()
        due = []
        for record in records:
            if record.payload.get("status") != "scheduled":
                continue
            scheduled_for = as_datetime(record.payload.get("scheduled_for"))
            if scheduled_for is not None and scheduled_for <= now:
                due.append(dict(record.payload))
        return due

    async def complete_followup(self, followup: dict[str, Any]) -> None:
        await self.memory.store(
            MemoryTier.short_term,
            "scheduled_followup",
            {**followup, "status": "completed", "completed_at": self._clock().isoformat()},
        )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def handle_message(self, message: AgentMessage) -> None:
        if message.type == "new_qualified_lead":
            await self._engage_qualified_lead(message.payload)
        elif message.type == "campaign_performance_update":
            await self._record_campaign_update(message.payload)
        else:
            await super().handle_message(message)

    async def _engage_qualified_lead(self, payload: dict[str, Any]) -> None:
        lead = payload.get("lead") or {}
        notes = payload.get("triage_notes") or {}
        action = self.new_action(
            ActionType.send_email.value,
            target=str(lead.get("id") or ""),
            lead=lead,
            campaign_type=_APPROACH_TO_CAMPAIGN.get(notes.get("recommended_approach"), "welcome"),
            urgency="high" if (lead.get("score") or 0) > 80 else "normal",
        )
        await self.process_action(action)

    async def _record_campaign_update(self, payload: dict[str, Any]) -> None:
        metrics = payload.get("metrics") or {}
        conversion_rate = float(metrics.get("conversion_rate") or 0.0)
        await self.memory.store(
            MemoryTier.long_term,
            "performance_metric",
            {
                "agent_id": self.id,
                "metric": "campaign_conversion_rate",
                "value": conversion_rate,
                "campaign_id": payload.get("campaign_id"),
                "timestamp": self._clock().isoformat(),
            },
        )
        if conversion_rate > _STRATEGY_CONVERSION_RATE:
            await self.memory.store(
                MemoryTier.semantic,
                "engagement_strategy",
                {
                    "name": f"successful_strategy:{payload.get('strategy') or 'unspecified'}",
                    "performance": metrics,
                    "context": payload.get("context"),
                },
            )

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------

    async def create_campaign(self, data: CampaignInput | dict[str, Any]) -> Campaign:
        submitted = data if isinstance(data, CampaignInput) else CampaignInput.model_validate(data)
        campaign = Campaign(
            name=submitted.name or "Untitled Campaign",
            type=submitted.type,
            status=submitted.status,
            target_audience=submitted.target_audience,
            content=submitted.content or CampaignContent(),
            metrics=submitted.metrics or CampaignMetrics(),
            start_date=as_datetime(submitted.start_date, self._clock()),
            end_date=as_datetime(submitted.end_date),
            budget=submitted.budget,
            created_by=self.id,
            **({"id": submitted.id} if submitted.id else {}),
        )
        await self.memory.store(MemoryTier.long_term, "campaign", campaign.model_dump(mode="json"))
        logger.info("Created campaign %s (%s)", campaign.id, campaign.name)
        return campaign

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def get_engagement_metrics(self) -> dict[str, float]:
        interactions = await self.memory.retrieve(
            MemoryTier.episodic, {"type": "interaction", "agent_id": self.id}
        )
        metrics: dict[str, float] = {
            "total_emails": 0,
            "emails_delivered": 0,
            "response_rate": 0.0,
            "conversion_rate": 0.0,
            "average_sentiment": 0.0,
            "followups_scheduled": 0,
        }
        total_sentiment = 0.0
        positive = 0
        conversions = 0
        for record in interactions:
            payload = record.payload
            if payload.get("type") != InteractionType.email.value:
                continue
            metrics["total_emails"] += 1
            if (payload.get("metadata") or {}).get("delivery_status") == "delivered":
                metrics["emails_delivered"] += 1
            total_sentiment += float(payload.get("sentiment") or 0.0)
            if payload.get("outcome") == InteractionOutcome.positive.value:
                positive += 1
            elif payload.get("outcome") == InteractionOutcome.conversion.value:
                conversions += 1

        if metrics["total_emails"]:
            metrics["response_rate"] = positive / metrics["total_emails"]
            metrics["conversion_rate"] = conversions / metrics["total_emails"]
            metrics["average_sentiment"] = total_sentiment / metrics["total_emails"]

        metrics["followups_scheduled"] = len(await self.pending_followups())
        return metrics

    async def pending_followups(self) -> list[dict[str, Any]]:
        records = await self.memory.retrieve(MemoryTier.short_term, {"type": "scheduled_followup"})
        return [r.payload for r in records if r.payload.get("status") == "scheduled"]

    async def optimize_engagement_timing(self, lead_id: str) -> datetime:
        """Best send time today, from the hours of past positive interactions."""
        history = await self.memory.retrieve(
            MemoryTier.episodic, {"type": "interaction", "customer_id": lead_id}
        )
        hours = [
            as_datetime(r.payload.get("timestamp"), r.timestamp).hour
            for r in history
            if r.payload.get("outcome") == InteractionOutcome.positive.value
        ]
        hour = round(sum(hours) / len(hours)) if hours else _DEFAULT_HOUR
        return self._clock().replace(hour=hour, minute=0, second=0, microsecond=0)
