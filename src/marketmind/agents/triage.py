"""Lead triage: enrich, score, categorize and hand qualified leads on."""

from __future__ import annotations

import logging
from typing import Any

from marketmind.agents.base import ActionHandler
from marketmind.agents.base import BaseAgent
from marketmind.agents.schemas import ActionResult
from marketmind.agents.schemas import ActionType
from marketmind.agents.schemas import AgentAction
from marketmind.agents.schemas import AgentType
from marketmind.agents.schemas import Lead
from marketmind.agents.schemas import LeadCategory
from marketmind.agents.schemas import LeadInput
from marketmind.agents.schemas import LeadStatus
from marketmind.memory.schemas import as_datetime
from marketmind.memory.schemas import MemoryTier

logger = logging.getLogger(__name__)

SCORING_WEIGHTS = {
    "email_domain": 0.2,
    "company_size": 0.3,
    "source_quality": 0.25,
    "engagement_history": 0.25,
}

_PERSONAL_DOMAINS = frozenset({"gmail.com", "yahoo.com", "hotmail.com", "outlook.com"})

_SOURCE_SCORES = {
    "website_form": 90,
    "referral": 85,
    "social_media": 70,
    "cold_outreach": 40,
    "purchased_list": 30,
    "unknown": 20,
}

_CATEGORY_CONFIDENCE = {
    LeadCategory.hot_prospect.value: 0.95,
    LeadCategory.campaign_qualified.value: 0.85,
    LeadCategory.general_inquiry.value: 0.75,
    LeadCategory.cold_lead.value: 0.80,
    LeadCategory.existing_customer.value: 0.99,
}

_RECOMMENDED_APPROACH = {
    LeadCategory.hot_prospect.value: "immediate_personal_outreach",
    LeadCategory.campaign_qualified.value: "targeted_email_sequence",
    LeadCategory.general_inquiry.value: "educational_content_series",
}


def classify_email_domain(domain: str) -> str:
    return "personal" if domain.lower() in _PERSONAL_DOMAINS else "business"


def categorize_score(score: float) -> LeadCategory:
    if score >= 80:
        return LeadCategory.hot_prospect
    if score >= 60:
        return LeadCategory.campaign_qualified
    if score >= 40:
        return LeadCategory.general_inquiry
    return LeadCategory.cold_lead


def score_lead(lead: LeadInput) -> float:
    """Weighted 0-100 score from domain, company, source and history."""
    score = 0.0
    domain_type = lead.metadata.get("domain_type")
    if domain_type == "business":
        score += SCORING_WEIGHTS["email_domain"] * 100
    elif domain_type == "personal":
        score += SCORING_WEIGHTS["email_domain"] * 50

    if lead.company:
        score += SCORING_WEIGHTS["company_size"] * 80

    score += SCORING_WEIGHTS["source_quality"] * _SOURCE_SCORES.get(lead.source or "unknown", 20)

    if lead.metadata.get("has_history"):
        score += SCORING_WEIGHTS["engagement_history"] * 90

    return min(max(score, 0.0), 100.0)


class LeadTriageAgent(BaseAgent):
    agent_type = AgentType.lead_triage
    display_name = "Lead Triage Agent"
    capabilities = (
        "lead_categorization",
        "lead_scoring",
        "priority_assessment",
        "data_enrichment",
        "duplicate_detection",
    )

    def _handlers(self) -> dict[str, ActionHandler]:
        return {ActionType.categorize_lead.value: self._categorize_lead}

    def _seed_knowledge(self) -> list[tuple[str, dict[str, Any]]]:
        return [
            (
                "domain_knowledge",
                {
                    "concept": "lead_qualification",
                    "description": "Process of evaluating leads based on fit and intent",
                    "category": "sales_process",
                },
            ),
            (
                "domain_knowledge",
                {
                    "concept": "lead_scoring",
                    "description": "Numerical assessment of lead quality and conversion probability",
                    "category": "analytics",
                },
            ),
            (
                "domain_knowledge",
                {
                    "concept": "lead_nurturing",
                    "description": "Process of developing relationships with buyers at every stage",
                    "category": "marketing_strategy",
                },
            ),
        ]

    # ------------------------------------------------------------------
    # categorize_lead
    # ------------------------------------------------------------------

    async def _categorize_lead(self, action: AgentAction) -> ActionResult:
        submitted = LeadInput.model_validate(action.payload.get("lead") or {})
        enriched, history_count = await self._enrich(submitted)
        score = score_lead(enriched)
        category = categorize_score(score)
        is_duplicate = history_count > 0
        now = self._clock()

        lead = Lead(
            email=enriched.email,
            name=enriched.name or "Unknown",
            company=enriched.company,
            source=enriched.source or "unknown",
            category=category,
            score=score,
            status=LeadStatus.lost if is_duplicate else LeadStatus.new,
            metadata={
                **enriched.metadata,
                "is_duplicate": is_duplicate,
                "processing_timestamp": now.isoformat(),
                "triage_agent": self.id,
            },
            created_at=as_datetime(enriched.created_at, now),
            updated_at=now,
            **({"id": enriched.id} if enriched.id else {}),
        )
        lead_payload = lead.model_dump(mode="json")
        await self.memory.store(MemoryTier.short_term, "processed_lead", lead_payload)

        if category is not LeadCategory.cold_lead and not is_duplicate:
            await self.send_message(
                "engagement_agent",
                "new_qualified_lead",
                {
                    "lead": lead_payload,
                    "triage_notes": {
                        "score": score,
                        "category": category.value,
                        "recommended_approach": _RECOMMENDED_APPROACH.get(
                            category.value, "nurture_campaign"
                        ),
                    },
                },
            )

        logger.info("Categorized lead %s as %s (score=%.1f)", lead.id, category.value, score)
        return ActionResult(
            success=True,
            data=lead_payload,
            metrics={
                "processing_time": max((now - lead.created_at).total_seconds() * 1000, 0.0),
                "lead_score": score,
                "category_confidence": _CATEGORY_CONFIDENCE.get(category.value, 0.5),
            },
        )

    async def _enrich(self, lead: LeadInput) -> tuple[LeadInput, int]:
        """Attach domain and history metadata; returns the matching profile count."""
        metadata = dict(lead.metadata)
        domain = lead.email.split("@", 1)[1]
        metadata["email_domain"] = domain
        metadata["domain_type"] = classify_email_domain(domain)

        history = await self.memory.retrieve(
            MemoryTier.long_term, {"type": "customer_profile", "email": lead.email}
        )
        if history:
            metadata["has_history"] = True
            metadata["previous_interactions"] = len(history)
        return lead.model_copy(update={"metadata": metadata}), len(history)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def get_triage_stats(self) -> dict[str, float]:
        actions = await self.memory.retrieve(
            MemoryTier.short_term, {"type": "recent_action", "agent_id": self.id}
        )
        stats = {
            "total_processed": 0,
            "hot_prospects": 0,
            "campaign_qualified": 0,
            "general_inquiries": 0,
            "cold_leads": 0,
            "duplicates_found": 0,
            "average_score": 0.0,
        }
        buckets = {
            LeadCategory.hot_prospect.value: "hot_prospects",
            LeadCategory.campaign_qualified.value: "campaign_qualified",
            LeadCategory.general_inquiry.value: "general_inquiries",
            LeadCategory.cold_lead.value: "cold_leads",
        }
        total_score = 0.0
        for record in actions:
            if record.payload.get("action_type") != ActionType.categorize_lead.value:
                continue
            if not record.payload.get("success"):
                continue
            lead = (record.payload.get("result") or {}).get("data") or {}
            stats["total_processed"] += 1
            bucket = buckets.get(lead.get("category"))
            if bucket:
                stats[bucket] += 1
            if (lead.get("metadata") or {}).get("is_duplicate"):
                stats["duplicates_found"] += 1
            total_score += float(lead.get("score") or 0.0)

        if stats["total_processed"]:
            stats["average_score"] = total_score / stats["total_processed"]
        return stats
