"""Campaign optimization: performance analysis, auto-tuning and escalation."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from dataclasses import field
from datetime import timedelta
from typing import Any

from marketmind.agents.base import ActionHandler
from marketmind.agents.base import BaseAgent
from marketmind.agents.schemas import ActionResult
from marketmind.agents.schemas import ActionType
from marketmind.agents.schemas import AgentAction
from marketmind.agents.schemas import AgentType
from marketmind.agents.schemas import CampaignInput
from marketmind.agents.schemas import CampaignMetrics
from marketmind.audit.schemas import AuditEvent
from marketmind.audit.schemas import AuditEventType
from marketmind.memory.schemas import MemoryTier

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

LOW_OPEN_RATE = 0.15
LOW_CLICK_RATE = 0.02
HIGH_BOUNCE_RATE = 0.05
LOW_CONVERSION_RATE = 0.01
CRITICAL_CONVERSION_RATE = 0.5 * 0.02

_ISSUE_LOW_OPEN = "Low open rate detected"
_ISSUE_LOW_CLICK = "Low click-through rate"
_ISSUE_LOW_CONVERSION = "Low conversion rate"
_ISSUE_HIGH_BOUNCE = "High bounce rate - list quality concern"

_SEVERITY_LEVEL = {"critical": 4, "high": 3, "medium": 2, "low": 2}

# Recommendations per issue: (auto-applicable, manual review)
_ISSUE_RECOMMENDATIONS: dict[str, tuple[list[dict[str, Any]], list[dict[str, Any]]]] = {
    _ISSUE_LOW_OPEN: (
        [
            {
                "type": "subject_line_optimization",
                "action": "test_subject_variations",
                "confidence": 0.7,
                "reason": "A/B test different subject lines to improve open rates",
            }
        ],
        [
            {
                "type": "send_time_optimization",
                "action": "analyze_optimal_send_times",
                "reason": "Manual review of audience timezone and engagement patterns needed",
            }
        ],
    ),
    _ISSUE_LOW_CLICK: (
        [
            {
                "type": "cta_optimization",
                "action": "enhance_call_to_action",
                "confidence": 0.8,
                "reason": "Optimize call-to-action placement and wording",
            }
        ],
        [],
    ),
    _ISSUE_LOW_CONVERSION: (
        [],
        [
            {
                "type": "landing_page_review",
                "action": "review_conversion_funnel",
                "reason": "Manual review of landing page and conversion funnel required",
            }
        ],
    ),
    _ISSUE_HIGH_BOUNCE: (
        [
            {
                "type": "list_cleaning",
                "action": "remove_invalid_emails",
                "confidence": 0.9,
                "reason": "Clean email list to improve deliverability",
            }
        ],
        [],
    ),
}

_DEFAULT_EXPECTED_METRICS = {
    "open_rate": 0.22,
    "click_rate": 0.035,
    "conversion_rate": 0.015,
    "revenue": 1000.0,
}


@dataclass
class PerformanceAnalysis:
    campaign_id: str
    overall_score: float = 100.0
    confidence: float = 0.8
    issues: list[str] = field(default_factory=list)
    strengths: list[str] = field(default_factory=list)
    trends: dict[str, float] = field(default_factory=dict)
    escalation_reason: str = ""
    severity: str = "low"

    @property
    def escalation_needed(self) -> bool:
        return self.severity in ("high", "critical") or self.overall_score < 40

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "overall_score": self.overall_score,
            "confidence": self.confidence,
            "issues": list(self.issues),
            "strengths": list(self.strengths),
            "trends": dict(self.trends),
            "escalation_reason": self.escalation_reason,
            "severity": self.severity,
        }


def analyze_metrics(campaign_id: str, metrics: CampaignMetrics) -> PerformanceAnalysis:
    """Score campaign rates against the optimization thresholds."""
    analysis = PerformanceAnalysis(campaign_id=campaign_id)
    score = 100.0

    if metrics.open_rate < LOW_OPEN_RATE:
        analysis.issues.append(_ISSUE_LOW_OPEN)
        score -= 20
    elif metrics.open_rate > 0.25:
        analysis.strengths.append("Strong open rate performance")

    if metrics.click_rate < LOW_CLICK_RATE:
        analysis.issues.append(_ISSUE_LOW_CLICK)
        score -= 15
    elif metrics.click_rate > 0.05:
        analysis.strengths.append("Good engagement rate")

    if metrics.conversion_rate < LOW_CONVERSION_RATE:
        analysis.issues.append(_ISSUE_LOW_CONVERSION)
        score -= 25
    elif metrics.conversion_rate > 0.03:
        analysis.strengths.append("Excellent conversion performance")

    if metrics.bounce_rate > HIGH_BOUNCE_RATE:
        analysis.issues.append(_ISSUE_HIGH_BOUNCE)
        score -= 10
        analysis.severity = "medium"

    if score < 50:
        analysis.escalation_reason = "Campaign performance below acceptable thresholds"
        analysis.severity = "high"

    if metrics.conversion_rate < CRITICAL_CONVERSION_RATE:
        analysis.escalation_reason = "Critical performance drop detected"
        analysis.severity = "critical"

    analysis.overall_score = max(score, 0.0)
    analysis.trends = {
        "open_rate": metrics.open_rate,
        "click_rate": metrics.click_rate,
        "conversion_rate": metrics.conversion_rate,
        "bounce_rate": metrics.bounce_rate,
    }
    return analysis


def campaign_similarity(existing: dict[str, Any], candidate: CampaignInput) -> float:
    """Weighted similarity on type (0.4), audience size (0.3) and budget (0.3).

    Factors missing on either side are left out and the remaining weights
    renormalized.
    """
    total = 0.4
    similarity = 0.4 if existing.get("type") == candidate.type else 0.0

    audience = existing.get("target_audience") or []
    if audience and candidate.target_audience:
        largest = max(len(audience), len(candidate.target_audience))
        similarity += (1 - abs(len(audience) - len(candidate.target_audience)) / largest) * 0.3
        total += 0.3

    budget = float(existing.get("budget") or 0.0)
    if budget and candidate.budget:
        largest = max(budget, candidate.budget)
        similarity += (1 - abs(budget - candidate.budget) / largest) * 0.3
        total += 0.3

    return similarity / total


class CampaignOptimizationAgent(BaseAgent):
    agent_type = AgentType.campaign_optimization
    display_name = "Campaign Optimization Agent"
    capabilities = (
        "performance_analysis",
        "a_b_testing",
        "budget_optimization",
        "audience_segmentation",
        "predictive_analytics",
        "automated_optimization",
        "escalation_management",
    )

    def _handlers(self) -> dict[str, ActionHandler]:
        return {
            ActionType.analyze_performance.value: self._analyze_performance,
            ActionType.update_campaign.value: self._optimize_campaign,
            ActionType.escalate.value: self._escalate_action,
        }

    def _seed_knowledge(self) -> list[tuple[str, dict[str, Any]]]:
        strategies = [
            ("subject_line_ab_testing", "Test multiple subject line variations to optimize open rates", 0.85, ["open_rate"]),
            ("send_time_optimization", "Optimize email send times based on audience behavior", 0.72, ["open_rate", "click_rate"]),
            ("content_personalization", "Increase personalization to improve engagement", 0.88, ["click_rate", "conversion_rate"]),
            ("audience_segmentation", "Segment audience for more targeted messaging", 0.91, ["conversion_rate", "unsubscribe_rate"]),
        ]
        return [
            (
                "optimization_strategy",
                {
                    "name": name,
                    "description": description,
                    "effectiveness": effectiveness,
                    "applicable_metrics": applicable,
                },
            )
            for name, description, effectiveness, applicable in strategies
        ]

    # ------------------------------------------------------------------
    # analyze_performance
    # ------------------------------------------------------------------

    async def _analyze_performance(self, action: AgentAction) -> ActionResult:
        campaign_id = str(action.payload.get("campaign_id") or action.target)
        campaigns = await self.memory.retrieve(
            MemoryTier.long_term, {"type": "campaign", "id": campaign_id}
        )
        if not campaigns:
            return ActionResult(success=False, error="Campaign not found")

        campaign = campaigns[0].payload
        metrics = CampaignMetrics.model_validate(campaign.get("metrics") or {})
        analysis = analyze_metrics(campaign_id, metrics)
        recommendations = await self._recommend(analysis)
        escalation_needed = analysis.escalation_needed

        await self.memory.store(
            MemoryTier.short_term,
            f"performance_analysis:{campaign_id}",
            {
                "campaign_id": campaign_id,
                "analysis": analysis.to_dict(),
                "recommendations": recommendations,
                "escalation_needed": escalation_needed,
                "timestamp": self._clock().isoformat(),
            },
        )

        if escalation_needed:
            await self.escalate(
                campaign_id=campaign_id,
                reason=analysis.escalation_reason or "Campaign score below escalation floor",
                severity=analysis.severity,
                recommendations=recommendations["manual_review"],
            )
        elif recommendations["auto_applicable"]:
            for optimization in recommendations["auto_applicable"]:
                await self._apply_optimization(campaign_id, optimization, analysis)

        return ActionResult(
            success=True,
            data={
                "analysis": analysis.to_dict(),
                "recommendations": recommendations,
                "escalation_needed": escalation_needed,
            },
            metrics={
                "analysis_confidence": analysis.confidence,
                "recommendations_count": len(recommendations["auto_applicable"])
                + len(recommendations["manual_review"]),
                "performance_score": analysis.overall_score,
            },
        )

    async def _recommend(self, analysis: PerformanceAnalysis) -> dict[str, list[dict[str, Any]]]:
        auto: list[dict[str, Any]] = []
        manual: list[dict[str, Any]] = []
        for issue in analysis.issues:
            issue_auto, issue_manual = _ISSUE_RECOMMENDATIONS.get(issue, ([], []))
            auto.extend(dict(rec) for rec in issue_auto)
            manual.extend(dict(rec) for rec in issue_manual)

        for past in await self._optimization_history():
            context = past.get("context") or {}
            shared_issue = any(issue in analysis.issues for issue in context.get("issues") or [])
            close_score = abs(float(context.get("overall_score") or 0.0) - analysis.overall_score) < 20
            if shared_issue and close_score and float(past.get("success_rate") or 0.0) > 0.6:
                auto.append(
                    {
                        "type": "historical_pattern",
                        "action": (past.get("optimization") or {}).get("action"),
                        "confidence": past.get("success_rate"),
                        "reason": "Based on previous successful optimization",
                    }
                )
        return {"auto_applicable": auto, "manual_review": manual}

    async def _apply_optimization(
        self,
        campaign_id: str,
        optimization: dict[str, Any],
        analysis: PerformanceAnalysis | None = None,
    ) -> dict[str, Any]:
        now = self._clock().isoformat()
        applied = {
            "agent_id": self.id,
            "action_type": "optimization_applied",
            "campaign_id": campaign_id,
            "optimization": optimization,
            "success": True,
            "timestamp": now,
        }
        await self.memory.store(MemoryTier.short_term, "recent_action", applied)
        logger.info("Applied optimization %s to campaign %s", optimization.get("type"), campaign_id)

        if analysis is not None:
            await self.memory.store(
                MemoryTier.episodic,
                "decision_outcome",
                {
                    "agent_id": self.id,
                    "decision": f"optimization_{optimization.get('type')}",
                    "outcome": "applied",
                    "success": True,
                    "automated": True,
                    "campaign_id": campaign_id,
                    "optimization": optimization,
                    "impact": optimization.get("confidence") or 0.0,
                    "success_rate": optimization.get("confidence") or 0.0,
                    "context": {
                        "issues": list(analysis.issues),
                        "overall_score": analysis.overall_score,
                    },
                    "timestamp": now,
                },
            )
        return applied

    async def _optimization_history(self) -> list[dict[str, Any]]:
        records = await self.memory.retrieve(
            MemoryTier.episodic, {"type": "decision_outcome", "agent_id": self.id}
        )
        return [
            r.payload
            for r in records
            if str(r.payload.get("decision") or "").startswith("optimization_")
        ]

    # ------------------------------------------------------------------
    # update_campaign / escalate
    # ------------------------------------------------------------------

    async def _optimize_campaign(self, action: AgentAction) -> ActionResult:
        campaign_id = str(action.payload.get("campaign_id") or action.target)
        optimizations = list(action.payload.get("optimizations") or [])
        results = [await self._apply_optimization(campaign_id, opt) for opt in optimizations]
        succeeded = sum(1 for r in results if r["success"])
        return ActionResult(
            success=True,
            data={
                "campaign_id": campaign_id,
                "optimizations_applied": len(results),
                "results": results,
            },
            metrics={
                "optimization_count": len(results),
                "success_rate": succeeded / len(results) if results else 0.0,
            },
        )

    async def _escalate_action(self, action: AgentAction) -> ActionResult:
        escalation = await self.escalate(
            campaign_id=str(action.payload.get("campaign_id") or action.target),
            reason=str(action.payload.get("reason") or "Manual escalation"),
            severity=str(action.payload.get("severity") or "medium"),
            recommendations=list(action.payload.get("recommendations") or []),
        )
        return ActionResult(
            success=True,
            data=escalation,
            metrics={"escalation_severity": _SEVERITY_LEVEL.get(escalation["severity"], 2)},
        )

    async def escalate(
        self,
        *,
        campaign_id: str,
        reason: str,
        severity: str,
        recommendations: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Record a campaign escalation for manager review."""
        escalation = {
            "id": str(uuid.uuid4()),
            "problem_type": "campaign_escalation",
            "campaign_id": campaign_id,
            "agent_id": self.id,
            "reason": reason,
            "severity": severity,
            "recommendations": recommendations,
            "status": "pending_review",
            "timestamp": self._clock().isoformat(),
        }
        await self.memory.store(MemoryTier.episodic, "problem_resolution", escalation)
        logger.warning(
            "Escalated campaign %s (severity=%s): %s", campaign_id, severity, reason
        )
        if self._audit is not None:
            await self._audit.log(
                AuditEvent(
                    event_type=AuditEventType.CAMPAIGN_ESCALATED,
                    agent_id=self.id,
                    payload={
                        "campaign_id": campaign_id,
                        "severity": severity,
                        "reason": reason,
                    },
                )
            )
        return escalation

    # ------------------------------------------------------------------
    # Reports and predictions
    # ------------------------------------------------------------------

    async def generate_performance_report(self, campaign_id: str) -> dict[str, Any]:
        analyses = await self.memory.retrieve(
            MemoryTier.short_term, {"type": f"performance_analysis:{campaign_id}"}
        )
        if not analyses:
            return {"error": "No performance data available for this campaign"}

        latest = analyses[0].payload
        actions = await self.memory.retrieve(
            MemoryTier.short_term, {"type": "recent_action", "agent_id": self.id}
        )
        applied = [
            r.payload
            for r in actions
            if r.payload.get("action_type") == "optimization_applied"
            and r.payload.get("campaign_id") == campaign_id
        ]
        now = self._clock()
        return {
            "campaign_id": campaign_id,
            "generated_at": now.isoformat(),
            "overall_score": latest["analysis"]["overall_score"],
            "key_metrics": latest["analysis"]["trends"],
            "issues": latest["analysis"]["issues"],
            "strengths": latest["analysis"]["strengths"],
            "recommendations": latest["recommendations"],
            "optimizations_applied": applied,
            "next_review_date": (now + timedelta(days=1)).isoformat(),
        }

    async def predict_campaign_outcome(
        self, campaign_data: CampaignInput | dict[str, Any]
    ) -> dict[str, Any]:
        candidate = (
            campaign_data
            if isinstance(campaign_data, CampaignInput)
            else CampaignInput.model_validate(campaign_data)
        )
        history = await self.memory.retrieve(MemoryTier.long_term, {"type": "campaign"})
        similar = [
            r.payload
            for r in history
            if r.payload.get("type") == candidate.type
            and campaign_similarity(r.payload, candidate) > 0.7
        ]
        if not similar:
            return {
                "prediction": "insufficient_data",
                "confidence": 0.1,
                "expected_metrics": dict(_DEFAULT_EXPECTED_METRICS),
            }

        rates = [CampaignMetrics.model_validate(c.get("metrics") or {}) for c in similar]
        count = len(rates)
        averages = {
            "open_rate": sum(m.open_rate for m in rates) / count,
            "click_rate": sum(m.click_rate for m in rates) / count,
            "conversion_rate": sum(m.conversion_rate for m in rates) / count,
            "revenue": sum(m.revenue for m in rates) / count,
        }
        return {
            "prediction": "estimated",
            "expected_open_rate": averages["open_rate"],
            "expected_click_rate": averages["click_rate"],
            "expected_conversion_rate": averages["conversion_rate"],
            "expected_revenue": averages["revenue"],
            "confidence": min(count / 10, 0.9),
            "based_on_campaigns": count,
            "risk_factors": self._risk_factors(candidate, averages),
        }

    def _risk_factors(self, candidate: CampaignInput, averages: dict[str, float]) -> list[str]:
        risks = []
        if candidate.budget and candidate.budget > averages["revenue"] * 2:
            risks.append("High budget relative to expected revenue")
        if len(candidate.target_audience) > 10000:
            risks.append("Large audience size may reduce personalization effectiveness")
        if self._clock().month in (12, 1):
            risks.append("Holiday season may impact engagement rates")
        return risks

    async def get_optimization_metrics(self) -> dict[str, float]:
        optimizations = await self._optimization_history()
        escalations = [
            r.payload
            for r in await self.memory.retrieve(
                MemoryTier.episodic, {"type": "problem_resolution"}
            )
            if r.payload.get("problem_type") == "campaign_escalation"
        ]
        impacts = [
            float(o["impact"]) for o in optimizations if isinstance(o.get("impact"), (int, float))
        ]
        total = len(optimizations)
        return {
            "total_optimizations": total,
            "successful_optimizations": sum(
                1 for o in optimizations if float(o.get("success_rate") or 0.0) > 0.6
            ),
            "total_escalations": len(escalations),
            "critical_escalations": sum(1 for e in escalations if e.get("severity") == "critical"),
            "average_optimization_impact": sum(impacts) / len(impacts) if impacts else 0.0,
            "automation_rate": sum(1 for o in optimizations if o.get("automated")) / total
            if total
            else 0.0,
        }
