"""Unit tests for the triage, engagement and optimization agents."""

from __future__ import annotations

from pathlib import Path

import pytest

from marketmind.agents import ActionType
from marketmind.agents import AgentMessage
from marketmind.agents import AgentStatus
from marketmind.agents import CampaignOptimizationAgent
from marketmind.agents import EngagementAgent
from marketmind.agents import LeadTriageAgent
from marketmind.agents.engagement import personalize
from marketmind.agents.optimization import analyze_metrics
from marketmind.agents.optimization import campaign_similarity
from marketmind.agents.schemas import CampaignInput
from marketmind.agents.schemas import CampaignMetrics
from marketmind.agents.triage import categorize_score
from marketmind.agents.triage import classify_email_domain
from marketmind.audit import AuditEventType
from marketmind.audit import AuditLogger
from marketmind.config import AgentConfig
from marketmind.config import AuditConfig
from marketmind.memory import MemoryTier


class Outbox:
    """Collects outgoing agent messages."""

    def __init__(self) -> None:
        self.messages: list[AgentMessage] = []

    async def __call__(self, message: AgentMessage) -> None:
        self.messages.append(message)


def _metrics(**counts) -> dict:
    return CampaignMetrics(**counts).model_dump()


# ---------------------------------------------------------------------------
# Lead triage
# ---------------------------------------------------------------------------


class TestTriageScoring:
    def test_domain_classification(self):
        assert classify_email_domain("Gmail.com") == "personal"
        assert classify_email_domain("acme.io") == "business"

    @pytest.mark.parametrize(
        ("score", "category"),
        [
            (80, "hot_prospect"),
            (79.9, "campaign_qualified"),
            (60, "campaign_qualified"),
            (40, "general_inquiry"),
            (39.9, "cold_lead"),
        ],
    )
    def test_category_boundaries(self, score, category):
        assert categorize_score(score).value == category


class TestLeadTriageAgent:
    @pytest.fixture()
    def outbox(self) -> Outbox:
        return Outbox()

    @pytest.fixture()
    def agent(self, clock, outbox) -> LeadTriageAgent:
        return LeadTriageAgent(clock=clock, outbox=outbox)

    async def test_business_lead_is_qualified_and_handed_off(self, agent, outbox):
        action = agent.new_action(
            ActionType.categorize_lead.value,
            lead={"email": "ann@acme.io", "name": "Ann", "company": "Acme", "source": "website_form"},
        )
        result = await agent.process_action(action)

        assert result.success
        # 0.2*100 + 0.3*80 + 0.25*90
        assert result.data["score"] == pytest.approx(66.5)
        assert result.data["category"] == "campaign_qualified"
        assert result.data["metadata"]["domain_type"] == "business"
        assert result.metrics["category_confidence"] == 0.85

        [message] = outbox.messages
        assert message.target == "engagement_agent"
        assert message.type == "new_qualified_lead"
        assert message.payload["triage_notes"]["recommended_approach"] == "targeted_email_sequence"
        assert agent.status is AgentStatus.idle

    async def test_cold_lead_is_not_handed_off(self, agent, outbox):
        action = agent.new_action(
            ActionType.categorize_lead.value, lead={"email": "joe@gmail.com"}
        )
        result = await agent.process_action(action)

        assert result.data["category"] == "cold_lead"
        assert result.data["score"] == pytest.approx(15.0)
        assert outbox.messages == []

    async def test_known_email_is_flagged_duplicate(self, agent, outbox):
        await agent.memory.store(
            MemoryTier.long_term, "customer_profile", {"email": "ann@acme.io", "name": "Ann"}
        )
        action = agent.new_action(
            ActionType.categorize_lead.value,
            lead={"email": "ann@acme.io", "company": "Acme", "source": "website_form"},
        )
        result = await agent.process_action(action)

        assert result.data["metadata"]["is_duplicate"] is True
        assert result.data["metadata"]["previous_interactions"] == 1
        assert result.data["status"] == "lost"
        assert result.data["category"] == "hot_prospect"
        assert outbox.messages == []

    async def test_triage_stats(self, agent):
        for lead in (
            {"email": "a@acme.io", "company": "Acme", "source": "website_form"},
            {"email": "b@gmail.com"},
        ):
            await agent.process_action(agent.new_action(ActionType.categorize_lead.value, lead=lead))

        stats = await agent.get_triage_stats()
        assert stats["total_processed"] == 2
        assert stats["campaign_qualified"] == 1
        assert stats["cold_leads"] == 1
        assert stats["average_score"] == pytest.approx((66.5 + 15.0) / 2)

    async def test_invalid_lead_sets_error_status(self, agent):
        result = await agent.process_action(
            agent.new_action(ActionType.categorize_lead.value, lead={"name": "no email"})
        )
        assert not result.success
        assert result.error
        assert agent.status is AgentStatus.error

    async def test_unsupported_action_fails_without_error_status(self, agent):
        result = await agent.process_action(agent.new_action(ActionType.send_email.value))
        assert not result.success
        assert result.error == "Unsupported action type: send_email"
        assert agent.status is AgentStatus.idle

    async def test_actions_logged_with_metrics(self, agent):
        await agent.process_action(
            agent.new_action(ActionType.categorize_lead.value, lead={"email": "b@gmail.com"})
        )
        performance = await agent.get_performance_metrics()
        assert performance["lead_score"] == pytest.approx(15.0)

        outcomes = await agent.memory.retrieve(MemoryTier.episodic, {"type": "learning_outcome"})
        assert outcomes[0].payload["action_type"] == "categorize_lead"

    async def test_performance_metrics_cover_every_record(self, agent):
        for _ in range(75):
            await agent.memory.store(
                MemoryTier.long_term,
                "performance_metric",
                {"agent_id": agent.id, "metric": "lead_score", "value": 2},
            )
        await agent.memory.store(
            MemoryTier.long_term, "performance_metric", {"metric": "lead_score", "value": 1}
        )
        await agent.memory.store(
            MemoryTier.long_term,
            "performance_metric",
            {"agent_id": "someone-else", "metric": "lead_score", "value": 1000},
        )

        performance = await agent.get_performance_metrics()
        assert performance == {"lead_score": pytest.approx(151.0)}

    async def test_actions_are_audited(self, clock, tmp_path: Path):
        audit = AuditLogger(AuditConfig(file_path=str(tmp_path / "audit.jsonl")))
        agent = LeadTriageAgent(clock=clock, audit_logger=audit)
        await agent.process_action(
            agent.new_action(ActionType.categorize_lead.value, lead={"email": "b@gmail.com"})
        )

        events = await audit.read_events(event_type=AuditEventType.AGENT_ACTION)
        assert [e.payload["action_type"] for e in events] == ["categorize_lead"]
        assert events[0].agent_id == agent.id

    async def test_initialize_seeds_knowledge(self, agent):
        await agent.initialize()
        concepts = await agent.memory.retrieve(MemoryTier.semantic, {"type": "domain_knowledge"})
        assert {c.payload["concept"] for c in concepts} == {
            "lead_qualification",
            "lead_scoring",
            "lead_nurturing",
        }


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------


class TestEngagementAgent:
    @pytest.fixture()
    def agent(self, clock) -> EngagementAgent:
        return EngagementAgent(
            clock=clock, agent_config=AgentConfig(random_seed=3, delivery_success_rate=1.0)
        )

    def test_personalize_leaves_unknown_tokens(self):
        assert personalize("Hi {name}, {missing}", {"name": "Ann"}) == "Hi Ann, {missing}"

    async def test_send_email_records_interaction(self, agent):
        action = agent.new_action(
            ActionType.send_email.value,
            target="lead_1",
            lead={"id": "lead_1", "name": "Ann", "source": "ai_webinar"},
        )
        result = await agent.process_action(action)

        assert result.success
        content = result.data["personalized_content"]
        assert content["subject"] == "Welcome to Purple Merit Technologies, Ann!"
        assert "AI/ML solutions" in content["body"]
        assert result.metrics["personalization_score"] == 85

        interactions = await agent.memory.retrieve(
            MemoryTier.episodic, {"type": "interaction", "customer_id": "lead_1"}
        )
        assert interactions[0].payload["outcome"] == "positive"

    async def test_history_raises_personalization(self, agent):
        await agent.memory.store(MemoryTier.long_term, "customer_profile", {"email": "ann@acme.io"})
        action = agent.new_action(
            ActionType.send_email.value,
            lead={"id": "l1", "name": "Ann", "email": "ann@acme.io"},
        )
        result = await agent.process_action(action)
        assert result.metrics["personalization_score"] == 100

    async def test_failed_delivery(self, clock):
        agent = EngagementAgent(
            clock=clock, agent_config=AgentConfig(random_seed=1, delivery_success_rate=0.0)
        )
        result = await agent.process_action(
            agent.new_action(ActionType.send_email.value, lead={"id": "l1"})
        )
        assert not result.success
        assert result.error == "Email delivery failed"
        assert result.data["delivery_status"] == "failed"
        assert agent.status is AgentStatus.idle

    async def test_new_followup_replaces_pending_one(self, agent, clock):
        for message in ("first", "second"):
            await agent.process_action(
                agent.new_action(
                    ActionType.schedule_followup.value,
                    lead_id="l1",
                    delay_seconds=3600,
                    message=message,
                )
            )

        pending = await agent.pending_followups()
        assert [f["message"] for f in pending] == ["second"]
        assert await agent.due_followups() == []

        clock.advance(hours=2)
        due = await agent.due_followups()
        assert [f["message"] for f in due] == ["second"]

        await agent.complete_followup(due[0])
        assert await agent.due_followups() == []

    async def test_create_campaign(self, agent):
        campaign = await agent.create_campaign(
            {"name": "Spring", "target_audience": ["a", "b"], "budget": 500}
        )
        assert campaign.created_by == agent.id
        stored = await agent.memory.retrieve(MemoryTier.long_term, {"type": "campaign", "id": campaign.id})
        assert stored[0].payload["name"] == "Spring"

    async def test_qualified_lead_message_sends_email(self, agent):
        await agent.handle_message(
            AgentMessage(
                sender_id="triage",
                target="engagement_agent",
                type="new_qualified_lead",
                payload={
                    "lead": {"id": "l9", "name": "Bo", "score": 85},
                    "triage_notes": {"recommended_approach": "immediate_personal_outreach"},
                },
            )
        )
        metrics = await agent.get_engagement_metrics()
        assert metrics["total_emails"] == 1
        assert metrics["emails_delivered"] == 1
        assert metrics["response_rate"] == 1.0
        assert metrics["average_sentiment"] == pytest.approx(0.7)

    async def test_successful_campaign_update_becomes_strategy(self, agent):
        await agent.handle_message(
            AgentMessage(
                sender_id="optimizer",
                target="engagement_agent",
                type="campaign_performance_update",
                payload={"campaign_id": "c1", "strategy": "webinar", "metrics": {"conversion_rate": 0.2}},
            )
        )
        strategies = await agent.memory.retrieve(
            MemoryTier.semantic, {"type": "successful_strategy"}
        )
        assert strategies[0].payload["name"] == "successful_strategy:webinar"

    async def test_engagement_timing(self, agent, clock):
        assert (await agent.optimize_engagement_timing("nobody")).hour == 10

        await agent.process_action(
            agent.new_action(ActionType.send_email.value, target="l1", lead={"id": "l1"})
        )
        assert (await agent.optimize_engagement_timing("l1")).hour == clock().hour


# ---------------------------------------------------------------------------
# Campaign optimization
# ---------------------------------------------------------------------------


class TestAnalyzeMetrics:
    def test_healthy_campaign(self):
        analysis = analyze_metrics(
            "c1", CampaignMetrics(sent=1000, opened=300, clicked=30, converted=40)
        )
        assert analysis.issues == []
        assert analysis.overall_score == 100.0
        assert not analysis.escalation_needed
        assert "Strong open rate performance" in analysis.strengths

    def test_bounce_raises_medium_severity(self):
        analysis = analyze_metrics(
            "c1", CampaignMetrics(sent=1000, opened=200, clicked=20, converted=20, bounced=80)
        )
        assert analysis.severity == "medium"
        assert analysis.overall_score == 90.0

    def test_zero_conversions_are_critical(self):
        analysis = analyze_metrics("c1", CampaignMetrics(sent=1000, opened=100, clicked=1))
        assert analysis.severity == "critical"
        assert analysis.overall_score == 40.0
        assert analysis.escalation_needed

    def test_similarity_renormalizes_missing_factors(self):
        candidate = CampaignInput(type="email")
        assert campaign_similarity({"type": "email"}, candidate) == 1.0
        assert campaign_similarity({"type": "webinar"}, candidate) == 0.0

        full = CampaignInput(type="email", target_audience=["a", "b"], budget=100)
        existing = {"type": "email", "target_audience": ["a", "b", "c", "d"], "budget": 100}
        assert campaign_similarity(existing, full) == pytest.approx((0.4 + 0.15 + 0.3) / 1.0)


class TestCampaignOptimizationAgent:
    @pytest.fixture()
    def audit(self, tmp_path: Path) -> AuditLogger:
        return AuditLogger(AuditConfig(file_path=str(tmp_path / "audit.jsonl")))

    @pytest.fixture()
    def agent(self, clock, audit) -> CampaignOptimizationAgent:
        return CampaignOptimizationAgent(clock=clock, audit_logger=audit)

    async def _campaign(self, agent, campaign_id: str, **counts) -> None:
        await agent.memory.store(
            MemoryTier.long_term,
            "campaign",
            {"id": campaign_id, "type": "email", "metrics": _metrics(**counts)},
        )

    async def _analyze(self, agent, campaign_id: str):
        return await agent.process_action(
            agent.new_action(ActionType.analyze_performance.value, campaign_id=campaign_id)
        )

    async def test_missing_campaign(self, agent):
        result = await self._analyze(agent, "nope")
        assert not result.success
        assert result.error == "Campaign not found"

    async def test_low_open_rate_is_auto_optimized(self, agent):
        await self._campaign(agent, "c1", sent=1000, opened=100, clicked=10, converted=20)
        result = await self._analyze(agent, "c1")

        assert result.success
        assert result.data["escalation_needed"] is False
        recs = result.data["recommendations"]
        assert [r["type"] for r in recs["auto_applicable"]] == ["subject_line_optimization"]
        assert [r["type"] for r in recs["manual_review"]] == ["send_time_optimization"]
        assert result.metrics["performance_score"] == 80.0
        assert result.metrics["recommendations_count"] == 2

        metrics = await agent.get_optimization_metrics()
        assert metrics["total_optimizations"] == 1
        assert metrics["successful_optimizations"] == 1
        assert metrics["automation_rate"] == 1.0
        assert metrics["average_optimization_impact"] == pytest.approx(0.7)

    async def test_past_success_is_recommended_again(self, agent):
        await self._campaign(agent, "c1", sent=1000, opened=100, clicked=10, converted=20)
        await self._campaign(agent, "c2", sent=1000, opened=120, clicked=12, converted=20)
        await self._analyze(agent, "c1")

        result = await self._analyze(agent, "c2")
        auto = result.data["recommendations"]["auto_applicable"]
        assert [r["type"] for r in auto] == ["subject_line_optimization", "historical_pattern"]
        assert auto[1]["action"] == "test_subject_variations"

    async def test_critical_campaign_is_escalated(self, agent, audit):
        await self._campaign(agent, "c1", sent=1000, opened=100, clicked=1)
        result = await self._analyze(agent, "c1")

        assert result.data["escalation_needed"] is True
        metrics = await agent.get_optimization_metrics()
        assert metrics["total_escalations"] == 1
        assert metrics["critical_escalations"] == 1
        assert metrics["total_optimizations"] == 0

        events = await audit.read_events(event_type=AuditEventType.CAMPAIGN_ESCALATED)
        assert events[0].payload["campaign_id"] == "c1"
        assert events[0].payload["severity"] == "critical"

    async def test_manual_escalate_action(self, agent):
        result = await agent.process_action(
            agent.new_action(ActionType.escalate.value, campaign_id="c9", reason="budget", severity="high")
        )
        assert result.data["status"] == "pending_review"
        assert result.metrics["escalation_severity"] == 3

    async def test_update_campaign_applies_optimizations(self, agent):
        result = await agent.process_action(
            agent.new_action(
                ActionType.update_campaign.value,
                campaign_id="c1",
                optimizations=[{"type": "cta_optimization"}, {"type": "list_cleaning"}],
            )
        )
        assert result.data["optimizations_applied"] == 2
        assert result.metrics["success_rate"] == 1.0

    async def test_performance_report(self, agent):
        assert "error" in await agent.generate_performance_report("c1")

        await self._campaign(agent, "c1", sent=1000, opened=100, clicked=10, converted=20)
        await self._analyze(agent, "c1")
        report = await agent.generate_performance_report("c1")

        assert report["overall_score"] == 80.0
        assert report["issues"] == ["Low open rate detected"]
        assert [a["optimization"]["type"] for a in report["optimizations_applied"]] == [
            "subject_line_optimization"
        ]

    async def test_prediction_without_history(self, agent):
        prediction = await agent.predict_campaign_outcome({"type": "webinar"})
        assert prediction["prediction"] == "insufficient_data"
        assert prediction["confidence"] == 0.1

    async def test_prediction_from_similar_campaigns(self, agent):
        await self._campaign(agent, "c1", sent=100, opened=20, clicked=4, converted=2, revenue=500)
        await self._campaign(agent, "c2", sent=100, opened=40, clicked=4, converted=4, revenue=1500)

        prediction = await agent.predict_campaign_outcome({"type": "email", "budget": 5000})
        assert prediction["based_on_campaigns"] == 2
        assert prediction["expected_open_rate"] == pytest.approx(0.3)
        assert prediction["expected_revenue"] == pytest.approx(1000.0)
        assert prediction["confidence"] == pytest.approx(0.2)
        assert "High budget relative to expected revenue" in prediction["risk_factors"]
