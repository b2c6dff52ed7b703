"""Agent orchestrator: wiring, message routing and periodic maintenance.

The orchestrator constructs the three agents and hands each one an outbox
that delivers ``AgentMessage`` objects to the target agent's
``handle_message``.  Two timer loops run once ``start()`` is awaited: memory
consolidation for every agent and the due follow-up sweep.  Loops check
their stop event only between runs, so a run in progress always completes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from datetime import datetime
from time import perf_counter
from typing import Any

from pydantic import BaseModel
from pydantic import Field
from pydantic import ValidationError

from marketmind.agents.base import BaseAgent
from marketmind.agents.engagement import EngagementAgent
from marketmind.agents.optimization import CampaignOptimizationAgent
from marketmind.agents.schemas import ActionResult
from marketmind.agents.schemas import ActionType
from marketmind.agents.schemas import AgentMessage
from marketmind.agents.schemas import AgentStatus
from marketmind.agents.schemas import CampaignInput
from marketmind.agents.triage import LeadTriageAgent
from marketmind.audit.schemas import AuditEvent
from marketmind.audit.schemas import AuditEventType
from marketmind.audit.store import AuditLogger
from marketmind.config import AgentConfig
from marketmind.config import MemoryConfig
from marketmind.config import OrchestratorConfig
from marketmind.memory.schemas import CustomerProfile
from marketmind.memory.schemas import MemoryTier
from marketmind.memory.schemas import utcnow

logger = logging.getLogger(__name__)

TRIAGE_AGENT = "triage_agent"
ENGAGEMENT_AGENT = "engagement_agent"
OPTIMIZATION_AGENT = "optimization_agent"

MEMORY_STATS_ERROR = "Failed to retrieve memory stats"


class SystemMetrics(BaseModel):
    """Dashboard-level view across every agent."""

    total_leads: int = 0
    active_agents: int = 0
    campaigns_running: int = 0
    conversion_rate: float = 0.0
    average_response_time: float = 0.0
    system_load: float = Field(default=0.0, ge=0.0, le=1.0)
    memory_usage: float = Field(default=0.0, ge=0.0, le=1.0)
    last_updated: datetime = Field(default_factory=utcnow)


class AgentOrchestrator:
    """Owns the agents; nothing it holds is shared through globals."""

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        *,
        memory_config: MemoryConfig | None = None,
        agent_config: AgentConfig | None = None,
        audit_logger: AuditLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or OrchestratorConfig()
        self._clock = clock or utcnow
        self._audit = audit_logger
        shared = {
            "memory_config": memory_config,
            "agent_config": agent_config,
            "audit_logger": audit_logger,
            "clock": self._clock,
            "outbox": self._route_message,
        }
        self.triage = LeadTriageAgent(**shared)
        self.engagement = EngagementAgent(**shared)
        self.optimization = CampaignOptimizationAgent(**shared)
        self._aliases: dict[str, BaseAgent] = {
            TRIAGE_AGENT: self.triage,
            ENGAGEMENT_AGENT: self.engagement,
            OPTIMIZATION_AGENT: self.optimization,
        }
        self.system_metrics = SystemMetrics(last_updated=self._clock())
        self.running = False
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[None]] = []

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    @property
    def agents(self) -> list[BaseAgent]:
        return list(self._aliases.values())

    def get_agent(self, key: str) -> BaseAgent | None:
        """Look an agent up by alias or id."""
        if key in self._aliases:
            return self._aliases[key]
        for agent in self.agents:
            if agent.id == key:
                return agent
        return None

    async def _route_message(self, message: AgentMessage) -> None:
        target = self.get_agent(message.target)
        if target is None:
            logger.warning(
                "No agent %s for %s message from %s", message.target, message.type, message.sender_id
            )
            return
        await target.handle_message(message)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        for agent in self.agents:
            await agent.initialize()
        logger.info("Orchestrator initialized %d agents", len(self.agents))

    async def start(self) -> None:
        """Start the consolidation and scheduled-task loops."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(
                self._run_every(self.config.consolidation_interval_seconds, self.consolidate_all)
            ),
            asyncio.create_task(
                self._run_every(self.config.task_interval_seconds, self.process_scheduled_tasks)
            ),
        ]
        self.running = True
        logger.info("Orchestrator started")

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._tasks:
            await asyncio.gather(*self._tasks)
        self._tasks = []
        self._stop_event = None
        self.running = False

    async def shutdown(self) -> None:
        await self.stop()
        logger.info("Orchestrator shut down")

    async def _run_every(self, interval: float, job: Callable[[], Awaitable[Any]]) -> None:
        stop_event = self._stop_event
        if stop_event is None:
            return
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop_event.is_set():
                break
            try:
                await job()
            except Exception:
                logger.exception("Periodic job %s failed", getattr(job, "__name__", job))

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def process_new_lead(self, lead_data: Mapping[str, Any]) -> ActionResult:
        action = self.triage.new_action(
            ActionType.categorize_lead.value,
            target=str(lead_data.get("email") or "unknown"),
            lead=dict(lead_data),
        )
        return await self.triage.process_action(action)

    async def create_campaign(self, campaign_data: CampaignInput | Mapping[str, Any]) -> ActionResult:
        start = perf_counter()
        try:
            data = (
                campaign_data
                if isinstance(campaign_data, CampaignInput)
                else CampaignInput.model_validate(dict(campaign_data))
            )
            campaign = await self.engagement.create_campaign(data)
        except ValidationError as exc:
            return ActionResult(success=False, error=str(exc))

        payload = campaign.model_dump(mode="json")
        # Optimization analyzes campaigns from its own memory.
        await self.optimization.memory.store(
            MemoryTier.long_term, "campaign", payload, agent_id=self.engagement.id
        )
        return ActionResult(
            success=True,
            data=payload,
            metrics={
                "creation_time": (perf_counter() - start) * 1000,
                "target_audience_size": len(campaign.target_audience),
            },
        )

    async def optimize_campaign(self, campaign_id: str) -> ActionResult:
        action = self.optimization.new_action(
            ActionType.analyze_performance.value,
            target=campaign_id,
            campaign_id=campaign_id,
        )
        return await self.optimization.process_action(action)

    async def load_customer_profile(self, customer: Mapping[str, Any]) -> None:
        profile = CustomerProfile.model_validate(dict(customer)).to_payload()
        for agent in (self.engagement, self.triage):
            await agent.memory.store(MemoryTier.long_term, "customer_profile", profile)

    async def load_marketing_data(self, data: Mapping[str, Any]) -> dict[str, int]:
        """Feed leads, campaigns and customer profiles into the agents.

        Each collection is capped by the configured load limits.  Returns the
        number of successful items per collection.
        """
        loaded = {"leads": 0, "campaigns": 0, "customers": 0}

        for customer in list(data.get("customers") or [])[: self.config.customer_load_limit]:
            try:
                await self.load_customer_profile(customer)
            except ValidationError as exc:
                logger.warning("Skipping invalid customer profile: %s", exc)
                continue
            loaded["customers"] += 1

        for lead in list(data.get("leads") or [])[: self.config.lead_load_limit]:
            result = await self.process_new_lead(lead)
            if result.success:
                loaded["leads"] += 1

        for campaign in list(data.get("campaigns") or [])[: self.config.campaign_load_limit]:
            result = await self.create_campaign(campaign)
            if result.success:
                loaded["campaigns"] += 1

        logger.info(
            "Loaded marketing data: %d leads, %d campaigns, %d customers",
            loaded["leads"],
            loaded["campaigns"],
            loaded["customers"],
        )
        return loaded

    async def process_scheduled_tasks(self) -> int:
        """Send every due follow-up and mark it completed."""
        due = await self.engagement.due_followups()
        for followup in due:
            lead_id = str(followup.get("lead_id") or "")
            action = self.engagement.new_action(
                ActionType.send_email.value,
                target=lead_id,
                lead={"id": lead_id},
                campaign_type="followup",
                custom_message=followup.get("message") or None,
            )
            await self.engagement.process_action(action)
            await self.engagement.complete_followup(followup)
        return len(due)

    # ------------------------------------------------------------------
    # Memory maintenance
    # ------------------------------------------------------------------

    async def consolidate_all(self) -> dict[str, dict[str, Any]]:
        results: dict[str, dict[str, Any]] = {}
        for agent in self.agents:
            try:
                run = await agent.memory.consolidate()
            except Exception:
                logger.exception("Memory consolidation failed for agent %s", agent.id)
                results[agent.id] = {"error": "Memory consolidation failed"}
                continue
            results[agent.id] = run.to_dict()
        return results

    async def share_knowledge(self, source: str | None = None) -> int:
        """Copy each agent's own semantic records into the other agents.

        Copies keep the source agent as owner.  Records already copied are
        skipped, as are records an agent received from someone else.
        Returns the number of records written.
        """
        sources = self.agents if source is None else [self._require_agent(source)]
        shared = 0
        for origin in sources:
            records = [
                r for r in await origin.memory.semantic_records() if r.owner_agent_id == origin.id
            ]
            if not records:
                continue
            targets = [agent for agent in self.agents if agent is not origin]
            for target in targets:
                existing = {
                    _fingerprint(r.owner_agent_id, r.record_type, r.payload)
                    for r in await target.memory.semantic_records()
                }
                for record in records:
                    key = _fingerprint(origin.id, record.record_type, record.payload)
                    if key in existing:
                        continue
                    stored = await target.memory.store(
                        MemoryTier.semantic, record.record_type, record.payload, agent_id=origin.id
                    )
                    if stored is not None:
                        existing.add(key)
                        shared += 1
            if self._audit is not None:
                await self._audit.log(
                    AuditEvent(
                        event_type=AuditEventType.KNOWLEDGE_SHARED,
                        agent_id=origin.id,
                        payload={
                            "source_agent": origin.id,
                            "target_agents": [t.id for t in targets],
                            "records_offered": len(records),
                        },
                    )
                )
        logger.info("Shared %d semantic records across agents", shared)
        return shared

    def _require_agent(self, key: str) -> BaseAgent:
        agent = self.get_agent(key)
        if agent is None:
            raise KeyError(f"Unknown agent: {key}")
        return agent

    def get_memory_stats(self) -> dict[str, dict[str, Any]]:
        stats: dict[str, dict[str, Any]] = {}
        for agent in self.agents:
            try:
                stats[agent.id] = agent.get_memory_stats()
            except Exception:
                logger.exception("Failed to read memory stats for agent %s", agent.id)
                stats[agent.id] = {"error": MEMORY_STATS_ERROR}
        return stats

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def update_system_metrics(self) -> SystemMetrics:
        agents = self.agents
        stats = [s for s in self.get_memory_stats().values() if "error" not in s]
        total_items = sum(sum(s.values()) for s in stats)

        response_times = []
        for agent in agents:
            performance = await agent.get_performance_metrics()
            if performance.get("processing_time"):
                response_times.append(performance["processing_time"])

        campaigns = await self.engagement.memory.retrieve(
            MemoryTier.long_term, {"type": "campaign", "status": "active"}
        )
        engagement = await self.engagement.get_engagement_metrics()

        self.system_metrics = SystemMetrics(
            total_leads=sum(s.get("shortTermItems", 0) for s in stats),
            active_agents=sum(
                1 for a in agents if a.status in (AgentStatus.active, AgentStatus.processing)
            ),
            campaigns_running=len(campaigns),
            conversion_rate=engagement["conversion_rate"],
            average_response_time=(
                sum(response_times) / len(response_times) if response_times else 0.0
            ),
            system_load=(
                sum(1 for a in agents if a.status is AgentStatus.processing) / len(agents)
            ),
            memory_usage=min(total_items / self.config.max_memory_items, 1.0),
            last_updated=self._clock(),
        )
        return self.system_metrics

    def health_check(self) -> dict[str, Any]:
        failing = [agent.id for agent in self.agents if agent.status is AgentStatus.error]
        for agent_id in failing:
            logger.warning("Agent %s is in error state", agent_id)
        return {
            "healthy": not failing,
            "running": self.running,
            "agents_in_error": failing,
        }

    def get_agent_statuses(self) -> dict[str, dict[str, Any]]:
        return {agent.id: agent.describe() for agent in self.agents}

    async def get_system_report(self) -> dict[str, Any]:
        metrics = await self.update_system_metrics()
        return {
            "system_metrics": metrics.model_dump(mode="json"),
            "agent_statuses": self.get_agent_statuses(),
            "memory_stats": self.get_memory_stats(),
            "performance_metrics": {
                "triage": await self.triage.get_triage_stats(),
                "engagement": await self.engagement.get_engagement_metrics(),
                "optimization": await self.optimization.get_optimization_metrics(),
            },
            "health": self.health_check(),
            "generated_at": self._clock().isoformat(),
        }


def _fingerprint(owner: str, record_type: str, payload: Mapping[str, Any]) -> str:
    return json.dumps([owner, record_type, payload], sort_keys=True, default=str)
