"""MarketMind: FastMCP v2 server over the agent orchestrator.

Tools reach each agent's ``AdaptiveMemory`` through the orchestrator and
drive the marketing workflows.  Call ``configure()`` before using the
server.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from time import perf_counter

from fastmcp import FastMCP
from pydantic import ValidationError

from marketmind.agents.base import BaseAgent
from marketmind.agents.schemas import ActionResult
from marketmind.audit import AuditLogger
from marketmind.config import AgentConfig
from marketmind.config import AuditConfig
from marketmind.config import MemoryConfig
from marketmind.config import OrchestratorConfig
from marketmind.models.schemas import ActionToolResult
from marketmind.models.schemas import MaintenanceResult
from marketmind.models.schemas import MemoryStatsResult
from marketmind.models.schemas import OptimizeCampaignInput
from marketmind.models.schemas import ProcessLeadInput
from marketmind.models.schemas import RetrieveMemoryInput
from marketmind.models.schemas import RetrieveMemoryResult
from marketmind.models.schemas import StoreMemoryInput
from marketmind.models.schemas import StoreMemoryResult
from marketmind.models.schemas import SystemReportResult
from marketmind.observability import record_latency
from marketmind.orchestrator import AgentOrchestrator

mcp = FastMCP("MarketMind")

# ---------------------------------------------------------------------------
# Orchestrator instance (set via configure())
# ---------------------------------------------------------------------------

_orchestrator: AgentOrchestrator | None = None


async def configure(
    *,
    orchestrator_config: OrchestratorConfig | None = None,
    memory_config: MemoryConfig | None = None,
    agent_config: AgentConfig | None = None,
    audit_config: AuditConfig | None = None,
    clock: Callable[[], datetime] | None = None,
    start_background: bool = False,
) -> AgentOrchestrator:
    """Build and initialize the orchestrator.

    Must be called before the MCP tools can function.  With
    *start_background* the consolidation and follow-up loops start too.
    """
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.shutdown()

    _orchestrator = AgentOrchestrator(
        orchestrator_config,
        memory_config=memory_config,
        agent_config=agent_config,
        audit_logger=AuditLogger(audit_config or AuditConfig()),
        clock=clock,
    )
    await _orchestrator.initialize()
    if start_background:
        await _orchestrator.start()
    return _orchestrator


async def shutdown() -> None:
    """Stop background loops and release the orchestrator."""
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.shutdown()
        _orchestrator = None


def _get_orchestrator() -> AgentOrchestrator:
    """Return the orchestrator instance or raise."""
    if _orchestrator is None:
        raise RuntimeError("Orchestrator not configured. Call configure() first.")
    return _orchestrator


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0] if exc.errors() else {}
    return str(err.get("msg", "Invalid input"))


def _unknown_agent(agent: str) -> str:
    return f"Unknown agent '{agent}'."


def _resolve_agents(orchestrator: AgentOrchestrator, agent: str | None) -> list[BaseAgent] | None:
    if agent is None:
        return orchestrator.agents
    found = orchestrator.get_agent(agent)
    return [found] if found is not None else None


def _action_result(result: ActionResult) -> ActionToolResult:
    return ActionToolResult(
        status="ok",
        success=result.success,
        data=result.data,
        error=result.error,
        metrics=result.metrics,
    )


def _action_rejected(error_code: str, message: str) -> ActionToolResult:
    return ActionToolResult(status="rejected", error_code=error_code, message=message)


# ---------------------------------------------------------------------------
# Tools: memory
# ---------------------------------------------------------------------------


@mcp.tool
async def store_memory(
    agent: str,
    tier: str,
    record_type: str,
    payload: dict | None = None,
) -> StoreMemoryResult:
    """Store a record in one agent's memory.

    Args:
        agent: Agent id or alias (triage_agent, engagement_agent, optimization_agent).
        tier: short_term, long_term, episodic or semantic ('short'/'long' accepted).
        record_type: Type tag used for routing, e.g. 'customer_profile'.
        payload: Structured record content.
    """
    start = perf_counter()
    ok = False
    try:
        orchestrator = _get_orchestrator()
        try:
            validated = StoreMemoryInput.model_validate(
                {
                    "agent": agent,
                    "tier": tier,
                    "record_type": record_type,
                    "payload": payload or {},
                }
            )
        except ValidationError as exc:
            return StoreMemoryResult(
                status="rejected",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        target = orchestrator.get_agent(validated.agent)
        if target is None:
            return StoreMemoryResult(
                status="rejected",
                error_code="unknown_agent",
                message=_unknown_agent(validated.agent),
            )

        record = await target.memory.store(
            validated.tier, validated.record_type, validated.payload
        )
        ok = True
        if record is None:
            return StoreMemoryResult(
                status="dropped",
                tier=validated.tier.value,
                message=f"Record type '{validated.record_type}' is not stored in {validated.tier.value}.",
            )
        return StoreMemoryResult(status="accepted", record_id=record.id, tier=validated.tier.value)
    finally:
        record_latency(
            operation="mcp.store_memory",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def retrieve_memory(
    agent: str,
    tier: str,
    query: dict | None = None,
    limit: int | None = None,
) -> RetrieveMemoryResult:
    """Retrieve ranked records from one agent's memory tier.

    Args:
        agent: Agent id or alias.
        tier: short_term, long_term, episodic or semantic ('short'/'long' accepted).
        query: Query keys such as type, lead_id, agent_id, campaign_id, customer_id.
        limit: Optional cap on returned records.
    """
    start = perf_counter()
    ok = False
    try:
        orchestrator = _get_orchestrator()
        try:
            validated = RetrieveMemoryInput.model_validate(
                {"agent": agent, "tier": tier, "query": query or {}, "limit": limit}
            )
        except ValidationError as exc:
            return RetrieveMemoryResult(
                status="rejected",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        target = orchestrator.get_agent(validated.agent)
        if target is None:
            return RetrieveMemoryResult(
                status="rejected",
                error_code="unknown_agent",
                message=_unknown_agent(validated.agent),
            )

        records = await target.memory.retrieve(validated.tier, validated.query)
        if validated.limit is not None:
            records = records[: validated.limit]
        ok = True
        return RetrieveMemoryResult(
            records=[r.model_dump(mode="json") for r in records],
            returned=len(records),
        )
    finally:
        record_latency(
            operation="mcp.retrieve_memory",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def consolidate_memory(agent: str | None = None) -> MaintenanceResult:
    """Run memory consolidation for one agent, or every agent when omitted.

    Args:
        agent: Agent id or alias; all agents when omitted.
    """
    start = perf_counter()
    ok = False
    try:
        orchestrator = _get_orchestrator()
        agents = _resolve_agents(orchestrator, agent)
        if agents is None:
            return MaintenanceResult(
                status="rejected",
                error_code="unknown_agent",
                message=_unknown_agent(str(agent)),
            )
        runs = {}
        for target in agents:
            run = await target.memory.consolidate()
            runs[target.id] = run.to_dict()
        ok = True
        return MaintenanceResult(runs=runs)
    finally:
        record_latency(
            operation="mcp.consolidate_memory",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def compress_memory(agent: str | None = None) -> MaintenanceResult:
    """Run memory compression for one agent, or every agent when omitted.

    Args:
        agent: Agent id or alias; all agents when omitted.
    """
    start = perf_counter()
    ok = False
    try:
        orchestrator = _get_orchestrator()
        agents = _resolve_agents(orchestrator, agent)
        if agents is None:
            return MaintenanceResult(
                status="rejected",
                error_code="unknown_agent",
                message=_unknown_agent(str(agent)),
            )
        runs = {}
        for target in agents:
            run = await target.memory.compress()
            runs[target.id] = run.to_dict()
        ok = True
        return MaintenanceResult(runs=runs)
    finally:
        record_latency(
            operation="mcp.compress_memory",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def get_memory_stats() -> MemoryStatsResult:
    """Per-tier item counts for every agent."""
    start = perf_counter()
    ok = False
    try:
        stats = _get_orchestrator().get_memory_stats()
        ok = True
        return MemoryStatsResult(stats=stats)
    finally:
        record_latency(
            operation="mcp.get_memory_stats",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


# ---------------------------------------------------------------------------
# Tools: marketing workflows
# ---------------------------------------------------------------------------


@mcp.tool
async def process_lead(lead: dict) -> ActionToolResult:
    """Triage a new lead and hand qualified leads to engagement.

    Args:
        lead: Partial lead with at least an email (name, company, source, metadata optional).
    """
    start = perf_counter()
    ok = False
    try:
        orchestrator = _get_orchestrator()
        try:
            validated = ProcessLeadInput.model_validate({"lead": lead})
        except ValidationError as exc:
            return _action_rejected("validation_error", _validation_message(exc))

        result = await orchestrator.process_new_lead(validated.lead)
        ok = result.success
        return _action_result(result)
    finally:
        record_latency(
            operation="mcp.process_lead",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def create_campaign(campaign: dict) -> ActionToolResult:
    """Create a marketing campaign.

    Args:
        campaign: Partial campaign (name, type, target_audience, content, budget, ...).
    """
    start = perf_counter()
    ok = False
    try:
        result = await _get_orchestrator().create_campaign(campaign)
        if not result.success:
            return _action_rejected("validation_error", result.error or "Invalid campaign")
        ok = True
        return _action_result(result)
    finally:
        record_latency(
            operation="mcp.create_campaign",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def optimize_campaign(campaign_id: str) -> ActionToolResult:
    """Analyze a campaign, auto-apply safe optimizations or escalate.

    Args:
        campaign_id: ID returned by create_campaign.
    """
    start = perf_counter()
    ok = False
    try:
        orchestrator = _get_orchestrator()
        try:
            validated = OptimizeCampaignInput.model_validate({"campaign_id": campaign_id})
        except ValidationError as exc:
            return _action_rejected("validation_error", _validation_message(exc))

        result = await orchestrator.optimize_campaign(validated.campaign_id)
        ok = result.success
        return _action_result(result)
    finally:
        record_latency(
            operation="mcp.optimize_campaign",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def get_system_report() -> SystemReportResult:
    """System metrics, agent statuses, memory stats and per-agent performance."""
    start = perf_counter()
    ok = False
    try:
        report = await _get_orchestrator().get_system_report()
        ok = True
        return SystemReportResult(report=report)
    finally:
        record_latency(
            operation="mcp.get_system_report",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )
