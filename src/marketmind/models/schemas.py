"""Pydantic models for the MCP interface.

Input models validate tool arguments; output models shape responses.
FastMCP v2 serializes Pydantic models automatically.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator

from marketmind.memory.schemas import MemoryTier

# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------


class _TierInput(BaseModel):
    agent: str = Field(
        min_length=1,
        description="Agent id or alias (triage_agent, engagement_agent, optimization_agent).",
    )
    tier: MemoryTier = Field(
        description="Memory tier; 'short' and 'long' are accepted shorthands.",
    )

    @field_validator("tier", mode="before")
    @classmethod
    def _parse_tier(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return MemoryTier.parse(value)
            except ValueError:
                return value
        return value


class StoreMemoryInput(_TierInput):
    """Input for store_memory tool."""

    record_type: str = Field(
        min_length=1,
        description="Record type tag used for routing, e.g. 'customer_profile'.",
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured record content.",
    )


class RetrieveMemoryInput(_TierInput):
    """Input for retrieve_memory tool."""

    query: dict[str, Any] = Field(
        default_factory=dict,
        description="Query keys: type, lead_id, agent_id, campaign_id, customer_id, email, concept.",
    )
    limit: int | None = Field(
        default=None,
        ge=1,
        description="Optional cap below the configured retrieval limit.",
    )


class ProcessLeadInput(BaseModel):
    """Input for process_lead tool."""

    lead: dict[str, Any] = Field(
        description="Partial lead; 'email' is required.",
    )

    @field_validator("lead")
    @classmethod
    def _require_email(cls, value: dict[str, Any]) -> dict[str, Any]:
        if not str(value.get("email") or "").strip():
            raise ValueError("lead.email is required")
        return value


class OptimizeCampaignInput(BaseModel):
    """Input for optimize_campaign tool."""

    campaign_id: str = Field(
        min_length=1,
        description="ID of a campaign previously created through create_campaign.",
    )


# ---------------------------------------------------------------------------
# Output models
# ---------------------------------------------------------------------------


class ToolResult(BaseModel):
    status: str = Field(
        default="ok",
        description="Outcome status (ok, accepted, dropped, rejected).",
    )
    error_code: str | None = Field(
        default=None,
        description="Machine-readable reason when status is rejected.",
    )
    message: str | None = Field(
        default=None,
        description="Human-readable detail for rejected calls.",
    )


class StoreMemoryResult(ToolResult):
    """Response from store_memory."""

    record_id: str = Field(
        default="",
        description="ID of the stored record; empty when dropped or rejected.",
    )
    tier: str | None = Field(
        default=None,
        description="Tier the record was written to.",
    )


class RetrieveMemoryResult(ToolResult):
    """Response from retrieve_memory."""

    records: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Matching records, best first, with relevance_score set.",
    )
    returned: int = Field(
        default=0,
        description="Number of records in this response.",
    )


class MaintenanceResult(ToolResult):
    """Response from consolidate_memory and compress_memory."""

    runs: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Run counters per agent id.",
    )


class MemoryStatsResult(ToolResult):
    """Response from get_memory_stats."""

    stats: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Per-tier item counts per agent id, or an error entry.",
    )


class ActionToolResult(ToolResult):
    """Response from process_lead, create_campaign and optimize_campaign."""

    success: bool = Field(
        default=False,
        description="Whether the agent action succeeded.",
    )
    data: Any = Field(
        default=None,
        description="Action-specific result data.",
    )
    error: str | None = Field(
        default=None,
        description="Agent-reported failure reason.",
    )
    metrics: dict[str, float] = Field(
        default_factory=dict,
        description="Numeric metrics recorded for the action.",
    )


class SystemReportResult(ToolResult):
    """Response from get_system_report."""

    report: dict[str, Any] = Field(
        default_factory=dict,
        description="System metrics, agent statuses, memory and performance stats.",
    )
