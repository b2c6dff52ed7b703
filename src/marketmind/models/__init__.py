"""Models domain: MCP tool input and output contracts."""

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

__all__ = [
    "ActionToolResult",
    "MaintenanceResult",
    "MemoryStatsResult",
    "OptimizeCampaignInput",
    "ProcessLeadInput",
    "RetrieveMemoryInput",
    "RetrieveMemoryResult",
    "StoreMemoryInput",
    "StoreMemoryResult",
    "SystemReportResult",
]
