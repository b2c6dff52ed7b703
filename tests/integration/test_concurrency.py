"""Concurrent tool calls against one orchestrator."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client

from marketmind.config import AgentConfig
from marketmind.config import AuditConfig
from marketmind.config import MemoryConfig
from marketmind.config import OrchestratorConfig
from marketmind.server import configure
from marketmind.server import mcp
from marketmind.server import shutdown


def _parse(result) -> dict:
    return json.loads(result.content[0].text)


@pytest.fixture()
async def orchestrator(tmp_path):
    orch = await configure(
        orchestrator_config=OrchestratorConfig(
            consolidation_interval_seconds=0.01, task_interval_seconds=0.01
        ),
        memory_config=MemoryConfig(max_short_term_items=20, consolidation_threshold=10),
        agent_config=AgentConfig(random_seed=9, delivery_success_rate=1.0),
        audit_config=AuditConfig(file_path=str(tmp_path / "audit.jsonl")),
        start_background=True,
    )
    yield orch
    await shutdown()


class TestConcurrentTools:
    async def test_parallel_leads_with_background_maintenance(self, orchestrator):
        async with Client(mcp) as client:
            calls = [
                client.call_tool(
                    "process_lead",
                    {"lead": {"email": f"u{i}@acme.io", "company": "Acme", "source": "referral"}},
                )
                for i in range(40)
            ]
            calls += [client.call_tool("consolidate_memory", {}) for _ in range(3)]
            calls += [client.call_tool("compress_memory", {}) for _ in range(3)]
            results = [_parse(r) for r in await asyncio.gather(*calls)]

            stats = _parse(await client.call_tool("get_memory_stats", {}))["stats"]

        assert all(r["status"] == "ok" for r in results)
        assert orchestrator.running
        for counts in stats.values():
            assert "error" not in counts
        # each short-term list is capped independently
        assert stats[orchestrator.triage.id]["shortTermItems"] <= 20 * 3 + 10

    async def test_parallel_stores_are_all_kept(self, orchestrator):
        async with Client(mcp) as client:
            await asyncio.gather(
                *(
                    client.call_tool(
                        "store_memory",
                        {
                            "agent": "optimization_agent",
                            "tier": "long_term",
                            "record_type": "customer_profile",
                            "payload": {"email": f"p{i}@x.co"},
                        },
                    )
                    for i in range(30)
                ),
                client.call_tool("consolidate_memory", {"agent": "optimization_agent"}),
            )
            data = _parse(
                await client.call_tool(
                    "retrieve_memory",
                    {
                        "agent": "optimization_agent",
                        "tier": "long_term",
                        "query": {"type": "customer_profile"},
                    },
                )
            )
        assert data["returned"] == 30
