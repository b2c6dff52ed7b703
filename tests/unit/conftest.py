"""Unit test fixtures: FastMCP client over a freshly configured server."""

from __future__ import annotations

import pytest
from fastmcp import Client

from marketmind.config import AgentConfig
from marketmind.config import AuditConfig


@pytest.fixture()
async def mcp_client(tmp_path):
    """Yield a FastMCP Client wired to a new MarketMind orchestrator."""
    from marketmind.server import configure
    from marketmind.server import mcp
    from marketmind.server import shutdown

    await configure(
        agent_config=AgentConfig(random_seed=7, delivery_success_rate=1.0),
        audit_config=AuditConfig(file_path=str(tmp_path / "audit.jsonl")),
    )

    async with Client(mcp) as client:
        yield client

    await shutdown()
