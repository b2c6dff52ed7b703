"""Per-agent adaptive memory facade.

``AdaptiveMemory`` owns one ``TieredStore`` and wires the router, ranker,
capacity enforcer and the maintenance engine around it.  Every agent
constructs its own instance; nothing here is process-global.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from marketmind.audit.store import AuditLogger
from marketmind.config import MemoryConfig
from marketmind.engine.compression import CompressionRunResult
from marketmind.engine.compression import Compressor
from marketmind.engine.consolidation import ConsolidationRunResult
from marketmind.engine.consolidation import Consolidator
from marketmind.memory.capacity import CapacityEnforcer
from marketmind.memory.ranking import RelevanceRanker
from marketmind.memory.routing import MemoryRouter
from marketmind.memory.schemas import MemoryRecord
from marketmind.memory.schemas import MemoryStats
from marketmind.memory.schemas import MemoryTier
from marketmind.memory.schemas import utcnow
from marketmind.memory.tiers import TieredStore
from marketmind.observability import track_latency

logger = logging.getLogger(__name__)


def _as_payload(payload: Mapping[str, Any] | BaseModel | None) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    return dict(payload)


class AdaptiveMemory:
    """Four-tier memory for one agent, safe under concurrent coroutines."""

    def __init__(
        self,
        agent_id: str,
        config: MemoryConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.agent_id = agent_id
        self.config = config or MemoryConfig()
        self._clock = clock or utcnow
        self._store = TieredStore.initialize(agent_id)
        self._router = MemoryRouter()
        self._ranker = RelevanceRanker(agent_id, self.config, clock=self._clock)
        self._capacity = CapacityEnforcer(self.config)
        self._consolidator = Consolidator(
            self.config, clock=self._clock, audit_logger=audit_logger
        )
        self._compressor = Compressor(
            self.config, clock=self._clock, audit_logger=audit_logger
        )
        self._maintenance_lock = asyncio.Lock()

    # -- write --

    async def store(
        self,
        tier: MemoryTier | str,
        record_type: str,
        payload: Mapping[str, Any] | BaseModel | None = None,
        *,
        agent_id: str | None = None,
    ) -> MemoryRecord | None:
        """Store one record and return it, or ``None`` if its tag was dropped.

        *agent_id* overrides the owner stamp; used when another agent's
        knowledge is copied in.
        """
        tier = MemoryTier.parse(tier)
        record = MemoryRecord(
            owner_agent_id=agent_id or self.agent_id,
            record_type=record_type,
            timestamp=self._clock(),
            payload=_as_payload(payload),
        )
        with track_latency("memory.store"):
            async with self._store.lock(tier):
                placed = self._router.route_write(self._store, tier, record)
                if tier is MemoryTier.short_term:
                    self._capacity.enforce(self._store.short_term)

        # Any write can be the one that finds short-term over the threshold.
        if self._store.short_term.occupancy() > self.config.consolidation_threshold:
            await self._auto_consolidate()
        return record if placed else None

    async def _auto_consolidate(self) -> None:
        if self._maintenance_lock.locked():
            logger.debug("Consolidation already running for %s, skipping", self.agent_id)
            return
        await self.consolidate()

    # -- read --

    async def retrieve(
        self, tier: MemoryTier | str, query: Mapping[str, Any] | None = None
    ) -> list[MemoryRecord]:
        """Ranked records of *tier* matching *query*, best first."""
        tier = MemoryTier.parse(tier)
        query = dict(query or {})
        with track_latency("memory.retrieve"):
            async with self._store.lock(tier):
                candidates = [
                    record.model_copy(deep=True)
                    for record in self._router.collect(self._store, tier, query)
                ]
            return self._ranker.rank(candidates, query)

    # -- maintenance --

    async def consolidate(self) -> ConsolidationRunResult:
        with track_latency("memory.consolidate"):
            async with self._maintenance_lock:
                async with self._store.lock_all():
                    return await self._consolidator.run(self._store)

    async def compress(self) -> CompressionRunResult:
        with track_latency("memory.compress"):
            async with self._maintenance_lock:
                async with self._store.lock_all():
                    return await self._compressor.run(self._store)

    # -- introspection --

    def get_stats(self) -> MemoryStats:
        return self._store.counts()

    async def snapshot(self) -> dict[str, dict[str, object]]:
        async with self._store.lock_all():
            return self._store.snapshot()

    async def performance_metrics(self, agent_id: str | None = None) -> list[MemoryRecord]:
        """Deep copies of every long-term performance metric, unranked and uncapped.

        With *agent_id*, only metrics attributed to that agent (payload
        ``agent_id``, else the record owner) are returned.
        """
        async with self._store.lock(MemoryTier.long_term):
            return [
                record.model_copy(deep=True)
                for record in self._store.long_term.performance_metrics
                if agent_id is None
                or (record.payload.get("agent_id") or record.owner_agent_id) == agent_id
            ]

    async def semantic_records(self) -> list[MemoryRecord]:
        """Deep copies of every semantic record, in collection order."""
        async with self._store.lock(MemoryTier.semantic):
            semantic = self._store.semantic
            return [
                record.model_copy(deep=True)
                for record in (
                    *semantic.domain_knowledge,
                    *semantic.relationships,
                    *semantic.concepts,
                    *semantic.rules,
                )
            ]
