"""Tiered in-memory store for one agent identity.

Holds the four tiers' sub-collections and one ``asyncio.Lock`` per tier.
The store has no type logic: placement is the router's job, trimming is
the capacity enforcer's.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextlib import AsyncExitStack
from dataclasses import dataclass
from dataclasses import field

from marketmind.memory.schemas import MemoryRecord
from marketmind.memory.schemas import MemoryStats
from marketmind.memory.schemas import MemoryTier


@dataclass
class ShortTermMemory:
    current_context: list[MemoryRecord] = field(default_factory=list)
    active_leads: list[MemoryRecord] = field(default_factory=list)
    recent_actions: list[MemoryRecord] = field(default_factory=list)
    # One slot per ad-hoc tag; a later write under the same tag replaces it.
    working_memory: dict[str, MemoryRecord] = field(default_factory=dict)

    def occupancy(self) -> int:
        """Items counted against the consolidation threshold."""
        return (
            len(self.current_context)
            + len(self.active_leads)
            + len(self.recent_actions)
        )


@dataclass
class LongTermMemory:
    customer_profiles: list[MemoryRecord] = field(default_factory=list)
    campaign_history: list[MemoryRecord] = field(default_factory=list)
    performance_metrics: list[MemoryRecord] = field(default_factory=list)
    learning_patterns: list[MemoryRecord] = field(default_factory=list)

    def occupancy(self) -> int:
        return (
            len(self.customer_profiles)
            + len(self.campaign_history)
            + len(self.performance_metrics)
            + len(self.learning_patterns)
        )


@dataclass
class EpisodicMemory:
    successful_interactions: list[MemoryRecord] = field(default_factory=list)
    problem_resolutions: list[MemoryRecord] = field(default_factory=list)
    decision_outcomes: list[MemoryRecord] = field(default_factory=list)
    contextual_learnings: list[MemoryRecord] = field(default_factory=list)

    def occupancy(self) -> int:
        return (
            len(self.successful_interactions)
            + len(self.problem_resolutions)
            + len(self.decision_outcomes)
            + len(self.contextual_learnings)
        )


@dataclass
class SemanticMemory:
    domain_knowledge: list[MemoryRecord] = field(default_factory=list)
    relationships: list[MemoryRecord] = field(default_factory=list)
    concepts: list[MemoryRecord] = field(default_factory=list)
    rules: list[MemoryRecord] = field(default_factory=list)

    def occupancy(self) -> int:
        return (
            len(self.domain_knowledge)
            + len(self.relationships)
            + len(self.concepts)
            + len(self.rules)
        )


# Fixed acquisition order for multi-tier operations.
_LOCK_ORDER = (
    MemoryTier.short_term,
    MemoryTier.long_term,
    MemoryTier.episodic,
    MemoryTier.semantic,
)


class TieredStore:
    """All sub-collections for one owner, each tier guarded by its own lock."""

    def __init__(self, owner_id: str) -> None:
        self.owner_id = owner_id
        self.short_term = ShortTermMemory()
        self.long_term = LongTermMemory()
        self.episodic = EpisodicMemory()
        self.semantic = SemanticMemory()
        self._locks = {tier: asyncio.Lock() for tier in _LOCK_ORDER}

    @classmethod
    def initialize(cls, owner_id: str) -> TieredStore:
        return cls(owner_id)

    def tier(
        self, tier: MemoryTier
    ) -> ShortTermMemory | LongTermMemory | EpisodicMemory | SemanticMemory:
        return {
            MemoryTier.short_term: self.short_term,
            MemoryTier.long_term: self.long_term,
            MemoryTier.episodic: self.episodic,
            MemoryTier.semantic: self.semantic,
        }[tier]

    # -- locking --

    @asynccontextmanager
    async def lock(self, tier: MemoryTier) -> AsyncIterator[None]:
        """Hold the exclusive lock of a single tier."""
        async with self._locks[tier]:
            yield

    @asynccontextmanager
    async def lock_all(self) -> AsyncIterator[None]:
        """Hold every tier lock, acquired in fixed order to avoid deadlock."""
        async with AsyncExitStack() as stack:
            for tier in _LOCK_ORDER:
                await stack.enter_async_context(self._locks[tier])
            yield

    # -- introspection --

    def counts(self) -> MemoryStats:
        return MemoryStats(
            short_term_items=self.short_term.occupancy(),
            long_term_items=self.long_term.occupancy(),
            episodic_items=self.episodic.occupancy(),
            semantic_items=self.semantic.occupancy(),
        )

    def snapshot(self) -> dict[str, dict[str, object]]:
        """Deep JSON-ready copy of every tier, for dashboards."""

        def dump(records: list[MemoryRecord]) -> list[dict]:
            return [r.model_dump(mode="json") for r in records]

        st = self.short_term
        lt = self.long_term
        ep = self.episodic
        se = self.semantic
        return {
            MemoryTier.short_term.value: {
                "current_context": dump(st.current_context),
                "active_leads": dump(st.active_leads),
                "recent_actions": dump(st.recent_actions),
                "working_memory": {
                    tag: record.model_dump(mode="json")
                    for tag, record in st.working_memory.items()
                },
            },
            MemoryTier.long_term.value: {
                "customer_profiles": dump(lt.customer_profiles),
                "campaign_history": dump(lt.campaign_history),
                "performance_metrics": dump(lt.performance_metrics),
                "learning_patterns": dump(lt.learning_patterns),
            },
            MemoryTier.episodic.value: {
                "successful_interactions": dump(ep.successful_interactions),
                "problem_resolutions": dump(ep.problem_resolutions),
                "decision_outcomes": dump(ep.decision_outcomes),
                "contextual_learnings": dump(ep.contextual_learnings),
            },
            MemoryTier.semantic.value: {
                "domain_knowledge": dump(se.domain_knowledge),
                "relationships": dump(se.relationships),
                "concepts": dump(se.concepts),
                "rules": dump(se.rules),
            },
        }
