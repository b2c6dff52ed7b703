"""Unit tests for memory compression."""

from __future__ import annotations

from datetime import timedelta

import pytest

from marketmind.engine import Compressor
from marketmind.engine.compression import summarize_interactions
from marketmind.engine.concepts import node_id
from marketmind.engine.concepts import relationship_endpoints
from marketmind.memory.schemas import Interaction
from marketmind.memory.schemas import KnowledgeNode
from marketmind.memory.schemas import MemoryRecord
from marketmind.memory.schemas import Relationship
from marketmind.memory.tiers import TieredStore

OWNER = "agent-1"


def _record(clock, record_type: str, payload: dict) -> MemoryRecord:
    return MemoryRecord(
        owner_agent_id=OWNER, record_type=record_type, timestamp=clock(), payload=payload
    )


def _interaction(clock, *, outcome="positive", sentiment=0.5, minutes=0) -> MemoryRecord:
    payload = Interaction(
        customer_id="lead_1",
        outcome=outcome,
        sentiment=sentiment,
        timestamp=clock() + timedelta(minutes=minutes),
    )
    return _record(clock, "interaction", payload.to_payload())


def _node(clock, node_id_: str, concept: str, description: str, confidence: float, **fields):
    payload = KnowledgeNode(
        id=node_id_, concept=concept, description=description, confidence=confidence, **fields
    )
    return _record(clock, "domain_knowledge", payload.to_payload())


def _rel(clock, source: str, target: str, type_: str = "related_to") -> MemoryRecord:
    return _record(clock, "relationship", Relationship(source=source, target=target, type=type_).to_payload())


# ---------------------------------------------------------------------------
# Interaction summaries
# ---------------------------------------------------------------------------


class TestSummarizeInteractions:
    def test_summary_fields(self, clock):
        group = [_interaction(clock, sentiment=s, minutes=i) for i, s in enumerate((0.2, 0.4, 0.6))]
        summary = summarize_interactions(group)

        assert summary.pattern == "email interactions with positive outcome"
        assert summary.frequency == 3
        assert summary.confidence == pytest.approx(0.3)
        assert summary.average_sentiment == pytest.approx(0.4)
        assert summary.timespan_end - summary.timespan_start == timedelta(minutes=2)

    def test_confidence_capped(self, clock):
        group = [_interaction(clock) for _ in range(20)]
        assert summarize_interactions(group).confidence == 0.9


class TestCompressInteractions:
    async def test_large_group_folded_into_learning(self, clock):
        store = TieredStore(OWNER)
        store.episodic.successful_interactions = [_interaction(clock) for _ in range(6)] + [
            _interaction(clock, outcome="negative")
        ]

        result = await Compressor(clock=clock).run(store)

        assert result.summaries_created == 1
        assert result.interactions_summarized == 6
        remaining = store.episodic.successful_interactions
        assert [r.payload["outcome"] for r in remaining] == ["negative"]
        learning = store.episodic.contextual_learnings[0].payload
        assert learning["context"] == "email_positive"
        assert learning["applications"] == 6
        assert learning["summary"]["frequency"] == 6

    async def test_group_at_threshold_is_kept(self, clock):
        store = TieredStore(OWNER)
        store.episodic.successful_interactions = [_interaction(clock) for _ in range(5)]

        result = await Compressor(clock=clock).run(store)

        assert result.summaries_created == 0
        assert len(store.episodic.successful_interactions) == 5


# ---------------------------------------------------------------------------
# Concept merging and relationship integrity
# ---------------------------------------------------------------------------


class TestMergeConcepts:
    async def test_higher_confidence_node_survives(self, clock):
        store = TieredStore(OWNER)
        store.semantic.domain_knowledge = [
            _node(clock, "n1", "lead scoring", "lead scoring", 0.6, relationships=["r1"]),
            _node(clock, "n2", "lead scoring", "lead scoring", 0.9, relationships=["r2"]),
        ]

        result = await Compressor(clock=clock).run(store)

        assert result.concepts_merged == 1
        [survivor] = store.semantic.domain_knowledge
        assert survivor.payload["id"] == "n2"
        assert survivor.payload["confidence"] == 0.9
        assert survivor.payload["description"] == "lead scoring lead scoring"
        assert survivor.payload["relationships"] == ["r2", "r1"]

    async def test_tie_keeps_earlier_node(self, clock):
        store = TieredStore(OWNER)
        store.semantic.domain_knowledge = [
            _node(clock, "n1", "lead scoring", "", 0.5),
            _node(clock, "n2", "lead scoring", "", 0.5),
        ]
        await Compressor(clock=clock).run(store)
        assert [n.payload["id"] for n in store.semantic.domain_knowledge] == ["n1"]

    async def test_dissimilar_nodes_untouched(self, clock):
        store = TieredStore(OWNER)
        store.semantic.domain_knowledge = [
            _node(clock, "n1", "lead scoring", "", 0.5),
            _node(clock, "n2", "budget planning", "", 0.5),
        ]
        result = await Compressor(clock=clock).run(store)
        assert result.concepts_merged == 0
        assert len(store.semantic.domain_knowledge) == 2

    async def test_relationships_reference_existing_nodes_only(self, clock):
        store = TieredStore(OWNER)
        store.semantic.domain_knowledge = [
            _node(clock, "n1", "lead scoring", "", 0.9),
            _node(clock, "n2", "lead scoring", "", 0.4),
            _node(clock, "n3", "budget planning", "", 0.5),
        ]
        store.semantic.relationships = [
            _rel(clock, "n1", "n3"),
            _rel(clock, "n3", "n1"),
            _rel(clock, "n2", "n3"),
            _rel(clock, "n1", "n3", "causes"),
        ]

        result = await Compressor(clock=clock).run(store)

        ids = {node_id(n) for n in store.semantic.domain_knowledge}
        assert ids == {"n1", "n3"}
        for rel in store.semantic.relationships:
            source, target = relationship_endpoints(rel)
            assert source in ids and target in ids
        kinds = sorted(r.payload["type"] for r in store.semantic.relationships)
        assert kinds == ["causes", "related_to"]
        assert result.relationships_removed == 2
