"""Unit tests for relevance ranking."""

from __future__ import annotations

import math
from datetime import timedelta

import pytest

from marketmind.config import MemoryConfig
from marketmind.memory.ranking import RelevanceRanker
from marketmind.memory.schemas import MemoryRecord


def _record(clock, *, record_type="campaign", owner="agent-1", age_days=0.0, **payload):
    return MemoryRecord(
        owner_agent_id=owner,
        record_type=record_type,
        timestamp=clock() - timedelta(days=age_days),
        payload=payload,
    )


class TestScore:
    def test_fresh_own_record_with_type_match(self, clock):
        ranker = RelevanceRanker("agent-1", clock=clock)
        score = ranker.score(_record(clock), {"type": "campaign"})
        # 0.5 base + 0.3 type + 0.2 recency + 0.1 owner, clamped
        assert score == 1.0

    def test_components_without_clamp(self, clock):
        ranker = RelevanceRanker("agent-1", clock=clock)
        record = _record(clock, owner="someone-else", age_days=30)
        score = ranker.score(record, {"type": "other"})
        assert score == pytest.approx(0.5 + 0.2 * math.exp(-1))

    def test_recency_decays_with_age(self, clock):
        ranker = RelevanceRanker("agent-1", clock=clock)
        fresh = ranker.score(_record(clock, owner="x", age_days=1), {})
        stale = ranker.score(_record(clock, owner="x", age_days=90), {})
        assert fresh > stale

    def test_future_timestamp_counts_as_fresh(self, clock):
        ranker = RelevanceRanker("agent-1", clock=clock)
        record = _record(clock, owner="x", age_days=-5)
        assert ranker.score(record, {}) == pytest.approx(0.7)

    def test_field_matches_are_unbounded_before_clamp(self, clock):
        ranker = RelevanceRanker("agent-1", clock=clock)
        payload = {f"k{i}": i for i in range(8)}
        record = _record(clock, owner="x", age_days=3650, **payload)
        # Eight equal fields alone push a stale foreign record to the cap.
        assert ranker.score(record, dict(payload)) == 1.0

    def test_type_key_matches_payload_field_too(self, clock):
        ranker = RelevanceRanker("agent-1", clock=clock)
        record = _record(clock, record_type="campaign", owner="x", age_days=3650, type="email")
        score = ranker.score(record, {"type": "email"})
        assert score == pytest.approx(0.5 + 0.1, abs=1e-6)


class TestRank:
    def test_sorted_descending_and_annotated(self, clock):
        ranker = RelevanceRanker("agent-1", clock=clock)
        old = _record(clock, owner="x", age_days=60, n="old")
        new = _record(clock, owner="x", age_days=0, n="new")

        ranked = ranker.rank([old, new], {})
        assert [r.payload["n"] for r in ranked] == ["new", "old"]
        assert all(r.relevance_score is not None for r in ranked)
        assert old.relevance_score is None

    def test_ties_keep_candidate_order(self, clock):
        ranker = RelevanceRanker("agent-1", clock=clock)
        records = [_record(clock, n=i) for i in range(5)]
        ranked = ranker.rank(records, {"type": "campaign"})
        assert [r.payload["n"] for r in ranked] == [0, 1, 2, 3, 4]

    def test_deterministic_for_fixed_clock(self, clock):
        ranker = RelevanceRanker("agent-1", clock=clock)
        records = [_record(clock, owner="x", age_days=i, n=i) for i in (4, 1, 9, 2)]
        first = ranker.rank(records, {"n": 9})
        second = ranker.rank(records, {"n": 9})
        assert [r.id for r in first] == [r.id for r in second]
        assert first[0].payload["n"] == 9

    def test_truncates_to_retrieval_limit(self, clock):
        ranker = RelevanceRanker("agent-1", MemoryConfig(retrieval_limit=3), clock=clock)
        ranked = ranker.rank([_record(clock, n=i) for i in range(10)], {})
        assert len(ranked) == 3
