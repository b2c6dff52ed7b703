"""Relevance scoring for retrieval results."""

from __future__ import annotations

import math
from collections.abc import Callable
from collections.abc import Mapping
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from marketmind.config import MemoryConfig
from marketmind.memory.schemas import age_in_days
from marketmind.memory.schemas import MemoryRecord
from marketmind.memory.schemas import utcnow

_BASE_SCORE = 0.5
_TYPE_MATCH_BONUS = 0.3
_RECENCY_WEIGHT = 0.2
_OWNER_BONUS = 0.1
_FIELD_MATCH_BONUS = 0.1


class RelevanceRanker:
    """Scores candidate records against a query for one agent.

    The score is a sum of independent bonuses clamped to 1.0.  Field
    matches are not capped individually, so a query with many equal fields
    can saturate the score on its own.
    """

    def __init__(
        self,
        agent_id: str,
        config: MemoryConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._agent_id = agent_id
        self._config = config or MemoryConfig()
        self._clock = clock or utcnow

    def score(self, record: MemoryRecord, query: Mapping[str, Any]) -> float:
        value = _BASE_SCORE

        if record.record_type == query.get("type"):
            value += _TYPE_MATCH_BONUS

        days = max(0.0, age_in_days(record.timestamp, self._clock()))
        value += _RECENCY_WEIGHT * math.exp(-days / self._config.recency_window_days)

        if record.owner_agent_id == self._agent_id:
            value += _OWNER_BONUS

        for key, expected in query.items():
            if key in record.payload and record.payload[key] == expected:
                value += _FIELD_MATCH_BONUS

        return min(value, 1.0)

    def rank(
        self, candidates: Sequence[MemoryRecord], query: Mapping[str, Any]
    ) -> list[MemoryRecord]:
        """Score, sort descending (stable) and truncate to the retrieval limit."""
        scored = [
            record.model_copy(update={"relevance_score": self.score(record, query)})
            for record in candidates
        ]
        scored.sort(key=lambda r: r.relevance_score, reverse=True)
        return scored[: self._config.retrieval_limit]
