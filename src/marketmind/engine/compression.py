"""On-demand memory compression.

Folds large groups of similar episodic interactions into contextual
learning summaries, merges near-duplicate knowledge nodes and cleans up
the relationship list.  The caller must hold every tier lock.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime

from marketmind.audit.schemas import AuditEvent
from marketmind.audit.schemas import AuditEventType
from marketmind.audit.store import AuditLogger
from marketmind.config import MemoryConfig
from marketmind.engine.concepts import concept_similarity
from marketmind.engine.concepts import dedupe_relationships
from marketmind.engine.concepts import node_confidence
from marketmind.engine.concepts import node_id
from marketmind.engine.concepts import prune_dangling
from marketmind.engine.concepts import with_payload
from marketmind.memory.schemas import as_datetime
from marketmind.memory.schemas import ContextualLearning
from marketmind.memory.schemas import InteractionSummary
from marketmind.memory.schemas import MemoryRecord
from marketmind.memory.schemas import utcnow
from marketmind.memory.tiers import TieredStore

logger = logging.getLogger(__name__)


@dataclass
class CompressionRunResult:
    """Summary of a single compression run."""

    run_id: str
    interactions_summarized: int = 0
    summaries_created: int = 0
    concepts_merged: int = 0
    relationships_removed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "interactions_summarized": self.interactions_summarized,
            "summaries_created": self.summaries_created,
            "concepts_merged": self.concepts_merged,
            "relationships_removed": self.relationships_removed,
            "errors": list(self.errors),
        }


def summarize_interactions(records: list[MemoryRecord]) -> InteractionSummary:
    """Digest a non-empty group of interactions sharing type and outcome."""
    first = records[0].payload
    sentiments = [
        float(r.payload.get("sentiment") or 0.0) for r in records
    ]
    instants = [as_datetime(r.payload.get("timestamp"), r.timestamp) for r in records]
    return InteractionSummary(
        pattern=f"{first.get('type')} interactions with {first.get('outcome')} outcome",
        confidence=min(len(records) / 10, 0.9),
        average_sentiment=sum(sentiments) / len(sentiments),
        frequency=len(records),
        timespan_start=min(instants),
        timespan_end=max(instants),
    )


class Compressor:
    """Shrinks episodic and semantic memory without losing aggregates."""

    def __init__(
        self,
        config: MemoryConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._config = config or MemoryConfig()
        self._clock = clock or utcnow
        self._audit = audit_logger

    async def run(self, store: TieredStore) -> CompressionRunResult:
        result = CompressionRunResult(run_id=uuid.uuid4().hex)

        for name, step in (
            ("summarize_interactions", self._summarize_interactions),
            ("merge_concepts", self._merge_concepts),
            ("cleanup_relationships", self._cleanup_relationships),
        ):
            try:
                step(store, result)
            except Exception as exc:
                logger.exception("Compression step %s failed for agent %s", name, store.owner_id)
                result.errors.append(f"{name}: {exc}")

        logger.info(
            "Compressed memory for agent %s: %d interactions summarized, %d concepts merged",
            store.owner_id,
            result.interactions_summarized,
            result.concepts_merged,
        )
        if self._audit is not None:
            await self._audit.log(
                AuditEvent(
                    event_type=AuditEventType.COMPRESSION_RUN,
                    agent_id=store.owner_id,
                    payload=result.to_dict(),
                )
            )
        return result

    def _summarize_interactions(self, store: TieredStore, result: CompressionRunResult) -> None:
        episodic = store.episodic
        groups: dict[str, list[MemoryRecord]] = {}
        for record in episodic.successful_interactions:
            key = f"{record.payload.get('type')}_{record.payload.get('outcome')}"
            groups.setdefault(key, []).append(record)

        folded: set[str] = set()
        now = self._clock()
        for key, group in groups.items():
            if len(group) <= self._config.compression_min_group_size:
                continue
            summary = summarize_interactions(group)
            learning = ContextualLearning(
                context=key,
                learning=summary.pattern,
                confidence=summary.confidence,
                applications=len(group),
                timestamp=now,
            )
            payload = learning.to_payload()
            payload["summary"] = summary.model_dump(mode="json")
            episodic.contextual_learnings.append(
                MemoryRecord(
                    owner_agent_id=store.owner_id,
                    record_type="contextual_learning",
                    timestamp=now,
                    payload=payload,
                )
            )
            folded.update(r.id for r in group)
            result.summaries_created += 1
            result.interactions_summarized += len(group)

        if folded:
            episodic.successful_interactions = [
                r for r in episodic.successful_interactions if r.id not in folded
            ]

    def _merge_concepts(self, store: TieredStore, result: CompressionRunResult) -> None:
        nodes = list(store.semantic.domain_knowledge)
        pairs = [
            (i, j)
            for i in range(len(nodes))
            for j in range(i + 1, len(nodes))
            if concept_similarity(nodes[i], nodes[j]) > self._config.merge_similarity_threshold
        ]

        removed: set[int] = set()
        for i, j in pairs:
            if i in removed or j in removed:
                continue
            # Ties keep the earlier node.
            if node_confidence(nodes[i]) >= node_confidence(nodes[j]):
                target, source = i, j
            else:
                target, source = j, i
            kept, absorbed = nodes[target], nodes[source]
            relationships = list(kept.payload.get("relationships") or [])
            for rel_id in absorbed.payload.get("relationships") or []:
                if rel_id not in relationships:
                    relationships.append(rel_id)
            nodes[target] = with_payload(
                kept,
                description=f"{kept.payload.get('description') or ''} "
                f"{absorbed.payload.get('description') or ''}".strip(),
                confidence=max(node_confidence(kept), node_confidence(absorbed)),
                relationships=relationships,
            )
            removed.add(source)
            result.concepts_merged += 1
            logger.debug(
                "Merged knowledge node %s into %s", node_id(absorbed), node_id(kept)
            )

        store.semantic.domain_knowledge = [
            node for index, node in enumerate(nodes) if index not in removed
        ]

    def _cleanup_relationships(self, store: TieredStore, result: CompressionRunResult) -> None:
        semantic = store.semantic
        before = len(semantic.relationships)
        known_ids = {node_id(node) for node in semantic.domain_knowledge}
        semantic.relationships = dedupe_relationships(
            prune_dangling(semantic.relationships, known_ids)
        )
        result.relationships_removed += before - len(semantic.relationships)
