"""Consolidation pipeline for one agent's tiered memory.

Runs five steps in order: promote important conversation contexts to
customer profiles, extract learning patterns from episodic outcomes,
fold recent contextual learnings into semantic knowledge, link similar
knowledge nodes, and decay stale patterns and nodes.

Each step is best-effort: a failure is logged and recorded in the run
result, and the remaining steps still run.  The caller must hold every
tier lock for the duration of ``run``.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime

from pydantic import ValidationError

from marketmind.audit.schemas import AuditEvent
from marketmind.audit.schemas import AuditEventType
from marketmind.audit.store import AuditLogger
from marketmind.config import MemoryConfig
from marketmind.engine.concepts import concept_similarity
from marketmind.engine.concepts import connected
from marketmind.engine.concepts import node_confidence
from marketmind.engine.concepts import node_id
from marketmind.engine.concepts import node_last_updated
from marketmind.engine.concepts import prune_dangling
from marketmind.engine.concepts import with_payload
from marketmind.memory.schemas import age_in_days
from marketmind.memory.schemas import as_datetime
from marketmind.memory.schemas import ContextMessage
from marketmind.memory.schemas import CustomerProfile
from marketmind.memory.schemas import Interaction
from marketmind.memory.schemas import InteractionOutcome
from marketmind.memory.schemas import InteractionType
from marketmind.memory.schemas import KnowledgeNode
from marketmind.memory.schemas import LearningPattern
from marketmind.memory.schemas import MemoryRecord
from marketmind.memory.schemas import Relationship
from marketmind.memory.schemas import RelationshipType
from marketmind.memory.schemas import SUCCESS_OUTCOMES
from marketmind.memory.schemas import utcnow
from marketmind.memory.tiers import TieredStore

logger = logging.getLogger(__name__)

_PROMOTION_PRIORITY = 7
_PROMOTION_MESSAGE_COUNT = 10


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass
class ConsolidationRunResult:
    """Summary of a single consolidation run."""

    run_id: str
    contexts_promoted: int = 0
    patterns_created: int = 0
    patterns_updated: int = 0
    knowledge_created: int = 0
    knowledge_reinforced: int = 0
    relationships_pruned: int = 0
    relationships_created: int = 0
    patterns_decayed: int = 0
    patterns_removed: int = 0
    knowledge_decayed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "run_id": self.run_id,
            "contexts_promoted": self.contexts_promoted,
            "patterns_created": self.patterns_created,
            "patterns_updated": self.patterns_updated,
            "knowledge_created": self.knowledge_created,
            "knowledge_reinforced": self.knowledge_reinforced,
            "relationships_pruned": self.relationships_pruned,
            "relationships_created": self.relationships_created,
            "patterns_decayed": self.patterns_decayed,
            "patterns_removed": self.patterns_removed,
            "knowledge_decayed": self.knowledge_decayed,
            "errors": list(self.errors),
        }


# ---------------------------------------------------------------------------
# Pattern aggregation
# ---------------------------------------------------------------------------


@dataclass
class _PatternTally:
    count: int = 0
    success_count: int = 0
    contexts: list[str] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        return self.success_count / self.count if self.count else 0.0


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class Consolidator:
    """Turns short-lived and episodic memories into durable knowledge."""

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

    async def run(self, store: TieredStore) -> ConsolidationRunResult:
        result = ConsolidationRunResult(run_id=uuid.uuid4().hex)
        logger.info("Starting memory consolidation for agent %s", store.owner_id)

        steps: list[tuple[str, Callable[[TieredStore, ConsolidationRunResult], None]]] = [
            ("promote_contexts", self._promote_contexts),
            ("extract_patterns", self._extract_patterns),
            ("update_semantic_knowledge", self._update_semantic_knowledge),
            ("link_concepts", self._link_concepts),
            ("apply_decay", self._apply_decay),
        ]
        for name, step in steps:
            try:
                step(store, result)
            except Exception as exc:
                logger.exception(
                    "Consolidation step %s failed for agent %s", name, store.owner_id
                )
                result.errors.append(f"{name}: {exc}")

        logger.info(
            "Memory consolidation completed for agent %s (errors=%d)",
            store.owner_id,
            len(result.errors),
        )
        if self._audit is not None:
            await self._audit.log(
                AuditEvent(
                    event_type=AuditEventType.CONSOLIDATION_RUN,
                    agent_id=store.owner_id,
                    payload={
                        **result.to_dict(),
                        "error_count": len(result.errors),
                    },
                )
            )
        return result

    # ------------------------------------------------------------------
    # 1. Short-term -> long-term promotion
    # ------------------------------------------------------------------

    def _should_promote(self, record: MemoryRecord) -> bool:
        priority = record.payload.get("priority")
        messages = record.payload.get("messages")
        if not isinstance(messages, list):
            messages = []
        return (
            _is_number(priority) and priority > _PROMOTION_PRIORITY
        ) or len(messages) > _PROMOTION_MESSAGE_COUNT

    def _promote_contexts(self, store: TieredStore, result: ConsolidationRunResult) -> None:
        remaining: list[MemoryRecord] = []
        promoted: list[MemoryRecord] = []
        for context in store.short_term.current_context:
            if not self._should_promote(context):
                remaining.append(context)
                continue
            try:
                promoted.append(self._profile_from_context(context, store.owner_id))
            except ValidationError as exc:
                # Only the malformed context stays behind.
                logger.warning(
                    "Cannot promote context %s for agent %s: %s", context.id, store.owner_id, exc
                )
                result.errors.append(f"promote_contexts: {context.id}: {exc}")
                remaining.append(context)

        store.long_term.customer_profiles.extend(promoted)
        store.short_term.current_context = remaining
        result.contexts_promoted += len(promoted)

    def _profile_from_context(self, context: MemoryRecord, owner_id: str) -> MemoryRecord:
        raw_lead_id = context.payload.get("lead_id")
        lead_id = str(raw_lead_id) if raw_lead_id is not None else None
        history = []
        messages = context.payload.get("messages")
        for raw in messages if isinstance(messages, list) else []:
            if not isinstance(raw, dict):
                raw = {"content": str(raw)}
            message = ContextMessage.model_validate(raw)
            history.append(
                Interaction(
                    id=message.id,
                    customer_id=lead_id,
                    agent_id=owner_id,
                    type=InteractionType.chat,
                    content=message.content,
                    outcome=InteractionOutcome.neutral,
                    sentiment=0.0,
                    timestamp=message.timestamp,
                    metadata=message.metadata,
                )
            )
        profile = CustomerProfile(
            id=lead_id,
            interaction_history=history,
            last_engagement=self._clock(),
        )
        return MemoryRecord(
            owner_agent_id=owner_id,
            record_type="customer_profile",
            timestamp=self._clock(),
            payload=profile.to_payload(),
        )

    # ------------------------------------------------------------------
    # 2. Pattern extraction
    # ------------------------------------------------------------------

    def _extract_patterns(self, store: TieredStore, result: ConsolidationRunResult) -> None:
        tallies: dict[str, _PatternTally] = {}
        for record in store.episodic.successful_interactions:
            key = f"{record.payload.get('type')}_{record.payload.get('outcome')}"
            tally = tallies.setdefault(key, _PatternTally())
            tally.count += 1
            if record.payload.get("outcome") in SUCCESS_OUTCOMES:
                tally.success_count += 1
            tally.contexts.append(
                json.dumps(record.payload.get("metadata") or {}, sort_keys=True, default=str)
            )
        for key, tally in tallies.items():
            if tally.count >= self._config.interaction_pattern_min_occurrences:
                self._upsert_pattern(store, key, tally, tally.contexts, result)

        decisions: dict[str, _PatternTally] = {}
        impacts: dict[str, list[float]] = {}
        for record in store.episodic.decision_outcomes:
            key = record.payload.get("decision") or record.payload.get("action_type")
            if not key:
                continue
            tally = decisions.setdefault(str(key), _PatternTally())
            tally.count += 1
            impact = record.payload.get("impact")
            if record.payload.get("success") or (_is_number(impact) and impact > 0):
                tally.success_count += 1
                impacts.setdefault(str(key), []).append(
                    float(impact) if _is_number(impact) and impact else 1.0
                )
        for key, tally in decisions.items():
            if tally.count < self._config.decision_pattern_min_occurrences:
                continue
            samples = impacts.get(key, [])
            average = sum(samples) / len(samples) if samples else 0.0
            self._upsert_pattern(
                store, f"decision_{key}", tally, [f"average_impact:{average}"], result
            )

    def _upsert_pattern(
        self,
        store: TieredStore,
        key: str,
        tally: _PatternTally,
        context: list[str],
        result: ConsolidationRunResult,
    ) -> None:
        """Insert a pattern, or refresh an existing one whose counts moved.

        A pattern whose application count is unchanged is left alone so
        that its ``last_used`` keeps ageing and decay can apply.
        """
        patterns = store.long_term.learning_patterns
        for index, record in enumerate(patterns):
            if record.payload.get("pattern") != key:
                continue
            if record.payload.get("applications") == tally.count:
                return
            patterns[index] = with_payload(
                record,
                confidence=tally.success_rate,
                applications=tally.count,
                success_rate=tally.success_rate,
                last_used=self._clock().isoformat(),
                context=context,
            )
            result.patterns_updated += 1
            return

        pattern = LearningPattern(
            pattern=key,
            confidence=tally.success_rate,
            applications=tally.count,
            success_rate=tally.success_rate,
            last_used=self._clock(),
            context=context,
        )
        patterns.append(
            MemoryRecord(
                owner_agent_id=store.owner_id,
                record_type="learning_pattern",
                timestamp=self._clock(),
                payload=pattern.to_payload(),
            )
        )
        result.patterns_created += 1

    # ------------------------------------------------------------------
    # 3. Semantic knowledge update
    # ------------------------------------------------------------------

    def _update_semantic_knowledge(
        self, store: TieredStore, result: ConsolidationRunResult
    ) -> None:
        now = self._clock()
        nodes = store.semantic.domain_knowledge
        for learning in store.episodic.contextual_learnings:
            learned_at = as_datetime(learning.payload.get("timestamp"), learning.timestamp)
            if age_in_days(learned_at, now) >= self._config.learning_window_days:
                continue
            concept = learning.payload.get("context")
            if not concept:
                continue

            index = next(
                (i for i, node in enumerate(nodes) if node.payload.get("concept") == concept),
                None,
            )
            if index is not None:
                nodes[index] = with_payload(
                    nodes[index],
                    confidence=min(
                        node_confidence(nodes[index]) + self._config.knowledge_confidence_step,
                        1.0,
                    ),
                    last_updated=now.isoformat(),
                )
                result.knowledge_reinforced += 1
                continue

            confidence = learning.payload.get("confidence")
            node = KnowledgeNode(
                concept=str(concept),
                description=str(learning.payload.get("learning") or ""),
                confidence=min(max(float(confidence), 0.0), 1.0)
                if _is_number(confidence)
                else 0.5,
                last_updated=now,
            )
            nodes.append(
                MemoryRecord(
                    owner_agent_id=store.owner_id,
                    record_type="domain_knowledge",
                    timestamp=now,
                    payload=node.to_payload(),
                )
            )
            result.knowledge_created += 1

    # ------------------------------------------------------------------
    # 4. Concept linking
    # ------------------------------------------------------------------

    def _link_concepts(self, store: TieredStore, result: ConsolidationRunResult) -> None:
        semantic = store.semantic
        known_ids = {node_id(node) for node in semantic.domain_knowledge}
        kept = prune_dangling(semantic.relationships, known_ids)
        result.relationships_pruned += len(semantic.relationships) - len(kept)
        semantic.relationships = kept

        nodes = semantic.domain_knowledge
        now = self._clock()
        for i in range(len(nodes)):
            for j in range(i + 1, len(nodes)):
                similarity = concept_similarity(nodes[i], nodes[j])
                if similarity <= self._config.link_similarity_threshold:
                    continue
                source, target = node_id(nodes[i]), node_id(nodes[j])
                if connected(semantic.relationships, source, target):
                    continue
                relationship = Relationship(
                    source=source,
                    target=target,
                    type=RelationshipType.related_to,
                    strength=similarity,
                    metadata={"created_at": now.isoformat(), "agent_id": store.owner_id},
                )
                semantic.relationships.append(
                    MemoryRecord(
                        owner_agent_id=store.owner_id,
                        record_type="relationship",
                        timestamp=now,
                        payload=relationship.to_payload(),
                    )
                )
                result.relationships_created += 1

    # ------------------------------------------------------------------
    # 5. Decay
    # ------------------------------------------------------------------

    def _apply_decay(self, store: TieredStore, result: ConsolidationRunResult) -> None:
        now = self._clock()
        factor = self._config.decay_factor

        surviving: list[MemoryRecord] = []
        for record in store.long_term.learning_patterns:
            confidence = node_confidence(record)
            last_used = as_datetime(record.payload.get("last_used"), record.timestamp)
            if age_in_days(last_used, now) > self._config.pattern_decay_after_days:
                confidence *= factor
                record = with_payload(record, confidence=confidence)
                result.patterns_decayed += 1
            if confidence <= self._config.pattern_confidence_floor:
                result.patterns_removed += 1
                continue
            surviving.append(record)
        store.long_term.learning_patterns = surviving

        nodes = store.semantic.domain_knowledge
        for index, node in enumerate(nodes):
            if age_in_days(node_last_updated(node), now) > self._config.knowledge_decay_after_days:
                nodes[index] = with_payload(node, confidence=node_confidence(node) * factor)
                result.knowledge_decayed += 1
