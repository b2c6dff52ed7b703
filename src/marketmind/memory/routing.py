"""Type-tag router between callers and the tiered store.

Writes dispatch on the record-type tag through a fixed table per tier.
Reads are additive: every sub-collection whose predicate the query
satisfies contributes candidates, so one query can pull from several.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from marketmind.memory.schemas import MemoryRecord
from marketmind.memory.schemas import MemoryTier
from marketmind.memory.tiers import TieredStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Write tables (tag -> sub-collection attribute)
# ---------------------------------------------------------------------------

_SHORT_TERM_ROUTES: dict[str, str] = {
    "conversation_context": "current_context",
    "active_lead": "active_leads",
    "processed_lead": "active_leads",
    "recent_action": "recent_actions",
}

_LONG_TERM_ROUTES: dict[str, str] = {
    "customer_profile": "customer_profiles",
    "campaign": "campaign_history",
    "performance_metric": "performance_metrics",
    "learning_pattern": "learning_patterns",
}

_EPISODIC_ROUTES: dict[str, str] = {
    "interaction": "successful_interactions",
    "successful_interaction": "successful_interactions",
    "problem_resolution": "problem_resolutions",
    "decision_outcome": "decision_outcomes",
    "learning_outcome": "decision_outcomes",
    "contextual_learning": "contextual_learnings",
}

_SEMANTIC_ROUTES: dict[str, str] = {
    "domain_knowledge": "domain_knowledge",
    "relationship": "relationships",
    "concept": "concepts",
    "business_rule": "rules",
    "learning_pattern": "rules",
    "optimization_strategy": "rules",
    "engagement_strategy": "rules",
}

WRITE_ROUTES: dict[MemoryTier, dict[str, str]] = {
    MemoryTier.short_term: _SHORT_TERM_ROUTES,
    MemoryTier.long_term: _LONG_TERM_ROUTES,
    MemoryTier.episodic: _EPISODIC_ROUTES,
    MemoryTier.semantic: _SEMANTIC_ROUTES,
}

_DECISION_QUERY_TYPES = frozenset({"decision_outcome", "learning_outcome", "action_log"})
_INTERACTION_QUERY_TYPES = frozenset({"successful_interaction", "interaction"})
_RULE_QUERY_TYPES = frozenset(
    {
        "business_rule",
        "learning_pattern",
        "optimization_strategy",
        "engagement_strategy",
        "categorization_pattern",
        "successful_strategy",
    }
)


def _field_matches(record: MemoryRecord, query: Mapping[str, Any], *pairs: tuple[str, str]) -> bool:
    """True when every ``(query_key, payload_key)`` pair present in the query matches.

    A payload without ``agent_id`` is attributed to the record owner.
    """
    for query_key, payload_key in pairs:
        expected = query.get(query_key)
        if expected is None:
            continue
        actual = record.payload.get(payload_key)
        if actual is None and payload_key == "agent_id":
            actual = record.owner_agent_id
        if actual != expected:
            return False
    return True


class MemoryRouter:
    """Stateless dispatcher between record-type tags and sub-collections."""

    # -- write --

    def route_write(self, store: TieredStore, tier: MemoryTier, record: MemoryRecord) -> bool:
        """Place *record* in its sub-collection.

        Returns ``False`` when the tag is not routable for *tier* and the
        record was dropped.  Unknown short-term tags are never dropped: they
        overwrite the working-memory slot named after the tag.
        """
        destination = WRITE_ROUTES[tier].get(record.record_type)
        if tier is MemoryTier.short_term and destination is None:
            store.short_term.working_memory[record.record_type] = record
            return True
        if destination is None:
            logger.debug(
                "Dropping unroutable record type=%s tier=%s owner=%s",
                record.record_type,
                tier.value,
                store.owner_id,
            )
            return False
        getattr(store.tier(tier), destination).append(record)
        return True

    # -- read --

    def collect(
        self, store: TieredStore, tier: MemoryTier, query: Mapping[str, Any]
    ) -> list[MemoryRecord]:
        """Gather every candidate record the query selects in *tier*."""
        collector = {
            MemoryTier.short_term: self._collect_short_term,
            MemoryTier.long_term: self._collect_long_term,
            MemoryTier.episodic: self._collect_episodic,
            MemoryTier.semantic: self._collect_semantic,
        }[tier]
        return collector(store, query)

    def _collect_short_term(self, store: TieredStore, query: Mapping[str, Any]) -> list[MemoryRecord]:
        st = store.short_term
        qtype = query.get("type")
        results: list[MemoryRecord] = []

        if qtype == "conversation_context":
            results.extend(st.current_context)

        if qtype == "active_lead" or query.get("lead_id"):
            results.extend(
                r for r in st.active_leads if _field_matches(r, query, ("lead_id", "id"))
            )

        if qtype == "recent_action" or query.get("agent_id"):
            results.extend(
                r
                for r in st.recent_actions
                if _field_matches(r, query, ("agent_id", "agent_id"))
            )

        if qtype and qtype in st.working_memory:
            results.append(st.working_memory[qtype])

        return results

    def _collect_long_term(self, store: TieredStore, query: Mapping[str, Any]) -> list[MemoryRecord]:
        lt = store.long_term
        qtype = query.get("type")
        results: list[MemoryRecord] = []

        if qtype == "customer_profile" or query.get("email"):
            results.extend(
                r for r in lt.customer_profiles if _field_matches(r, query, ("email", "email"))
            )

        if qtype == "campaign" or query.get("campaign_id") or query.get("id"):
            results.extend(
                r
                for r in lt.campaign_history
                if _field_matches(
                    r, query, ("campaign_id", "id"), ("id", "id"), ("status", "status")
                )
            )

        if qtype == "performance_metric" or query.get("agent_id"):
            results.extend(
                r
                for r in lt.performance_metrics
                if _field_matches(r, query, ("agent_id", "agent_id"))
            )

        if qtype == "learning_pattern":
            results.extend(lt.learning_patterns)

        return results

    def _collect_episodic(self, store: TieredStore, query: Mapping[str, Any]) -> list[MemoryRecord]:
        ep = store.episodic
        qtype = query.get("type")
        results: list[MemoryRecord] = []

        if qtype in _INTERACTION_QUERY_TYPES:
            results.extend(
                r
                for r in ep.successful_interactions
                if _field_matches(
                    r, query, ("agent_id", "agent_id"), ("customer_id", "customer_id")
                )
            )

        if qtype == "problem_resolution":
            results.extend(ep.problem_resolutions)

        if qtype in _DECISION_QUERY_TYPES:
            results.extend(
                r
                for r in ep.decision_outcomes
                if _field_matches(r, query, ("agent_id", "agent_id"))
            )

        if qtype == "contextual_learning":
            results.extend(ep.contextual_learnings)

        return results

    def _collect_semantic(self, store: TieredStore, query: Mapping[str, Any]) -> list[MemoryRecord]:
        se = store.semantic
        qtype = query.get("type")
        results: list[MemoryRecord] = []

        concept = query.get("concept")
        if qtype == "domain_knowledge" or concept:
            results.extend(
                r
                for r in se.domain_knowledge
                if not concept or str(concept) in str(r.payload.get("concept", ""))
            )

        if qtype == "relationship":
            results.extend(se.relationships)

        if qtype == "concept":
            results.extend(se.concepts)

        if qtype in _RULE_QUERY_TYPES:
            results.extend(
                r
                for r in se.rules
                if qtype in str(r.payload.get("name") or "")
                or qtype in str(r.payload.get("pattern") or "")
            )

        return results
