"""Shared agent behaviour: action dispatch, logging and outcome learning.

Every agent owns exactly one ``AdaptiveMemory``.  ``process_action`` is a
template: subclasses register handlers per ``ActionType`` and the base
class records the action, its metrics and what was learned from it.
"""

from __future__ import annotations

import json
import logging
import uuid
from abc import ABC
from abc import abstractmethod
from collections.abc import Awaitable
from collections.abc import Callable
from datetime import datetime
from typing import Any

from marketmind.agents.schemas import ActionResult
from marketmind.agents.schemas import AgentAction
from marketmind.agents.schemas import AgentMessage
from marketmind.agents.schemas import AgentStatus
from marketmind.agents.schemas import AgentType
from marketmind.audit.schemas import AuditEvent
from marketmind.audit.schemas import AuditEventType
from marketmind.audit.store import AuditLogger
from marketmind.config import AgentConfig
from marketmind.config import MemoryConfig
from marketmind.memory.manager import AdaptiveMemory
from marketmind.memory.schemas import LearningPattern
from marketmind.memory.schemas import MemoryTier
from marketmind.memory.schemas import utcnow

logger = logging.getLogger(__name__)

Outbox = Callable[[AgentMessage], Awaitable[None]]
ActionHandler = Callable[[AgentAction], Awaitable[ActionResult]]


class BaseAgent(ABC):
    """Rule-based marketing agent acting as a client of its own memory."""

    agent_type: AgentType
    display_name: str
    capabilities: tuple[str, ...] = ()

    def __init__(
        self,
        *,
        agent_id: str | None = None,
        memory_config: MemoryConfig | None = None,
        agent_config: AgentConfig | None = None,
        audit_logger: AuditLogger | None = None,
        clock: Callable[[], datetime] | None = None,
        outbox: Outbox | None = None,
    ) -> None:
        self.id = agent_id or str(uuid.uuid4())
        self.name = self.display_name
        self.config = agent_config or AgentConfig()
        self.status = AgentStatus.idle
        self._clock = clock or utcnow
        self.last_active = self._clock()
        self.memory = AdaptiveMemory(
            self.id, memory_config, clock=self._clock, audit_logger=audit_logger
        )
        self._audit = audit_logger
        self._outbox = outbox

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Seed the agent's semantic memory with its domain knowledge."""
        for record_type, payload in self._seed_knowledge():
            await self.memory.store(MemoryTier.semantic, record_type, payload)
        logger.info("%s initialized with capabilities: %s", self.name, ", ".join(self.capabilities))

    def set_outbox(self, outbox: Outbox | None) -> None:
        self._outbox = outbox

    def _seed_knowledge(self) -> list[tuple[str, dict[str, Any]]]:
        return []

    def _set_status(self, status: AgentStatus) -> None:
        self.status = status
        self.last_active = self._clock()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    @abstractmethod
    def _handlers(self) -> dict[str, ActionHandler]:
        """Map of action type value to coroutine handling it."""

    async def process_action(self, action: AgentAction) -> ActionResult:
        self._set_status(AgentStatus.processing)
        handler = self._handlers().get(str(action.type))
        try:
            if handler is None:
                result = ActionResult(
                    success=False, error=f"Unsupported action type: {action.type}"
                )
            else:
                result = await handler(action)
        except Exception as exc:
            logger.exception("%s failed to process %s action %s", self.name, action.type, action.id)
            result = ActionResult(success=False, error=str(exc) or "Unknown error")
            await self._log_action(action, result)
            self._set_status(AgentStatus.error)
            return result

        await self._log_action(action, result)
        await self._learn_from_outcome(action, result)
        self._set_status(AgentStatus.idle)
        return result

    def new_action(self, action_type: str, *, target: str = "", **payload: Any) -> AgentAction:
        return AgentAction(
            agent_id=self.id,
            type=action_type,
            target=target,
            payload=payload,
            timestamp=self._clock(),
        )

    async def _log_action(self, action: AgentAction, result: ActionResult) -> None:
        now = self._clock().isoformat()
        await self.memory.store(
            MemoryTier.short_term,
            "recent_action",
            {
                "agent_id": self.id,
                "action_type": str(action.type),
                "action": action.model_dump(mode="json"),
                "result": result.model_dump(mode="json"),
                "success": result.success,
                "timestamp": now,
            },
        )
        for metric, value in result.metrics.items():
            await self.memory.store(
                MemoryTier.long_term,
                "performance_metric",
                {
                    "agent_id": self.id,
                    "metric": metric,
                    "value": value,
                    "action_type": str(action.type),
                    "timestamp": now,
                },
            )
        if self._audit is not None:
            await self._audit.log(
                AuditEvent(
                    event_type=AuditEventType.AGENT_ACTION,
                    agent_id=self.id,
                    payload={
                        "action_id": action.id,
                        "action_type": str(action.type),
                        "success": result.success,
                        "error": result.error,
                    },
                )
            )

    async def _learn_from_outcome(self, action: AgentAction, result: ActionResult) -> None:
        await self.memory.store(
            MemoryTier.episodic,
            "learning_outcome",
            {
                "agent_id": self.id,
                "action_type": str(action.type),
                "context": action.payload,
                "outcome": result.model_dump(mode="json"),
                "success": result.success,
                "timestamp": self._clock().isoformat(),
            },
        )
        if not result.success:
            return
        pattern = LearningPattern(
            pattern=f"{action.type}_success_pattern",
            confidence=0.8,
            applications=1,
            success_rate=1.0,
            last_used=self._clock(),
            context=[str(action.type), json.dumps(action.payload, sort_keys=True, default=str)],
        )
        await self.memory.store(MemoryTier.semantic, "learning_pattern", pattern.to_payload())

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(self, target: str, message_type: str, payload: dict[str, Any]) -> None:
        if self._outbox is None:
            logger.debug("%s has no outbox, dropping %s message", self.name, message_type)
            return
        await self._outbox(
            AgentMessage(
                sender_id=self.id,
                target=target,
                type=message_type,
                payload=payload,
                timestamp=self._clock(),
            )
        )

    async def handle_message(self, message: AgentMessage) -> None:
        logger.debug("%s ignoring %s message from %s", self.name, message.type, message.sender_id)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def get_performance_metrics(self) -> dict[str, float]:
        """Sum of every recorded metric value, per metric name."""
        records = await self.memory.performance_metrics(self.id)
        totals: dict[str, float] = {}
        for record in records:
            metric = record.payload.get("metric")
            value = record.payload.get("value")
            if metric is None or not isinstance(value, (int, float)):
                continue
            totals[metric] = totals.get(metric, 0.0) + float(value)
        return totals

    def get_memory_stats(self) -> dict[str, int]:
        return self.memory.get_stats().to_dict()

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.agent_type.value,
            "status": self.status.value,
            "last_active": self.last_active.isoformat(),
            "capabilities": list(self.capabilities),
        }
