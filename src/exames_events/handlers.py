"""Exames event handlers shared across domains."""
from __future__ import annotations

import structlog

from exames_common.domain import DomainEvent
from exames_infrastructure.observability import Metrics

logger = structlog.get_logger(__name__)


class AuditLogHandler:
    """
    Wildcard subscriber writing an audit trail entry for every domain event.

    The acting user is read from `metadata["user_id"]`, falling back to the
    aggregate id.
    """

    name = "audit_log"

    def __init__(self, metrics: Metrics) -> None:
        self._metrics = metrics

    async def handle(self, event: DomainEvent) -> None:
        user_id = event.metadata.get("user_id", event.aggregate_id)
        logger.info(
            "domain_event_audited",
            event_type=event.event_type,
            event_id=event.event_id,
            aggregate_id=event.aggregate_id,
            aggregate_type=event.aggregate_type,
            user_id=user_id,
            occurred_at=event.occurred_at.isoformat(),
        )
        self._metrics.counter("user_activities_total", labels={"event_type": event.event_type})
