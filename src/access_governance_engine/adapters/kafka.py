"""KafkaEventSink — publishes access governance domain events to Kafka.

Events published (topic = "<prefix>.<event domain>"):
- privilege_drift.detected          — high/critical drift alert opened
- overprivileged_account.detected   — high/critical overprivileged alert opened
- access_review.completed           — campaign completed
- access_review.overdue             — active campaign past its due date
- department.high_risk              — department scored high or critical

Every message is wrapped in a standard envelope carrying tenant_id, the
source service and the emission timestamp. Messages are keyed by tenant.
"""

import json
from datetime import UTC, datetime
from typing import Any

from aiokafka import AIOKafkaProducer

from access_governance_engine.observability import get_logger

logger = get_logger(__name__)

_DEFAULT_BOOTSTRAP_SERVERS = "localhost:9092"


class KafkaEventSink:
    """IEventSink backed by an aiokafka producer.

    Args:
        bootstrap_servers: Comma-separated Kafka bootstrap server addresses.
        topic_prefix: Prefix of every topic name.
        source_service: Service name stamped on each envelope.
    """

    def __init__(
        self,
        bootstrap_servers: str = _DEFAULT_BOOTSTRAP_SERVERS,
        topic_prefix: str = "access_governance",
        source_service: str = "access-governance-engine",
    ) -> None:
        self._bootstrap_servers = bootstrap_servers
        self._topic_prefix = topic_prefix
        self._source_service = source_service
        self._producer: AIOKafkaProducer | None = None

    async def start(self) -> None:
        """Start the underlying producer. Called from the application lifespan."""
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._bootstrap_servers,
            value_serializer=lambda value: json.dumps(value, default=str).encode("utf-8"),
            key_serializer=lambda key: key.encode("utf-8"),
        )
        await self._producer.start()
        logger.info("KafkaEventSink started", bootstrap_servers=self._bootstrap_servers)

    async def stop(self) -> None:
        """Flush and close the producer."""
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
            logger.info("KafkaEventSink stopped")

    def topic_for(self, event_name: str) -> str:
        """Topic an event is published to, e.g. access_governance.privilege_drift."""
        domain = event_name.split(".", 1)[0]
        return f"{self._topic_prefix}.{domain}"

    def _build_envelope(self, event_name: str, payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "event_type": event_name,
            "tenant_id": payload.get("tenant_id"),
            "source_service": self._source_service,
            "occurred_at": datetime.now(UTC).isoformat(),
            "payload": payload,
        }

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        """Publish an event.

        If the producer is not started, logs a warning and skips the publish.
        Broker errors are logged and never propagate to the caller.
        """
        envelope = self._build_envelope(event_name, payload)
        topic = self.topic_for(event_name)

        if self._producer is None:
            logger.warning(
                "KafkaEventSink not started, skipping publish",
                topic=topic,
                event_type=event_name,
            )
            return

        try:
            await self._producer.send_and_wait(
                topic,
                value=envelope,
                key=str(payload.get("tenant_id") or ""),
            )
            logger.debug(
                "Governance event published",
                topic=topic,
                event_type=event_name,
                tenant_id=envelope["tenant_id"],
            )
        except Exception as exc:
            logger.error(
                "Failed to publish governance event",
                topic=topic,
                event_type=event_name,
                error=str(exc),
            )
