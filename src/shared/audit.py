"""Audit log sinks.

Every monitor decision, alert resolution, STR submission and policy change
emits one audit event. Sinks are fire-and-forget from the caller's point of
view: ``emit_audit`` never lets a sink failure reach the business decision.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime

import structlog

logger = structlog.get_logger()


class AuditLogSink(ABC):
    @abstractmethod
    async def log(
        self,
        action: str,
        actor_id: str,
        actor_type: str,
        target_type: str,
        target_id: str,
        metadata: dict,
    ) -> None: ...


class StructlogAuditSink(AuditLogSink):
    """Writes audit events to the structured application log."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger("audit")

    async def log(
        self,
        action: str,
        actor_id: str,
        actor_type: str,
        target_type: str,
        target_id: str,
        metadata: dict,
    ) -> None:
        self._logger.info(
            "audit_event",
            action=action,
            actor_id=actor_id,
            actor_type=actor_type,
            target_type=target_type,
            target_id=target_id,
            metadata=metadata,
        )


class KafkaAuditSink(AuditLogSink):
    """Publishes audit events to a Kafka topic.

    Args:
        producer: A started aiokafka ``AIOKafkaProducer`` whose value
            serializer accepts dicts (see ``src.shared.kafka_utils``).
        topic: Destination topic.
    """

    def __init__(self, producer, topic: str) -> None:
        self._producer = producer
        self._topic = topic

    async def log(
        self,
        action: str,
        actor_id: str,
        actor_type: str,
        target_type: str,
        target_id: str,
        metadata: dict,
    ) -> None:
        payload = {
            "action": action,
            "actor_id": actor_id,
            "actor_type": actor_type,
            "target_type": target_type,
            "target_id": target_id,
            "metadata": metadata,
            "logged_at": datetime.now(UTC).isoformat(),
        }
        await self._producer.send_and_wait(
            self._topic,
            value=payload,
            key=target_id.encode("utf-8"),
        )
        logger.debug("audit_event_published", topic=self._topic, action=action)


async def emit_audit(
    sink: AuditLogSink,
    action: str,
    target_type: str,
    target_id: str,
    metadata: dict,
    actor_id: str = "system",
    actor_type: str = "system",
) -> bool:
    """Send one audit event. Returns False if the sink failed.

    A failing sink never rolls back the decision being audited; the failure
    is logged here and retried by the sink's owner.
    """
    try:
        await sink.log(action, actor_id, actor_type, target_type, target_id, metadata)
        return True
    except Exception:
        logger.exception(
            "audit_log_failed",
            action=action,
            target_type=target_type,
            target_id=target_id,
        )
        return False
