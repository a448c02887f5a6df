"""Kafka producer helpers."""

import json

import structlog
from aiokafka import AIOKafkaProducer

logger = structlog.get_logger()


def _serialize(value: dict) -> bytes:
    return json.dumps(value, default=str).encode("utf-8")


async def create_producer(bootstrap_servers: str, client_id: str) -> AIOKafkaProducer:
    """Create and start a producer that serializes dict values as JSON.

    Writes wait for all in-sync replicas.
    """
    producer = AIOKafkaProducer(
        bootstrap_servers=bootstrap_servers,
        client_id=client_id,
        acks="all",
        value_serializer=_serialize,
    )
    await producer.start()
    logger.info("kafka_producer_started", bootstrap_servers=bootstrap_servers, client_id=client_id)
    return producer
