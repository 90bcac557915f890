"""Streaming consumer for the transactions topic.

Payloads are only acknowledged and logged; nothing here parses them or
talks to the query core.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Optional

from confluent_kafka import Consumer

from transaction_analytics.config import AppConfig
from transaction_analytics.observability import get_metrics

logger = logging.getLogger(__name__)

DEFAULT_POLL_TIMEOUT = 1.0


def create_consumer(config: AppConfig) -> Consumer:
    consumer = Consumer(
        {
            "group.id": config.kafka_group_id,
            "bootstrap.servers": config.kafka_broker,
            "auto.offset.reset": "latest",
        }
    )
    consumer.subscribe([config.kafka_topic])
    return consumer


def _decode(message: Any) -> Optional[str]:
    payload = message.value()
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Skipping non UTF-8 payload at offset %s", message.offset())
        return None


def iter_payloads(
    consumer: Any,
    *,
    poll_timeout: float = DEFAULT_POLL_TIMEOUT,
    max_messages: Optional[int] = None,
) -> Iterator[str]:
    """Lazily yield text payloads from a subscribed consumer.

    Broker errors are logged and skipped. Empty or undecodable payloads are
    skipped. Stops after ``max_messages`` payloads when given, otherwise
    runs until the consumer is closed or the generator is discarded.
    """
    received = 0
    while max_messages is None or received < max_messages:
        message = consumer.poll(poll_timeout)
        if message is None:
            continue
        if message.error():
            logger.error("Kafka error: %s", message.error())
            continue
        text = _decode(message)
        if text is None:
            continue
        received += 1
        yield text


def handle_payload(payload: str) -> None:
    logger.info("Received Kafka message: %s", payload)
    get_metrics().observe_message()


def run_consumer(
    config: AppConfig,
    *,
    max_messages: Optional[int] = None,
    consumer: Optional[Any] = None,
    poll_timeout: float = DEFAULT_POLL_TIMEOUT,
) -> int:
    """Consume and log payloads; returns the number handled."""
    consumer = consumer if consumer is not None else create_consumer(config)
    logger.info("Listening for new transactions on %s...", config.kafka_topic)
    handled = 0
    try:
        for payload in iter_payloads(consumer, poll_timeout=poll_timeout, max_messages=max_messages):
            handle_payload(payload)
            handled += 1
    finally:
        consumer.close()
    return handled
