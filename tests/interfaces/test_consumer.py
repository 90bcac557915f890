"""Tests for the transactions topic consumer (broker mocked)."""

import logging
from unittest.mock import MagicMock, patch

from transaction_analytics.config import build_config
from transaction_analytics.ingestion import consumer as consumer_module
from transaction_analytics.ingestion.consumer import iter_payloads, run_consumer


def _message(value=None, error=None, offset=0):
    msg = MagicMock()
    msg.value.return_value = value
    msg.error.return_value = error
    msg.offset.return_value = offset
    return msg


def _consumer(*polled):
    fake = MagicMock()
    fake.poll.side_effect = list(polled)
    return fake


def test_iter_payloads_skips_gaps_errors_and_bad_bytes(caplog):
    """Empty polls, broker errors and undecodable payloads are skipped."""
    fake = _consumer(
        None,
        _message(error="broker down"),
        _message(b"\xff\xfe", offset=7),
        _message(None),
        _message(b'{"id": 5}'),
        _message("plain text"),
    )
    with caplog.at_level(logging.INFO):
        payloads = list(iter_payloads(fake, poll_timeout=0.0, max_messages=2))
    assert payloads == ['{"id": 5}', "plain text"]
    assert "Kafka error: broker down" in caplog.text
    assert "offset 7" in caplog.text


def test_run_consumer_logs_counts_and_closes(caplog):
    """Each message is logged and the consumer is closed afterwards."""
    fake = _consumer(_message(b"a"), _message(b"b"))
    config = build_config(env={"KAFKA_TOPIC": "tx-test"})
    with caplog.at_level(logging.INFO):
        handled = run_consumer(config, max_messages=2, consumer=fake, poll_timeout=0.0)
    assert handled == 2
    assert "Listening for new transactions on tx-test" in caplog.text
    assert "Received Kafka message: a" in caplog.text
    fake.close.assert_called_once()


def test_run_consumer_closes_on_failure():
    """The consumer is closed even when polling is interrupted."""
    fake = MagicMock()
    fake.poll.side_effect = KeyboardInterrupt
    config = build_config(env={})
    try:
        run_consumer(config, consumer=fake)
    except KeyboardInterrupt:
        pass
    fake.close.assert_called_once()


def test_create_consumer_uses_config():
    """Broker, group and topic come from the configuration."""
    config = build_config(env={"KAFKA_BROKER": "localhost:9092", "KAFKA_GROUP_ID": "g1"})
    with patch.object(consumer_module, "Consumer") as consumer_cls:
        created = consumer_module.create_consumer(config)
    settings = consumer_cls.call_args.args[0]
    assert settings["bootstrap.servers"] == "localhost:9092"
    assert settings["group.id"] == "g1"
    created.subscribe.assert_called_once_with(["transactions"])
