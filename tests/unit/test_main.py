"""Unit tests for the SQS consumer entry point."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from assessor.config import AWSConfig, DatabaseSettings
from assessor.main import SqsConsumer, check_database_connection, is_running_in_ecs
from assessor.models.domain import AbortedAttempt
from assessor.models.job import AssessmentRequest


@pytest.fixture
def outcome():
    return AbortedAttempt(
        attempt_id="attempt-1",
        participant_id="team-042",
        challenge_id="resilient-web-tier",
        attempt_timestamp=datetime(2025, 10, 15, 14, 30, tzinfo=UTC),
        state_reached="RECEIVED",
        reason="definition_not_found",
    )


@pytest.fixture
def consumer(outcome):
    sqs_client = MagicMock()
    orchestrator = MagicMock()
    orchestrator.assess = AsyncMock(return_value=outcome)
    with patch("assessor.main.signal.signal"):
        return SqsConsumer(sqs_client, orchestrator, error_backoff_seconds=0)


def test_process_batch_assesses_publishes_and_deletes(consumer, outcome):
    request = AssessmentRequest(participant_id="team-042", challenge_id="resilient-web-tier")
    consumer.sqs_client.receive_messages.return_value = [(request, "receipt-1")]

    processed = asyncio.run(consumer.process_batch())

    assert processed == 1
    consumer.orchestrator.assess.assert_awaited_once_with("team-042", "resilient-web-tier")
    consumer.sqs_client.publish_outcome.assert_called_once_with(outcome)
    consumer.sqs_client.delete_message.assert_called_once_with("receipt-1")


def test_process_batch_with_no_messages(consumer):
    consumer.sqs_client.receive_messages.return_value = []

    assert asyncio.run(consumer.process_batch()) == 0
    consumer.orchestrator.assess.assert_not_called()


def test_failed_publish_leaves_message_on_queue(consumer):
    request = AssessmentRequest(participant_id="team-042", challenge_id="resilient-web-tier")
    consumer.sqs_client.receive_messages.return_value = [(request, "receipt-1")]
    consumer.sqs_client.publish_outcome.side_effect = RuntimeError("queue unavailable")

    with pytest.raises(RuntimeError):
        asyncio.run(consumer.process_batch())
    consumer.sqs_client.delete_message.assert_not_called()


def test_run_stops_on_signal(consumer):
    def _receive():
        consumer._handle_sigterm(None, None)
        return []

    consumer.sqs_client.receive_messages.side_effect = _receive

    asyncio.run(consumer.run())

    assert consumer.running is False
    assert consumer.sqs_client.receive_messages.call_count == 1


def test_run_survives_batch_errors(consumer):
    calls = []

    def _receive():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("receive failed")
        consumer._handle_sigint(None, None)
        return []

    consumer.sqs_client.receive_messages.side_effect = _receive

    asyncio.run(consumer.run())

    assert len(calls) == 2


def test_is_running_in_ecs(monkeypatch):
    monkeypatch.delenv("ECS_CONTAINER_METADATA_URI_V4", raising=False)
    monkeypatch.delenv("ECS_CONTAINER_METADATA_URI", raising=False)
    assert is_running_in_ecs() is False

    monkeypatch.setenv("ECS_CONTAINER_METADATA_URI_V4", "http://169.254.170.2/v4/abc")
    assert is_running_in_ecs() is True


def test_database_check_failure_is_reported():
    engine = MagicMock()
    engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("refused"))

    with patch("assessor.main.create_db_engine", return_value=engine):
        assert check_database_connection(DatabaseSettings(), AWSConfig()) is False


def test_database_check_creates_schema():
    with (
        patch("assessor.main.create_db_engine") as create_engine,
        patch("assessor.main.init_schema") as init_schema,
    ):
        assert check_database_connection(DatabaseSettings(), AWSConfig()) is True

    init_schema.assert_called_once_with(create_engine.return_value)
