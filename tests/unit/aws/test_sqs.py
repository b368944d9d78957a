"""Unit tests for SQS request polling and outcome publishing."""

import json
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from assessor.aws.sqs import SQSClient
from assessor.models.domain import AbortedAttempt


@pytest.fixture
def sqs_client():
    with patch("assessor.aws.sqs.boto3.client") as client_factory:
        client_factory.return_value = MagicMock()
        client = SQSClient(
            queue_url="https://sqs.eu-west-2.amazonaws.com/000000000000/assessment-requests",
            region="eu-west-2",
            wait_time_seconds=20,
            visibility_timeout=600,
            max_messages=1,
            notification_queue_url="https://sqs.eu-west-2.amazonaws.com/000000000000/outcomes",
        )
    return client


@pytest.fixture
def aborted_outcome():
    return AbortedAttempt(
        attempt_id="attempt-1",
        participant_id="team-042",
        challenge_id="resilient-web-tier",
        attempt_timestamp=datetime(2025, 10, 15, 14, 30, tzinfo=UTC),
        state_reached="RECEIVED",
        reason="definition_not_found",
    )


def test_receive_messages_parses_requests(sqs_client):
    sqs_client.sqs.receive_message.return_value = {
        "Messages": [
            {
                "MessageId": "m1",
                "ReceiptHandle": "receipt-1",
                "Body": json.dumps({"participant_id": "team-042", "challenge_id": "resilient-web-tier"}),
            }
        ]
    }

    messages = sqs_client.receive_messages()

    assert len(messages) == 1
    request, receipt = messages[0]
    assert request.participant_id == "team-042"
    assert receipt == "receipt-1"
    kwargs = sqs_client.sqs.receive_message.call_args.kwargs
    assert kwargs["WaitTimeSeconds"] == 20
    assert kwargs["VisibilityTimeout"] == 600


def test_receive_messages_skips_invalid_bodies(sqs_client):
    sqs_client.sqs.receive_message.return_value = {
        "Messages": [
            {"MessageId": "m1", "ReceiptHandle": "r1", "Body": "not json"},
            {"MessageId": "m2", "ReceiptHandle": "r2", "Body": json.dumps({"participant_id": "x"})},
        ]
    }

    assert sqs_client.receive_messages() == []
    sqs_client.sqs.delete_message.assert_not_called()


def test_receive_messages_empty_queue(sqs_client):
    sqs_client.sqs.receive_message.return_value = {}

    assert sqs_client.receive_messages() == []


def test_delete_message(sqs_client):
    sqs_client.delete_message("receipt-1")

    sqs_client.sqs.delete_message.assert_called_once_with(
        QueueUrl=sqs_client.queue_url, ReceiptHandle="receipt-1"
    )


def test_publish_outcome(sqs_client, aborted_outcome):
    sqs_client.publish_outcome(aborted_outcome)

    kwargs = sqs_client.sqs.send_message.call_args.kwargs
    assert kwargs["QueueUrl"].endswith("/outcomes")
    assert json.loads(kwargs["MessageBody"])["reason"] == "definition_not_found"
    assert kwargs["MessageAttributes"]["status"]["StringValue"] == "ABORTED"


def test_publish_outcome_without_notification_queue(sqs_client, aborted_outcome):
    sqs_client.notification_queue_url = None

    sqs_client.publish_outcome(aborted_outcome)

    sqs_client.sqs.send_message.assert_not_called()
