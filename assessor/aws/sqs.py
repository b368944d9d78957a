"""SQS polling, message handling and outcome publishing."""

import json
import logging

import boto3
from botocore.exceptions import ClientError
from pydantic import ValidationError

from assessor.models.domain import AttemptOutcome
from assessor.models.job import AssessmentRequest

logger = logging.getLogger(__name__)


class SQSClient:
    """Handles SQS message polling and lifecycle."""

    def __init__(
        self,
        queue_url: str,
        region: str,
        wait_time_seconds: int,
        visibility_timeout: int,
        max_messages: int,
        notification_queue_url: str | None = None,
        endpoint_url: str | None = None,
    ):
        self.queue_url = queue_url
        self.notification_queue_url = notification_queue_url
        self.region = region
        self.wait_time_seconds = wait_time_seconds
        self.visibility_timeout = visibility_timeout
        self.max_messages = max_messages
        client_kwargs: dict = {"region_name": region}
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        self.sqs = boto3.client("sqs", **client_kwargs)

    def receive_messages(self) -> list[tuple[AssessmentRequest, str]]:
        """Poll SQS for assessment request messages.

        Uses long polling to reduce empty receives. Invalid messages are logged
        but not deleted - they retry until maxReceiveCount then move to DLQ.

        Returns:
            List of (AssessmentRequest, receipt_handle) tuples. Empty if no valid messages.
        """
        try:
            response = self.sqs.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=self.max_messages,
                WaitTimeSeconds=self.wait_time_seconds,
                VisibilityTimeout=self.visibility_timeout,
                MessageAttributeNames=["All"],
            )
        except ClientError as e:
            logger.error(f"SQS receive_message failed: {e}")
            raise

        messages = response.get("Messages", [])
        if not messages:
            return []

        results = []
        for raw_message in messages:
            receipt_handle = raw_message["ReceiptHandle"]
            try:
                body = json.loads(raw_message["Body"])
                request = AssessmentRequest.model_validate(body)
                logger.info(
                    f"Received assessment request for {request.participant_id}/{request.challenge_id}"
                )
                results.append((request, receipt_handle))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.error(
                    f"Invalid assessment request format: {e}",
                    extra={"message_id": raw_message.get("MessageId")},
                )
                # Left on the queue; moves to DLQ after maxReceiveCount

        return results

    def delete_message(self, receipt_handle: str) -> None:
        """Delete message from queue after successful processing."""
        try:
            self.sqs.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)
            logger.info("Message deleted from queue")
        except ClientError as e:
            logger.error(f"Failed to delete message: {e}")
            raise

    def publish_outcome(self, outcome: AttemptOutcome) -> None:
        """Send a finished attempt outcome to the notification queue, if configured."""
        if not self.notification_queue_url:
            return
        try:
            self.sqs.send_message(
                QueueUrl=self.notification_queue_url,
                MessageBody=outcome.model_dump_json(),
                MessageAttributes={
                    "status": {"DataType": "String", "StringValue": outcome.status},
                },
            )
            logger.info(f"Published {outcome.status} outcome for attempt {outcome.attempt_id}")
        except ClientError as e:
            logger.error(f"Failed to publish outcome: {e}")
            raise
