#!/usr/bin/env python

"""Submit test assessment requests to LocalStack for local development testing.

This script is for LOCAL DEVELOPMENT ONLY. It sends an assessment request to
the LocalStack SQS queue the worker consumes, and can optionally wait for the
outcome on the notification queue.

Usage:
    uv run python scripts/submit_assessment.py team-042 resilient-web-tier
    uv run python scripts/submit_assessment.py team-042 resilient-web-tier --wait
    uv run python scripts/submit_assessment.py --help
"""

import json
import logging
from datetime import UTC, datetime
from uuid import uuid4

import boto3
import typer
from botocore.exceptions import ClientError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Submit assessment requests to LocalStack for local development")


@app.command()
def submit(
    participant_id: str = typer.Argument(..., help="Participant to assess"),
    challenge_id: str = typer.Argument(..., help="Challenge to assess against"),
    endpoint_url: str = typer.Option(
        "http://localhost:4566",
        "--endpoint",
        help="LocalStack endpoint URL",
    ),
    queue_url: str = typer.Option(
        "http://localhost:4566/000000000000/assessment-requests",
        "--queue",
        help="Request queue URL",
    ),
    notification_queue_url: str = typer.Option(
        "http://localhost:4566/000000000000/assessment-outcomes",
        "--outcomes",
        help="Outcome notification queue URL",
    ),
    wait: bool = typer.Option(False, "--wait", help="Wait for the outcome message"),
    region: str = typer.Option("eu-west-2", "--region", help="AWS region"),
):
    """Send one assessment request to the worker queue."""
    sqs_client = boto3.client(
        "sqs",
        endpoint_url=endpoint_url,
        region_name=region,
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )

    request = {
        "participant_id": participant_id,
        "challenge_id": challenge_id,
        "request_id": str(uuid4()),
        "submitted_at": datetime.now(UTC).isoformat(),
    }

    try:
        response = sqs_client.send_message(QueueUrl=queue_url, MessageBody=json.dumps(request))
    except ClientError as e:
        logger.error(f"Failed to send request: {e}")
        raise typer.Exit(1) from e
    logger.info(f"Request sent (ID: {response['MessageId']})")

    if not wait:
        return

    logger.info("Waiting for outcome (Ctrl+C to stop)...")
    while True:
        messages = sqs_client.receive_message(
            QueueUrl=notification_queue_url, WaitTimeSeconds=20, MaxNumberOfMessages=1
        ).get("Messages", [])
        for message in messages:
            outcome = json.loads(message["Body"])
            sqs_client.delete_message(
                QueueUrl=notification_queue_url, ReceiptHandle=message["ReceiptHandle"]
            )
            if outcome.get("participant_id") != participant_id:
                continue
            typer.echo(json.dumps(outcome, indent=2))
            return


if __name__ == "__main__":
    app()
