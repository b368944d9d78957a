"""Main SQS consumer process for assessment requests."""

import asyncio
import json
import logging
import logging.config
import multiprocessing
import os
import signal
import sys
from pathlib import Path

import uvicorn
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from assessor.aws.sqs import SQSClient
from assessor.config import ApiServerConfig, AWSConfig, DatabaseSettings, WorkerConfig
from assessor.orchestrator import AssessmentOrchestrator
from assessor.repositories.engine import create_db_engine, init_schema
from assessor.wiring import build_orchestrator


def is_running_in_ecs() -> bool:
    """Detect if running in AWS ECS (CDP environment).

    ECS automatically injects metadata URI environment variables into containers.
    These are always present in ECS and never present locally.
    """
    return bool(
        os.environ.get("ECS_CONTAINER_METADATA_URI_V4")
        or os.environ.get("ECS_CONTAINER_METADATA_URI")
    )


def configure_logging() -> None:
    """Configure logging based on environment.

    In ECS/CDP: Uses logging.json with structured logging, trace ID injection,
    credential redaction and health check filtering.

    Locally: Uses logging-dev.json with simple text format for readability.
    """
    config_file = "logging.json" if is_running_in_ecs() else "logging-dev.json"
    config_path = Path(__file__).parent.parent / config_file

    if config_path.exists():
        with open(config_path) as f:
            logging.config.dictConfig(json.load(f))
    else:
        logging.basicConfig(
            level=logging.INFO,
            format=(
                '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
                '"logger": "%(name)s", "message": "%(message)s"}'
            ),
            datefmt="%Y-%m-%dT%H:%M:%S",
        )


logger = logging.getLogger(__name__)


def run_api_server(port: int) -> None:
    """Run the API server (health and, when enabled, assessments) in a separate process."""
    configure_logging()
    from assessor.api import create_app

    uvicorn.run(create_app(), host="0.0.0.0", port=port, log_level="warning")


class SqsConsumer:
    """Long-running SQS consumer that runs one attempt per request message."""

    def __init__(self, sqs_client: SQSClient, orchestrator: AssessmentOrchestrator, error_backoff_seconds: float = 5):
        self.sqs_client = sqs_client
        self.orchestrator = orchestrator
        self.error_backoff_seconds = error_backoff_seconds
        self.running = True

        signal.signal(signal.SIGTERM, self._handle_sigterm)
        signal.signal(signal.SIGINT, self._handle_sigint)

    async def process_batch(self) -> int:
        """Receive one batch and process every request in it.

        Returns:
            Number of requests processed
        """
        results = await asyncio.to_thread(self.sqs_client.receive_messages)
        for request, receipt_handle in results:
            logger.info(f"Processing assessment for {request.participant_id}/{request.challenge_id}")
            outcome = await self.orchestrator.assess(request.participant_id, request.challenge_id)
            await asyncio.to_thread(self.sqs_client.publish_outcome, outcome)
            await asyncio.to_thread(self.sqs_client.delete_message, receipt_handle)
            logger.info(
                f"Attempt {outcome.attempt_id} finished with status {outcome.status}, "
                "message deleted from queue"
            )
        return len(results)

    async def run(self) -> None:
        """Main polling loop."""
        logger.info("SQS consumer started, polling for assessment requests...")

        while self.running:
            try:
                await self.process_batch()
            except Exception as e:
                logger.exception(f"Unexpected error in consumer loop: {e}")
                await asyncio.sleep(self.error_backoff_seconds)

        logger.info("SQS consumer stopped")

    def _handle_sigterm(self, _signum, _frame):
        """Handle SIGTERM for graceful ECS task shutdown."""
        logger.info("Received SIGTERM, initiating graceful shutdown...")
        self.running = False

    def _handle_sigint(self, _signum, _frame):
        """Handle SIGINT (Ctrl+C) for local testing."""
        logger.info("Received SIGINT, initiating graceful shutdown...")
        self.running = False


def check_database_connection(db_settings: DatabaseSettings, aws_config: AWSConfig) -> bool:
    """Check if the database is accessible and create missing tables.

    Logs warnings on failure but does not raise exceptions.
    """
    try:
        engine = create_db_engine(db_settings, aws_config, use_null_pool=True)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        init_schema(engine)
        logger.info("Database connection check: OK")
        return True
    except SQLAlchemyError as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


def main():
    """Main entry point for the SQS consumer worker."""
    configure_logging()
    api_process = None

    try:
        aws_config = AWSConfig()
        worker_config = WorkerConfig()
        api_config = ApiServerConfig()
        db_settings = DatabaseSettings()

        if not aws_config.sqs_queue_url:
            msg = "AWS_SQS_QUEUE_URL must be set for the consumer"
            raise ValueError(msg)

        check_database_connection(db_settings, aws_config)

        logger.info("Initializing worker components...")

        api_process = multiprocessing.Process(
            target=run_api_server,
            args=(api_config.port,),
            daemon=True,
        )
        api_process.start()
        logger.info(f"API server started on port {api_config.port}")

        orchestrator, _ = build_orchestrator(aws_config, db_settings)

        sqs_client = SQSClient(
            queue_url=aws_config.sqs_queue_url,
            region=aws_config.region,
            wait_time_seconds=worker_config.wait_time_seconds,
            visibility_timeout=worker_config.visibility_timeout,
            max_messages=worker_config.max_messages,
            notification_queue_url=aws_config.notification_queue_url,
            endpoint_url=aws_config.endpoint_url,
        )

        consumer = SqsConsumer(sqs_client=sqs_client, orchestrator=orchestrator)
        asyncio.run(consumer.run())

    except Exception as e:
        logger.exception(f"Worker failed to start: {e}")
        sys.exit(1)

    finally:
        if api_process is not None and api_process.is_alive():
            logger.info("Terminating API server...")
            api_process.terminate()
            api_process.join(timeout=5)


if __name__ == "__main__":
    main()
