"""CloudWatch metrics integration via AWS Embedded Metrics Format (EMF).

Provides utilities for sending metrics to CloudWatch in ECS environments.
The EMF library handles formatting and transmission to the CloudWatch agent.

Configuration via environment variables:
- AWS_EMF_ENVIRONMENT: Set to "local" for local CloudWatch agent
- AWS_EMF_AGENT_ENDPOINT: CloudWatch agent endpoint (e.g., tcp://127.0.0.1:25888)
- AWS_EMF_NAMESPACE: CloudWatch namespace for metrics
- AWS_EMF_LOG_GROUP_NAME: Log group for EMF metrics
"""

from logging import getLogger

from aws_embedded_metrics import metric_scope
from aws_embedded_metrics.storage_resolution import StorageResolution

logger = getLogger(__name__)

ASSESSMENT_SCORED = "AssessmentScored"
ASSESSMENT_ABORTED = "AssessmentAborted"
CHECK_UNIT_TIMEOUT = "CheckUnitTimeout"
ATTEMPT_DURATION = "AttemptDuration"


@metric_scope
async def _put_metric(metric_name: str, value: float, unit: str, metrics) -> None:
    """Internal coroutine to put a metric with EMF decorator.

    Note: The sync form of metric_scope drives its own event loop and fails
    inside a running one, see
    https://github.com/awslabs/aws-embedded-metrics-python/issues/52
    The engine always records metrics from the orchestrator's event loop.
    """
    logger.debug("put metric: %s - %s - %s", metric_name, value, unit)
    metrics.put_metric(metric_name, value, unit, StorageResolution.STANDARD)


async def counter(metric_name: str, value: float = 1) -> None:
    """Increment a CloudWatch counter metric.

    Wraps the EMF put_metric call with exception handling to ensure
    metric failures don't crash the application.

    Args:
        metric_name: Name of the metric in CloudWatch
        value: Counter value to record (default: 1)
    """
    try:
        await _put_metric(metric_name, value, "Count")
    except Exception as e:
        logger.error("Error calling put_metric: %s", e)


async def duration(metric_name: str, seconds: float) -> None:
    """Record an elapsed time in seconds. Failures are logged, never raised."""
    try:
        await _put_metric(metric_name, seconds, "Seconds")
    except Exception as e:
        logger.error("Error calling put_metric: %s", e)
