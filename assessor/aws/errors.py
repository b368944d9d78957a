"""Classification of botocore failures into the engine's error taxonomy."""

from botocore.exceptions import BotoCoreError, ClientError, ConnectionError, ReadTimeoutError

from assessor.errors import (
    AccessDeniedError,
    AssessmentError,
    NotFoundError,
    ThrottledError,
    TransientInfrastructureError,
)

NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "404", "NotFound", "ResourceNotFoundException"}
ACCESS_DENIED_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "InvalidClientTokenId",
    "AuthorizationError",
}
THROTTLED_CODES = {
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "SlowDown",
}


def classify_aws_error(error: Exception, context: str) -> AssessmentError:
    """Map a botocore exception to an engine error.

    Args:
        error: Exception raised by a boto3 client call
        context: Short description used as the error message prefix

    Returns:
        The engine error to raise (``raise classify_aws_error(e, ...) from e``)
    """
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", ""))
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        message = f"{context}: {code or status}"
        if code in NOT_FOUND_CODES or status == 404:
            return NotFoundError(message)
        if code in ACCESS_DENIED_CODES or status == 403:
            return AccessDeniedError(message)
        if code in THROTTLED_CODES or status == 429:
            return ThrottledError(message)
        return TransientInfrastructureError(message)
    if isinstance(error, ConnectionError | ReadTimeoutError | BotoCoreError):
        return TransientInfrastructureError(f"{context}: {type(error).__name__}")
    return TransientInfrastructureError(f"{context}: {error}")
