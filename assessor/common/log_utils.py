"""Logging utilities for ECS-compatible structured logging.

Provides filters that enhance log records with:
- Trace ID from the x-cdp-request-id header and the current attempt ID
- HTTP request/response details in ECS format
- Endpoint filtering to reduce noise from health checks
- Redaction of delegated credential material
"""

import logging
import re

from assessor.common.tracing import ctx_attempt_id, ctx_request, ctx_response, ctx_trace_id

# Temporary (ASIA) and long-lived (AKIA) access key ids
_ACCESS_KEY_PATTERN = re.compile(r"\b(?:ASIA|AKIA)[0-9A-Z]{16}\b")
# Session tokens and secret keys are long base64 runs
_SECRET_PATTERN = re.compile(r"[A-Za-z0-9/+=]{40,}")

REDACTED = "[REDACTED]"


def redact(text: str) -> str:
    """Mask anything that looks like AWS credential material."""
    text = _ACCESS_KEY_PATTERN.sub(REDACTED, text)
    return _SECRET_PATTERN.sub(REDACTED, text)


class ExtraFieldsFilter(logging.Filter):
    """Adds ECS-compatible fields to log records.

    Enhances log records with:
    - trace.id: request trace ID for cross-service correlation
    - assessment.attempt_id: attempt currently being processed
    - url.full: Full request URL
    - http.request.method: HTTP method
    - http.response.status_code: Response status code
    """

    def filter(self, record: logging.LogRecord) -> bool:
        trace_id = ctx_trace_id.get()
        attempt_id = ctx_attempt_id.get()
        req = ctx_request.get()
        resp = ctx_response.get()

        if trace_id:
            record.trace = {"id": trace_id}
        if attempt_id:
            record.assessment = {"attempt_id": attempt_id}

        http = {}
        if req:
            record.url = {"full": req.get("url")}
            http["request"] = {"method": req.get("method")}
        if resp:
            http["response"] = resp
        if http:
            record.http = http

        return True


class EndpointFilter(logging.Filter):
    """Filters out log messages for specific endpoints.

    Useful for suppressing verbose health check logs in production.

    Args:
        path: The endpoint path to filter (e.g., "/health")
    """

    def __init__(self, path: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._path = path

    def filter(self, record: logging.LogRecord) -> bool:
        return record.getMessage().find(self._path) == -1


class SecretRedactionFilter(logging.Filter):
    """Rewrites log messages so delegated credential material never reaches log sinks."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True
