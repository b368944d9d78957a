"""Sanitization of untrusted ``details`` payloads returned by check units.

Details are stored with the result and echoed back to participants, so they
are reduced to bounded, JSON-compatible data before they leave the executor.
"""

import json
import math
import re
from collections.abc import Iterable
from typing import Any

from assessor.common.log_utils import REDACTED, redact

MAX_KEY_LENGTH = 64
MAX_STRING_LENGTH = 1024
MAX_DEPTH = 4
MAX_LIST_ITEMS = 50
DEFAULT_MAX_DETAILS_BYTES = 8192

DEPTH_MARKER = "[depth limit]"
ERROR_KEY = "error"

# Tab and newline survive; everything else below 0x20, DEL and C1 controls are dropped
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")


def _clean_string(value: str, limit: int) -> str:
    return _CONTROL_CHARS.sub("", value)[:limit]


def _clean(value: Any, depth: int) -> Any:
    if value is None or isinstance(value, bool | int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        return _clean_string(value, MAX_STRING_LENGTH)
    if isinstance(value, dict | list | tuple | set | frozenset) and depth >= MAX_DEPTH:
        return DEPTH_MARKER
    if isinstance(value, dict):
        cleaned: dict[str, Any] = {}
        for key, item in value.items():
            clean_key = _clean_string(str(key), MAX_KEY_LENGTH)
            if clean_key not in cleaned:
                cleaned[clean_key] = _clean(item, depth + 1)
        return cleaned
    if isinstance(value, list | tuple):
        return [_clean(item, depth + 1) for item in list(value)[:MAX_LIST_ITEMS]]
    if isinstance(value, set | frozenset):
        return [_clean(item, depth + 1) for item in sorted(value, key=str)[:MAX_LIST_ITEMS]]
    return _clean_string(str(value), MAX_STRING_LENGTH)


def sanitize_details(
    details: Any, max_bytes: int = DEFAULT_MAX_DETAILS_BYTES
) -> dict[str, Any]:
    """Reduce an untrusted details payload to bounded JSON-compatible data.

    Args:
        details: Payload reported by a check unit (or built by the engine)
        max_bytes: Ceiling on the serialized size of the sanitized payload

    Returns:
        Sanitized mapping. Oversized payloads collapse to ``{"truncated": True}``,
        keeping the ``error`` entry when there is one.
    """
    if not isinstance(details, dict):
        details = {"value": details}

    cleaned = _clean(details, 0)
    serialized = json.dumps(cleaned, sort_keys=True, ensure_ascii=False).encode("utf-8")
    if len(serialized) <= max_bytes:
        return cleaned

    truncated: dict[str, Any] = {"truncated": True}
    if ERROR_KEY in cleaned:
        truncated[ERROR_KEY] = _clean_string(str(cleaned[ERROR_KEY]), MAX_KEY_LENGTH)
    return truncated


def redact_details(details: dict[str, Any], secrets: Iterable[str] = ()) -> dict[str, Any]:
    """Mask credential material anywhere in sanitized details, keys included.

    Exact ``secrets`` are replaced first, then anything shaped like an access
    key id or a long secret run.
    """
    known = sorted((s for s in secrets if s), key=len, reverse=True)

    def _mask(text: str) -> str:
        for secret in known:
            text = text.replace(secret, REDACTED)
        return redact(text)

    def _walk(value: Any) -> Any:
        if isinstance(value, str):
            return _mask(value)
        if isinstance(value, dict):
            return {_mask(key): _walk(item) for key, item in value.items()}
        if isinstance(value, list):
            return [_walk(item) for item in value]
        return value

    return _walk(details)
