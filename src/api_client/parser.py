"""
Response parsing: vendor error bodies, operation status, iteration results.

No I/O occurs here; all functions are pure transformations of strings/dicts
to support easy unit testing.
"""

from __future__ import annotations

import json
import re
import uuid
from datetime import datetime

from .config import RESULT_FILE_NAMES

# Canonical terminal states.  The vendor spells cancellation "Canceled".
SUCCEEDED = "Succeeded"
FAILED = "Failed"
CANCELLED = "Cancelled"

STATUS_ALIASES: dict[str, str] = {
    "succeeded": SUCCEEDED,
    "failed": FAILED,
    "canceled": CANCELLED,
    "cancelled": CANCELLED,
}

TERMINAL_STATUSES: frozenset[str] = frozenset({SUCCEEDED, FAILED, CANCELLED})

_ID_ALLOWED = re.compile(r"[^A-Za-z0-9_-]+")


def parse_error_message(response_text: str | None) -> tuple[str, str | None]:
    """
    Extract a human-readable message from a non-2xx response body.

    Supported shapes::

        {"error": {"code": "X", "message": "Y"}}   →  ("X: Y", "X")
        {"message": "Y"}                           →  ("Y", None)

    Anything else (invalid JSON, other structures) yields the raw text.

    Args:
        response_text: Raw response body.

    Returns:
        Tuple of (message, vendor error code or ``None``).
    """
    text = response_text or ""
    try:
        body = json.loads(text)
    except ValueError:
        return text, None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and ("code" in error or "message" in error):
            code = error.get("code")
            message = error.get("message")
            if code and message:
                return f"{code}: {message}", str(code)
            return str(message or code), str(code) if code else None
        if "message" in body:
            return str(body["message"]), None

    return text, None


def parse_json_body(response_text: str | None) -> dict:
    """
    Decode a 2xx response body.

    Empty bodies (e.g. ``204 No Content``) decode to ``{}``.

    Raises:
        ValueError: Body is non-empty and not a JSON object.
    """
    if not response_text or not response_text.strip():
        return {}
    body = json.loads(response_text)
    if not isinstance(body, dict):
        raise ValueError(f"Expected a JSON object, got {type(body).__name__}")
    return body


def normalize_status(raw_status: object) -> str | None:
    """
    Map a vendor status string to its canonical spelling.

    Terminal states are returned as ``Succeeded``/``Failed``/``Cancelled``;
    non-terminal states (``NotStarted``, ``Running``, ...) are passed
    through unchanged.  Non-string input yields ``None``.
    """
    if not isinstance(raw_status, str) or not raw_status.strip():
        return None
    status = raw_status.strip()
    return STATUS_ALIASES.get(status.lower(), status)


def is_terminal_status(status: str | None) -> bool:
    return status in TERMINAL_STATUSES


def extract_operation_status(payload: dict) -> str | None:
    """Return the normalized ``status`` field of an operation body."""
    return normalize_status(payload.get("status"))


def extract_result_urls(iteration: dict) -> dict[str, str]:
    """
    Collect the downloadable result URLs of an iteration.

    Args:
        iteration: Iteration body from ``GET .../iterations/{id}``.

    Returns:
        Dict of result field name → URL, limited to the fields listed in
        ``RESULT_FILE_NAMES`` that carry a non-empty URL.
    """
    result = iteration.get("result") or {}
    return {
        field_name: url
        for field_name in RESULT_FILE_NAMES
        if isinstance(url := result.get(field_name), str) and url
    }


def describe_failure(payload: dict | None) -> str:
    """Summarize a failed/cancelled operation or iteration body in one line."""
    if not payload:
        return "no status details"
    status = payload.get("status", "unknown")
    details = payload.get("failureReason") or payload.get("error")
    if isinstance(details, dict):
        details, _ = parse_error_message(json.dumps({"error": details}))
    if details:
        return f"status={status}: {details}"
    return f"status={status}"


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

def generate_operation_id() -> str:
    """Return a fresh correlation identifier for a submission call."""
    return str(uuid.uuid4())


def generate_resource_id(prefix: str, now: datetime | None = None) -> str:
    """
    Generate a translation/iteration identifier.

    Format: ``<prefix>-<YYYYmmddHHMMSS>-<8 hex chars>``; the prefix is
    reduced to letters, digits, ``-`` and ``_``.
    """
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    clean = _ID_ALLOWED.sub("-", prefix).strip("-") or "id"
    return f"{clean}-{stamp}-{uuid.uuid4().hex[:8]}"
