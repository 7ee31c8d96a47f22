"""
Transport retry with exponential backoff.

A request is retried only on transient failures: HTTP 429, 500, 502, 503,
504, or a connection-level failure (refused connection, DNS, timeout).
Backoff after attempt ``k`` (1-based) is ``base_delay * 2 ** (k - 1)``:

  attempt 1 → 2 s, attempt 2 → 4 s, attempt 3 → 8 s   (defaults)

Any other response, including 4xx errors, is returned to the caller
untouched so the invoker can read the vendor's error body.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

import requests

from . import console
from .config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    REQUEST_TIMEOUT_SECONDS,
    RETRIABLE_STATUS_CODES,
)
from .errors import ExhaustedRetries, PermanentApiError, TransientTransportError
from .parser import parse_error_message


@dataclass(frozen=True)
class RequestDescriptor:
    """One HTTP request: built per call, discarded once the call returns."""

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str | None = None
    params: Mapping[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Backoff helpers
# ---------------------------------------------------------------------------

def exponential_backoff(attempt: int, base_delay: float = DEFAULT_RETRY_BASE_DELAY) -> float:
    """
    Return the wait time in seconds after a failed attempt.

    Args:
        attempt: 1-based attempt number (the attempt that just failed).
        base_delay: Delay after the first failed attempt.

    Returns:
        ``base_delay * 2 ** (attempt - 1)``.
    """
    return base_delay * 2 ** (attempt - 1)


def wait_with_progress(
    seconds: float,
    label: str = "Waiting",
    sleep: Callable[[float], None] | None = None,
) -> None:
    """Sleep for ``seconds`` after announcing the wait on the console."""
    console.warning(f"  {label} {seconds:g}s...")
    (sleep or time.sleep)(seconds)


def is_transient_status(status_code: int) -> bool:
    return status_code in RETRIABLE_STATUS_CODES


def should_retry(error: Exception, attempt: int, max_retries: int) -> bool:
    """
    Decide whether a failed attempt should be retried.

    Args:
        error: Exception describing the failed attempt.
        attempt: The 1-based attempt number that just failed.
        max_retries: Retries allowed after the first attempt.

    Returns:
        ``True`` only for transient errors with retries remaining.
    """
    if not isinstance(error, TransientTransportError):
        return False
    return attempt <= max_retries


# ---------------------------------------------------------------------------
# Main retry wrapper
# ---------------------------------------------------------------------------

def _perform(
    request: RequestDescriptor,
    timeout: float,
    session: requests.Session | None,
    stream: bool,
) -> requests.Response:
    """Issue a single attempt, mapping transport failures to the taxonomy."""
    sender = session.request if session is not None else requests.request
    try:
        response = sender(
            request.method,
            request.url,
            headers=dict(request.headers),
            params=dict(request.params) or None,
            data=request.body.encode("utf-8") if request.body is not None else None,
            timeout=timeout,
            stream=stream,
        )
    except (requests.ConnectionError, requests.Timeout) as exc:
        raise TransientTransportError(f"Connection failed: {exc}") from exc
    except requests.RequestException as exc:
        raise PermanentApiError(f"Request could not be sent: {exc}") from exc

    if is_transient_status(response.status_code):
        reason = response.reason or "transient error"
        # Keep the vendor error text for the exhaustion message
        try:
            detail, _ = parse_error_message(response.text)
        except requests.RequestException:
            detail = ""
        finally:
            response.close()
        message = f"HTTP {response.status_code} {reason}"
        if detail.strip():
            message = f"{message}: {detail.strip()[:300]}"
        raise TransientTransportError(
            message,
            status_code=response.status_code,
        )
    return response


def send_with_retry(
    request: RequestDescriptor,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
    session: requests.Session | None = None,
    sleep: Callable[[float], None] | None = None,
    stream: bool = False,
) -> requests.Response:
    """
    Send a request, retrying transient failures with exponential backoff.

    Makes at most ``max_retries + 1`` attempts.  Sleeping blocks the
    calling thread.

    Args:
        request: The request to send.
        max_retries: Retries allowed after the first attempt.
        base_delay: Backoff delay after the first failed attempt.
        timeout: Per-attempt HTTP timeout in seconds.
        session: Optional ``requests.Session``; module-level
                 ``requests.request`` is used otherwise.
        sleep: Sleep function (defaults to ``time.sleep``).
        stream: Passed through to ``requests`` for downloads.

    Returns:
        The first response whose status is not transient (2xx or not).

    Raises:
        ExhaustedRetries: Every attempt failed transiently.
        PermanentApiError: The request could not be sent for a
                           non-transient reason (e.g. invalid URL).
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return _perform(request, timeout, session, stream)
        except TransientTransportError as exc:
            console.warning(
                f"  Attempt {attempt}/{max_retries + 1} failed "
                f"[{request.method} {request.url}]: {exc.message[:120]}"
            )
            if not should_retry(exc, attempt, max_retries):
                raise ExhaustedRetries(
                    exc.message,
                    attempts=attempt,
                    status_code=exc.status_code,
                ) from exc
            wait_with_progress(
                exponential_backoff(attempt, base_delay),
                label="Retrying in",
                sleep=sleep,
            )
