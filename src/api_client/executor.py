"""
Request construction and API invocation.

:func:`invoke_api` is the single entry point every vendor call goes
through.  It builds the headers, query string and JSON body, delegates to
:func:`retry.send_with_retry`, and shapes the outcome into an
:class:`ApiResult`.

Design notes:
- invoke_api never raises: transport exhaustion, unsendable requests and
  malformed 2xx bodies are all returned as failed results.
- Error bodies are parsed by parser.parse_error_message so the message
  surfaced to the user matches the vendor's own error code and text.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

import requests

from .config import (
    CONTENT_TYPE,
    OPERATION_ID_HEADER,
    SUBSCRIPTION_KEY_HEADER,
    ServiceConfig,
)
from .errors import ExhaustedRetries, PermanentApiError, VideoTranslationError
from .parser import parse_error_message, parse_json_body
from .retry import RequestDescriptor, send_with_retry


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ApiResult:
    """
    Tagged outcome of one API call.

    ``ok=True`` carries ``payload``; ``ok=False`` carries ``error`` (and the
    vendor ``error_code`` when the body had one).  ``status_code`` is
    ``None`` when no HTTP response was received.
    """

    ok: bool
    status_code: int | None
    payload: dict | None = None
    error: str | None = None
    error_code: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    exception: VideoTranslationError | None = field(default=None, compare=False, repr=False)

    @classmethod
    def success(
        cls,
        payload: dict,
        status_code: int,
        headers: Mapping[str, str] | None = None,
    ) -> ApiResult:
        return cls(ok=True, status_code=status_code, payload=payload,
                   headers=dict(headers or {}))

    @classmethod
    def failure(
        cls,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        exception: VideoTranslationError | None = None,
    ) -> ApiResult:
        return cls(ok=False, status_code=status_code, error=message,
                   error_code=error_code, exception=exception)

    def to_error(self) -> VideoTranslationError:
        """
        Return the matching exception for a failed result (not raised).

        Transport failures keep their original type (e.g. ``ExhaustedRetries``);
        vendor error responses become ``PermanentApiError``.
        """
        if self.exception is not None:
            return self.exception
        return PermanentApiError(
            self.error or "Unknown error",
            status_code=self.status_code,
            error_code=self.error_code,
        )


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------

def build_request_headers(
    config: ServiceConfig,
    operation_id: str | None = None,
) -> dict[str, str]:
    """
    Construct the authentication and content headers for an API call.

    Args:
        config: Service configuration holding the subscription key.
        operation_id: Correlation identifier for submission calls; the
                      vendor exposes the submission's progress under
                      ``/operations/{operation_id}``.

    Returns:
        Dict of HTTP header name → value pairs.
    """
    headers = {
        SUBSCRIPTION_KEY_HEADER: config.subscription_key,
        "Content-Type": CONTENT_TYPE,
    }
    if operation_id:
        headers[OPERATION_ID_HEADER] = operation_id
    return headers


def build_endpoint_url(config: ServiceConfig, path: str) -> str:
    """
    Join a resource path onto the service base URL.

    Absolute URLs (e.g. a ``nextLink`` from a paged listing) are returned
    unchanged.
    """
    if path.startswith(("https://", "http://")):
        return path
    return f"{config.base_url}/{path.lstrip('/')}"


def build_request(
    config: ServiceConfig,
    method: str,
    path: str,
    body: dict | None = None,
    operation_id: str | None = None,
    params: Mapping[str, object] | None = None,
) -> RequestDescriptor:
    """
    Assemble the :class:`RequestDescriptor` for one vendor call.

    ``api-version`` is always set from the configuration unless the path is
    an absolute link that already carries a query string.
    """
    url = build_endpoint_url(config, path)
    query: dict[str, str] = {}
    if "?" not in url:
        query["api-version"] = config.api_version
    for key, value in (params or {}).items():
        if value is not None:
            query[key] = str(value)

    return RequestDescriptor(
        method=method.upper(),
        url=url,
        headers=build_request_headers(config, operation_id),
        body=json.dumps(body) if body is not None else None,
        params=query,
    )


# ---------------------------------------------------------------------------
# API call execution
# ---------------------------------------------------------------------------

def shape_response(response: requests.Response) -> ApiResult:
    """
    Normalize an HTTP response into an :class:`ApiResult`.

    Non-2xx bodies are parsed for the vendor error code/message, falling
    back to the raw text.
    """
    if not 200 <= response.status_code < 300:
        message, error_code = parse_error_message(response.text)
        if not message:
            message = f"HTTP {response.status_code}"
        return ApiResult.failure(message, response.status_code, error_code)

    try:
        payload = parse_json_body(response.text)
    except ValueError as exc:
        return ApiResult.failure(
            f"Invalid JSON in response body: {exc}", response.status_code
        )
    return ApiResult.success(payload, response.status_code, response.headers)


def invoke_api(
    config: ServiceConfig,
    method: str,
    path: str,
    body: dict | None = None,
    operation_id: str | None = None,
    params: Mapping[str, object] | None = None,
    session: requests.Session | None = None,
    sleep: Callable[[float], None] | None = None,
) -> ApiResult:
    """
    Execute one vendor API call with transport retries.

    Args:
        config: Service configuration.
        method: HTTP method (``GET``, ``PUT``, ``DELETE``).
        path: Resource path relative to ``config.base_url``, or an absolute
              URL.
        body: JSON-serializable request body.
        operation_id: Correlation identifier for submission calls.
        params: Extra query parameters; ``None`` values are dropped.
        session: Optional ``requests.Session`` to send through.
        sleep: Sleep function used between retries.

    Returns:
        ``ApiResult``; never raises for transport or API failures.
    """
    request = build_request(config, method, path, body, operation_id, params)
    try:
        response = send_with_retry(
            request,
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            timeout=config.request_timeout,
            session=session,
            sleep=sleep,
        )
    except ExhaustedRetries as exc:
        return ApiResult.failure(exc.message, exc.status_code, exception=exc)
    except PermanentApiError as exc:
        return ApiResult.failure(
            exc.message, exc.status_code, exc.error_code, exception=exc
        )

    return shape_response(response)
