"""
Service configuration, transport/polling defaults, and artifact constants.

All constants used across the api_client, artifacts and cli packages are
centralized here so that config is separated from logic.

The service configuration itself is an immutable :class:`ServiceConfig`
value built once at process start by :func:`load_service_config` and passed
explicitly into every API call.  Nothing in the package reads the
environment after that point.

Note: the API version is a preview version of the vendor API; verify it
against the vendor's release notes before switching to a GA version.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------

ENV_SUBSCRIPTION_KEY = "VIDEO_TRANSLATION_SUBSCRIPTION_KEY"
ENV_ENDPOINT = "VIDEO_TRANSLATION_ENDPOINT"
ENV_REGION = "VIDEO_TRANSLATION_REGION"
ENV_API_VERSION = "VIDEO_TRANSLATION_API_VERSION"

# ---------------------------------------------------------------------------
# Vendor API
# ---------------------------------------------------------------------------

DEFAULT_API_VERSION = "2024-05-20-preview"

# Regional endpoint used when only a region is configured
REGIONAL_ENDPOINT_TEMPLATE = "https://{region}.api.cognitive.microsoft.com"
SERVICE_PATH = "videotranslation"

SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"
OPERATION_ID_HEADER = "Operation-Id"
CONTENT_TYPE = "application/json"

VOICE_KINDS: tuple[str, ...] = ("PlatformVoice", "PersonalVoice")
WEBVTT_FILE_KINDS: tuple[str, ...] = (
    "SourceLocaleSubtitle",
    "TargetLocaleSubtitle",
    "MetadataJson",
)

# ---------------------------------------------------------------------------
# Transport retry
# ---------------------------------------------------------------------------

# Rate limiting and server-side overload resolve on their own; everything
# else is returned to the caller untouched.
RETRIABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})
DEFAULT_MAX_RETRIES: int = 3         # retries after the first attempt
DEFAULT_RETRY_BASE_DELAY: float = 2  # seconds; doubles on each retry
REQUEST_TIMEOUT_SECONDS: int = 60    # HTTP request timeout

# ---------------------------------------------------------------------------
# Operation polling
# ---------------------------------------------------------------------------

DEFAULT_POLL_INTERVAL_SECONDS: float = 30
DEFAULT_MAX_WAIT_SECONDS: float = 60 * 60

# ---------------------------------------------------------------------------
# Artifact layout
# ---------------------------------------------------------------------------

DEFAULT_OUTPUT_DIR = Path("output")
TRANSLATION_JSON_NAME = "translation.json"
ITERATION_JSON_NAME = "iteration.json"
OPERATION_JSON_NAME = "operation_{operation_id}.json"
ITERATIONS_DIR_NAME = "iterations"
DOWNLOAD_CHUNK_BYTES = 1024 * 1024

# Iteration result field → local file name
RESULT_FILE_NAMES: dict[str, str] = {
    "translatedVideoFileUrl": "translated_video.mp4",
    "sourceLocaleSubtitleWebvttFileUrl": "source_subtitle.vtt",
    "targetLocaleSubtitleWebvttFileUrl": "target_subtitle.vtt",
    "metadataJsonWebvttFileUrl": "metadata.vtt",
}


# ---------------------------------------------------------------------------
# Service configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServiceConfig:
    """
    Immutable connection settings for the video translation service.

    ``base_url`` is the root every endpoint path is appended to
    (``{endpoint}/videotranslation``).
    """

    endpoint: str
    subscription_key: str
    region: str | None
    api_version: str
    base_url: str
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY

    def __repr__(self) -> str:
        # Keep the subscription key out of tracebacks and console dumps
        return (
            f"ServiceConfig(endpoint={self.endpoint!r}, region={self.region!r}, "
            f"api_version={self.api_version!r}, base_url={self.base_url!r})"
        )


def build_base_url(endpoint: str) -> str:
    """
    Return the service root URL for an account endpoint.

    Args:
        endpoint: Account endpoint, with or without a trailing slash, with or
                  without the ``/videotranslation`` suffix.

    Returns:
        URL ending in ``/videotranslation`` with no trailing slash.
    """
    root = endpoint.rstrip("/")
    if root.endswith(f"/{SERVICE_PATH}"):
        return root
    return f"{root}/{SERVICE_PATH}"


def load_service_config(
    environ: Mapping[str, str] | None = None,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    request_timeout: float = REQUEST_TIMEOUT_SECONDS,
) -> ServiceConfig:
    """
    Build and validate the service configuration from environment variables.

    The endpoint is taken from ``VIDEO_TRANSLATION_ENDPOINT``; when it is
    unset, it is derived from ``VIDEO_TRANSLATION_REGION``.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``).
        max_retries: Transport retries after the first attempt.
        retry_base_delay: Base backoff delay in seconds.
        request_timeout: Per-request timeout in seconds.

    Returns:
        A validated :class:`ServiceConfig`.

    Raises:
        ConfigurationError: If the subscription key is unset, if neither an
                            endpoint nor a region is set, or if a tuning
                            value is out of range.
    """
    env = os.environ if environ is None else environ

    subscription_key = (env.get(ENV_SUBSCRIPTION_KEY) or "").strip()
    if not subscription_key:
        raise ConfigurationError(
            f"Subscription key not found. Set the '{ENV_SUBSCRIPTION_KEY}' "
            "environment variable."
        )

    region = (env.get(ENV_REGION) or "").strip() or None
    endpoint = (env.get(ENV_ENDPOINT) or "").strip()
    if not endpoint:
        if region is None:
            raise ConfigurationError(
                f"Service endpoint not found. Set '{ENV_ENDPOINT}' or "
                f"'{ENV_REGION}'."
            )
        endpoint = REGIONAL_ENDPOINT_TEMPLATE.format(region=region)

    if not endpoint.startswith(("https://", "http://")):
        raise ConfigurationError(
            f"'{ENV_ENDPOINT}' must be an http(s) URL, got '{endpoint}'."
        )

    if max_retries < 0:
        raise ConfigurationError(f"max_retries must be >= 0, got {max_retries}.")
    if retry_base_delay < 0:
        raise ConfigurationError(
            f"retry_base_delay must be >= 0, got {retry_base_delay}."
        )
    if request_timeout <= 0:
        raise ConfigurationError(
            f"request_timeout must be > 0, got {request_timeout}."
        )

    api_version = (env.get(ENV_API_VERSION) or "").strip() or DEFAULT_API_VERSION

    return ServiceConfig(
        endpoint=endpoint.rstrip("/"),
        subscription_key=subscription_key,
        region=region,
        api_version=api_version,
        base_url=build_base_url(endpoint),
        request_timeout=request_timeout,
        max_retries=max_retries,
        retry_base_delay=retry_base_delay,
    )
