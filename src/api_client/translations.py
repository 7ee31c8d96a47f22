"""
Vendor endpoints: translations, iterations and operations.

Every function returns an :class:`~executor.ApiResult`.  Submission calls
(``create_translation``, ``create_iteration``) also return the
:class:`OperationHandle` to poll, which exists only when the
submission succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

import requests

from . import console
from .config import VOICE_KINDS, WEBVTT_FILE_KINDS, ServiceConfig
from .executor import ApiResult, invoke_api
from .parser import generate_operation_id


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TranslationRequest:
    """Input of a new translation job."""

    video_file_url: str
    source_locale: str
    target_locale: str
    voice_kind: str = "PlatformVoice"
    speaker_count: int | None = None
    subtitle_max_char_count_per_segment: int | None = None
    export_subtitle_in_video: bool | None = None
    display_name: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if self.voice_kind not in VOICE_KINDS:
            raise ValueError(
                f"voice_kind must be one of {VOICE_KINDS}, got '{self.voice_kind}'"
            )

    def to_body(self) -> dict:
        """Render the vendor JSON body, omitting unset optional fields."""
        body_input = {
            "sourceLocale": self.source_locale,
            "targetLocale": self.target_locale,
            "voiceKind": self.voice_kind,
            "videoFileUrl": self.video_file_url,
        }
        optional = {
            "speakerCount": self.speaker_count,
            "subtitleMaxCharCountPerSegment": self.subtitle_max_char_count_per_segment,
            "exportSubtitleInVideo": self.export_subtitle_in_video,
        }
        body_input.update({k: v for k, v in optional.items() if v is not None})

        body: dict = {"input": body_input}
        if self.display_name:
            body["displayName"] = self.display_name
        if self.description:
            body["description"] = self.description
        return body


@dataclass(frozen=True)
class IterationRequest:
    """Input of a refinement iteration, optionally seeded with a WebVTT file."""

    speaker_count: int | None = None
    subtitle_max_char_count_per_segment: int | None = None
    export_subtitle_in_video: bool | None = None
    webvtt_file_url: str | None = None
    webvtt_file_kind: str = "TargetLocaleSubtitle"
    description: str | None = None

    def __post_init__(self) -> None:
        if self.webvtt_file_kind not in WEBVTT_FILE_KINDS:
            raise ValueError(
                f"webvtt_file_kind must be one of {WEBVTT_FILE_KINDS}, "
                f"got '{self.webvtt_file_kind}'"
            )

    def to_body(self) -> dict:
        optional = {
            "speakerCount": self.speaker_count,
            "subtitleMaxCharCountPerSegment": self.subtitle_max_char_count_per_segment,
            "exportSubtitleInVideo": self.export_subtitle_in_video,
        }
        body_input = {k: v for k, v in optional.items() if v is not None}
        if self.webvtt_file_url:
            body_input["webvttFile"] = {
                "url": self.webvtt_file_url,
                "kind": self.webvtt_file_kind,
            }

        body: dict = {"input": body_input}
        if self.description:
            body["description"] = self.description
        return body


@dataclass(frozen=True)
class OperationHandle:
    """
    A submitted server-side operation and the configuration to query it.

    Only built from a successful submission response; see :func:`_handle_for`.
    """

    operation_id: str
    config: ServiceConfig


def _segment(resource_id: str) -> str:
    return quote(resource_id, safe="")


def _handle_for(
    config: ServiceConfig,
    result: ApiResult,
    operation_id: str,
) -> OperationHandle | None:
    # Only an accepted submission has a server-side operation to poll
    if not result.ok:
        return None
    return OperationHandle(operation_id=operation_id, config=config)


# ---------------------------------------------------------------------------
# Translations
# ---------------------------------------------------------------------------

def create_translation(
    config: ServiceConfig,
    translation_id: str,
    request: TranslationRequest,
    operation_id: str | None = None,
    session: requests.Session | None = None,
) -> tuple[ApiResult, OperationHandle | None]:
    """
    Submit a new translation job (``PUT /translations/{id}``).

    Args:
        config: Service configuration.
        translation_id: Client-chosen translation identifier.
        request: Translation input.
        operation_id: Correlation identifier; generated when omitted.
        session: Optional ``requests.Session``.

    Returns:
        Tuple of (result, handle); the handle is ``None`` on failure.
    """
    operation_id = operation_id or generate_operation_id()
    console.info(
        f"Creating translation '{translation_id}' "
        f"({request.source_locale} → {request.target_locale}), "
        f"operation {operation_id}"
    )
    result = invoke_api(
        config,
        "PUT",
        f"translations/{_segment(translation_id)}",
        body=request.to_body(),
        operation_id=operation_id,
        session=session,
    )
    return result, _handle_for(config, result, operation_id)


def get_translation(
    config: ServiceConfig,
    translation_id: str,
    session: requests.Session | None = None,
) -> ApiResult:
    return invoke_api(
        config, "GET", f"translations/{_segment(translation_id)}", session=session
    )


def list_translations(
    config: ServiceConfig,
    top: int | None = None,
    skip: int | None = None,
    max_page_size: int | None = None,
    follow_next_link: bool = True,
    session: requests.Session | None = None,
) -> ApiResult:
    """
    List translations (``GET /translations``).

    Pages are followed through ``nextLink`` unless ``follow_next_link`` is
    false; the returned payload is ``{"value": [...]}`` with every page's
    items concatenated.  The first failing page fails the whole listing.
    """
    params = {"top": top, "skip": skip, "maxpagesize": max_page_size}
    result = invoke_api(config, "GET", "translations", params=params, session=session)
    if not result.ok:
        return result

    items: list[dict] = list(result.payload.get("value", []))
    next_link = result.payload.get("nextLink")
    while follow_next_link and next_link:
        page = invoke_api(config, "GET", next_link, session=session)
        if not page.ok:
            return page
        items.extend(page.payload.get("value", []))
        next_link = page.payload.get("nextLink")

    return ApiResult.success({"value": items}, result.status_code, result.headers)


def delete_translation(
    config: ServiceConfig,
    translation_id: str,
    session: requests.Session | None = None,
) -> ApiResult:
    console.info(f"Deleting translation '{translation_id}'")
    return invoke_api(
        config, "DELETE", f"translations/{_segment(translation_id)}", session=session
    )


# ---------------------------------------------------------------------------
# Iterations
# ---------------------------------------------------------------------------

def create_iteration(
    config: ServiceConfig,
    translation_id: str,
    iteration_id: str,
    request: IterationRequest,
    operation_id: str | None = None,
    session: requests.Session | None = None,
) -> tuple[ApiResult, OperationHandle | None]:
    """
    Submit a refinement iteration
    (``PUT /translations/{id}/iterations/{id}``).

    Returns:
        Tuple of (result, handle); the handle is ``None`` on failure.
    """
    operation_id = operation_id or generate_operation_id()
    console.info(
        f"Creating iteration '{iteration_id}' on translation "
        f"'{translation_id}', operation {operation_id}"
    )
    result = invoke_api(
        config,
        "PUT",
        f"translations/{_segment(translation_id)}/iterations/{_segment(iteration_id)}",
        body=request.to_body(),
        operation_id=operation_id,
        session=session,
    )
    return result, _handle_for(config, result, operation_id)


def get_iteration(
    config: ServiceConfig,
    translation_id: str,
    iteration_id: str,
    session: requests.Session | None = None,
) -> ApiResult:
    return invoke_api(
        config,
        "GET",
        f"translations/{_segment(translation_id)}/iterations/{_segment(iteration_id)}",
        session=session,
    )


def list_iterations(
    config: ServiceConfig,
    translation_id: str,
    session: requests.Session | None = None,
) -> ApiResult:
    return invoke_api(
        config,
        "GET",
        f"translations/{_segment(translation_id)}/iterations",
        session=session,
    )


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def get_operation(
    config: ServiceConfig,
    operation_id: str,
    session: requests.Session | None = None,
) -> ApiResult:
    return invoke_api(
        config, "GET", f"operations/{_segment(operation_id)}", session=session
    )
