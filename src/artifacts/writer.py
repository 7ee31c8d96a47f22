"""
Persistence of API responses and downloaded result artifacts.

Design notes:
- JSON files are written whole (not appended); a re-run overwrites the
  previous snapshot for the same translation/iteration.
- Downloads stream to a ``.part`` file that is renamed into place only once
  complete, so an interrupted download never leaves a truncated artifact
  under its final name.
- Result URLs are pre-signed storage links: they are fetched without the
  subscription key, through the same transport retrier as API calls.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pandas as pd
import requests

from src.api_client import console
from src.api_client.config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    DOWNLOAD_CHUNK_BYTES,
    REQUEST_TIMEOUT_SECONDS,
)
from src.api_client.errors import PermanentApiError, VideoTranslationError
from src.api_client.parser import extract_result_urls
from src.api_client.retry import RequestDescriptor, send_with_retry

from .layout import (
    iteration_dir,
    iteration_json_path,
    result_file_path,
    translation_json_path,
)

# Column order of the translations summary table / CSV export.
TRANSLATION_SUMMARY_COLUMNS: list[str] = [
    "id",
    "displayName",
    "status",
    "sourceLocale",
    "targetLocale",
    "voiceKind",
    "createdDateTime",
    "lastActionDateTime",
]


# ---------------------------------------------------------------------------
# JSON snapshots
# ---------------------------------------------------------------------------

def save_json(payload: dict, path: Path) -> Path:
    """
    Write ``payload`` as pretty-printed UTF-8 JSON, creating parent dirs.

    Returns:
        The path written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    return path


def save_workflow_snapshots(
    output_root: Path,
    translation_id: str,
    iteration_id: str,
    translation: dict | None,
    iteration: dict | None,
) -> list[Path]:
    """Persist whichever translation/iteration bodies are available."""
    written: list[Path] = []
    if translation:
        written.append(
            save_json(translation, translation_json_path(output_root, translation_id))
        )
    if iteration:
        written.append(
            save_json(
                iteration,
                iteration_json_path(output_root, translation_id, iteration_id),
            )
        )
    return written


# ---------------------------------------------------------------------------
# Artifact downloads
# ---------------------------------------------------------------------------

def download_artifact(
    url: str,
    destination: Path,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
    session: requests.Session | None = None,
    sleep: Callable[[float], None] | None = None,
) -> Path:
    """
    Stream one result file to ``destination``.

    Args:
        url: Pre-signed download URL from an iteration result.
        destination: Final file path; parent directories are created.
        max_retries: Transport retries after the first attempt.
        base_delay: Backoff delay after the first failed attempt.
        timeout: Per-attempt HTTP timeout in seconds.
        session: Optional ``requests.Session``.
        sleep: Sleep function used between retries.

    Returns:
        ``destination``.

    Raises:
        ExhaustedRetries: Transient failures outlasted the retries.
        PermanentApiError: The server answered with a non-2xx status or the
                           request could not be sent.
        OSError: The file could not be written, or the connection dropped
                 mid-stream (``requests`` errors are ``OSError`` subclasses).
                 The partial file is removed.
    """
    request = RequestDescriptor(method="GET", url=url)
    response = send_with_retry(
        request,
        max_retries=max_retries,
        base_delay=base_delay,
        timeout=timeout,
        session=session,
        sleep=sleep,
        stream=True,
    )
    with response:
        if not 200 <= response.status_code < 300:
            raise PermanentApiError(
                f"Download of {destination.name} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")
        try:
            with partial.open("wb") as fh:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                    if chunk:
                        fh.write(chunk)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        partial.replace(destination)

    return destination


def download_iteration_artifacts(
    iteration: dict,
    output_root: Path,
    translation_id: str,
    iteration_id: str,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
    session: requests.Session | None = None,
    sleep: Callable[[float], None] | None = None,
) -> dict:
    """
    Download every result file referenced by an iteration body.

    Each file is attempted even if an earlier one failed; failures are
    reported in the returned summary rather than raised.

    Returns:
        Dict with keys:
        - ``downloaded``: result field → local ``Path``
        - ``failed``: result field → error message
    """
    urls = extract_result_urls(iteration)
    summary: dict = {"downloaded": {}, "failed": {}}

    if not urls:
        console.warning(f"Iteration '{iteration_id}' has no result files to download.")
        return summary

    for i, (result_field, url) in enumerate(urls.items(), start=1):
        destination = result_file_path(output_root, translation_id, iteration_id, result_field)
        console.info(f"[{i}/{len(urls)}] Downloading {destination.name}")
        try:
            download_artifact(
                url, destination,
                max_retries=max_retries, base_delay=base_delay, timeout=timeout,
                session=session, sleep=sleep,
            )
        except (VideoTranslationError, OSError) as exc:
            console.error(f"  {destination.name}: {exc}")
            summary["failed"][result_field] = str(exc)
            continue
        summary["downloaded"][result_field] = destination

    console.info(
        f"Downloaded {len(summary['downloaded'])}/{len(urls)} file(s) "
        f"to {iteration_dir(output_root, translation_id, iteration_id)}"
    )
    return summary


# ---------------------------------------------------------------------------
# Translation listings
# ---------------------------------------------------------------------------

def translations_to_frame(translations: list[dict]) -> pd.DataFrame:
    """
    Flatten translation bodies into a summary DataFrame.

    Locale and voice fields are read from each body's ``input`` block;
    missing fields become empty strings.  Column order follows
    ``TRANSLATION_SUMMARY_COLUMNS``.
    """
    rows = []
    for item in translations:
        body_input = item.get("input") or {}
        rows.append({
            "id": item.get("id", ""),
            "displayName": item.get("displayName", ""),
            "status": item.get("status", ""),
            "sourceLocale": body_input.get("sourceLocale", ""),
            "targetLocale": body_input.get("targetLocale", ""),
            "voiceKind": body_input.get("voiceKind", ""),
            "createdDateTime": item.get("createdDateTime", ""),
            "lastActionDateTime": item.get("lastActionDateTime", ""),
        })
    return pd.DataFrame(rows, columns=TRANSLATION_SUMMARY_COLUMNS).fillna("")


def export_translations_csv(translations: list[dict], path: Path) -> Path:
    """Write the translations summary to CSV and return the path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    translations_to_frame(translations).to_csv(path, index=False)
    console.info(f"Translations summary ({len(translations)} rows) written to {path}")
    return path
