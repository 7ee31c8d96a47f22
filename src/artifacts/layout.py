"""
Folder naming for persisted API responses and downloaded result files.

Layout under the output root::

    <output>/<translation_id>/translation.json
    <output>/<translation_id>/operation_<operation_id>.json
    <output>/<translation_id>/iterations/<iteration_id>/iteration.json
    <output>/<translation_id>/iterations/<iteration_id>/translated_video.mp4
    <output>/<translation_id>/iterations/<iteration_id>/source_subtitle.vtt
    <output>/<translation_id>/iterations/<iteration_id>/target_subtitle.vtt
    <output>/<translation_id>/iterations/<iteration_id>/metadata.vtt
"""

from __future__ import annotations

import re
from pathlib import Path

from src.api_client.config import (
    ITERATION_JSON_NAME,
    ITERATIONS_DIR_NAME,
    OPERATION_JSON_NAME,
    RESULT_FILE_NAMES,
    TRANSLATION_JSON_NAME,
)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_name(identifier: str) -> str:
    """
    Reduce an identifier to a single safe path component.

    Runs of characters outside ``[A-Za-z0-9._-]`` become ``_``; leading
    dots are stripped so ``..`` can never escape the output root.

    Raises:
        ValueError: Nothing usable remains.
    """
    cleaned = _UNSAFE.sub("_", identifier.strip()).lstrip(".")
    if not cleaned.strip("_"):
        raise ValueError(f"Identifier '{identifier}' has no usable characters")
    return cleaned


def translation_dir(output_root: Path, translation_id: str) -> Path:
    return Path(output_root) / safe_name(translation_id)


def iteration_dir(output_root: Path, translation_id: str, iteration_id: str) -> Path:
    return (
        translation_dir(output_root, translation_id)
        / ITERATIONS_DIR_NAME
        / safe_name(iteration_id)
    )


def translation_json_path(output_root: Path, translation_id: str) -> Path:
    return translation_dir(output_root, translation_id) / TRANSLATION_JSON_NAME


def iteration_json_path(output_root: Path, translation_id: str, iteration_id: str) -> Path:
    return iteration_dir(output_root, translation_id, iteration_id) / ITERATION_JSON_NAME


def operation_json_path(output_root: Path, translation_id: str, operation_id: str) -> Path:
    name = OPERATION_JSON_NAME.format(operation_id=safe_name(operation_id))
    return translation_dir(output_root, translation_id) / name


def result_file_path(
    output_root: Path,
    translation_id: str,
    iteration_id: str,
    result_field: str,
) -> Path:
    """
    Local path for one iteration result field.

    Raises:
        KeyError: ``result_field`` is not a known result URL field.
    """
    return iteration_dir(output_root, translation_id, iteration_id) / RESULT_FILE_NAMES[result_field]
