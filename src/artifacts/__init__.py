"""
src/artifacts — folder layout and persistence of API responses and results.

Module layout
-------------
layout.py  — folder/file naming under the output root
writer.py  — JSON snapshots, streamed downloads, translations summary (CSV)
"""

from .layout import iteration_dir, translation_dir
from .writer import (
    download_iteration_artifacts,
    export_translations_csv,
    save_json,
    save_workflow_snapshots,
)

__all__ = [
    "translation_dir",
    "iteration_dir",
    "save_json",
    "save_workflow_snapshots",
    "download_iteration_artifacts",
    "export_translations_csv",
]
