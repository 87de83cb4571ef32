"""I/O utility functions for file and directory operations."""

import json
import re
from pathlib import Path
from typing import Any


def slugify(text: str) -> str:
    """
    Convert text to a filesystem-safe slug.

    Args:
        text: Input text to slugify.

    Returns:
        Filesystem-safe slug string.
    """
    text = text.lower()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[-\s]+", "-", text)
    text = text.strip("-")
    if len(text) > 100:
        text = text[:100].rstrip("-")
    return text


def create_job_work_dir(base_dir: str, job_id: str) -> Path:
    """
    Create the scratch directory for one job.

    Args:
        base_dir: Root for job directories (e.g., "tmp/jobs").
        job_id: Job identifier; keeps concurrent jobs apart.

    Returns:
        Path to the created directory.
    """
    work_dir = Path(base_dir) / slugify(job_id)
    (work_dir / "clips").mkdir(parents=True, exist_ok=True)
    (work_dir / "audio").mkdir(parents=True, exist_ok=True)
    return work_dir


def segment_clip_path(work_dir: Path, segment_index: int, provider: str) -> Path:
    """Unique local path for one segment's clip."""
    return work_dir / "clips" / f"seg_{segment_index:03d}_{slugify(provider)}.mp4"


def write_json(path: Path, data: Any) -> Path:
    """Write data as indented JSON (paths and datetimes stringified)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    return path
