"""Utility functions for the Timeline Render Service."""

from app.utils.deadline import Deadline, call_with_deadline, run_command
from app.utils.io_utils import create_job_work_dir, segment_clip_path, slugify
from app.utils.url_utils import extract_video_url

__all__ = [
    "Deadline",
    "call_with_deadline",
    "run_command",
    "create_job_work_dir",
    "segment_clip_path",
    "slugify",
    "extract_video_url",
]
