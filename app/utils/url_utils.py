"""Helpers for pulling a media URL out of provider responses of any shape."""

from typing import Any, Optional

_URL_KEYS = ("video", "url", "output", "videos")


def _is_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


def extract_video_url(obj: Any) -> Optional[str]:
    """
    Find the first http(s) URL in a provider payload.

    Looks at a bare string, then lists, then the well-known keys
    (video, url, output, videos), then every nested value.
    """
    if obj is None:
        return None
    if _is_url(obj):
        return obj

    if isinstance(obj, list):
        for item in obj:
            if _is_url(item):
                return item
        for item in obj:
            url = extract_video_url(item)
            if url:
                return url
        return None

    if not isinstance(obj, dict):
        return None

    for key in _URL_KEYS:
        value = obj.get(key)
        if _is_url(value):
            return value
        if isinstance(value, (list, dict)):
            url = extract_video_url(value)
            if url:
                return url

    for key, value in obj.items():
        if key in _URL_KEYS:
            continue
        if isinstance(value, (list, dict)):
            url = extract_video_url(value)
            if url:
                return url
    return None
