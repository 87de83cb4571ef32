"""Background music from Freesound (CC0), cached on disk by track id."""

from pathlib import Path
from typing import Any, Optional

import requests

from app.core.config import Settings

FREESOUND_SEARCH_URL = "https://freesound.org/apiv2/search/text/"


class MusicService:
    """Finds and downloads a background track matching a mood."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize music service.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.cache_dir = Path(settings.music_cache_dir)
        self.attempts = 2

    def fetch(self, mood: Optional[str]) -> Optional[Path]:
        """
        Return a local music file for `mood`, or None when unavailable.

        Music is optional for a render, so every failure is logged and
        reported as None.
        """
        if not self.settings.freesound_api_key:
            self.logger.info("No FREESOUND_API_KEY set; rendering without music")
            return None

        style = mood or "calm"
        self.logger.info(f"🎵 Searching music for mood '{style}'")
        try:
            track = self._search(style)
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"⚠️ Music search failed: {e}")
            return None
        if track is None:
            self.logger.warning(f"⚠️ No music found for '{style}'")
            return None

        cache_file = self.cache_dir / f"{track['id']}.mp3"
        if cache_file.is_file() and cache_file.stat().st_size > 0:
            self.logger.debug(f"Music cache hit: {track['id']}")
            return cache_file

        preview_url = (track.get("previews") or {}).get("preview-hq-mp3")
        if not preview_url:
            self.logger.warning(f"⚠️ Track {track['id']} has no downloadable preview")
            return None
        return self._download(preview_url, cache_file)

    def _search(self, style: str) -> Optional[dict]:
        params = {
            "query": f"{style} cinematic",
            "fields": "id,name,previews,duration,license",
            "filter": 'duration:[60 TO 600] license:"Creative Commons 0"',
            "sort": "score",
            "token": self.settings.freesound_api_key,
        }
        last_error: Optional[Exception] = None
        for attempt in range(self.attempts):
            try:
                response = requests.get(FREESOUND_SEARCH_URL, params=params, timeout=self.settings.http_timeout_seconds)
                response.raise_for_status()
                results = response.json().get("results") or []
                return results[0] if results else None
            except requests.exceptions.RequestException as e:
                last_error = e
                self.logger.debug(f"Freesound search attempt {attempt + 1} failed: {e}")
        raise last_error

    def _download(self, url: str, destination: Path) -> Optional[Path]:
        destination.parent.mkdir(parents=True, exist_ok=True)
        for attempt in range(self.attempts):
            try:
                response = requests.get(url, timeout=self.settings.download_timeout_seconds)
                response.raise_for_status()
            except requests.exceptions.RequestException as e:
                self.logger.debug(f"Music download attempt {attempt + 1} failed: {e}")
                continue
            if response.content:
                destination.write_bytes(response.content)
                self.logger.info(f"✅ Music downloaded: {destination.name} ({len(response.content)} bytes)")
                return destination
        self.logger.warning(f"⚠️ Music download failed: {url}")
        return None
