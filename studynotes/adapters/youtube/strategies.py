"""Independent ways of turning a YouTube video id into text.

Every strategy exposes ``attempt(video_id) -> str | None``. ``attempt`` never
raises: failures are logged and reported as ``None`` so the resolver can move
on to the next strategy. ``min_length`` is exclusive: a result must be longer
than it (after stripping) to count.
"""

from __future__ import annotations

import asyncio
import html
import json
import logging
import os
import re
import sys
from abc import ABC, abstractmethod

import httpx
from bs4 import BeautifulSoup

from studynotes.core.errors import ConfigurationError
from studynotes.core.processes import run_process
from studynotes.core.tempfiles import scoped_temp_dir

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={}"
OEMBED_URL = "https://www.youtube.com/oembed"
DATA_API_URL = "https://www.googleapis.com/youtube/v3"
MAX_DESCRIPTION_CHARS = 5000
YTDLP_TIMEOUT_S = 600

METADATA_DISCLAIMER = (
    "[Note: Full transcript could not be retrieved. "
    "Notes are generated based on the video title and description.]"
)

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0",
    "Accept-Language": "en-US,en;q=0.9",
}

_CUE_RE = re.compile(r"<(text|p)\b[^>]*>(.*?)</\1>", re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_SRT_INDEX_RE = re.compile(r"^\d+$")
_WS_RE = re.compile(r"\s+")


def _clean_fragment(s: str) -> str:
    s = _TAG_RE.sub(" ", s)
    # timedtext payloads are often double-escaped (&amp;#39;)
    s = html.unescape(html.unescape(s))
    return _WS_RE.sub(" ", s).strip()


def clean_caption_payload(payload: str) -> str:
    """Plain text from a timedtext/srv3 XML, SRT or WebVTT caption payload."""
    payload = payload or ""
    cues = _CUE_RE.findall(payload)
    if cues:
        parts = [_clean_fragment(body) for _, body in cues]
    else:
        parts = []
        for line in payload.splitlines():
            line = line.strip()
            if not line or line == "WEBVTT" or "-->" in line or _SRT_INDEX_RE.match(line):
                continue
            if line.startswith(("NOTE", "Kind:", "Language:")):
                continue
            parts.append(_clean_fragment(line))
    return " ".join(p for p in parts if p)


def compose_metadata_text(title: str | None, description: str | None) -> str:
    title = (title or "").strip()
    description = (description or "").strip()
    lines = [METADATA_DISCLAIMER, ""]
    if title:
        lines.append(f"Video Title: {title}")
    if description:
        if len(description) > MAX_DESCRIPTION_CHARS:
            description = description[:MAX_DESCRIPTION_CHARS] + "..."
        lines += ["", "Video Description:", description]
    return "\n".join(lines)


def metadata_length(text: str) -> int:
    """Length of a composed metadata block without the disclaimer."""
    return len(text.replace(METADATA_DISCLAIMER, "").strip())


def pick_language(items: list, languages: list[str], key) -> object | None:
    if not items:
        return None
    for lang in languages:
        for item in items:
            code = (key(item) or "").lower()
            if code == lang.lower() or code.startswith(lang.lower() + "-"):
                return item
    return items[0]


class TranscriptStrategy(ABC):
    name = "base"
    min_length = 0

    async def attempt(self, video_id: str) -> str | None:
        try:
            text = await self.fetch(video_id)
        except Exception as e:
            logger.info("Strategy %s failed for %s: %s", self.name, video_id, e)
            return None
        if not text or self.measure(text) <= self.min_length:
            logger.info("Strategy %s returned too little text for %s", self.name, video_id)
            return None
        return text

    def measure(self, text: str) -> int:
        return len(text.strip())

    @abstractmethod
    async def fetch(self, video_id: str) -> str | None:
        ...


class TranscriptApiStrategy(TranscriptStrategy):
    """Published transcript through youtube-transcript-api."""

    name = "transcript_api"

    def __init__(self, languages: list[str]):
        self.languages = languages or ["en"]

    def _fetch_sync(self, video_id: str) -> str | None:
        from youtube_transcript_api import NoTranscriptFound, YouTubeTranscriptApi

        api = YouTubeTranscriptApi()
        try:
            fetched = api.fetch(video_id, languages=self.languages)
        except NoTranscriptFound:
            # Take whatever language exists; the model copes with it.
            transcript = next(iter(api.list(video_id)), None)
            if transcript is None:
                logger.info("No transcripts in any language for %s", video_id)
                return None
            fetched = transcript.fetch()
        return " ".join(s.text for s in fetched if s.text and s.text.strip())

    async def fetch(self, video_id: str) -> str | None:
        return await asyncio.to_thread(self._fetch_sync, video_id)


class CaptionTrackStrategy(TranscriptStrategy):
    """Caption track URL scraped from the watch page player response."""

    name = "caption_track"
    min_length = 50

    def __init__(self, http: httpx.AsyncClient, languages: list[str]):
        self.http = http
        self.languages = languages or ["en"]

    @staticmethod
    def parse_caption_tracks(page: str) -> list[dict]:
        marker = '"captionTracks":'
        i = page.find(marker)
        if i < 0:
            return []
        tracks, _ = json.JSONDecoder().raw_decode(page, i + len(marker))
        return tracks if isinstance(tracks, list) else []

    async def fetch(self, video_id: str) -> str | None:
        r = await self.http.get(WATCH_URL.format(video_id), headers=BROWSER_HEADERS)
        r.raise_for_status()
        tracks = self.parse_caption_tracks(r.text)
        track = pick_language(tracks, self.languages, key=lambda t: t.get("languageCode"))
        if not track or not track.get("baseUrl"):
            logger.info("No caption tracks listed for %s", video_id)
            return None
        r = await self.http.get(track["baseUrl"], headers=BROWSER_HEADERS)
        r.raise_for_status()
        return clean_caption_payload(r.text)


class DataApiCaptionStrategy(TranscriptStrategy):
    """YouTube Data API v3 captions.

    Downloading third-party captions normally needs OAuth, so with a plain API
    key this mostly ends in a 403; it still works for the key owner's videos.
    """

    name = "data_api_captions"
    min_length = 50

    def __init__(self, http: httpx.AsyncClient, api_key: str | None, languages: list[str]):
        self.http = http
        self.api_key = api_key
        self.languages = languages or ["en"]

    async def fetch(self, video_id: str) -> str | None:
        if not self.api_key:
            raise ConfigurationError("YOUTUBE_API_KEY is not set")
        r = await self.http.get(
            f"{DATA_API_URL}/captions",
            params={"part": "snippet", "videoId": video_id, "key": self.api_key},
        )
        r.raise_for_status()
        items = r.json().get("items") or []
        track = pick_language(items, self.languages, key=lambda t: (t.get("snippet") or {}).get("language"))
        if not track:
            return None
        r = await self.http.get(
            f"{DATA_API_URL}/captions/{track['id']}",
            params={"key": self.api_key, "tfmt": "srt"},
        )
        r.raise_for_status()
        return clean_caption_payload(r.text)


class AudioTranscriptionStrategy(TranscriptStrategy):
    """Download the audio track with yt-dlp and run it through speech-to-text."""

    name = "audio"

    def __init__(self, transcriber, python_executable: str | None = None):
        self.transcriber = transcriber
        self.python_executable = python_executable or sys.executable

    async def _download(self, video_id: str, out_dir: str) -> str:
        template = os.path.join(out_dir, "audio.%(ext)s")
        # run_process reaps yt-dlp before scoped_temp_dir removes out_dir
        try:
            returncode, stdout, stderr = await run_process(
                self.python_executable, "-m", "yt_dlp",
                "-f", "bestaudio/best",
                "--no-playlist",
                "-o", template,
                WATCH_URL.format(video_id),
                timeout=YTDLP_TIMEOUT_S,
            )
        except asyncio.TimeoutError:
            raise RuntimeError("yt-dlp timed out") from None
        if returncode != 0:
            err = (stderr or stdout).decode(errors="ignore").strip()[-400:]
            raise RuntimeError(f"yt-dlp failed: {err}")

        produced = [f for f in os.listdir(out_dir) if f.startswith("audio.")]
        if not produced:
            raise RuntimeError("yt-dlp ran but no audio file was produced")
        return os.path.join(out_dir, produced[0])

    async def fetch(self, video_id: str) -> str | None:
        with scoped_temp_dir(prefix="yt_audio") as out_dir:
            path = await self._download(video_id, out_dir)
            ext = os.path.splitext(path)[1].lstrip(".")
            logger.info("Downloaded audio for %s (%s), transcribing", video_id, ext)
            return await self.transcriber.transcribe_file(path, ext)


class MetadataApiStrategy(TranscriptStrategy):
    """Title and description from the Data API ``videos`` endpoint."""

    name = "metadata_api"
    min_length = 50

    def __init__(self, http: httpx.AsyncClient, api_key: str | None):
        self.http = http
        self.api_key = api_key

    def measure(self, text: str) -> int:
        return metadata_length(text)

    async def fetch(self, video_id: str) -> str | None:
        if not self.api_key:
            raise ConfigurationError("YOUTUBE_API_KEY is not set")
        r = await self.http.get(
            f"{DATA_API_URL}/videos",
            params={"part": "snippet", "id": video_id, "key": self.api_key},
        )
        r.raise_for_status()
        items = r.json().get("items") or []
        if not items:
            logger.info("Data API has no video %s", video_id)
            return None
        snippet = items[0].get("snippet") or {}
        return compose_metadata_text(snippet.get("title"), snippet.get("description"))


class PageMetadataStrategy(TranscriptStrategy):
    """Last resort: oEmbed title plus the description meta tags of the watch page."""

    name = "page_metadata"
    min_length = 20

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    def measure(self, text: str) -> int:
        return metadata_length(text)

    async def _oembed_title(self, video_id: str) -> str | None:
        # best-effort title via oEmbed (no API key)
        try:
            r = await self.http.get(OEMBED_URL, params={"url": WATCH_URL.format(video_id), "format": "json"})
            if r.status_code == 200:
                return (r.json() or {}).get("title")
        except (httpx.HTTPError, ValueError):
            pass
        return None

    @staticmethod
    def _meta(soup: BeautifulSoup, *selectors: tuple[str, str]) -> str | None:
        for attr, value in selectors:
            tag = soup.find("meta", attrs={attr: value})
            if tag and tag.get("content"):
                return tag["content"]
        return None

    async def fetch(self, video_id: str) -> str | None:
        title = await self._oembed_title(video_id)
        r = await self.http.get(WATCH_URL.format(video_id), headers=BROWSER_HEADERS)
        r.raise_for_status()
        soup = BeautifulSoup(r.text, "html.parser")
        if not title:
            title = self._meta(soup, ("property", "og:title"), ("name", "title"))
            if not title and soup.title and soup.title.string:
                title = soup.title.string.replace("- YouTube", "").strip()
        description = self._meta(soup, ("property", "og:description"), ("name", "description"))
        if not title and not description:
            return None
        return compose_metadata_text(title, description)
