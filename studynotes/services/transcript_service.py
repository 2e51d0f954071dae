import logging
import re
from typing import Sequence

import httpx

from studynotes.adapters.youtube.strategies import (
    AudioTranscriptionStrategy,
    CaptionTrackStrategy,
    DataApiCaptionStrategy,
    MetadataApiStrategy,
    PageMetadataStrategy,
    TranscriptApiStrategy,
    TranscriptStrategy,
)
from studynotes.core.config import Settings
from studynotes.core.errors import TranscriptUnavailableError
from studynotes.core.models import ResolvedTranscript

logger = logging.getLogger(__name__)

_VIDEO_ID_PATTERNS = [
    re.compile(r"(?:https?://)?(?:www\.|m\.)?youtube\.com/watch\?(?:.*&)?v=([A-Za-z0-9_-]{11})"),
    re.compile(r"(?:https?://)?(?:www\.|m\.)?youtube\.com/(?:embed|shorts|v|live)/([A-Za-z0-9_-]{11})"),
    re.compile(r"(?:https?://)?youtu\.be/([A-Za-z0-9_-]{11})"),
]
_BARE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")


def extract_video_id(url: str | None) -> str | None:
    url = (url or "").strip()
    if not url:
        return None
    for pat in _VIDEO_ID_PATTERNS:
        m = pat.search(url)
        if m:
            return m.group(1)
    if _BARE_ID_RE.match(url):
        return url
    return None


class TranscriptResolver:
    """Runs strategies in order; the first one that yields text wins."""

    def __init__(self, strategies: Sequence[TranscriptStrategy]):
        self.strategies = list(strategies)

    @property
    def strategy_names(self) -> list[str]:
        return [s.name for s in self.strategies]

    async def resolve(self, url: str) -> ResolvedTranscript:
        video_id = extract_video_id(url)
        if not video_id:
            # Callers validate first; this guards direct use.
            raise TranscriptUnavailableError("Invalid YouTube URL")

        for strategy in self.strategies:
            logger.info("Trying %s for video %s", strategy.name, video_id)
            text = await strategy.attempt(video_id)
            if text is not None:
                logger.info("Strategy %s produced %d characters for %s", strategy.name, len(text), video_id)
                return ResolvedTranscript(text=text, strategy=strategy.name, video_id=video_id)

        raise TranscriptUnavailableError(
            "Unable to process YouTube video: could not retrieve a transcript. "
            "Please ensure the video has captions enabled or try a different video.",
            f"Tried: {', '.join(self.strategy_names) or 'no strategies configured'}. "
            "The video may not have captions enabled. Please try a video with captions or use a different source.",
        )


def build_strategies(settings: Settings, http: httpx.AsyncClient, transcriber=None) -> list[TranscriptStrategy]:
    languages = settings.youtube_languages
    factories = {
        "transcript_api": lambda: TranscriptApiStrategy(languages),
        "caption_track": lambda: CaptionTrackStrategy(http, languages),
        "data_api_captions": lambda: DataApiCaptionStrategy(http, settings.YOUTUBE_API_KEY, languages),
        "audio": lambda: AudioTranscriptionStrategy(transcriber),
        "metadata_api": lambda: MetadataApiStrategy(http, settings.YOUTUBE_API_KEY),
        "page_metadata": lambda: PageMetadataStrategy(http),
    }

    out: list[TranscriptStrategy] = []
    for name in settings.youtube_strategies:
        if name not in factories:
            logger.warning("Unknown YouTube strategy %r in YOUTUBE_STRATEGIES, skipping", name)
            continue
        if name == "audio" and (not settings.YOUTUBE_AUDIO_FALLBACK or transcriber is None):
            # Serverless hosts have no yt-dlp/ffmpeg or writable disk.
            continue
        out.append(factories[name]())
    return out
