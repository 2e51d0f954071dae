"""Speech-to-text for uploaded clips and downloaded YouTube audio.

Two paths:

- direct: formats the Whisper endpoint decodes itself are uploaded as-is;
- extraction: anything else (or every file, with ``VIDEO_EXTRACT_AUDIO``) is
  first converted to 16 kHz mono mp3 with ffmpeg.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil

from studynotes.adapters.speech.base import SpeechToText
from studynotes.core.errors import DependencyMissingError, EmptyTranscriptError, UpstreamError
from studynotes.core.processes import run_process
from studynotes.core.tempfiles import remove_quietly, scoped_temp_file

logger = logging.getLogger(__name__)

DIRECT_FORMATS = frozenset(["mp3", "mp4", "mpeg", "mpga", "m4a", "wav", "webm", "ogg", "flac"])
FFMPEG_TIMEOUT_S = 300


class MediaTranscriber:
    def __init__(self, speech: SpeechToText, *, ffmpeg_binary: str = "ffmpeg", always_extract_audio: bool = False):
        self.speech = speech
        self.ffmpeg_binary = ffmpeg_binary
        self.always_extract_audio = always_extract_audio

    def ffmpeg_path(self) -> str | None:
        return shutil.which(self.ffmpeg_binary)

    async def transcribe(self, data: bytes, declared_extension: str) -> str:
        ext = (declared_extension or "").lower().lstrip(".")
        with scoped_temp_file(data, ext, prefix="media") as path:
            return await self.transcribe_file(path, ext)

    async def transcribe_file(self, path: str, declared_extension: str) -> str:
        ext = (declared_extension or "").lower().lstrip(".")
        if ext in DIRECT_FORMATS and not self.always_extract_audio:
            logger.info("Direct transcription of .%s file", ext)
            text = await self.speech.transcribe(path, f"media.{ext}")
        else:
            audio_path = await self._extract_audio(path)
            try:
                text = await self.speech.transcribe(audio_path, "audio.mp3")
            finally:
                remove_quietly(audio_path)

        if not text or not text.strip():
            raise EmptyTranscriptError(
                "No speech could be transcribed from the video.",
                "The media might not contain any speech. Alternatively, use YouTube links with captions or upload text directly.",
            )
        logger.info("Transcription produced %d characters", len(text))
        return text

    async def _extract_audio(self, path: str) -> str:
        binary = self.ffmpeg_path()
        if not binary:
            raise DependencyMissingError(
                "FFmpeg",
                "Video processing for this format requires FFmpeg. Install it from https://ffmpeg.org/download.html, "
                "upload an mp4/webm/mp3 file, or use a YouTube link with captions instead.",
            )

        audio_path = os.path.splitext(path)[0] + ".extracted.mp3"
        # -vn: drop video; 16 kHz mono 64k mp3 is plenty for speech.
        cmd = [
            binary, "-y", "-i", path,
            "-vn", "-acodec", "libmp3lame", "-ar", "16000", "-ac", "1", "-b:a", "64k",
            audio_path,
        ]
        logger.info("Extracting audio with ffmpeg")
        try:
            returncode, _, stderr = await run_process(*cmd, timeout=FFMPEG_TIMEOUT_S)
        except asyncio.TimeoutError:
            remove_quietly(audio_path)
            raise UpstreamError("Failed to extract audio from video: ffmpeg timed out") from None
        except BaseException:
            # cancelled request; ffmpeg is already dead, drop its partial output
            remove_quietly(audio_path)
            raise

        if returncode != 0:
            remove_quietly(audio_path)
            err = stderr.decode(errors="ignore")[-400:]
            raise UpstreamError("Failed to extract audio from video", err)
        return audio_path
