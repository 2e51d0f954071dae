"""Composition root: every long-lived component, built once per process."""

import logging
from dataclasses import dataclass

import httpx

from studynotes.adapters.llm.base import LLM
from studynotes.adapters.llm.ollama import OllamaLLM
from studynotes.adapters.llm.openai import OpenAICompatibleLLM
from studynotes.adapters.speech.base import SpeechToText
from studynotes.adapters.speech.openai import WhisperSpeechToText
from studynotes.core.config import Settings
from studynotes.core.utils import megabytes
from studynotes.services.chat_service import NotesChatEngine
from studynotes.services.normalize_service import InputNormalizer
from studynotes.services.notes_service import NoteGenerator
from studynotes.services.transcript_service import TranscriptResolver, build_strategies
from studynotes.services.transcription_service import MediaTranscriber

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    normalizer: InputNormalizer
    generator: NoteGenerator
    chat: NotesChatEngine
    transcriber: MediaTranscriber | None = None
    resolver: TranscriptResolver | None = None
    http: httpx.AsyncClient | None = None

    async def aclose(self):
        if self.http is not None:
            await self.http.aclose()


def get_llm(settings: Settings) -> LLM:
    if settings.LLM_PROVIDER == "ollama":
        return OllamaLLM(settings.OLLAMA_BASE_URL, keep_alive=settings.OLLAMA_KEEP_ALIVE, timeout=settings.LLM_TIMEOUT_S)
    if settings.LLM_PROVIDER == "openai":
        return OpenAICompatibleLLM(
            settings.OPENAI_API_KEY,
            key_name="OPENAI_API_KEY",
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.LLM_TIMEOUT_S,
        )
    return OpenAICompatibleLLM(
        settings.GROQ_API_KEY,
        key_name="GROQ_API_KEY",
        base_url=settings.GROQ_BASE_URL,
        timeout=settings.LLM_TIMEOUT_S,
    )


def get_speech(settings: Settings) -> SpeechToText:
    if settings.SPEECH_PROVIDER == "openai":
        key, key_name, base_url = settings.OPENAI_API_KEY, "OPENAI_API_KEY", settings.OPENAI_BASE_URL
    else:
        key, key_name, base_url = settings.GROQ_API_KEY, "GROQ_API_KEY", settings.GROQ_BASE_URL
    return WhisperSpeechToText(
        key,
        model=settings.SPEECH_MODEL,
        language=settings.SPEECH_LANGUAGE,
        key_name=key_name,
        base_url=base_url,
    )


def build_services(settings: Settings) -> Services:
    # Keys are not checked here: adapters fail with ConfigurationError on first use.
    http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_S, follow_redirects=True)
    llm = get_llm(settings)
    transcriber = MediaTranscriber(
        get_speech(settings),
        ffmpeg_binary=settings.FFMPEG_BINARY,
        always_extract_audio=settings.VIDEO_EXTRACT_AUDIO,
    )
    resolver = TranscriptResolver(build_strategies(settings, http, transcriber))
    logger.info("YouTube strategies: %s", ", ".join(resolver.strategy_names) or "none")

    normalizer = InputNormalizer(
        resolver,
        transcriber,
        max_document_bytes=megabytes(settings.MAX_DOCUMENT_SIZE_MB),
        max_video_bytes=megabytes(settings.MAX_VIDEO_SIZE_MB),
    )
    return Services(
        settings=settings,
        normalizer=normalizer,
        generator=NoteGenerator.from_settings(llm, settings),
        chat=NotesChatEngine.from_settings(llm, settings),
        transcriber=transcriber,
        resolver=resolver,
        http=http,
    )
