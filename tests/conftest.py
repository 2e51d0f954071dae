"""Shared fakes and fixtures."""

from __future__ import annotations

import pytest

from studynotes.adapters.llm.base import LLM
from studynotes.adapters.speech.base import SpeechToText
from studynotes.core.config import Settings
from studynotes.core.errors import UpstreamError
from studynotes.services.chat_service import NotesChatEngine
from studynotes.services.container import Services
from studynotes.services.normalize_service import InputNormalizer
from studynotes.services.notes_service import NoteGenerator
from studynotes.services.transcript_service import TranscriptResolver
from studynotes.services.transcription_service import MediaTranscriber


def rate_limited(message: str = "Rate limit reached. Please try again in 12.3s.") -> UpstreamError:
    return UpstreamError("Language model request failed with status 429", message, provider_status=429)


class FakeLLM(LLM):
    """Scripted LLM.

    ``script`` items are returned in order (exceptions are raised); once it
    runs out, ``reply(messages)`` answers.
    """

    def __init__(self, script=None, reply=None):
        self.script = list(script or [])
        self.reply = reply or (lambda messages: "## Notes\n- " + messages[-1]["content"][-40:])
        self.calls: list[dict] = []

    async def chat(self, messages, *, model, temperature=0.2, max_tokens=None):
        self.calls.append({"messages": messages, "model": model, "temperature": temperature, "max_tokens": max_tokens})
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        return self.reply(messages)


class FakeSpeech(SpeechToText):
    def __init__(self, text: str = "hello from the lecture"):
        self.text = text
        self.calls: list[tuple[str, str]] = []

    async def transcribe(self, path, filename):
        with open(path, "rb") as f:
            f.read()
        self.calls.append((path, filename))
        return self.text


class FakeStrategy:
    def __init__(self, name: str, result: str | None):
        self.name = name
        self.result = result
        self.calls = 0

    async def attempt(self, video_id):
        self.calls += 1
        return self.result


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        GROQ_API_KEY="test-key",
        PIPELINE_TIMEOUT_S=None,
        CORS_ORIGINS="",
    )


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_speech() -> FakeSpeech:
    return FakeSpeech()


@pytest.fixture
def make_services(test_settings, fake_llm, fake_speech, sleep):
    def _make(llm=None, strategies=None, settings=None) -> Services:
        cfg = settings or test_settings
        model = llm or fake_llm
        transcriber = MediaTranscriber(fake_speech)
        resolver = TranscriptResolver(strategies or [])
        return Services(
            settings=cfg,
            normalizer=InputNormalizer(resolver, transcriber),
            generator=NoteGenerator.from_settings(model, cfg, sleep=sleep),
            chat=NotesChatEngine.from_settings(model, cfg),
            transcriber=transcriber,
            resolver=resolver,
        )

    return _make
