"""Tests for NoteGenerator: chunk loop, retry/backoff and output assembly."""

import asyncio
import re

import pytest

from studynotes.adapters.llm.base import LLM
from studynotes.core.errors import EmptyGenerationError, RateLimitError, UpstreamError
from studynotes.core.models import DetailLevel, InputKind
from studynotes.services.notes_service import (
    TRUNCATION_MARKER,
    NoteGenerator,
    parse_retry_after,
    rate_limit_message,
)
from tests.conftest import FakeLLM, rate_limited


def _generator(llm, sleep, **kw) -> NoteGenerator:
    params = dict(model="notes-model", chunk_size=100, chunk_overlap=10, sleep=sleep)
    params.update(kw)
    return NoteGenerator(llm, **params)


class TestParseRetryAfter:
    def test_seconds(self) -> None:
        assert parse_retry_after("Please try again in 12.3s.") == pytest.approx(12.3)

    def test_minutes_and_seconds(self) -> None:
        assert parse_retry_after("Limit 6000, Used 5999. Please try again in 7m12.5s.") == pytest.approx(432.5)

    def test_milliseconds(self) -> None:
        assert parse_retry_after("try again in 450ms") == pytest.approx(0.45)

    def test_no_hint(self) -> None:
        assert parse_retry_after("quota exceeded") is None
        assert parse_retry_after(None) is None

    def test_messages(self) -> None:
        assert rate_limit_message(12.3) == "Rate limit reached. Please wait 13 seconds before trying again."
        assert "approximately 8 minutes" in rate_limit_message(432.5)
        assert "15-30 minutes" in rate_limit_message(None)


class TestRetry:
    @pytest.mark.asyncio
    async def test_succeeds_on_last_allowed_attempt(self, sleep) -> None:
        llm = FakeLLM(script=[rate_limited(), rate_limited(), rate_limited(), "notes"])
        gen = _generator(llm, sleep, max_attempts=4)

        note = await gen.generate("short text", InputKind.TEXT)

        assert "notes" in note.text
        assert len(llm.calls) == 4
        assert sleep.delays == [5.0, 10.0, 20.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_rate_limit_error(self, sleep) -> None:
        llm = FakeLLM(script=[rate_limited("Please try again in 7m12.5s.")] * 4)
        gen = _generator(llm, sleep, max_attempts=4)

        with pytest.raises(RateLimitError) as exc:
            await gen.generate("short text", InputKind.TEXT)

        assert exc.value.status_code == 429
        assert exc.value.retry_after == 433
        assert "approximately 8 minutes" in exc.value.details
        assert len(llm.calls) == 4

    @pytest.mark.asyncio
    async def test_no_wait_hint_gives_generic_message(self, sleep) -> None:
        llm = FakeLLM(script=[rate_limited("Too many requests")] * 2)
        gen = _generator(llm, sleep, max_attempts=2)

        with pytest.raises(RateLimitError) as exc:
            await gen.generate("short text", InputKind.TEXT)

        assert exc.value.retry_after is None
        assert "15-30 minutes" in exc.value.details

    @pytest.mark.asyncio
    async def test_other_upstream_errors_are_not_retried(self, sleep) -> None:
        err = UpstreamError("Language model request failed with status 413", "Request too large", provider_status=413)
        llm = FakeLLM(script=[err])
        gen = _generator(llm, sleep)

        with pytest.raises(UpstreamError) as exc:
            await gen.generate("short text", InputKind.TEXT)

        assert exc.value.status_code == 413
        assert len(llm.calls) == 1
        assert sleep.delays == []


class TestGenerate:
    @pytest.mark.asyncio
    async def test_idempotent_with_deterministic_model(self, sleep) -> None:
        text = "Photosynthesis converts light into chemical energy. " * 10
        gen = _generator(FakeLLM(), sleep)

        first = await gen.generate(text, InputKind.TEXT, DetailLevel.MEDIUM)
        second = await gen.generate(text, InputKind.TEXT, DetailLevel.MEDIUM)

        assert first == second

    @pytest.mark.asyncio
    async def test_parts_in_chunk_order_with_delay_between(self, sleep) -> None:
        llm = FakeLLM(script=["first", "second", "third"])
        gen = _generator(llm, sleep, chunk_size=100, chunk_overlap=10)

        note = await gen.generate("a" * 250, InputKind.PDF)

        assert note.chunk_count == 3
        assert note.text == (
            "\n\n--- Part 1 ---\n\nfirst"
            "\n\n--- Part 2 ---\n\nsecond"
            "\n\n--- Part 3 ---\n\nthird"
        )
        # pause after every chunk but the last
        assert sleep.delays == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_prompt_carries_part_and_source(self, sleep) -> None:
        llm = FakeLLM()
        gen = _generator(llm, sleep)

        await gen.generate("b" * 150, InputKind.YOUTUBE, DetailLevel.EASY)

        user = llm.calls[1]["messages"][1]["content"]
        assert "Input source: youtube" in user
        assert "Part: 2/2" in user
        assert "part 2 of 2" in llm.calls[1]["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_detailed_level_uses_larger_budget(self, sleep) -> None:
        llm = FakeLLM()
        gen = _generator(llm, sleep)

        await gen.generate("some content", InputKind.TEXT, DetailLevel.DETAILED)
        await gen.generate("some content", InputKind.TEXT, "easy")

        assert llm.calls[0]["max_tokens"] == 6000
        assert "Do NOT summarize" in llm.calls[0]["messages"][0]["content"]
        assert llm.calls[1]["max_tokens"] == 2048
        assert all(c["temperature"] == 0.3 for c in llm.calls)

    @pytest.mark.asyncio
    async def test_empty_output_raises(self, sleep) -> None:
        gen = _generator(FakeLLM(reply=lambda m: "   "), sleep)

        with pytest.raises(EmptyGenerationError):
            await gen.generate("c" * 250, InputKind.TEXT)

    @pytest.mark.asyncio
    async def test_single_call_mode_truncates(self, sleep) -> None:
        llm = FakeLLM(script=["one shot notes"])
        gen = _generator(llm, sleep, mode="single", single_call_max_chars=50)

        note = await gen.generate("d" * 120, InputKind.TEXT)

        assert note.text == "one shot notes"
        assert len(llm.calls) == 1
        user = llm.calls[0]["messages"][1]["content"]
        assert "d" * 50 + TRUNCATION_MARKER in user
        assert "d" * 51 not in user


class _SlowFirstLLM(LLM):
    """Earlier parts finish later, so completion order is reversed."""

    def __init__(self):
        self.active = 0
        self.peak = 0

    async def chat(self, messages, *, model, temperature=0.2, max_tokens=None):
        part = int(re.search(r"Part: (\d+)/", messages[1]["content"]).group(1))
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01 * (5 - part))
        self.active -= 1
        return f"out{part}"


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_parallel_chunks_keep_order(self, sleep) -> None:
        llm = _SlowFirstLLM()
        gen = _generator(llm, sleep, chunk_size=100, chunk_overlap=0, concurrency=2, inter_chunk_delay=0)

        note = await gen.generate("e" * 400, InputKind.TEXT)

        parts = re.findall(r"out(\d)", note.text)
        assert parts == ["1", "2", "3", "4"]
        assert llm.peak == 2


class _FailFirstLLM(LLM):
    """Part 1 fails with a non-rate-limit error; the rest finish a bit later."""

    def __init__(self):
        self.finished = 0

    async def chat(self, messages, *, model, temperature=0.2, max_tokens=None):
        part = int(re.search(r"Part: (\d+)/", messages[1]["content"]).group(1))
        if part == 1:
            raise UpstreamError("Language model request failed with status 500", provider_status=500)
        await asyncio.sleep(0.05)
        self.finished += 1
        return f"out{part}"


class TestConcurrentFailure:
    @pytest.mark.asyncio
    async def test_failure_cancels_remaining_chunks(self, sleep) -> None:
        llm = _FailFirstLLM()
        gen = _generator(llm, sleep, chunk_size=100, chunk_overlap=0, concurrency=3, inter_chunk_delay=0)

        with pytest.raises(UpstreamError):
            await gen.generate("f" * 400, InputKind.TEXT)
        await asyncio.sleep(0.1)

        assert llm.finished == 0
