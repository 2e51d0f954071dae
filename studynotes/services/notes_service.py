"""Chunked study-note generation.

Long inputs are cut into fixed-size overlapping windows and each window gets its
own completion call. Calls run one at a time by default with a pause between
them: free-tier providers meter tokens per minute, and a burst of parallel
chunk calls only turns into 429s.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from typing import Awaitable, Callable

from studynotes.adapters.llm.base import LLM, Message
from studynotes.core.config import Settings
from studynotes.core.errors import EmptyGenerationError, RateLimitError, UpstreamError, ValidationError
from studynotes.core.models import Chunk, DetailLevel, GeneratedNote, InputKind

logger = logging.getLogger(__name__)

PART_DELIMITER = "\n\n--- Part {n} ---\n\n"
TRUNCATION_MARKER = "\n\n[Content truncated due to length...]"

_RETRY_IN_RE = re.compile(r"try again in\s+([0-9.hms]+)", re.IGNORECASE)
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def chunk_text(text: str, size: int, overlap: int = 0) -> list[Chunk]:
    """Fixed-size windows over ``text`` at stride ``size - overlap``.

    Yields ``ceil(len(text) / (size - overlap))`` chunks; only the last one
    may be shorter than ``size``.
    """
    if size <= 0:
        raise ValueError("chunk size must be > 0")
    if overlap < 0 or overlap >= size:
        raise ValueError("chunk overlap must be >= 0 and smaller than the chunk size")

    step = size - overlap
    starts = range(0, len(text), step)
    total = len(starts)
    chunks = []
    for i, start in enumerate(starts):
        end = min(start + size, len(text))
        chunks.append(Chunk(index=i, total_chunks=total, text=text[start:end], start=start, end=end))
    return chunks


def parse_retry_after(message: str | None) -> float | None:
    """Seconds from provider hints like ``try again in 7m12.5s`` or ``450ms``."""
    m = _RETRY_IN_RE.search(message or "")
    if not m:
        return None
    parts = _DURATION_PART_RE.findall(m.group(1))
    if not parts:
        return None
    return sum(float(value) * _UNIT_SECONDS[unit] for value, unit in parts)


def rate_limit_message(seconds: float | None) -> str:
    if seconds is None:
        return "Usage limit reached. Please wait 15-30 minutes for your quota to reset before trying again."
    if seconds > 60:
        return (
            f"Rate limit reached. Please wait approximately {math.ceil(seconds / 60)} minutes "
            "before trying again to reset your quota."
        )
    return f"Rate limit reached. Please wait {math.ceil(seconds)} seconds before trying again."


def system_prompt(detail: DetailLevel, part: int, total: int) -> str:
    where = f"This is part {part} of {total} of the content."
    if detail is DetailLevel.EASY:
        return (
            "You are a friendly tutor writing easy-to-understand study notes for a beginner. "
            f"{where} Focus on the key concepts, explain them in plain language, "
            "keep sentences short and skip minor details."
        )
    if detail is DetailLevel.DETAILED:
        return f"""You are a meticulous academic note-taker. Produce an exhaustive, near-verbatim record of the content.

Rules for detailed notes:
1. Do NOT summarize or condense. When a concept is explained, write down the whole explanation.
2. Keep every example, analogy and case study.
3. Preserve numbers, dates, formulas and statistics exactly.
4. Do not skip introductory or side remarks that carry context.
5. Use nested bullet points under hierarchical headings to show how every idea relates.
6. Prefer too long over too short; the reader wants to know exactly what was said.
7. If a point is terse, expand it using the surrounding context.

{where} Treat it as a document that must be preserved in full."""
    return (
        "You are an expert study-notes writer. Create clean, well-organized notes with clear "
        "hierarchical headings, concise bullet points, definitions of important terms and a short "
        f"'Key Takeaways' list at the end. {where}"
    )


def user_prompt(chunk: Chunk, input_kind: InputKind, detail: DetailLevel) -> str:
    return f"""Input source: {input_kind.value}
Detail level: {detail.value}
Part: {chunk.index + 1}/{chunk.total_chunks}

Content to process:
{chunk.text}

Generate study notes for THIS PART ONLY. Use Markdown formatting."""


class NoteGenerator:
    def __init__(
        self,
        llm: LLM,
        *,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        max_tokens_detailed: int = 6000,
        chunk_size: int = 12000,
        chunk_overlap: int = 500,
        max_attempts: int = 4,
        base_delay: float = 5.0,
        backoff_factor: float = 2.0,
        inter_chunk_delay: float = 2.0,
        concurrency: int = 1,
        mode: str = "chunked",
        single_call_max_chars: int = 30000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError("chunk overlap must be >= 0 and smaller than the chunk size")
        if mode not in ("chunked", "single"):
            raise ValueError(f"unknown notes mode: {mode}")
        self.llm = llm
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_tokens_detailed = max_tokens_detailed
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.backoff_factor = backoff_factor
        self.inter_chunk_delay = inter_chunk_delay
        self.concurrency = max(1, concurrency)
        self.mode = mode
        self.single_call_max_chars = single_call_max_chars
        self.sleep = sleep

    @classmethod
    def from_settings(cls, llm: LLM, settings: Settings, **overrides) -> "NoteGenerator":
        params = dict(
            model=settings.NOTES_MODEL,
            temperature=settings.NOTES_TEMPERATURE,
            max_tokens=settings.NOTES_MAX_TOKENS,
            max_tokens_detailed=settings.NOTES_MAX_TOKENS_DETAILED,
            chunk_size=settings.CHUNK_SIZE,
            chunk_overlap=settings.CHUNK_OVERLAP,
            max_attempts=settings.GENERATION_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY_S,
            backoff_factor=settings.RETRY_BACKOFF_FACTOR,
            inter_chunk_delay=settings.INTER_CHUNK_DELAY_S,
            concurrency=settings.GENERATION_CONCURRENCY,
            mode=settings.NOTES_MODE,
            single_call_max_chars=settings.SINGLE_CALL_MAX_CHARS,
        )
        params.update(overrides)
        return cls(llm, **params)

    def _rate_limit_error(self, e: UpstreamError) -> RateLimitError:
        seconds = parse_retry_after(f"{e.message} {e.details or ''}")
        return RateLimitError(
            "API rate limit exceeded",
            rate_limit_message(seconds),
            retry_after=math.ceil(seconds) if seconds is not None else None,
        )

    async def _complete_with_retry(self, messages: list[Message], max_tokens: int, label: str) -> str:
        delay = self.base_delay
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self.llm.chat(
                    messages,
                    model=self.model,
                    temperature=self.temperature,
                    max_tokens=max_tokens,
                )
            except UpstreamError as e:
                if not e.is_rate_limited:
                    raise
                if attempt == self.max_attempts:
                    logger.error("Rate limit on %s persisted after %d attempts", label, attempt)
                    raise self._rate_limit_error(e) from e
                logger.warning(
                    "Rate limit hit on %s (attempt %d/%d). Retrying in %.1fs",
                    label, attempt, self.max_attempts, delay,
                )
                await self.sleep(delay)
                delay *= self.backoff_factor
        raise AssertionError("unreachable")

    async def _generate_chunk(self, chunk: Chunk, input_kind: InputKind, detail: DetailLevel) -> str:
        messages = [
            {"role": "system", "content": system_prompt(detail, chunk.index + 1, chunk.total_chunks)},
            {"role": "user", "content": user_prompt(chunk, input_kind, detail)},
        ]
        max_tokens = self.max_tokens_detailed if detail is DetailLevel.DETAILED else self.max_tokens
        label = f"chunk {chunk.index + 1}/{chunk.total_chunks}"
        logger.info("Processing %s (%d chars)", label, len(chunk.text))
        return await self._complete_with_retry(messages, max_tokens, label)

    async def _run_chunks(self, chunks: list[Chunk], input_kind: InputKind, detail: DetailLevel) -> list[str]:
        async def one(chunk: Chunk) -> str:
            out = await self._generate_chunk(chunk, input_kind, detail)
            if chunk.index < chunk.total_chunks - 1 and self.inter_chunk_delay > 0:
                await self.sleep(self.inter_chunk_delay)
            return out

        if self.concurrency == 1:
            return [await one(c) for c in chunks]

        sem = asyncio.Semaphore(self.concurrency)

        async def bounded(chunk: Chunk) -> str:
            async with sem:
                return await one(chunk)

        tasks = [asyncio.create_task(bounded(c)) for c in chunks]
        try:
            # gather keeps input order, so parts still come out in chunk order
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # first failure ends the request; stop the remaining LLM calls too
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def generate(
        self,
        text: str,
        input_kind: InputKind | str,
        detail_level: DetailLevel | str | None = None,
    ) -> GeneratedNote:
        kind = InputKind(input_kind)
        detail = DetailLevel(detail_level) if detail_level else DetailLevel.MEDIUM
        if not text or not text.strip():
            raise ValidationError("Text content is required")

        if self.mode == "single":
            return await self._generate_single(text, kind, detail)

        chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
        logger.info("Processing content in %d chunks (detail=%s)", len(chunks), detail.value)
        outputs = await self._run_chunks(chunks, kind, detail)

        if not any(o and o.strip() for o in outputs):
            raise EmptyGenerationError(
                "Generated notes are empty",
                "The AI model did not return any content. Please try again or check your input.",
            )
        combined = "".join(PART_DELIMITER.format(n=c.index + 1) + out for c, out in zip(chunks, outputs))
        return GeneratedNote(text=combined, input_kind=kind, chunk_count=len(chunks))

    async def _generate_single(self, text: str, kind: InputKind, detail: DetailLevel) -> GeneratedNote:
        if len(text) > self.single_call_max_chars:
            logger.info("Truncating %d chars to %d for single-call mode", len(text), self.single_call_max_chars)
            text = text[: self.single_call_max_chars] + TRUNCATION_MARKER
        chunk = Chunk(index=0, total_chunks=1, text=text, start=0, end=len(text))
        out = await self._generate_chunk(chunk, kind, detail)
        if not out or not out.strip():
            raise EmptyGenerationError(
                "Generated notes are empty",
                "The AI model did not return any content. Please try again or check your input.",
            )
        return GeneratedNote(text=out, input_kind=kind, chunk_count=1)
