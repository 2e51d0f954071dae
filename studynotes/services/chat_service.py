import logging
from typing import AsyncIterator, Sequence

from studynotes.adapters.llm.base import LLM, Message
from studynotes.core.config import Settings
from studynotes.core.errors import ChatGenerationError, ConfigurationError, NoteAppError
from studynotes.core.models import ConversationTurn

logger = logging.getLogger(__name__)

EMPTY_REPLY = "I could not generate a response."


def build_messages(notes: str, history: Sequence[ConversationTurn], question: str) -> list[Message]:
    system = f"""You are a helpful AI tutor. A student is studying the notes below and will ask questions about them.

Study notes:
{notes}

Answer primarily from these notes. You may use general knowledge to clarify a point, but say so explicitly when your answer goes beyond what the notes contain. Be concise and accurate."""
    messages: list[Message] = [{"role": "system", "content": system}]
    for turn in history:
        messages.append({"role": turn.role, "content": turn.content})
    messages.append({"role": "user", "content": question})
    return messages


class NotesChatEngine:
    """Q&A over a note document. Stateless: the caller sends history each time."""

    def __init__(self, llm: LLM, *, model: str, temperature: float = 0.7, max_tokens: int = 1024):
        self.llm = llm
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, llm: LLM, settings: Settings) -> "NotesChatEngine":
        return cls(
            llm,
            model=settings.CHAT_MODEL,
            temperature=settings.CHAT_TEMPERATURE,
            max_tokens=settings.CHAT_MAX_TOKENS,
        )

    def _params(self) -> dict:
        return {"model": self.model, "temperature": self.temperature, "max_tokens": self.max_tokens}

    async def ask(self, notes: str, history: Sequence[ConversationTurn], question: str) -> str:
        messages = build_messages(notes, history, question)
        logger.info("Chat question (%d chars) with %d history turns", len(question), len(history))
        try:
            reply = await self.llm.chat(messages, **self._params())
        except ConfigurationError:
            raise
        except NoteAppError as e:
            raise ChatGenerationError("Failed to generate response", e.details or e.message) from e
        return reply if reply and reply.strip() else EMPTY_REPLY

    async def stream(self, notes: str, history: Sequence[ConversationTurn], question: str) -> AsyncIterator[str]:
        messages = build_messages(notes, history, question)
        emitted = False
        try:
            async for delta in self.llm.stream_chat(messages, **self._params()):
                if delta:
                    emitted = True
                    yield delta
        except ConfigurationError:
            raise
        except NoteAppError as e:
            raise ChatGenerationError("Failed to generate response", e.details or e.message) from e
        if not emitted:
            yield EMPTY_REPLY
