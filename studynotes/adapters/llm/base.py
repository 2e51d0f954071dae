from abc import ABC, abstractmethod
from typing import AsyncIterator

Message = dict[str, str]

class LLM(ABC):
    """Chat-completion capability.

    Adapters raise ``UpstreamError`` (with ``provider_status`` when known) and
    ``ConfigurationError``; nothing provider-specific leaks past them.
    """

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        *,
        model: str,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> str:
        ...

    # Optional streaming interface. Adapters can override for true token streaming.
    async def stream_chat(self, messages: list[Message], **kwargs) -> AsyncIterator[str]:
        yield await self.chat(messages, **kwargs)
