from typing import AsyncIterator

import openai

from studynotes.adapters.llm.base import LLM, Message
from studynotes.core.errors import ConfigurationError, UpstreamError


def make_async_client(api_key: str | None, *, key_name: str, base_url: str | None = None, timeout: float = 180.0):
    if not api_key:
        raise ConfigurationError(
            f"{key_name} is not set",
            f"Add {key_name} to the environment or .env file.",
        )
    # Retries are owned by the pipeline (see notes_service), not the SDK.
    return openai.AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)


def translate_error(e: Exception, what: str) -> UpstreamError:
    if isinstance(e, openai.APIStatusError):
        return UpstreamError(f"{what} failed with status {e.status_code}", e.message, provider_status=e.status_code)
    if isinstance(e, openai.APIConnectionError):
        return UpstreamError(f"{what} failed: provider unreachable", str(e))
    return UpstreamError(f"{what} failed", str(e))


class OpenAICompatibleLLM(LLM):
    """OpenAI chat completions; also Groq through its OpenAI-compatible base URL."""

    def __init__(self, api_key: str | None, *, key_name: str = "OPENAI_API_KEY", base_url: str | None = None, timeout: float = 180.0):
        self.api_key = api_key
        self.key_name = key_name
        self.base_url = base_url
        self.timeout = timeout
        self._client = None

    @property
    def client(self):
        # Built on first use so a missing key only breaks the routes that need it.
        if self._client is None:
            self._client = make_async_client(self.api_key, key_name=self.key_name, base_url=self.base_url, timeout=self.timeout)
        return self._client

    def _params(self, messages, model, temperature, max_tokens) -> dict:
        params = {"model": model, "messages": messages, "temperature": temperature}
        if max_tokens:
            params["max_tokens"] = max_tokens
        return params

    async def chat(self, messages: list[Message], *, model: str, temperature: float = 0.2, max_tokens: int | None = None) -> str:
        try:
            resp = await self.client.chat.completions.create(**self._params(messages, model, temperature, max_tokens))
        except openai.OpenAIError as e:
            raise translate_error(e, "Language model request") from e
        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""

    async def stream_chat(self, messages: list[Message], *, model: str, temperature: float = 0.2, max_tokens: int | None = None) -> AsyncIterator[str]:
        try:
            stream = await self.client.chat.completions.create(
                **self._params(messages, model, temperature, max_tokens),
                stream=True,
            )
            async for event in stream:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    yield delta
        except openai.OpenAIError as e:
            raise translate_error(e, "Language model request") from e
