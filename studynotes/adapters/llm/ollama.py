import json
from typing import AsyncIterator

import httpx

from studynotes.adapters.llm.base import LLM, Message
from studynotes.core.errors import UpstreamError

class OllamaLLM(LLM):
    def __init__(self, base_url: str, *, keep_alive: str = "30m", timeout: float = 180.0):
        self.base_url = base_url.rstrip("/")
        self.keep_alive = keep_alive
        self.timeout = timeout

    def _payload(self, messages, model, temperature, max_tokens, stream):
        options = {"temperature": temperature}
        if max_tokens:
            options["num_predict"] = max_tokens
        return {
            "model": model,
            "messages": messages,
            "stream": stream,
            "keep_alive": self.keep_alive,
            "options": options,
        }

    async def chat(self, messages: list[Message], *, model: str, temperature: float = 0.2, max_tokens: int | None = None) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(
                    f"{self.base_url}/api/chat",
                    json=self._payload(messages, model, temperature, max_tokens, False),
                )
                r.raise_for_status()
                return (r.json().get("message") or {}).get("content", "")
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"Language model request failed with status {e.response.status_code}",
                e.response.text[:500],
                provider_status=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError("Language model request failed: Ollama unreachable", str(e)) from e

    async def stream_chat(self, messages: list[Message], *, model: str, temperature: float = 0.2, max_tokens: int | None = None) -> AsyncIterator[str]:
        # Ollama streams newline-delimited JSON objects when stream=true.
        payload = self._payload(messages, model, temperature, max_tokens, True)
        try:
            async with httpx.AsyncClient(timeout=None) as client:
                async with client.stream("POST", f"{self.base_url}/api/chat", json=payload) as r:
                    r.raise_for_status()
                    async for line in r.aiter_lines():
                        if not line:
                            continue
                        try:
                            obj = json.loads(line)
                        except ValueError:
                            continue
                        if obj.get("done") is True:
                            break
                        delta = (obj.get("message") or {}).get("content") or ""
                        if delta:
                            yield delta
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"Language model request failed with status {e.response.status_code}",
                provider_status=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError("Language model request failed: Ollama unreachable", str(e)) from e
