import logging

import openai

from studynotes.adapters.llm.openai import make_async_client, translate_error
from studynotes.adapters.speech.base import SpeechToText

logger = logging.getLogger(__name__)

class WhisperSpeechToText(SpeechToText):
    """Whisper through an OpenAI-compatible ``audio.transcriptions`` endpoint."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "whisper-large-v3",
        language: str | None = "en",
        key_name: str = "GROQ_API_KEY",
        base_url: str | None = None,
        timeout: float = 300.0,
    ):
        self.api_key = api_key
        self.model = model
        self.language = language
        self.key_name = key_name
        self.base_url = base_url
        self.timeout = timeout
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = make_async_client(self.api_key, key_name=self.key_name, base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def transcribe(self, path: str, filename: str) -> str:
        with open(path, "rb") as f:
            content = f.read()
        logger.info("Sending %s (%d bytes) to %s", filename, len(content), self.model)
        params = {"file": (filename, content), "model": self.model, "response_format": "text"}
        if self.language:
            params["language"] = self.language
        try:
            result = await self.client.audio.transcriptions.create(**params)
        except openai.OpenAIError as e:
            raise translate_error(e, "Transcription request") from e
        if isinstance(result, str):
            return result
        return getattr(result, "text", "") or ""
