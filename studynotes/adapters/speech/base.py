from abc import ABC, abstractmethod

class SpeechToText(ABC):
    @abstractmethod
    async def transcribe(self, path: str, filename: str) -> str:
        """Return the transcript of the audio/video file at ``path``.

        ``filename`` is what the provider sees; its extension selects the decoder.
        """
        ...
