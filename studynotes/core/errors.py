"""Error taxonomy shared by every pipeline stage.

Each error carries the HTTP status it maps to, a short ``message`` (what went
wrong) and an optional ``details`` string (why / what to try). The API layer
renders them as ``{"error": message, "details": details}``.
"""

from __future__ import annotations


class NoteAppError(Exception):
    status_code = 500

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        out = {"error": self.message}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(NoteAppError):
    """Client-correctable input problem (missing field, bad type, oversize)."""

    status_code = 400


class EmptyContentError(NoteAppError):
    status_code = 400


class NoTextLayerError(EmptyContentError):
    """PDF yielded no text.

    Only a heuristic: scanned images, encryption quirks and broken text
    encodings all look the same from the extracted string.
    """


class EmptyTranscriptError(NoteAppError):
    status_code = 400


class TranscriptUnavailableError(NoteAppError):
    status_code = 400


class EmptyGenerationError(NoteAppError):
    status_code = 500


class DependencyMissingError(NoteAppError):
    status_code = 501

    def __init__(self, binary: str, details: str | None = None):
        super().__init__(f"{binary} not installed", details)
        self.binary = binary


class RateLimitError(NoteAppError):
    status_code = 429

    def __init__(self, message: str, details: str | None = None, retry_after: int | None = None):
        super().__init__(message, details)
        self.retry_after = retry_after


class UpstreamError(NoteAppError):
    """Transport or provider failure.

    ``provider_status`` is the status the provider answered with, if any.
    """

    def __init__(self, message: str, details: str | None = None, provider_status: int | None = None):
        super().__init__(message, details)
        self.provider_status = provider_status

    @property
    def status_code(self) -> int:  # type: ignore[override]
        text = f"{self.message} {self.details or ''}".lower()
        if self.provider_status == 413 or "too large" in text:
            return 413
        if self.provider_status == 400:
            return 400
        return 500

    @property
    def is_rate_limited(self) -> bool:
        return self.provider_status == 429


class ChatGenerationError(NoteAppError):
    status_code = 500


class ConfigurationError(NoteAppError):
    status_code = 500


class PipelineTimeoutError(NoteAppError):
    status_code = 504
