import logging

from studynotes.core.errors import EmptyContentError, ValidationError
from studynotes.core.models import InputKind, InputPayload, NormalizedInput, UploadedFile
from studynotes.core.utils import format_file_size, megabytes
from studynotes.services import extract_service
from studynotes.services.transcript_service import TranscriptResolver, extract_video_id
from studynotes.services.transcription_service import MediaTranscriber

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    InputKind.PDF: ("pdf",),
    InputKind.DOCX: ("docx",),
    InputKind.PPTX: ("pptx",),
    InputKind.VIDEO: ("mp4", "webm", "ogg", "mov", "avi"),
}

_LABELS = {
    InputKind.PDF: "PDF",
    InputKind.DOCX: "DOCX",
    InputKind.PPTX: "PPTX",
    InputKind.VIDEO: "Video",
}

SHORT_TEXT_WARNING = 100


def parse_input_kind(value: str | None) -> InputKind:
    if not value or not value.strip():
        raise ValidationError("Input type is required")
    try:
        return InputKind(value.strip().lower())
    except ValueError:
        raise ValidationError(f"Unsupported input type: {value}") from None


class InputNormalizer:
    def __init__(
        self,
        resolver: TranscriptResolver,
        transcriber: MediaTranscriber,
        *,
        max_document_bytes: int = megabytes(10),
        max_video_bytes: int = megabytes(50),
    ):
        self.resolver = resolver
        self.transcriber = transcriber
        self.max_document_bytes = max_document_bytes
        self.max_video_bytes = max_video_bytes

    def _check_file(self, kind: InputKind, file: UploadedFile | None) -> UploadedFile:
        label = _LABELS[kind]
        if file is None or not file.filename:
            raise ValidationError(f"{label} file is required")

        allowed = ALLOWED_EXTENSIONS[kind]
        if file.extension not in allowed:
            raise ValidationError(
                f"Invalid {label.lower()} file type. Supported: {', '.join(allowed)}",
                f"Received: {file.filename}",
            )

        limit = self.max_video_bytes if kind is InputKind.VIDEO else self.max_document_bytes
        if file.size > limit:
            raise ValidationError(
                f"{label} file too large. Maximum size: {format_file_size(limit)}",
                f"Received {format_file_size(file.size)}",
            )
        logger.info("Processing %s: %s, size: %d", label, file.filename, file.size)
        return file

    async def _youtube(self, payload: InputPayload) -> str:
        url = (payload.youtube_url or "").strip()
        if not url:
            raise ValidationError("YouTube URL is required")
        if not extract_video_id(url):
            raise ValidationError("Invalid YouTube URL")
        resolved = await self.resolver.resolve(url)
        if len(resolved.text) < SHORT_TEXT_WARNING:
            logger.warning("Very little text extracted from %s, notes may be limited", resolved.video_id)
        return resolved.text

    async def _text(self, payload: InputPayload) -> str:
        if payload.pasted_text is None:
            raise ValidationError("Pasted text is required")
        if not payload.pasted_text.strip():
            raise EmptyContentError("Pasted text is required", "The pasted text is empty or whitespace only.")
        return payload.pasted_text

    async def normalize(self, kind: InputKind | str | None, payload: InputPayload) -> NormalizedInput:
        if not isinstance(kind, InputKind):
            kind = parse_input_kind(kind)
        logger.info("Processing input type: %s", kind.value)

        if kind is InputKind.YOUTUBE:
            text = await self._youtube(payload)
        elif kind is InputKind.TEXT:
            text = await self._text(payload)
        elif kind is InputKind.VIDEO:
            file = self._check_file(kind, payload.file)
            text = await self.transcriber.transcribe(file.data, file.extension)
        else:
            file = self._check_file(kind, payload.file)
            text = await extract_service.extract_text(kind, file.data)

        if not text or not text.strip():
            raise EmptyContentError(
                "No text could be extracted from the input. Please try a different file or source.",
                f"The {kind.value} input produced no text.",
            )

        logger.info("Successfully processed %s, extracted %d characters", kind.value, len(text))
        return NormalizedInput(raw_text=text, kind=kind, source_length=len(text))
