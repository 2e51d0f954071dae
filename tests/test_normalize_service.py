"""Tests for InputNormalizer validation and dispatch."""

import io
import zipfile

import pytest

from studynotes.core.errors import EmptyContentError, TranscriptUnavailableError, ValidationError
from studynotes.core.models import InputKind, InputPayload, UploadedFile
from studynotes.services.normalize_service import InputNormalizer, parse_input_kind
from studynotes.services.transcript_service import TranscriptResolver
from studynotes.services.transcription_service import MediaTranscriber
from tests.conftest import FakeSpeech, FakeStrategy


def _normalizer(strategies=(), speech=None, **kw) -> InputNormalizer:
    return InputNormalizer(
        TranscriptResolver(list(strategies)),
        MediaTranscriber(speech or FakeSpeech()),
        **kw,
    )


def _pptx_bytes(text: str) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("ppt/slides/slide1.xml", f"<p:sld><a:t>{text}</a:t></p:sld>")
    return buf.getvalue()


class TestParseInputKind:
    def test_known(self) -> None:
        assert parse_input_kind(" PDF ") is InputKind.PDF

    @pytest.mark.parametrize("value", [None, "", "  "])
    def test_missing(self, value) -> None:
        with pytest.raises(ValidationError, match="Input type is required"):
            parse_input_kind(value)

    def test_unknown(self) -> None:
        with pytest.raises(ValidationError, match="Unsupported input type"):
            parse_input_kind("audio")


class TestText:
    @pytest.mark.asyncio
    async def test_verbatim(self) -> None:
        text = "  Mitochondria is the powerhouse of the cell.\n"
        out = await _normalizer().normalize("text", InputPayload(pasted_text=text))
        assert out.raw_text == text
        assert out.kind is InputKind.TEXT
        assert out.source_length == len(text)

    @pytest.mark.asyncio
    async def test_whitespace_only(self) -> None:
        with pytest.raises(EmptyContentError):
            await _normalizer().normalize(InputKind.TEXT, InputPayload(pasted_text=" \n\t "))

    @pytest.mark.asyncio
    async def test_missing(self) -> None:
        with pytest.raises(ValidationError):
            await _normalizer().normalize(InputKind.TEXT, InputPayload())


class TestFiles:
    @pytest.mark.asyncio
    async def test_missing_file(self) -> None:
        with pytest.raises(ValidationError, match="PDF file is required"):
            await _normalizer().normalize(InputKind.PDF, InputPayload())

    @pytest.mark.asyncio
    async def test_wrong_extension(self) -> None:
        payload = InputPayload(file=UploadedFile(filename="notes.txt", data=b"abc"))
        with pytest.raises(ValidationError, match="Invalid docx file type"):
            await _normalizer().normalize(InputKind.DOCX, payload)

    @pytest.mark.asyncio
    async def test_too_large(self) -> None:
        payload = InputPayload(file=UploadedFile(filename="deck.pptx", data=b"x" * 2048))
        with pytest.raises(ValidationError) as exc:
            await _normalizer(max_document_bytes=1024).normalize(InputKind.PPTX, payload)
        assert exc.value.message == "PPTX file too large. Maximum size: 1 KB"

    @pytest.mark.asyncio
    async def test_pptx(self) -> None:
        payload = InputPayload(file=UploadedFile(filename="Deck.PPTX", data=_pptx_bytes("Krebs cycle")))
        out = await _normalizer().normalize(InputKind.PPTX, payload)
        assert out.raw_text == "Krebs cycle"

    @pytest.mark.asyncio
    async def test_pptx_without_text(self) -> None:
        payload = InputPayload(file=UploadedFile(filename="deck.pptx", data=_pptx_bytes("")))
        with pytest.raises(EmptyContentError):
            await _normalizer().normalize(InputKind.PPTX, payload)

    @pytest.mark.asyncio
    async def test_video(self) -> None:
        speech = FakeSpeech("spoken lecture")
        payload = InputPayload(file=UploadedFile(filename="lecture.webm", data=b"\x1a\x45\xdf\xa3"))
        out = await _normalizer(speech=speech).normalize(InputKind.VIDEO, payload)
        assert out.raw_text == "spoken lecture"
        assert speech.calls[0][1] == "media.webm"

    @pytest.mark.asyncio
    async def test_video_too_large(self) -> None:
        payload = InputPayload(file=UploadedFile(filename="lecture.mp4", data=b"x" * 11))
        with pytest.raises(ValidationError, match="Video file too large"):
            await _normalizer(max_video_bytes=10).normalize(InputKind.VIDEO, payload)


class TestYoutube:
    @pytest.mark.asyncio
    async def test_resolved(self) -> None:
        strategy = FakeStrategy("caption_track", "transcript text " * 20)
        out = await _normalizer([strategy]).normalize(
            InputKind.YOUTUBE, InputPayload(youtube_url="https://youtu.be/dQw4w9WgXcQ")
        )
        assert out.raw_text.startswith("transcript text")

    @pytest.mark.asyncio
    async def test_missing_url(self) -> None:
        with pytest.raises(ValidationError, match="YouTube URL is required"):
            await _normalizer().normalize(InputKind.YOUTUBE, InputPayload(youtube_url="  "))

    @pytest.mark.asyncio
    async def test_invalid_url(self) -> None:
        with pytest.raises(ValidationError, match="Invalid YouTube URL"):
            await _normalizer().normalize(InputKind.YOUTUBE, InputPayload(youtube_url="https://vimeo.com/123"))

    @pytest.mark.asyncio
    async def test_no_strategy_succeeds(self) -> None:
        with pytest.raises(TranscriptUnavailableError):
            await _normalizer([FakeStrategy("transcript_api", None)]).normalize(
                InputKind.YOUTUBE, InputPayload(youtube_url="dQw4w9WgXcQ")
            )
