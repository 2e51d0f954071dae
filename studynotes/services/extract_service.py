import asyncio
import html
import logging
import re
import zipfile

from studynotes.core.errors import NoTextLayerError, ValidationError
from studynotes.core.models import InputKind
from studynotes.core.tempfiles import scoped_temp_file

logger = logging.getLogger(__name__)

# PPTX text runs always look like <a:t>...</a:t> (optionally with attributes).
_PPTX_TEXT_RE = re.compile(r"<a:t(?:\s[^>]*)?>([^<]*)</a:t>")
_SLIDE_RE = re.compile(r"^ppt/slides/slide(\d+)\.xml$")


def _pdf_text(path: str) -> str:
    from pypdf import PdfReader
    from pypdf.errors import PyPdfError

    try:
        reader = PdfReader(path)
        parts = []
        for page in reader.pages:
            t = page.extract_text() or ""
            if t.strip():
                parts.append(t)
    except (PyPdfError, ValueError, KeyError, TypeError, IndexError) as e:
        raise ValidationError(
            "Invalid or corrupted PDF file. Please ensure the file is a valid PDF document.",
            str(e),
        ) from e
    logger.debug("PDF has %d pages", len(reader.pages))
    return "\n\n".join(parts).strip()


def _docx_text(path: str) -> str:
    from docx import Document as Docx
    from docx.opc.exceptions import PackageNotFoundError

    try:
        d = Docx(path)
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ValidationError("Invalid or corrupted DOCX file.", str(e)) from e
    parts = []
    for para in d.paragraphs:
        if para.text.strip():
            parts.append(para.text)
    for table in d.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells if c.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n".join(parts)


def _pptx_text(path: str) -> str:
    try:
        with zipfile.ZipFile(path) as zf:
            slides = []
            for name in zf.namelist():
                m = _SLIDE_RE.match(name)
                if m:
                    slides.append((int(m.group(1)), name))
            lines = []
            for _, name in sorted(slides):
                xml = zf.read(name).decode("utf-8", errors="ignore")
                for run in _PPTX_TEXT_RE.findall(xml):
                    run = html.unescape(run).strip()
                    if run:
                        lines.append(run)
    except zipfile.BadZipFile as e:
        raise ValidationError("Invalid or corrupted PPTX file.", str(e)) from e
    return "\n".join(lines)


async def extract_pdf(data: bytes) -> str:
    if not data:
        raise ValidationError("PDF file is empty")
    with scoped_temp_file(data, "pdf") as path:
        text = await asyncio.to_thread(_pdf_text, path)
    logger.info("Extracted %d characters from PDF", len(text))
    if not text:
        # An empty text layer usually means a scanned document, but encrypted
        # or oddly encoded files end up here too; we can't tell them apart.
        raise NoTextLayerError(
            "This PDF appears to be image-based (scanned document). Please use a PDF with selectable text, or convert the images to text first.",
            "No extractable text was found. The file may contain only images, or be encrypted or corrupted.",
        )
    return text


async def extract_docx(data: bytes) -> str:
    if not data:
        raise ValidationError("DOCX file is empty")
    with scoped_temp_file(data, "docx") as path:
        text = await asyncio.to_thread(_docx_text, path)
    logger.info("Extracted %d characters from DOCX", len(text))
    return text


async def extract_pptx(data: bytes) -> str:
    if not data:
        raise ValidationError("PPTX file is empty")
    with scoped_temp_file(data, "pptx") as path:
        text = await asyncio.to_thread(_pptx_text, path)
    logger.info("Extracted %d characters from PPTX", len(text))
    return text


_EXTRACTORS = {
    InputKind.PDF: extract_pdf,
    InputKind.DOCX: extract_docx,
    InputKind.PPTX: extract_pptx,
}


async def extract_text(kind: InputKind, data: bytes) -> str:
    try:
        extractor = _EXTRACTORS[kind]
    except KeyError:
        raise ValidationError(f"No document extractor for input type: {kind.value}") from None
    return await extractor(data)
