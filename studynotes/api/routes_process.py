from fastapi import APIRouter, Depends, File, Form, UploadFile

from studynotes.api.deps import get_services, run_stage
from studynotes.core.models import InputKind, InputPayload, UploadedFile
from studynotes.services.container import Services
from studynotes.services.normalize_service import parse_input_kind

router = APIRouter(prefix="/api", tags=["process"])


async def _read_upload(upload: UploadFile | None) -> UploadedFile | None:
    if upload is None or not upload.filename:
        return None
    data = await upload.read()
    return UploadedFile(filename=upload.filename, data=data)


@router.post("/process")
async def process(
    services: Services = Depends(get_services),
    input_type: str | None = Form(None, alias="inputType"),
    youtube_url: str | None = Form(None, alias="youtubeUrl"),
    pasted_text: str | None = Form(None, alias="pastedText"),
    pdf_file: UploadFile | None = File(None, alias="pdfFile"),
    docx_file: UploadFile | None = File(None, alias="docxFile"),
    pptx_file: UploadFile | None = File(None, alias="pptxFile"),
    video_file: UploadFile | None = File(None, alias="videoFile"),
):
    kind = parse_input_kind(input_type)
    # only the field matching inputType is read
    upload = {
        InputKind.PDF: pdf_file,
        InputKind.DOCX: docx_file,
        InputKind.PPTX: pptx_file,
        InputKind.VIDEO: video_file,
    }.get(kind)
    payload = InputPayload(
        youtube_url=youtube_url,
        pasted_text=pasted_text,
        file=await _read_upload(upload),
    )

    normalized = await run_stage(
        services.normalizer.normalize(kind, payload),
        error="Failed to process input",
        timeout=services.settings.PIPELINE_TIMEOUT_S,
    )
    return {
        "success": True,
        "text": normalized.raw_text,
        "inputType": normalized.kind.value,
        "textLength": normalized.source_length,
    }
