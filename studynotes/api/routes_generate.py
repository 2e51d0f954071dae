import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from studynotes.api.deps import get_services, run_stage
from studynotes.core.errors import ValidationError
from studynotes.core.models import DetailLevel, InputKind
from studynotes.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["generate"])

MIN_USEFUL_LENGTH = 50


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str | None = None
    input_type: str | None = Field(None, alias="inputType")
    detail_level: str | None = Field(None, alias="detailLevel")


def _validate(req: GenerateRequest, max_length: int) -> tuple[str, InputKind, DetailLevel]:
    text = req.text
    if not text or not text.strip():
        raise ValidationError("Text content is required. Please process your input first.")

    try:
        kind = InputKind((req.input_type or "").strip().lower())
    except ValueError:
        raise ValidationError("Valid input type is required") from None

    try:
        detail = DetailLevel(req.detail_level.strip().lower()) if req.detail_level else DetailLevel.MEDIUM
    except ValueError:
        raise ValidationError(
            "Invalid detail level",
            f"Expected one of: {', '.join(d.value for d in DetailLevel)}",
        ) from None

    if len(text) > max_length:
        raise ValidationError(
            f"Text content is too long. Maximum length: {max_length:,} characters",
            f"Received {len(text):,} characters.",
        )
    if len(text.strip()) < MIN_USEFUL_LENGTH:
        logger.warning("Very short text for generation (%d chars); notes may be limited", len(text.strip()))
    return text, kind, detail


@router.post("/generate")
async def generate(req: GenerateRequest, services: Services = Depends(get_services)):
    text, kind, detail = _validate(req, services.settings.MAX_TEXT_LENGTH)
    logger.info("Generating %s notes for %s input, text length: %d", detail.value, kind.value, len(text))

    note = await run_stage(
        services.generator.generate(text, kind, detail),
        error="Failed to generate notes",
        timeout=services.settings.PIPELINE_TIMEOUT_S,
    )
    logger.info("Notes generated: %d chars from %d chunk(s)", len(note.text), note.chunk_count)
    return {"success": True, "notes": note.text, "inputType": note.input_kind.value}
