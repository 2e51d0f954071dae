import asyncio
import json
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from studynotes.api.deps import get_services, run_stage
from studynotes.core.errors import NoteAppError, ValidationError
from studynotes.core.models import ConversationTurn
from studynotes.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


class ChatRequest(BaseModel):
    notes: str | None = None
    messages: list[ConversationTurn] = []
    question: str | None = None


def _validate(req: ChatRequest) -> tuple[str, str]:
    if not (req.notes or "").strip():
        raise ValidationError("Notes are required", "Generate notes before asking questions about them.")
    if not (req.question or "").strip():
        raise ValidationError("Question is required")
    return req.notes, req.question.strip()


def _sse(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


@router.post("")
async def chat(req: ChatRequest, services: Services = Depends(get_services)):
    notes, question = _validate(req)
    response = await run_stage(
        services.chat.ask(notes, req.messages, question),
        error="Failed to generate response",
    )
    return {"success": True, "response": response}


@router.post("/stream")
async def chat_stream(req: ChatRequest, services: Services = Depends(get_services)):
    """Server-Sent Events variant of ``POST /api/chat``.

    Emits events:
      - token: { delta }
      - ping: {} while the model has not produced anything for a while
      - error: { error, details? }
      - done: [DONE]
    """
    notes, question = _validate(req)
    engine = services.chat

    async def event_gen():
        # The model can sit silent for a long time before its first token; a
        # background producer plus periodic pings keeps proxies from timing out.
        # None marks the end of the stream.
        q: asyncio.Queue[str | None] = asyncio.Queue()
        err: dict = {}

        async def producer():
            try:
                async for delta in engine.stream(notes, req.messages, question):
                    await q.put(delta)
            except NoteAppError as e:
                err.update(e.to_dict())
            except Exception as e:
                logger.exception("Chat stream failed")
                err.update({"error": "Failed to generate response", "details": str(e)})
            finally:
                await q.put(None)

        task = asyncio.create_task(producer())
        try:
            while True:
                try:
                    delta = await asyncio.wait_for(q.get(), timeout=15.0)
                except asyncio.TimeoutError:
                    yield _sse("ping", {})
                    continue
                if delta is None:
                    break
                yield _sse("token", {"delta": delta})

            if err:
                yield _sse("error", err)
            yield "event: done\ndata: [DONE]\n\n"
        finally:
            if not task.done():
                task.cancel()

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(event_gen(), media_type="text/event-stream", headers=headers)
