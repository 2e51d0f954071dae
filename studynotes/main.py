import logging
import shutil
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studynotes.core.config import Settings, settings
from studynotes.core.errors import NoteAppError, RateLimitError
from studynotes.core.logging import setup_logging
from studynotes.services.container import Services, build_services

from studynotes.api.routes_process import router as process_router
from studynotes.api.routes_generate import router as generate_router
from studynotes.api.routes_chat import router as chat_router

logger = logging.getLogger(__name__)


async def _note_app_error_handler(request: Request, exc: NoteAppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers or None)


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    parts = []
    for e in exc.errors():
        loc = ".".join(str(x) for x in e.get("loc", ()) if x != "body")
        parts.append(f"{loc}: {e.get('msg')}" if loc else str(e.get("msg")))
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": "; ".join(parts)})


def create_app(services: Services | None = None):
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "services", None) is None
        if owned:
            app.state.services = build_services(settings)
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    if services is not None:
        # Injected services are owned (and closed) by the caller.
        app.state.services = services

    origins = [o.strip() for o in (settings.CORS_ORIGINS or "").split(",") if o.strip()]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(NoteAppError, _note_app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    app.include_router(process_router)
    app.include_router(generate_router)
    app.include_router(chat_router)

    @app.get("/health")
    async def health(request: Request):
        cfg: Settings = request.app.state.services.settings
        checks = {
            "youtube_api_key": bool(cfg.YOUTUBE_API_KEY),
            "ffmpeg": shutil.which(cfg.FFMPEG_BINARY) is not None,
        }
        if cfg.LLM_PROVIDER == "ollama":
            checks["llm"] = False
            try:
                async with httpx.AsyncClient(timeout=3.0) as c:
                    r = await c.get(f"{cfg.OLLAMA_BASE_URL.rstrip('/')}/api/tags")
                    checks["llm"] = r.status_code == 200
            except httpx.HTTPError:
                pass
        else:
            checks["llm"] = bool(cfg.OPENAI_API_KEY if cfg.LLM_PROVIDER == "openai" else cfg.GROQ_API_KEY)
        checks["speech"] = bool(cfg.OPENAI_API_KEY if cfg.SPEECH_PROVIDER == "openai" else cfg.GROQ_API_KEY)

        # YouTube keys and ffmpeg are optional; only the language model is required.
        return {"ok": checks["llm"], "app": cfg.APP_NAME, "env": cfg.ENV, "deps": checks}

    return app

app = create_app()
