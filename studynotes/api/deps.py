import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import Request

from studynotes.core.errors import NoteAppError, PipelineTimeoutError
from studynotes.services.container import Services

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_services(request: Request) -> Services:
    return request.app.state.services


async def run_stage(awaitable: Awaitable[T], *, error: str, timeout: float | None = None) -> T:
    """Await a pipeline stage, mapping anything untyped to a 500 named after the stage."""
    try:
        if timeout:
            return await asyncio.wait_for(awaitable, timeout)
        return await awaitable
    except NoteAppError:
        raise
    except asyncio.TimeoutError:
        logger.error("%s: timed out after %ss", error, timeout)
        raise PipelineTimeoutError(
            "Request timed out",
            f"Processing took longer than {timeout:g} seconds. Try a shorter input.",
        ) from None
    except Exception as e:
        logger.exception(error)
        raise NoteAppError(error, str(e)) from e
