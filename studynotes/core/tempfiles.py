import logging
import os
import shutil
import tempfile
import uuid
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


def _safe_suffix(ext: str | None) -> str:
    ext = (ext or "").strip().lstrip(".").lower()
    return f".{ext}" if ext.isalnum() else ""


def remove_quietly(path: str) -> None:
    try:
        if os.path.isdir(path):
            shutil.rmtree(path)
        elif os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning("Failed to clean up temp path %s: %s", path, e)


@contextmanager
def scoped_temp_file(data: bytes, ext: str | None = None, prefix: str = "upload") -> Iterator[str]:
    """Write ``data`` to a temp file and delete it when the block exits."""
    # Keep the original extension: parsers and the speech API sniff it.
    path = os.path.join(tempfile.gettempdir(), f"{prefix}_{uuid.uuid4().hex}{_safe_suffix(ext)}")
    try:
        with open(path, "wb") as f:
            f.write(data)
        yield path
    finally:
        remove_quietly(path)


@contextmanager
def scoped_temp_dir(prefix: str = "work") -> Iterator[str]:
    path = tempfile.mkdtemp(prefix=f"{prefix}_")
    try:
        yield path
    finally:
        remove_quietly(path)
