import logging
from studynotes.core.config import settings

def setup_logging():
    level = logging.DEBUG if settings.ENV != "prod" else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # openai/httpx log every request at INFO; keep them out of pipeline logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
