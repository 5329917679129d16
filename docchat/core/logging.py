"""Logging setup for the API process and the Celery worker."""

import logging

from docchat.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once per process."""
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    # Keep HTTP client chatter out of the pipeline logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    _configured = True
