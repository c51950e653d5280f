from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from voicenotes.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
SERVER_LOGGERS = ("uvicorn", "uvicorn.access", "fastapi")
# SDK request chatter at INFO drowns the pipeline logs
SDK_LOGGERS = ("httpx", "botocore", "googleapiclient.discovery", "notion_client")


def setup_logging(settings: Settings) -> None:
    """Configure stdout logging at the configured level."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout)

    for name in SERVER_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)
    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    get_logger(__name__).info(
        "Logging configured",
        extra={"level": settings.log_level, "environment": settings.environment},
    )


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
