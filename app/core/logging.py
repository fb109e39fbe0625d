"""Logging configuration."""
import logging
import sys
from typing import Optional

from app.core.config import settings

# Chatty at INFO while streaming audio and tokens
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "websockets", "aiosqlite", "sqlalchemy.engine")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure application logging.

    Log lines carry a bracketed component tag and the stream or call id, so one
    call can be followed across the media session, dialogue and telephony logs.
    """
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
