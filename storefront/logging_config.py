import logging
import sys
from typing import Optional

from storefront import settings


def setup_logging(level: Optional[str] = None, format_string: Optional[str] = None) -> None:
    log_level = level or settings.LOG_LEVEL
    log_format = format_string or settings.LOG_FORMAT

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(stream_handler)

    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logging.getLogger(__name__).info("logging configured at %s", log_level)
