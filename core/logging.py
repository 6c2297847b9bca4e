"""
Logging configuration
"""

import logging
import sys
from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class ErrorContextFormatter(logging.Formatter):
    """
    Appends the structured context of a CatalogueException to the line.

    Callers pass it as ``extra={"error_context": exc.to_dict()}``.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        error_context = getattr(record, "error_context", None)
        if not error_context:
            return line

        context = error_context.get("context") or {}
        details = ", ".join(
            f"{k}={v}" for k, v in context.items() if k != "error_timestamp" and v is not None
        )
        return f"{line} | {error_context.get('error_type')}" + (f" [{details}]" if details else "")


def setup_logging():
    """Configure application logging"""

    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ErrorContextFormatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logging.basicConfig(level=log_level, handlers=[handler])

    # Library loggers are noisy at INFO
    for noisy in ("sqlalchemy.engine", "sqlalchemy.pool", "httpx", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {settings.LOG_LEVEL} level")
