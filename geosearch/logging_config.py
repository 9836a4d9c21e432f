"""Centralized logging configuration."""

import logging
import sys

from pythonjsonlogger import jsonlogger

from geosearch.config import settings


class LoggingConfig:
    """Root logger setup driven by settings."""

    @classmethod
    def setup_logging(cls, level: str = None, fmt: str = None) -> None:
        level_name = (level or settings.LOG_LEVEL).upper()
        log_level = getattr(logging, level_name, logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)

        if (fmt or settings.LOG_FORMAT).lower() == "json":
            formatter = jsonlogger.JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
                rename_fields={"asctime": "timestamp", "levelname": "level"},
            )
        else:
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )

        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

        # Suppress noisy third-party loggers
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
