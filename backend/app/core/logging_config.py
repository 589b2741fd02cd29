from __future__ import annotations

import logging.config

from backend.app.core.config import settings


def configure_logging(level: str | None = None) -> None:
    """Configure les loggers de l'application (idempotent)."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "backend": {
                    "handlers": ["console"],
                    "level": level or settings.log_level,
                    "propagate": False,
                },
            },
        }
    )
