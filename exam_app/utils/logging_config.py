"""Logging setup for the exam server."""

from __future__ import annotations

import logging
from logging import Logger

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: int = logging.INFO) -> Logger:
    """Configure root logging once and return the application logger."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    return logging.getLogger("exam_app")
