"""
Logging utility for the AutoML studio backend.

Provides configured logger instances.
"""

import logging

from automl_studio.utils.config import settings


def get_logger(name: str = "automl-studio"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(settings.LOG_LEVEL)
    return logger


logger = get_logger()
