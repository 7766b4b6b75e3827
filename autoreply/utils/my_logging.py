# autoreply/utils/my_logging.py
"""Logging configuration shared by the API and the Celery worker"""
import logging
import sys

from autoreply.config.settings import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that drown out the pipeline logs at INFO
THIRD_PARTY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "openai",
    "celery.beat",
    "kombu",
    "uvicorn.access",
)


def setup_logging(verbose=True):
    """Configure root logging once per process"""
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO) if verbose else logging.WARNING

    root = logging.getLogger()
    if not any(getattr(handler, "_autoreply", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._autoreply = True
        root.addHandler(handler)
    root.setLevel(level)

    if not verbose:
        third_party_level = logging.ERROR
    elif settings.DEBUG:
        third_party_level = logging.INFO
    else:
        third_party_level = logging.WARNING

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
