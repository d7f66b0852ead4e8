"""
Ragline - Logging
==================
``get_logger`` hands every Ragline module a stdout logger sharing one
line format, so ingestion runs, store calls and API requests interleave
readably in a single stream.

Stage tags prefix messages so a run can be grepped by pipeline step:
``[CHUNK]``, ``[INGEST]``, ``[STORE]``, ``[RETRIEVE]``, ``[SYNTH]``, ``[RAG]``, ``[API]``.

Level by ``settings.ENV``: ``"dev"`` logs DEBUG and up (per-document chunk
counts included), ``"prod"`` only WARNING and up (rejected batches, store
and model failures).

Usage:
    from ragline.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[STORE] Upserted %d chunks into '%s'.", count, table_name)
"""

import logging
import sys

from ragline.config.settings import settings

_ENV_LEVEL_MAP = {
    "dev": logging.DEBUG,
    "prod": logging.WARNING,
}
_DEFAULT_LEVEL = _ENV_LEVEL_MAP.get(settings.ENV, logging.INFO)
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return the logger for *name* (usually ``__name__``).

    *level* overrides the ``ENV``-derived level on first configuration;
    later calls for the same name return the logger unchanged.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved_level = level if level is not None else _DEFAULT_LEVEL
    logger.setLevel(resolved_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved_level)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)

    # uvicorn and pytest install root handlers; don't print twice
    logger.propagate = False
    return logger
