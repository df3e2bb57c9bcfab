"""Logging setup for packrip.

Every module asks for its logger through get_logger(__name__). Handlers are
attached to the root logger on first use: a console handler always, and a
file handler when LOG_FILE names one. LOG_LEVEL picks the level (INFO when
unset or unknown).
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Chatty dependencies that stay at WARNING unless packrip itself is at DEBUG
NOISY_LOGGERS = ('urllib3', 'uvicorn.access')

_configured = False


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """Attach packrip's handlers to the root logger once; returns the root logger.

    Explicit arguments win over LOG_LEVEL / LOG_FILE.
    """
    global _configured
    root = logging.getLogger()
    if _configured:
        return root

    level_name = (level or os.getenv('LOG_LEVEL') or 'INFO').upper()
    log_level = getattr(logging, level_name, None)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    log_file = log_file if log_file is not None else os.getenv('LOG_FILE', '')

    root.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError:
            root.exception('Failed to open log file %s; logging to console only', log_file)

    if log_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
