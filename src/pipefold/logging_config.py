"""
Logging Configuration for pipefold.

Library modules log through `logging.getLogger(__name__)` and never install
handlers themselves. Set PIPEFOLD_DEBUG_LOG=1 (or call
`get_debug_trace_logger(force=True)`) to attach a stderr handler and a
trace file in the log directory to the `pipefold` logger.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from .config import get_config

ROOT_LOGGER_NAME = "pipefold"
TRACE_LOG_FILENAME = "pipefold_trace.log"

_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _ensure_log_directory() -> Path:
    """Ensure log directory exists and return its path."""
    log_dir = get_config().resolved_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _create_file_handler(log_filename: str) -> Optional[logging.FileHandler]:
    """
    Create a file handler for the specified log file.

    Returns:
        Configured FileHandler, or None if the directory is not writable
    """
    try:
        log_path = _ensure_log_directory() / log_filename
        handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
    except OSError:
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FORMAT))
    return handler


class FlushingStreamHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit.

    ::: This is-in-layer Infrastructure-Layer.
    ::: This is a handler.
    ::: This is stateless.
    """
    def emit(self, record):
        super().emit(record)
        self.flush()


def _create_stderr_handler() -> logging.StreamHandler:
    """Create a stderr handler for console output with auto-flush."""
    handler = FlushingStreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FORMAT))
    return handler


def get_debug_trace_logger(force: bool = False) -> logging.Logger:
    """
    Get the `pipefold` logger, configured for debug tracing when enabled.

    Handlers are attached once, and only when PIPEFOLD_DEBUG_LOG is set
    or `force` is true. Output goes to <log_dir>/pipefold_trace.log and stderr.

    Returns:
        The package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    if logger.handlers or not (force or get_config().debug_log):
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    file_handler = _create_file_handler(TRACE_LOG_FILENAME)
    if file_handler:
        logger.addHandler(file_handler)

    logger.addHandler(_create_stderr_handler())
    return logger


def reset_debug_trace_logger() -> None:
    """Detach and close every handler installed by get_debug_trace_logger()."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
