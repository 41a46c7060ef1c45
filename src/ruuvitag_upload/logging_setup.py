from __future__ import annotations

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str = "WARNING", log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger for a CLI run.

    Logs always go to stderr, since stdout carries the batch JSON. A log file
    is added when requested; if it cannot be opened the run continues with
    stderr only.

    Returns:
        The configured root logger.
    """
    numeric_level = getattr(logging, str(level).upper(), logging.WARNING)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error: Optional[OSError] = None
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            file_error = e

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    root = logging.getLogger()
    if file_error is not None:
        root.warning("Could not open log file %s: %s", log_file, file_error)
    return root
