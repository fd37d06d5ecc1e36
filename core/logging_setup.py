"""
Logging Setup
=============

Console handler plus an optional log file, shared by every planforge logger.
"""

import logging
import os
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach handlers to the root logger once.

    Args:
        level: Logging level name
        log_file: Optional path, e.g. "logs/planforge.log"

    Returns:
        The configured root logger
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT)

    if not any(getattr(h, "_planforge", False) for h in root.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(formatter)
        sh._planforge = True
        root.addHandler(sh)

    if log_file and not any(
        isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_file)
        for h in root.handlers
    ):
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(formatter)
        root.addHandler(fh)

    # request lines from httpx would echo full URLs at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return root
