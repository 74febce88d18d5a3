"""
Logging setup.

Console output is always on.  When ``VSG_LOG_DIR`` is set, ``app.log``
receives every record and ``error.log`` only errors.  Components take an
optional ``logger`` argument instead of writing to a global.
"""

from __future__ import annotations

import logging
from pathlib import Path

from vsearch_lti.settings import Settings

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"

# Marks handlers owned by configure_logging so a second call replaces them.
_HANDLER_FLAG = "_vsearch_lti_handler"


def _tag(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_FLAG, True)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_logging(settings: Settings) -> logging.Logger:
    """Install console (and optional file) sinks on the root logger."""
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())

    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            root.removeHandler(handler)
            handler.close()

    root.addHandler(_tag(logging.StreamHandler()))

    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        root.addHandler(_tag(logging.FileHandler(log_dir / "app.log", encoding="utf-8")))

        error_handler = _tag(logging.FileHandler(log_dir / "error.log", encoding="utf-8"))
        error_handler.setLevel(logging.ERROR)
        root.addHandler(error_handler)

    return root
