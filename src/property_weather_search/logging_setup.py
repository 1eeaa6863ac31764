from __future__ import annotations

import logging
import sys
from typing import Optional


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Install one stream handler on the `pws` logger tree.

    Safe to call more than once; the handler is only added the first time.
    """

    logger = logging.getLogger("pws")
    logger.setLevel((level or "INFO").upper())
    if any(getattr(h, "_pws_handler", False) for h in logger.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._pws_handler = True
    logger.addHandler(handler)
