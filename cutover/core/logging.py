from __future__ import annotations

import logging

from cutover.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    # Configure root logging once per process; later calls only adjust the level.
    settings = get_settings()
    level = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=_LOG_FORMAT)
    root.setLevel(level)
    # httpx logs every request at INFO; probes would flood the output.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
