"""Logging setup shared by the scanner CLI and API.

Log records go to stderr because ``receipt-scanner scan`` and ``parse``
print their JSON result on stdout. The HTTP client used for Cloud Vision
logs every request URL at INFO, and that URL carries the API key, so
its loggers are held at WARNING.
"""

import logging
import sys

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Request URLs include ?key=<vision api key>.
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str = "INFO", stream=None) -> None:
    """Configure root logging for a scanner process.

    Repeated calls only adjust the level.

    Args:
        level: Logging level name; unknown names fall back to INFO.
        stream: Destination for log records, stderr when omitted.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    if root.handlers:
        return

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
