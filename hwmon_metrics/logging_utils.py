from __future__ import annotations

import logging
import sys

from colorlog import ColoredFormatter

TRACE_LEVEL = 5

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_COLORS = {
    "TRACE": "cyan",
    "DEBUG": "blue",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _trace(self: logging.Logger, message: str, *args: object, **kwargs: object) -> None:
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, message, args, **kwargs)


def configure_logging(level: int, color: bool | None = None) -> None:
    """Install a single stderr handler, colored when attached to a terminal."""
    logging.addLevelName(TRACE_LEVEL, "TRACE")
    setattr(logging.Logger, "trace", _trace)
    stream = sys.stderr
    if color is None:
        color = stream.isatty()
    handler = logging.StreamHandler(stream)
    if color:
        handler.setFormatter(ColoredFormatter("%(log_color)s" + LOG_FORMAT, log_colors=LOG_COLORS))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)
    # SDK internals stay at INFO even under -v.
    logging.getLogger("opentelemetry").setLevel(max(level, logging.INFO))


def resolve_log_level(verbosity: int, fallback: str) -> int:
    if verbosity >= 2:
        return TRACE_LEVEL
    if verbosity == 1:
        return logging.DEBUG
    name = fallback.upper()
    if name == "TRACE":
        return TRACE_LEVEL
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO
