import logging
import os
import sys

__version__ = "0.3.0"

# Overridable from the environment the same way the wrapper scripts were
LOG_LEVEL = os.environ.get("GPULAUNCH_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(message)s"

def _level(name) -> int:
    if isinstance(name, int):
        return name
    value = logging.getLevelName(str(name).upper())
    return value if isinstance(value, int) else logging.INFO

def setup_logging(level=None) -> logging.Logger:
    """Attach a single stderr handler to the package logger.

    A handler left over from an earlier call is replaced, not reused: its
    stream may already be closed.
    """
    logger = logging.getLogger("gpulaunch")
    logger.setLevel(_level(level if level is not None else LOG_LEVEL))
    for h in list(logger.handlers):
        if getattr(h, "_gpulaunch", False):
            logger.removeHandler(h)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._gpulaunch = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
