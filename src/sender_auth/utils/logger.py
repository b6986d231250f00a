"""Logging configuration for sender-auth.

Verbosity sets the level of the package logger. Single components (the DNS
resolvers, the SPF evaluator, the DKIM verifier) can be turned up or down
through ``[output.log_levels]`` without flooding the rest of the output,
e.g. to trace DKIM key lookups while SPF stays quiet.
"""

import logging
import sys
from typing import TextIO

from ..config import OutputConfig
from ..constants import PACKAGE_LOGGER, TUNABLE_LOGGERS
from ..output import VerbosityLevel

VERBOSITY_LEVELS = {
    VerbosityLevel.QUIET: logging.ERROR,
    VerbosityLevel.NORMAL: logging.WARNING,
    VerbosityLevel.VERBOSE: logging.INFO,
    VerbosityLevel.DEBUG: logging.DEBUG,
}

# verify_multiple logs from pool threads, so debug output names the thread
DEBUG_FORMAT = "%(asctime)s - %(name)s [%(threadName)s] - %(levelname)s - %(message)s"
DEFAULT_FORMAT = "%(levelname)s: %(message)s"


def setup_logger(
    verbosity: VerbosityLevel = VerbosityLevel.NORMAL,
    output: OutputConfig | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure the package logger and its component loggers.

    Calling it again replaces the previous handler and component levels.

    Args:
        verbosity: Level for the whole package
        output: Output config whose ``log_levels`` override single components
        stream: Destination (default: stderr, keeping stdout for results)

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.handlers.clear()
    logger.setLevel(VERBOSITY_LEVELS[verbosity])

    # No handler level: a component set to debug must get through
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            DEBUG_FORMAT if verbosity == VerbosityLevel.DEBUG else DEFAULT_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)

    overrides = output.log_levels if output is not None else {}
    for component in TUNABLE_LOGGERS:
        level = overrides.get(component)
        component_logger = logging.getLogger(f"{PACKAGE_LOGGER}.{component}")
        component_logger.setLevel(level.upper() if level else logging.NOTSET)

    return logger
