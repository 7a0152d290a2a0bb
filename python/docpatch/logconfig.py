"""
Logging setup for applications embedding docpatch.

The library only emits through structlog loggers; it never configures output
itself. The host process, such as a tool server or CLI, calls
``configure_logging()`` once at startup.
"""

import logging
import sys

import structlog


def configure_logging(level: int = logging.INFO, json: bool = True) -> None:
    """
    Routes stdlib logging and structlog output to stderr.

    Hosts that speak a protocol over stdout (tool servers, pipes) must keep
    stdout clean, so nothing here ever writes to it.
    """
    logging.basicConfig(stream=sys.stderr, level=level, force=True)

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )
