"""Structured logging setup using structlog.

The same processor chain feeds either a JSON renderer or a console renderer,
and stdlib logging (httpx, hypercorn) is routed through it as well.
"""
import logging
import sys

import structlog

from notesrag import config


def configure_logging(log_level: str = None, json_output: bool = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: Level name (default from config.LOG_LEVEL)
        json_output: Render JSON lines instead of console output
            (default from config.LOG_JSON)
    """
    log_level = (log_level or config.LOG_LEVEL).upper()
    if json_output is None:
        json_output = config.LOG_JSON

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
