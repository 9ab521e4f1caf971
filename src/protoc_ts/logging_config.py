"""structlog configuration, bridged onto the standard library logging tree."""

from __future__ import annotations

import logging
import sys
from typing import Any, List, Optional

import structlog
from structlog.dev import ConsoleRenderer
from structlog.processors import TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

VERBOSE = "verbose"
NORMAL = "normal"
SILENT = "silent"

_LEVELS = {
    VERBOSE: logging.DEBUG,
    NORMAL: logging.INFO,
    SILENT: logging.ERROR,
}


def configure_logging(verbosity: str = NORMAL, colors: Optional[bool] = None) -> None:
    """Route structlog and stdlib records through one console handler on stderr."""
    if colors is None:
        colors = sys.stderr.isatty()

    shared_pre_chain: List[Any] = [
        add_log_level,
        TimeStamper(fmt="%H:%M:%S"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            ConsoleRenderer(colors=colors),
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_LEVELS.get(verbosity, logging.INFO))


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
