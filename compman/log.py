"""
Structured logging setup.

Features:
- structlog event logging throughout the package
- Human-readable console output on stderr
- JSON lines in a rotating log file (5MB max, 3 backups)
"""

import logging
import logging.handlers
import sys

import structlog

from .config import CompmanConfig

__all__ = ["configure_logging"]

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def configure_logging(config: CompmanConfig, console: bool = True) -> None:
    """Route structlog through stdlib logging with console and file handlers.

    Args:
        config: Configuration providing level and log file location
        console: Attach a stderr handler
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger("compman")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    if console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
                foreign_pre_chain=_SHARED_PROCESSORS,
            )
        )
        root.addHandler(handler)

    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            str(config.log_file),
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
        )
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=_SHARED_PROCESSORS,
            )
        )
        root.addHandler(file_handler)
    except OSError:
        pass  # Skip file logging if not writable
