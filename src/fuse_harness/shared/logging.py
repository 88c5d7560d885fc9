"""structlog setup for fuse-harness.

Harness events go to stderr so they never mix with command output on
stdout. CI jobs that archive logs can switch to JSON lines in a file.
"""

import logging
import sys
from pathlib import Path

import structlog


def configure_logging(
    level: str = "warning",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Route structlog through stdlib logging at the given level.

    Args:
        level: Level name; unknown names fall back to warning
        log_file: Write here instead of stderr
        json_output: Render JSON lines instead of console output
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)
    handler = _handler(log_file)
    handler.setLevel(log_level)
    logging.basicConfig(level=log_level, handlers=[handler], format="%(message)s", force=True)

    structlog.configure(
        processors=[*_event_processors(), *_renderers(json_output)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _handler(log_file: str | Path | None) -> logging.Handler:
    if log_file:
        return logging.FileHandler(str(log_file))
    return logging.StreamHandler(sys.stderr)


def _event_processors() -> list[structlog.types.Processor]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderers(json_output: bool) -> list[structlog.types.Processor]:
    # ConsoleRenderer formats exc_info itself
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


def level_from_verbosity(verbose: int, quiet: bool) -> str:
    """Map -v/-vv/-q to a level name; -q wins."""
    if quiet:
        return "error"
    if verbose >= 2:
        return "debug"
    if verbose == 1:
        return "info"
    return "warning"


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for a fuse_harness module, bound to its `__name__`."""
    return structlog.get_logger(name)
