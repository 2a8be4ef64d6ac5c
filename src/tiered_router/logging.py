"""Logging configuration using loguru.

Library modules only bind a name with `get_logger`. Sinks are installed by
the process entry points (CLI, API) through `configure_logging`, so a host
application that embeds the router keeps its own loguru sinks.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from loguru._logger import Logger as LoguruLogger

from tiered_router.config import Settings, settings

_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"

# Sink ids added by configure_logging; replaced on reconfiguration
_sink_ids: list[int] = []


def configure_logging(config: Optional[Settings] = None, force: bool = False) -> bool:
    """
    Install the stderr and rotating file sinks once per process.

    Args:
        config: Settings to read `log_dir` and `log_level` from
        force: Replace sinks installed by an earlier call

    Returns:
        True when sinks were (re)installed, False when already configured
    """
    if _sink_ids and not force:
        return False
    config = config or settings

    for sink_id in _sink_ids:
        logger.remove(sink_id)
    _sink_ids.clear()
    try:
        # loguru's built-in stderr handler would duplicate ours
        logger.remove(0)
    except ValueError:
        pass

    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    # Default for records emitted through the unbound logger
    logger.configure(extra={"name": "tiered_router"})

    _sink_ids.append(
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>",
            level=config.log_level,
            colorize=True,
        )
    )
    # All logs, including routing decisions
    _sink_ids.append(
        logger.add(
            log_dir / "app.log",
            format=_FILE_FORMAT,
            level="DEBUG",
            rotation="10 MB",
            retention="7 days",
            compression="zip",
        )
    )
    _sink_ids.append(
        logger.add(
            log_dir / "errors.log",
            format=_FILE_FORMAT,
            level="ERROR",
            rotation="10 MB",
            retention="30 days",
            compression="zip",
        )
    )
    return True


def get_logger(name: str) -> LoguruLogger:
    """
    Get a logger bound to a module name. Does not touch sinks.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Bound logger instance
    """
    return logger.bind(name=name)  # type: ignore[return-value]
