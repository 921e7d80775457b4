"""Logging configuration using Loguru for structured logging.

Provides session-aware logging with JSON formatting, rotation, and retention policies.
"""

import sys
import time
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional
from loguru import logger


# Remove default handler
logger.remove()


def setup_logging(
    log_dir: str = "logs",
    level: str = "INFO",
    rotation: str = "50 MB",
    retention: str = "14 days",
    compression: str = "zip",
    console: bool = True
) -> None:
    """Configure Loguru logging with console, text, JSON and error sinks.

    Args:
        log_dir: Directory for log files
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        rotation: When to rotate log files
        retention: How long to keep old logs
        compression: Compression format for rotated logs
        console: Whether to also log to stderr
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    if console:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
            level=level,
            colorize=True
        )

    logger.add(
        log_path / "legalsay_{time}.log",
        format="{time} | {level} | {name}:{function}:{line} | {message}",
        level=level,
        rotation=rotation,
        retention=retention,
        compression=compression,
        serialize=False
    )

    # JSON structured log for parsing and analysis
    logger.add(
        log_path / "legalsay_json_{time}.log",
        level=level,
        rotation=rotation,
        retention=retention,
        compression=compression,
        serialize=True
    )

    # Per-session negotiation log
    def session_format(record):
        record["extra"].setdefault("component", "unknown")
        return "{time} | {level} | {extra[session_id]} | {extra[component]} | {message}\n"

    logger.add(
        log_path / "sessions_{time}.log",
        format=session_format,
        level="INFO",
        rotation=rotation,
        retention=retention,
        compression=compression,
        filter=lambda record: "session_id" in record["extra"]
    )

    logger.add(
        log_path / "errors_{time}.log",
        format="{time} | {level} | {name}:{function}:{line} | {message}",
        level="ERROR",
        rotation=rotation,
        retention=retention,
        compression=compression
    )

    logger.info("Logging system initialized", log_dir=log_dir, level=level)


def get_session_logger(session_id: str, component: Optional[str] = None):
    """Get a logger bound to a specific session and optionally a component.

    Args:
        session_id: Unique session identifier
        component: Optional component name (store, reconciler, workspace, ...)

    Returns:
        Logger instance with session context
    """
    context = {"session_id": session_id}
    if component:
        context["component"] = component
    return logger.bind(**context)


def log_client_call(endpoint: str) -> Callable:
    """Decorator to log an outbound service call with timing.

    Args:
        endpoint: Endpoint path being called

    Returns:
        Decorated function with logging
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            logger.debug(f"Calling {endpoint}", function=func.__name__)
            start_time = time.monotonic()

            try:
                result = func(*args, **kwargs)
                logger.info(
                    f"{endpoint} completed",
                    function=func.__name__,
                    duration_seconds=round(time.monotonic() - start_time, 3)
                )
                return result

            except Exception as e:
                logger.error(
                    f"{endpoint} failed",
                    function=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                    duration_seconds=round(time.monotonic() - start_time, 3)
                )
                raise

        return wrapper
    return decorator
