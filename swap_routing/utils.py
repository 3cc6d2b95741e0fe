"""
Shared helpers: log formatting, basis point arithmetic and numeric guards
used across the graph, pricing, routing and arbitrage modules.
"""

import functools
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
MINIMAL_LOG_FORMAT = "%(asctime)s | %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"


def timestamp_to_iso(timestamp: float) -> str:
    """Unix timestamp as an ISO 8601 UTC string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def clamp(value: float, min_val: float, max_val: float) -> float:
    return max(min_val, min(value, max_val))


def calculate_percentage(value: float, total: float) -> float:
    """``value`` as a percent of ``total``; 0 when ``total`` is 0."""
    if total == 0:
        return 0.0
    return value / total * 100


def basis_points_to_decimal(bps: float) -> float:
    """100 bps -> 0.01"""
    return bps / 10000.0


def format_bps(bps: float) -> str:
    """
    Signed percentage string for a basis point value.

    >>> format_bps(125)
    '+1.25%'
    >>> format_bps(-40)
    '-0.40%'
    """
    return f"{bps / 100.0:+.2f}%"


def get_logger(
    name: str,
    level: Union[str, int] = logging.INFO,
    extra: Optional[Dict[str, Any]] = None,
    minimal: bool = False,
) -> Union[logging.Logger, logging.LoggerAdapter]:
    """
    Logger with the package's pipe-separated format.

    A handler is attached only the first time a name is requested, so
    repeated calls return the same configured logger.

    Args:
        name: Logger name (typically __name__)
        level: Level applied if the logger has none yet
        extra: Context fields rendered before the message on every record
        minimal: Time and message only

    Returns:
        The logger, wrapped in a ``LoggerAdapter`` when ``extra`` is given
    """
    logger = logging.getLogger(name)
    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers:
        fmt = MINIMAL_LOG_FORMAT if minimal else LOG_FORMAT
        if extra:
            fields = " | ".join(f"{key}=%(extra_{key})s" for key in extra)
            fmt = fmt.replace("%(message)s", f"{fields} | %(message)s")
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(handler)

    if extra:
        return logging.LoggerAdapter(
            logger, {f"extra_{key}": value for key, value in extra.items()}
        )
    return logger


def timing_decorator(func):
    """Log how long each call to ``func`` takes, at debug level."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            logging.getLogger(func.__module__).debug(
                "%s executed in %.4fs", func.__name__, time.perf_counter() - started
            )

    return wrapper
