"""
Root logging presets for applications embedding the routing engine.

Usage:
    from swap_routing import logging_config
    logging_config.setup()
"""

import logging
import sys

from .utils import LOG_DATE_FORMAT

ROOT_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
PACKAGE_LOGGER = "swap_routing"
MONITOR_LOGGER = "swap_routing.monitor"


def setup(level=logging.INFO):
    """
    Replace the root handlers with a single stdout handler at ``level``.

    The monitor logger never drops below INFO here; its per-tick debug
    lines are only enabled by ``setup_debug``.
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(ROOT_FORMAT, datefmt=LOG_DATE_FORMAT))
    root.addHandler(console)

    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
    logging.getLogger(MONITOR_LOGGER).setLevel(max(level, logging.INFO))


def setup_minimal():
    """Warnings and errors only."""
    setup(level=logging.WARNING)


def setup_debug():
    setup(level=logging.DEBUG)
    logging.getLogger(MONITOR_LOGGER).setLevel(logging.DEBUG)
