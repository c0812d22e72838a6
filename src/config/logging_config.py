"""
Logging configuration.

Modules log through ``logging.getLogger(__name__)``; this module only
installs the root handler and level for the running process.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging once per process.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG")
    """
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger(__name__).debug("Logging configured at %s", level.upper())
