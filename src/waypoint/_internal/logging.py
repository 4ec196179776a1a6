"""Logging setup for foreground serving.

Library code only creates loggers. Handlers are installed here, when
``Router.run`` (and so the ``waypoint run`` command) starts, or by the
embedding application.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str | int = "info") -> None:
    """Send ``waypoint.*`` records at *level* and above to stderr.

    Raises:
        ValueError: If *level* is not a known logging level name.
    """
    if isinstance(level, str):
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            msg = f"Unknown log level: {level!r}"
            raise ValueError(msg)
        level = numeric
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("waypoint").setLevel(level)
