"""
Logging configuration.
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "WARNING") -> None:
    """Configure logging for the ``api_test_plan`` package.

    Logs go to stderr so that plan output written to stdout stays clean.
    """
    logger = logging.getLogger("api_test_plan")
    logger.setLevel(level.upper())

    for handler in logger.handlers:
        if getattr(handler, "_api_test_plan", False):
            handler.stream = sys.stderr
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._api_test_plan = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
