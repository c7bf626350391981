import logging
import sys

# Project-wide logger utility.
# Any module can do: from pos_service.logger import get_logger

ROOT_LOGGER = "pos_service"


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    logger = logging.getLogger(name)

    root = logging.getLogger(ROOT_LOGGER)
    # Only add the handler once to avoid duplicate lines
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        fmt = logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
        )
        handler.setFormatter(fmt)
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    return logger


def set_level(level: str) -> None:
    """Set the level of the whole pos_service logger tree (e.g. from settings)."""
    get_logger().setLevel(getattr(logging, str(level).upper(), logging.INFO))
