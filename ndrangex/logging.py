from __future__ import annotations

import logging

_ROOT_LOGGER_NAME = "ndrangex"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger nested under the package root logger."""

    if not name:
        return logging.getLogger(_ROOT_LOGGER_NAME)
    if name.startswith(f"{_ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: str) -> None:
    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        formatter = logging.Formatter("%(levelname)s %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    else:
        for handler in logger.handlers:
            handler.setLevel(level)


__all__ = ["get_logger", "configure_logging"]
