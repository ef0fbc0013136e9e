from __future__ import annotations

import logging

_LOGGER = logging.getLogger("blockforge")


def configure(verbose: bool = False) -> None:
    """Attach a console handler to the package logger, replacing any earlier one."""

    for handler in list(_LOGGER.handlers):
        _LOGGER.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    _LOGGER.addHandler(handler)
    _LOGGER.setLevel(logging.DEBUG if verbose else logging.INFO)


def logger(message: str, level: str = "info") -> None:
    _LOGGER.log(logging.getLevelName(level.upper()), message)
