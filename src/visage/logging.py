import logging
import os
from typing import Union

PACKAGE = "visage"
LEVEL_ENV_VAR = "VISAGE_LOG_LEVEL"

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def parse_level(level: Union[str, int]) -> int:
    """
    Turn a level name ("debug", "INFO") or number into a logging level.

    Raises:
        ValueError: If the name is not a logging level
    """
    if isinstance(level, int):
        return level
    value = getattr(logging, level.strip().upper(), None)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)

    # Library modules stay quiet unless asked; the CLI reports progress.
    # VISAGE_LOG_LEVEL overrides both.
    default_level = logging.INFO if name.endswith('.cli') else logging.WARNING
    try:
        level = parse_level(os.getenv(LEVEL_ENV_VAR, default_level))
    except ValueError:
        level = default_level

    logger.setLevel(level)
    return logger


def set_log_level(level: Union[str, int]) -> int:
    """Apply one level to every visage logger created so far."""
    value = parse_level(level)
    for name, logger in list(logging.root.manager.loggerDict.items()):
        if isinstance(logger, logging.Logger) and (name == PACKAGE or name.startswith(PACKAGE + ".")):
            logger.setLevel(value)
    return value
