"""Logging configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "safedestroy"


def setup_logging(
    level: str = "INFO",
    verbose: bool = False,
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """Configure the package logger.

    Console output goes through a RichHandler on stderr so it does not mix
    with tables printed on stdout. A plain file handler is added when
    ``log_file`` is given.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        verbose: Include paths and timestamps in console records
        log_file: Optional file to copy every record to

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    rich_handler = RichHandler(
        console=Console(stderr=True),
        show_time=verbose,
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(file_handler)

    # Quieten the AWS SDK unless we are debugging
    sdk_level = logging.DEBUG if verbose and level.upper() == "DEBUG" else logging.WARNING
    for name in ("boto3", "botocore", "urllib3"):
        logging.getLogger(name).setLevel(sdk_level)

    logger.propagate = False
    return logger
