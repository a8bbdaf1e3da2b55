from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

#: Numeric level for wire-level detail, below ``DEBUG``
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LEVELS: dict[str, int] = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}

FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-7s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("ldap_conformance")


def get_logger(name: str) -> logging.Logger:
    """
    Return the child of our package logger named ``name``, e.g.
    ``get_logger("suites.add")`` is ``ldap_conformance.suites.add``.
    """
    return logger.getChild(name)


def trace(log: logging.Logger, msg: str, *args: object) -> None:
    """
    Log ``msg`` at our :py:data:`TRACE` level.
    """
    if log.isEnabledFor(TRACE):
        log.log(TRACE, msg, *args)


def configure_logging(
    level: str = "info",
    log_file: str | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure our package logger to write to ``stream`` (default
    :py:data:`sys.stderr`) and, if ``log_file`` is given, to that file too.
    Calling this again replaces the handlers installed by the previous call.

    Args:
        level: one of ``error``, ``warn``, ``info``, ``debug``, ``trace``

    Keyword Args:
        log_file: path to a log file; parent directories are created
        stream: where to write console logging

    Raises:
        ValueError: ``level`` is not a level we know

    Returns:
        The configured package logger.

    """
    try:
        numeric = LEVELS[level.lower()]
    except KeyError as exc:
        msg = f"invalid log level: {level}"
        raise ValueError(msg) from exc
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    formatter = logging.Formatter(FORMAT, DATE_FORMAT)
    console = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    logger.setLevel(numeric)
    logger.propagate = False
    return logger
