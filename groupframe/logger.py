"""
Logging for groupframe.

Every groupframe module owns one named logger, registered here so that the
verbosity of the whole package can be switched at once. A logger writes to a
single console handler; its messages report the partition strategy, the sort
post-step, index materialisation, fast-path dispatch and column widening, all
at DEBUG level.

The initial level comes from the ``GROUPFRAME_LOG_LEVEL`` environment variable
(one of the `LogLevel` names), INFO when unset.

Examples
--------
>>> from groupframe.logger import LogLevel, getGroupFrameLogger
>>> logger = getGroupFrameLogger("partition", logLevel=LogLevel.WARN)
>>> logger.handler.level
30
>>> logger.enableVerbose()
>>> logger.handler.level
10

"""

from enum import Enum
from logging import CRITICAL, DEBUG, ERROR, INFO, WARN, Formatter, Logger, StreamHandler
import os
from typing import Dict, Optional

from typeguard import typechecked

__all__ = ["LogLevel", "GroupFrameLogger", "getGroupFrameLogger", "enableVerbose", "disableVerbose"]

loggers: Dict[str, "GroupFrameLogger"] = {}


class LogLevel(Enum):
    """Valid log levels for GroupFrameLogger."""

    DEBUG = "DEBUG"
    CRITICAL = "CRITICAL"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class GroupFrameLogger(Logger):
    """
    Logger of one groupframe module.

    The logger itself passes every record; the level of its console handler
    decides what is printed.

    Attributes
    ----------
    handler : logging.StreamHandler
        The console handler, writing to stderr
    """

    LOG_FORMAT = "[%(name)s] Line %(lineno)d %(levelname)s: %(message)s"

    levelMappings = {
        LogLevel.DEBUG: DEBUG,
        LogLevel.INFO: INFO,
        LogLevel.WARN: WARN,
        LogLevel.ERROR: ERROR,
        LogLevel.CRITICAL: CRITICAL,
    }

    @typechecked
    def __init__(self, name: str, logLevel: LogLevel = LogLevel.INFO) -> None:
        Logger.__init__(self, name=name, level=DEBUG)
        self.handler = StreamHandler()
        self.handler.setFormatter(Formatter(GroupFrameLogger.LOG_FORMAT))
        self.addHandler(self.handler)
        self.changeLogLevel(logLevel)

    @typechecked
    def changeLogLevel(self, level: LogLevel) -> None:
        """
        Change the level of the console handler.

        Raises
        ------
        TypeError
            Raised if level is not a LogLevel

        """
        self.handler.setLevel(GroupFrameLogger.levelMappings[level])

    def enableVerbose(self) -> None:
        """Print DEBUG messages."""
        self.changeLogLevel(LogLevel.DEBUG)

    @typechecked
    def disableVerbose(self, logLevel: LogLevel = LogLevel.INFO) -> None:
        """Go back to `logLevel`, INFO by default."""
        self.changeLogLevel(logLevel)


@typechecked
def getGroupFrameLogger(name: str, logLevel: Optional[LogLevel] = None) -> GroupFrameLogger:
    """
    Instantiate and register a GroupFrameLogger.

    Parameters
    ----------
    name : str
        The logger name, prepended to every message. Registering a second
        logger under the same name replaces the first in the registry.
    logLevel : LogLevel, optional
        Initial level; read from ``GROUPFRAME_LOG_LEVEL`` when omitted

    Returns
    -------
    GroupFrameLogger

    Raises
    ------
    ValueError
        Raised if ``GROUPFRAME_LOG_LEVEL`` is not a LogLevel name

    """
    if logLevel is None:
        logLevel = LogLevel(os.getenv("GROUPFRAME_LOG_LEVEL", "INFO").upper())

    logger = GroupFrameLogger(name=name, logLevel=logLevel)
    loggers[logger.name] = logger
    return logger


def enableVerbose() -> None:
    """Enable DEBUG output on all registered loggers."""
    for logger in loggers.values():
        logger.enableVerbose()


@typechecked
def disableVerbose(logLevel: LogLevel = LogLevel.INFO) -> None:
    """
    Disable DEBUG output on all registered loggers.

    Parameters
    ----------
    logLevel : LogLevel
        The new level, defaults to INFO

    Raises
    ------
    TypeError
        Raised if logLevel is not a LogLevel

    """
    for logger in loggers.values():
        logger.disableVerbose(logLevel)
