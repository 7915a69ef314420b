"""Opt-in loguru output for treeir.

Records from the package are disabled on import. `enable_logging` switches
them on and routes them to stderr through a filtered handler; the returned
`LoggingHandle` removes that handler again. Commits are logged at the custom
``COMMIT`` level (25), so the default threshold shows finalized models and
problems but not individual staging mutations.

Note:
    Importing this module removes loguru's default handler (ID 0), otherwise
    every enabled record would be printed twice. Handlers configured by the
    application after importing treeir are left alone.
"""

from __future__ import annotations

import contextlib
import sys
import threading
import warnings
from typing import TYPE_CHECKING, ClassVar, Final, Literal

from loguru import logger

if TYPE_CHECKING:
    from types import TracebackType

    from loguru import Record

PACKAGE_NAME: Final[str] = __name__.split(".")[0]

with contextlib.suppress(ValueError):
    logger.remove(0)

COMMIT_LEVEL: Final[str] = "COMMIT"
COMMIT_LEVEL_NUMBER: Final[int] = 25

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "COMMIT", "WARNING", "ERROR", "CRITICAL"]
type LogFormat = Literal["short", "full"]

_PREFIX: Final[str] = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "  # noqa: RUF027
_FORMATS: Final[dict[str, str]] = {
    "short": _PREFIX + "<cyan>{function}</cyan> - <level>{message}</level> {extra}",
    "full": (
        _PREFIX + "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level> {extra}"
    ),
}


def _register_commit_level() -> None:
    """Add the COMMIT level to loguru, or warn if the name is taken with another number."""
    try:
        existing_level = logger.level(COMMIT_LEVEL)
    except ValueError:
        logger.level(COMMIT_LEVEL, no=COMMIT_LEVEL_NUMBER, icon="🌳")
        return
    if existing_level.no != COMMIT_LEVEL_NUMBER:
        msg = (
            f"COMMIT level already registered with numeric value {existing_level.no},"
            f" expected {COMMIT_LEVEL_NUMBER}"
        )
        warnings.warn(msg, stacklevel=2)


_register_commit_level()


class LoggingHandle:
    """One stderr handler added by `enable_logging`.

    Usable as a context manager. The package's records stay enabled while at
    least one handle is live; disabling the last one disables them again.

    Examples:
        >>> with enable_logging():  # doctest: +SKIP
        ...     builder.commit_model()
    """

    _active_ids: ClassVar[set[int]] = set()
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, handler_id: int) -> None:
        self.handler_id: int | None = handler_id
        with LoggingHandle._lock:
            LoggingHandle._active_ids.add(handler_id)

    def disable(self) -> None:
        """Remove the handler; a second call does nothing."""
        with LoggingHandle._lock:
            if self.handler_id is None:
                return
            LoggingHandle._active_ids.discard(self.handler_id)
            with contextlib.suppress(ValueError):
                logger.remove(self.handler_id)
            self.handler_id = None
            if not LoggingHandle._active_ids:
                logger.disable(PACKAGE_NAME)

    def __enter__(self) -> LoggingHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.disable()

    @classmethod
    def get_active_handle_count(cls) -> int:
        """int: Number of handles not yet disabled."""
        with cls._lock:
            return len(cls._active_ids)


def enable_logging(*, level: LogLevel = COMMIT_LEVEL, log_format: LogFormat = "short") -> LoggingHandle:
    """Print treeir records at or above `level` to stderr.

    Args:
        level (LogLevel): Threshold. "COMMIT" (default) shows commits and
            failures, "INFO" adds loads, "DEBUG" adds every builder mutation.
        log_format (LogFormat): "short" names the function, "full" adds the
            module and line number.

    Returns:
        LoggingHandle: Handle owning the new handler.

    Note:
        Disabling the last handle calls ``logger.disable("treeir")``, which
        also mutes treeir records in handlers the application added itself.
    """
    logger.enable(PACKAGE_NAME)
    handler_id = logger.add(sys.stderr, level=level, filter=_is_treeir_record, format=_FORMATS[log_format])
    return LoggingHandle(handler_id)


def _is_treeir_record(record: Record) -> bool:
    name = record["name"]
    return name is not None and name.startswith(PACKAGE_NAME)
