import logging
import os
import sys
import threading
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from rich.logging import RichHandler  # Keep Rich for console

from gobuild.constants import (
    DEBUG_LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_LEVEL_ENV_VAR,
    LOG_TAIL_LINES,
    LOG_TAIL_POLL_INTERVAL,
    LOGGER_NAME,
)

logger = logging.getLogger(LOGGER_NAME)

# File handler for the per-invocation build log
_build_log_handler: Optional[logging.FileHandler] = None


def set_log_level(level_name: str) -> None:
    """
    Set the log level for the go-build logger and its console handlers.

    If `level_name` is not a valid logging level name (e.g., "DEBUG", "INFO"), the function logs a warning and leaves the current configuration unchanged.

    The build log file handler is left alone; it always records at DEBUG so the
    failure report has the full story.

    Parameters:
        level_name (str): Case-insensitive name of the desired logging level (e.g., "debug", "INFO").
    """
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        logger.warning(f"Invalid log level name: {level_name}. Using current level.")
        return

    logger.setLevel(min(level, logging.DEBUG) if _build_log_handler else level)

    for handler in logger.handlers:
        if handler is _build_log_handler:
            continue
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter("%(message)s"))

    logger.log(level, f"Log level set to {logging.getLevelName(level)}")


def _console_level() -> int:
    levels = [h.level for h in logger.handlers if h is not _build_log_handler]
    return min(levels) if levels else logging.INFO


def attach_build_log(log_file: Path) -> None:
    """
    Record every logger message of this invocation to the build log file.

    Any previously attached build log is closed first. The logger itself is
    lowered to DEBUG so the file receives debug records while console
    handlers keep their own level.
    """
    global _build_log_handler
    detach_build_log()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    _build_log_handler = logging.FileHandler(log_file, encoding="utf-8")
    _build_log_handler.setFormatter(
        logging.Formatter(DEBUG_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    )
    _build_log_handler.setLevel(logging.DEBUG)
    logger.addHandler(_build_log_handler)
    logger.setLevel(logging.DEBUG)
    logger.debug("Build log attached at %s", log_file)


def detach_build_log() -> None:
    """Remove and close the build log handler, restoring the console level."""
    global _build_log_handler
    if _build_log_handler is None:
        return
    handler = _build_log_handler
    _build_log_handler = None
    if handler in logger.handlers:
        logger.removeHandler(handler)
    handler.close()
    logger.setLevel(_console_level())


@contextmanager
def console_muted(level: int = logging.WARNING) -> Iterator[None]:
    """
    Temporarily raise console handlers to `level`.

    Used while a LogTailer mirrors the build log to the terminal so records are
    not printed twice.
    """
    saved: Dict[logging.Handler, int] = {}
    for handler in logger.handlers:
        if handler is _build_log_handler:
            continue
        saved[handler] = handler.level
        handler.setLevel(max(level, handler.level))
    try:
        yield
    finally:
        for handler, previous in saved.items():
            handler.setLevel(previous)


def tail_file(path: Path, lines: int = LOG_TAIL_LINES) -> List[str]:
    """
    Return the last `lines` lines of a text file, or an empty list if unreadable.
    """
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as handle:
            return [line.rstrip("\n") for line in deque(handle, maxlen=lines)]
    except OSError:
        return []


class LogTailer:
    """
    Background observer echoing lines appended to the build log.

    Used in verbose mode for interactive progress display. The thread only
    reads; it never influences the install. Stop it with `stop()`, which is
    safe to call more than once.
    """

    def __init__(
        self,
        log_file: Path,
        stream=None,
        poll_interval: float = LOG_TAIL_POLL_INTERVAL,
    ) -> None:
        self.log_file = log_file
        self.stream = stream
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="go-build-log-tail", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.poll_interval * 5)
            self._thread = None

    def __enter__(self) -> "LogTailer":
        self.start()
        return self

    def __exit__(self, *_exc) -> None:
        self.stop()

    def _run(self) -> None:
        stream = self.stream or sys.stderr
        position = 0
        while True:
            stopping = self._stop.is_set()
            try:
                with open(self.log_file, "r", encoding="utf-8", errors="replace") as f:
                    f.seek(position)
                    chunk = f.read()
                    position = f.tell()
            except OSError:
                chunk = ""
            if chunk:
                stream.write(chunk)
                stream.flush()
            if stopping:
                return
            self._stop.wait(self.poll_interval)


def _initialize_logger() -> None:
    """
    Initialize the go-build logger with a console RichHandler and an initial log level.

    This removes any existing handlers, disables propagation to the root logger, and attaches a RichHandler configured for console output. The initial log level is read from the environment variable named by LOG_LEVEL_ENV_VAR (defaults to "INFO" if unset). File logging is per invocation; call attach_build_log() to enable it.
    """
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        rich_tracebacks=True,
        show_time=False,
        show_level=True,
        show_path=False,
        markup=False,
        log_time_format=LOG_DATE_FORMAT,
    )

    default_log_level = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper()
    resolved = getattr(logging, default_log_level, None)
    if not isinstance(resolved, int):
        logger.warning(
            f"Invalid {LOG_LEVEL_ENV_VAR}={default_log_level}; defaulting to INFO."
        )
        resolved = logging.INFO

    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    logger.setLevel(resolved)
    console_handler.setLevel(resolved)


# Initialize the logger when the module is imported
_initialize_logger()
