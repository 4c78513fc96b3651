"""
Logging setup for dav_manager.

All modules log through the ``dav_manager`` logger hierarchy. The CLI
calls setup_logging() once, which attaches:
- a console handler on stderr, colored when stderr is a terminal
- a dated file handler in <config dir>/logs that always records DEBUG

The level comes from the --verbose flag or from DAV_MANAGER_DEBUG /
DAV_MANAGER_LOG_LEVEL; DAV_MANAGER_LOG_FILE overrides (or disables) the
log file.
"""

import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from dav_manager.utils.paths import resolve_config_dir

LOGGER_NAME = "dav_manager"

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
VERBOSE_FORMAT = (
    "%(asctime)s %(levelname)-8s %(name)s [%(filename)s:%(lineno)d] %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_FILE_PREFIX = "dav_manager_"
LOG_FILE_SUFFIX = ".log"

ENV_LOG_LEVEL = "DAV_MANAGER_LOG_LEVEL"
ENV_DEBUG = "DAV_MANAGER_DEBUG"
ENV_LOG_FILE = "DAV_MANAGER_LOG_FILE"

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


class ColoredFormatter(logging.Formatter):
    """Formatter that wraps each line in the ANSI color of its level."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        stream = sys.stderr
        if not (hasattr(stream, "isatty") and stream.isatty()):
            return False
        # https://no-color.org/
        if os.environ.get("NO_COLOR"):
            return False
        return os.environ.get("TERM", "") != "dumb"

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{line}{self.RESET}" if color else line


def get_log_level_from_env() -> int:
    """
    Read the log level from the environment.

    DAV_MANAGER_DEBUG=1/true/yes forces DEBUG; otherwise
    DAV_MANAGER_LOG_LEVEL names the level. Unknown names give INFO.
    """
    if os.environ.get(ENV_DEBUG, "").strip().lower() in ("1", "true", "yes"):
        return logging.DEBUG

    name = os.environ.get(ENV_LOG_LEVEL, "").strip().upper()
    level = logging.getLevelName(_LEVEL_ALIASES.get(name, name))
    return level if isinstance(level, int) else logging.INFO


def default_log_dir() -> Path:
    return resolve_config_dir() / "logs"


def get_log_file_path(log_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Work out where the log file goes.

    Args:
        log_dir: Directory for the dated file (default: <config dir>/logs)

    Returns:
        The DAV_MANAGER_LOG_FILE path when set, None when it is set to
        "none"/"disabled"/"", otherwise today's file in log_dir
    """
    override = os.environ.get(ENV_LOG_FILE)
    if override is not None:
        if override.strip().lower() in ("", "none", "disabled"):
            return None
        return Path(override).expanduser()

    name = f"{LOG_FILE_PREFIX}{date.today():%Y%m%d}{LOG_FILE_SUFFIX}"
    return (log_dir or default_log_dir()) / name


def _console_handler(level: int, fmt: str, use_colors: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    formatter_class = ColoredFormatter if use_colors else logging.Formatter
    handler.setFormatter(formatter_class(fmt, DATE_FORMAT))
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(VERBOSE_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(
    level: Optional[int] = None,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure the dav_manager logger.

    Calling it again replaces the handlers of the previous call.

    Args:
        level: Console level; read from the environment when None
        verbose: DEBUG level and source locations on the console
        log_dir: Directory for the dated log file
        enable_file_logging: Attach the file handler
        use_colors: Color console lines when stderr supports it

    Returns:
        The configured ``dav_manager`` logger
    """
    if verbose:
        level = logging.DEBUG
    elif level is None:
        level = get_log_level_from_env()

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.propagate = False

    console_format = VERBOSE_FORMAT if verbose else CONSOLE_FORMAT
    logger.addHandler(_console_handler(level, console_format, use_colors))

    file_path = get_log_file_path(log_dir) if enable_file_logging else None
    if file_path is not None:
        try:
            logger.addHandler(_file_handler(file_path))
        except OSError as e:
            logger.warning(f"Could not create log file {file_path}: {e}")
        else:
            logger.debug(f"Logging to {file_path}")

    return logger


def cleanup_old_logs(log_dir: Optional[Path] = None, keep_count: int = 10) -> int:
    """
    Remove all but the newest ``keep_count`` dated log files.

    A keep_count of 0 or less disables the cleanup.

    Returns:
        Number of files removed
    """
    if keep_count <= 0:
        return 0

    directory = log_dir or default_log_dir()
    if not directory.is_dir():
        return 0

    files = list(directory.glob(f"{LOG_FILE_PREFIX}*{LOG_FILE_SUFFIX}"))
    files.sort(key=lambda p: p.stat().st_mtime, reverse=True)

    removed = 0
    for path in files[keep_count:]:
        try:
            path.unlink()
        except OSError as e:
            logging.getLogger(__name__).debug(f"Could not remove {path}: {e}")
            continue
        removed += 1
    return removed


def get_logger(name: str) -> logging.Logger:
    """Return a logger below ``dav_manager``, prefixing the name if needed."""
    if name != LOGGER_NAME and not name.startswith(f"{LOGGER_NAME}."):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def set_log_level(level: int) -> None:
    """Change the logger and console level; the log file stays at DEBUG."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


def disable_logging() -> None:
    logging.getLogger(LOGGER_NAME).disabled = True


def enable_logging() -> None:
    logging.getLogger(LOGGER_NAME).disabled = False


__all__ = [
    "LOGGER_NAME",
    "CONSOLE_FORMAT",
    "VERBOSE_FORMAT",
    "DATE_FORMAT",
    "ColoredFormatter",
    "cleanup_old_logs",
    "default_log_dir",
    "disable_logging",
    "enable_logging",
    "get_log_file_path",
    "get_log_level_from_env",
    "get_logger",
    "set_log_level",
    "setup_logging",
]
