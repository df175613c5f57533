"""
Logging for songfetch

Two audiences share one logger tree. The console only shows what a user
needs while a batch is running (warnings, errors and records flagged with
``console_output``); the rotating log file receives the full technical trail
of searches, attempts and provider fallbacks.
"""

import functools
import logging
import logging.handlers
import re
import sys
import time
from pathlib import Path
from typing import Optional

import colorama
from colorama import Fore, Back, Style
from tqdm import tqdm


colorama.init()

# Chatty dependencies muted on every handler
QUIET_LOGGERS = (
    'spotipy',
    'urllib3',
    'urllib3.connectionpool',
    'requests',
    'yt_dlp',
    'musicbrainzngs',
    'PIL',
)

LOG_FILE_FORMAT = '%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_SIZE_UNITS = {'': 1, 'K': 1024, 'M': 1024 ** 2, 'G': 1024 ** 3, 'T': 1024 ** 4}
_SIZE_PATTERN = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([KMGT]?)B?\s*$', re.IGNORECASE)


class UserFacingFilter(logging.Filter):
    """Let through only records meant for the person at the terminal"""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True
        return bool(getattr(record, 'console_output', False))


class ConsoleFormatter(logging.Formatter):
    """Plain messages, tinted by level when the terminal allows it"""

    LEVEL_STYLES = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: '',
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Back.WHITE + Style.BRIGHT,
    }

    def __init__(self, use_colors: bool = True):
        super().__init__('%(message)s')
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        style = self.LEVEL_STYLES.get(record.levelno, '') if self.use_colors else ''
        return f"{style}{text}{Style.RESET_ALL}" if style else text


class TqdmConsoleHandler(logging.StreamHandler):
    """Writes through tqdm so messages land above an active progress bar"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
        except Exception:
            self.handleError(record)


def parse_size(value: str) -> int:
    """Convert a size such as ``10MB`` or ``512k`` into bytes"""
    match = _SIZE_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid size format: {value}")
    amount, unit = match.groups()
    return int(float(amount) * _SIZE_UNITS[unit.upper()])


def _build_console_handler(colored: bool) -> logging.Handler:
    handler = TqdmConsoleHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)
    handler.addFilter(UserFacingFilter())
    handler.setFormatter(ConsoleFormatter(use_colors=colored))
    return handler


def _build_file_handler(path: Path, level: int, max_size: str, backup_count: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=parse_size(max_size),
        backupCount=backup_count,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FILE_FORMAT, datefmt=LOG_DATE_FORMAT))
    return handler


def _mute_dependencies() -> None:
    for name in QUIET_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(logging.CRITICAL)
        noisy.propagate = False
        noisy.disabled = True


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console_output: bool = True,
    colored_output: bool = True,
    max_size: str = "10MB",
    backup_count: int = 3
) -> None:
    """
    Install the console and file handlers on the root logger

    Any handlers from a previous call are closed first, so this can be called
    again once settings have been loaded.

    Args:
        level: Minimum level written to the log file
        log_file: Log file path, or None for console only
        console_output: Show user-facing messages on stdout
        colored_output: Tint console messages by level
        max_size: Rotation threshold such as "10MB"
        backup_count: Rotated files to keep
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()

    if console_output:
        root.addHandler(_build_console_handler(colored_output))

    if log_file:
        file_level = logging.getLevelName(level.upper())
        if not isinstance(file_level, int):
            file_level = logging.INFO
        root.addHandler(_build_file_handler(Path(log_file), file_level, max_size, backup_count))

    _mute_dependencies()

    logging.getLogger('songfetch').debug(
        "Logging ready (file level %s, console %s, file %s)", level, console_output, log_file
    )


def configure_from_settings(settings) -> None:
    """Apply the ``logging`` section of a Settings instance"""
    section = settings.logging
    log_path = settings.get_log_file_path()
    setup_logging(
        level=section.level,
        log_file=str(log_path) if log_path else None,
        console_output=section.console_output,
        colored_output=section.colored_output,
        max_size=section.max_size,
        backup_count=section.backup_count
    )


def get_current_log_file() -> Optional[Path]:
    """Path of the active rotating log file, if file logging is on"""
    file_handlers = [
        h for h in logging.getLogger().handlers
        if isinstance(h, logging.handlers.RotatingFileHandler)
    ]
    return Path(file_handlers[0].baseFilename) if file_handlers else None


def _say(logger: logging.Logger, level: int, message: str) -> None:
    logger.log(level, message, extra={'console_output': True})


def get_logger(name: str) -> logging.Logger:
    """
    Module logger with user-facing shortcuts

    Besides the standard methods the returned logger carries
    ``console_info``, ``console_warning``, ``console_error`` and
    ``progress_update``; these always reach the console handler.
    """
    logger = logging.getLogger(name)
    if not hasattr(logger, 'console_info'):
        logger.console_info = functools.partial(_say, logger, logging.INFO)
        logger.console_warning = functools.partial(_say, logger, logging.WARNING)
        logger.console_error = functools.partial(_say, logger, logging.ERROR)
        logger.progress_update = functools.partial(_say, logger, logging.INFO)
    return logger


class OperationLogger:
    """
    Tracks one batch (a playlist, an album) from start to finish

    Per-track progress goes to the log file; the console gets a tqdm bar
    once the total is known, or plain status lines otherwise.
    """

    def __init__(self, logger: logging.Logger, operation_name: str):
        self.logger = logger
        self.operation_name = operation_name
        self.started_at: Optional[float] = None
        self.bar: Optional[tqdm] = None

    @property
    def elapsed(self) -> Optional[float]:
        if self.started_at is None:
            return None
        return time.monotonic() - self.started_at

    def start(self, message: Optional[str] = None) -> None:
        self.started_at = time.monotonic()
        self.logger.console_info(message or f"{self.operation_name}...")
        self.logger.info("%s: started", self.operation_name)

    def progress(self, message: str, current: Optional[int] = None, total: Optional[int] = None) -> None:
        if current is None or not total:
            self.logger.info("%s: %s", self.operation_name, message)
            if self.bar is None:
                self.logger.progress_update(f"⏳ {message}")
            return

        self.logger.info("%s: [%d/%d] %s", self.operation_name, current, total, message)
        if self.bar is None:
            self.bar = tqdm(
                total=total,
                desc="Tracks",
                unit="track",
                ncols=100,
                colour='cyan',
                leave=False
            )
        self.bar.set_postfix_str(message[:40], refresh=False)
        self.bar.update(current - self.bar.n)

    def complete(self, message: Optional[str] = None) -> None:
        self._close_bar()
        self.logger.console_info(message or f"{self.operation_name} finished")
        elapsed = self.elapsed
        if elapsed is None:
            self.logger.info("%s: finished", self.operation_name)
        else:
            self.logger.info("%s: finished in %.2fs", self.operation_name, elapsed)

    def error(self, message: str, exception: Optional[Exception] = None) -> None:
        self._close_bar()
        self.logger.console_error(f"❌ {self.operation_name} stopped: {message}")
        if exception is not None:
            self.logger.debug("%s: %s", self.operation_name, message, exc_info=exception)

    def _close_bar(self) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None


def create_operation_logger(name: str, operation: str) -> OperationLogger:
    return OperationLogger(get_logger(name), operation)


def log_performance(func):
    """Record how long ``func`` took in the log file"""
    logger = logging.getLogger(func.__module__)

    @functools.wraps(func)
    def timed(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.debug("%s raised after %.3fs: %s", func.__qualname__, time.perf_counter() - started, e)
            raise
        logger.debug("%s took %.3fs", func.__qualname__, time.perf_counter() - started)
        return result

    return timed
