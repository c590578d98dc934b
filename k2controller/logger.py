"""Thread-safe logger writing timestamped entries to the console and a file."""

from __future__ import annotations

import enum
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import IO, Optional, Union

DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_NAME = "device_control.log"

PathLike = Union[str, Path]


class LogLevel(enum.IntEnum):
    """Severity of a log entry."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    CRITICAL = 4


class Logger:
    """Writes every entry to standard output and to an append-mode log file."""

    def __init__(self, filename: Optional[PathLike] = None) -> None:
        self._lock = threading.Lock()
        self._file: Optional[IO[str]] = None
        if filename is None:
            Path(DEFAULT_LOG_DIR).mkdir(exist_ok=True)
            filename = Path(DEFAULT_LOG_DIR) / DEFAULT_LOG_NAME
        self.set_log_file(filename)

    @property
    def is_open(self) -> bool:
        """Whether a log file is currently open."""
        return self._file is not None

    def log(self, level: LogLevel, message: str) -> None:
        """Record ``message`` at ``level``; nothing is written without an open file."""
        level = LogLevel(level)
        with self._lock:
            if self._file is None:
                print("日志文件未打开！", file=sys.stderr)
                return
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            entry = f"[{timestamp}] [{level.name}] {message}"
            print(entry, flush=True)
            self._file.write(entry + "\n")
            self._file.flush()

    def set_log_file(self, filename: PathLike) -> None:
        """Switch output to ``filename``, creating missing parent directories."""
        path = Path(filename)
        with self._lock:
            self._close_file()
            try:
                self._file = path.open("a", encoding="utf-8")
            except OSError:
                print(f"打开日志文件失败: {filename}", file=sys.stderr)
                parent = path.parent
                if str(parent) and not parent.exists():
                    try:
                        parent.mkdir(parents=True)
                        self._file = path.open("a", encoding="utf-8")
                    except OSError:
                        self._file = None
                if self._file is None:
                    print(
                        "无法创建或打开日志文件，日志将只输出到控制台",
                        file=sys.stderr,
                    )

    def close(self) -> None:
        """Close the log file, if one is open."""
        with self._lock:
            self._close_file()

    def _close_file(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


_instance: Optional[Logger] = None
_instance_lock = threading.Lock()


def get_logger() -> Logger:
    """Return the process-wide logger, creating it on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = Logger()
        return _instance


def debug(message: str) -> None:
    """Log ``message`` at DEBUG level."""
    get_logger().log(LogLevel.DEBUG, message)


def info(message: str) -> None:
    """Log ``message`` at INFO level."""
    get_logger().log(LogLevel.INFO, message)


def warning(message: str) -> None:
    """Log ``message`` at WARNING level."""
    get_logger().log(LogLevel.WARNING, message)


def error(message: str) -> None:
    """Log ``message`` at ERROR level."""
    get_logger().log(LogLevel.ERROR, message)


def critical(message: str) -> None:
    """Log ``message`` at CRITICAL level."""
    get_logger().log(LogLevel.CRITICAL, message)