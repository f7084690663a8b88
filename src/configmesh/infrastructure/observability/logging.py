"""
Structured Logging System for configmesh

Provides structured JSON logging with correlation IDs, per-source context
and configurable formatters and handlers for different output destinations.
"""

import json
import sys
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union
from contextvars import ContextVar

# Context variables for correlation tracking
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
source_var: ContextVar[Optional[str]] = ContextVar('source', default=None)


class LogLevel(Enum):
    """Log levels for the configmesh logging system"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARNING: 2,
    LogLevel.ERROR: 3,
    LogLevel.CRITICAL: 4
}


class LogFormatter(ABC):
    """Abstract base class for log formatters"""

    @abstractmethod
    def format(self, record: Dict[str, Any]) -> str:
        """Format a log record into a string"""
        pass


class JSONLogFormatter(LogFormatter):
    """JSON formatter for structured logging"""

    def format(self, record: Dict[str, Any]) -> str:
        """Format log record as JSON string"""
        return json.dumps(record, default=str, ensure_ascii=False)


class HumanReadableFormatter(LogFormatter):
    """Human-readable formatter for development/debugging"""

    def format(self, record: Dict[str, Any]) -> str:
        """Format log record as human-readable string"""
        timestamp = record.get('timestamp', '')
        level = record.get('level', '')
        message = record.get('message', '')
        correlation_id = record.get('correlation_id', '')
        source = record.get('source', '')

        base_msg = f"[{timestamp}] {level}: {message}"

        if source:
            base_msg += f" [source={source}]"
        if correlation_id:
            base_msg += f" [correlation_id={correlation_id}]"

        if record.get('extra'):
            extra_str = ', '.join(f"{k}={v}" for k, v in sorted(record['extra'].items()))
            base_msg += f" [{extra_str}]"

        return base_msg


class LogHandler(ABC):
    """Abstract base class for log handlers"""

    def __init__(self, formatter: LogFormatter):
        self.formatter = formatter

    @abstractmethod
    def emit(self, record: Dict[str, Any]) -> None:
        """Emit a log record"""
        pass


class ConsoleLogHandler(LogHandler):
    """Console log handler that writes to stdout/stderr"""

    def __init__(self, formatter: LogFormatter, stream: TextIO = sys.stderr):
        super().__init__(formatter)
        self.stream = stream
        self._lock = threading.Lock()

    def emit(self, record: Dict[str, Any]) -> None:
        """Write log record to console"""
        formatted_message = self.formatter.format(record)
        with self._lock:
            self.stream.write(formatted_message + '\n')
            self.stream.flush()


class FileLogHandler(LogHandler):
    """File log handler that appends to a file"""

    def __init__(self, formatter: LogFormatter, file_path: Union[str, Path]):
        super().__init__(formatter)
        self.file_path = Path(file_path)
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def emit(self, record: Dict[str, Any]) -> None:
        """Write log record to file"""
        formatted_message = self.formatter.format(record)
        with self._lock:
            with open(self.file_path, 'a', encoding='utf-8') as f:
                f.write(formatted_message + '\n')


class ConfigMeshLogger:
    """
    Structured logger with correlation ID support.

    Watch threads, debounce timers and subscriber deliveries all log through
    the same instance, so handlers are invoked from many threads; the handler
    list is copied before emission.
    """

    def __init__(self, name: str, level: LogLevel = LogLevel.INFO):
        self.name = name
        self.level = level
        self.handlers: List[LogHandler] = []

    def add_handler(self, handler: LogHandler) -> None:
        """Add a log handler"""
        self.handlers.append(handler)

    def remove_handler(self, handler: LogHandler) -> None:
        """Remove a log handler"""
        if handler in self.handlers:
            self.handlers.remove(handler)

    def set_level(self, level: LogLevel) -> None:
        """Set the logging level"""
        self.level = level

    def is_enabled_for(self, level: LogLevel) -> bool:
        """Check if message should be logged based on current level"""
        return _LEVEL_ORDER[level] >= _LEVEL_ORDER[self.level]

    def _create_log_record(self, level: LogLevel, message: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        record = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': level.value,
            'logger': self.name,
            'message': message,
            'correlation_id': correlation_id_var.get(),
            'source': source_var.get(),
        }

        if extra:
            record['extra'] = extra

        # Remove None values to keep logs clean
        return {k: v for k, v in record.items() if v is not None}

    def _log(self, level: LogLevel, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        if not self.is_enabled_for(level):
            return

        record = self._create_log_record(level, message, extra)

        for handler in list(self.handlers):
            try:
                handler.emit(record)
            except Exception as e:
                # Fallback to stderr if handler fails
                sys.stderr.write(f"Logging handler failed: {e}\n")

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log debug message"""
        self._log(LogLevel.DEBUG, message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log info message"""
        self._log(LogLevel.INFO, message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log warning message"""
        self._log(LogLevel.WARNING, message, extra)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None, exc_info: Optional[BaseException] = None) -> None:
        """Log error message with optional exception info"""
        self._log(LogLevel.ERROR, message, _with_exception(extra, exc_info))

    def critical(self, message: str, extra: Optional[Dict[str, Any]] = None, exc_info: Optional[BaseException] = None) -> None:
        """Log critical message with optional exception info"""
        self._log(LogLevel.CRITICAL, message, _with_exception(extra, exc_info))

    @contextmanager
    def correlation_context(self, correlation_id: Optional[str] = None):
        """Context manager for correlation ID tracking"""
        if correlation_id is None:
            correlation_id = str(uuid.uuid4())

        token = correlation_id_var.set(correlation_id)
        try:
            yield correlation_id
        finally:
            correlation_id_var.reset(token)

    @contextmanager
    def source_context(self, source: str):
        """Context manager tagging records with the source being processed"""
        token = source_var.set(source)
        try:
            yield source
        finally:
            source_var.reset(token)


def _with_exception(extra: Optional[Dict[str, Any]], exc_info: Optional[BaseException]) -> Optional[Dict[str, Any]]:
    if exc_info is None:
        return extra
    extra = dict(extra) if extra else {}
    extra['exception'] = {
        'type': type(exc_info).__name__,
        'message': str(exc_info),
        'module': type(exc_info).__module__
    }
    return extra


# Global logger registry
_loggers: Dict[str, ConfigMeshLogger] = {}
_registry_lock = threading.Lock()


def get_logger(name: str, level: LogLevel = LogLevel.INFO) -> ConfigMeshLogger:
    """Get or create a logger instance"""
    with _registry_lock:
        if name not in _loggers:
            _loggers[name] = ConfigMeshLogger(name, level)
        return _loggers[name]


def configure_default_logging(
    level: LogLevel = LogLevel.INFO,
    use_json: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    name: str = "configmesh"
) -> ConfigMeshLogger:
    """Configure the default configmesh logger and return it"""

    formatter = JSONLogFormatter() if use_json else HumanReadableFormatter()

    root_logger = get_logger(name)
    root_logger.set_level(level)
    root_logger.handlers.clear()

    root_logger.add_handler(ConsoleLogHandler(formatter))

    if log_file:
        root_logger.add_handler(FileLogHandler(formatter, log_file))

    return root_logger


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from context"""
    return correlation_id_var.get()
