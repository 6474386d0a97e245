"""
Console Logging for the Marketplace Backend

Colour-coded, one-line-per-event logs with optional key/value payloads,
plus request/response helpers used by the API layer.
"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional


class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    DEBUG = '\033[36m'      # Cyan
    INFO = '\033[32m'       # Green
    WARNING = '\033[33m'    # Yellow
    ERROR = '\033[31m'      # Red
    CRITICAL = '\033[35m'   # Magenta

    SECTION = '\033[94m'    # Bright Blue
    KEY = '\033[93m'        # Bright Yellow
    TIMESTAMP = '\033[90m'  # Dark Gray


LEVEL_COLORS = {
    'DEBUG': Colors.DEBUG,
    'INFO': Colors.INFO,
    'WARNING': Colors.WARNING,
    'ERROR': Colors.ERROR,
    'CRITICAL': Colors.CRITICAL,
}


class ColoredFormatter(logging.Formatter):
    """Formatter with level colours and an icon per logger area."""

    LEVEL_ICONS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    # Keyed by the last component of the logger name
    AREA_ICONS = {
        'auth': '🔐',
        'main': '🌐',
        'marketplace': '🎓',
        'tutor_directory': '📇',
        'session_store': '💾',
        'payment_selection': '💳',
        'identity_gateway': '🔐',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{Colors.RESET}" if self.use_colors else text

    def format(self, record: logging.LogRecord) -> str:
        area = record.name.split('.')[-1]
        icon = self.AREA_ICONS.get(area, self.LEVEL_ICONS.get(record.levelname, '•'))
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        line = (
            f"{self._paint(f'[{timestamp}]', Colors.TIMESTAMP)} "
            f"{icon} {self._paint(f'{record.levelname:8s}', LEVEL_COLORS.get(record.levelname, Colors.RESET))} "
            f"{self._paint(record.name, Colors.BOLD)} | {record.getMessage()}"
        )

        data = getattr(record, 'data', None)
        if data:
            line += "\n" + format_data(data, use_colors=self.use_colors)

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


def format_data(data: Dict[str, Any], use_colors: bool = False, indent: int = 2) -> str:
    """Render a flat or nested dict as indented ``key: value`` lines."""
    lines = []
    pad = ' ' * indent
    for key, value in data.items():
        label = f"{Colors.KEY}{key}{Colors.RESET}" if use_colors else key
        if isinstance(value, dict):
            lines.append(f"{pad}{label}:")
            lines.append(format_data(value, use_colors, indent + 2))
        elif isinstance(value, (list, tuple)) and len(value) > 5:
            lines.append(f"{pad}{label}: {list(value[:3])} ... ({len(value)} items total)")
        else:
            lines.append(f"{pad}{label}: {value}")
    return "\n".join(lines)


class StructuredLogger:
    """Logger wrapper taking an optional data payload on every call."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(name)

    def _log(self, level: int, message: str, data: Optional[Dict[str, Any]] = None, **kwargs):
        extra = {"data": data} if data else None
        self.logger.log(level, message, extra=extra, **kwargs)

    def section(self, title: str, data: Optional[Dict[str, Any]] = None):
        """Log a visually separated heading."""
        self._log(logging.INFO, f"{'=' * 20} {title.upper()} {'=' * 20}", data)

    def info(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._log(logging.INFO, message, data)

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._log(logging.WARNING, message, data)

    def error(self, message: str, error: Optional[Exception] = None, data: Optional[Dict[str, Any]] = None):
        """Log an error with the exception type and traceback if given."""
        if error is not None:
            message = f"{message} Error: {type(error).__name__}: {error}"
        self._log(logging.ERROR, message, data, exc_info=error)

    def success(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._log(logging.INFO, f"✅ {message}", data)

    def request(self, method: str, path: str, user_id: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        """Log incoming request."""
        request_data = {"user_id": user_id[:20] + "..." if user_id and len(user_id) > 20 else user_id}
        if data:
            request_data.update(data)
        self._log(logging.INFO, f"📥 REQUEST: {method} {path}", request_data)

    def response(self, status: int, path: str, duration: Optional[float] = None, data: Optional[Dict[str, Any]] = None):
        """Log response."""
        response_data = {"duration_ms": f"{duration * 1000:.2f}" if duration is not None else None}
        if data:
            response_data.update(data)
        self._log(logging.INFO, f"📤 RESPONSE: {status} {path}", response_data)


def setup_logging(level: int = logging.INFO, use_colors: bool = True):
    """Install the coloured console handler on the root logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # Suppress noisy loggers
    for noisy in ('asyncio', 'httpx', 'httpcore', 'urllib3', 'hpack'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name, logging.getLogger(name))
