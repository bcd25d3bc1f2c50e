"""
Logging setup for the news service.

Console output is colour-coded by level unless JSON lines are requested for a
log shipper. File logging is opt-in and writes a daily-rotated full log plus
an errors-only log.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

NOISY_LOGGERS = ('aiohttp.access', 'aiohttp.client', 'urllib3', 'asyncio', 'uvicorn.access')

FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s'
ERROR_FILE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s'


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; metrics passed as ``extra_data`` are nested under ``extra``."""

    def format(self, record):
        payload: Dict[str, Any] = {
            'ts': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
            'where': f"{record.module}.{record.funcName}:{record.lineno}",
        }
        extra = getattr(record, 'extra_data', None)
        if extra:
            payload['extra'] = extra
        if record.exc_info:
            payload['exc'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Short, level-coloured console lines for local runs."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelno, '')
        # Drop the package prefix, every logger shares it
        name = record.name.replace('bookmarkr_news.', '')
        line = (
            f"{color}{self.formatTime(record, '%H:%M:%S')} {record.levelname[0]} "
            f"{name:<28} {record.getMessage()}{self.RESET}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _file_handlers(log_dir: Path, structured: bool) -> List[logging.Handler]:
    log_dir.mkdir(parents=True, exist_ok=True)

    full_log = logging.handlers.TimedRotatingFileHandler(
        log_dir / 'bookmarkr_news.log', when='midnight', backupCount=7, encoding='utf-8'
    )
    full_log.setLevel(logging.DEBUG)
    full_log.setFormatter(StructuredFormatter() if structured else logging.Formatter(FILE_FORMAT))

    errors_log = logging.FileHandler(log_dir / 'errors.log', encoding='utf-8')
    errors_log.setLevel(logging.ERROR)
    errors_log.setFormatter(logging.Formatter(ERROR_FILE_FORMAT))

    return [full_log, errors_log]


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    enable_file_logging: bool = False,
    enable_structured_logging: bool = False
) -> None:
    """
    Configure the root logger.

    Args:
        log_level: Minimum level for console output (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files (defaults to ./logs)
        enable_file_logging: Also write rotating log files
        enable_structured_logging: Emit JSON lines instead of coloured text
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(StructuredFormatter() if enable_structured_logging else ColoredConsoleFormatter())
    handlers: List[logging.Handler] = [console]

    if enable_file_logging:
        handlers.extend(_file_handlers(Path(log_dir or 'logs'), enable_structured_logging))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG if enable_file_logging else level)
    for handler in handlers:
        root.addHandler(handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


class PerformanceTracker:
    """Times a block and logs completion (INFO) or failure (ERROR)."""

    def __init__(self, operation_name: str, logger: Optional[logging.Logger] = None):
        self.operation_name = operation_name
        self.logger = logger or logging.getLogger(__name__)
        self._started: Optional[float] = None
        self.duration_ms: float = 0.0

    def __enter__(self):
        self._started = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.monotonic() - (self._started or time.monotonic())) * 1000
        if exc_type is not None:
            self.logger.error(f"💥 {self.operation_name} failed after {self.duration_ms:.0f}ms: {exc_val}")
        else:
            self.logger.debug(f"⏱️ {self.operation_name} took {self.duration_ms:.0f}ms")
        return False


def log_pipeline_metrics(
    logger: logging.Logger,
    stage: str,
    input_count: int,
    output_count: int,
    duration_ms: float,
    **extra_data
):
    """Log item counts for a pipeline stage; everything is also attached as structured extras."""
    metrics = {
        'stage': stage,
        'input_count': input_count,
        'output_count': output_count,
        'dropped': input_count - output_count,
        'duration_ms': round(duration_ms, 1),
        **extra_data
    }
    logger.info(
        f"📊 {stage}: {input_count} → {output_count} items ({duration_ms:.0f}ms)",
        extra={'extra_data': metrics}
    )
