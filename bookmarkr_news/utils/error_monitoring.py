import asyncio
import json
import logging
import traceback
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple

import aiohttp


class ErrorKind(str, Enum):
    """Source failure taxonomy"""
    TRANSIENT = "transient"
    PARSE = "parse"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Error severity levels"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


@dataclass
class ErrorContext:
    """Context for one recorded source failure"""
    error_type: str
    error_message: str
    kind: str
    severity: str
    source_id: str
    operation: str
    timestamp: datetime
    stack_trace: str = ""
    recovery_action: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error_type': self.error_type,
            'error_message': self.error_message,
            'kind': self.kind,
            'severity': self.severity,
            'source_id': self.source_id,
            'operation': self.operation,
            'timestamp': self.timestamp.isoformat(),
            'recovery_action': self.recovery_action,
        }


# Error classes are matched by name so adapters don't have to import this module's
# consumers (and vice versa).
_PARSE_ERRORS = {'FeedParseError', 'ExtractionError', 'JSONDecodeError', 'ContentTypeError'}
_CONFIGURATION_ERRORS = {'SourceConfigurationError', 'SourceNotFoundError'}
_TRANSIENT_ERRORS = {'FetchError', 'TimeoutError'}

_TRANSIENT_STATUSES = {408, 425, 429, 500, 502, 503, 504}


class ErrorHandler:
    """
    Classifies and records per-source fetch failures.

    Nothing here raises: failures are data for the health endpoint and for
    log analysis, the orchestrator decides what to do with the source.
    """

    def __init__(self, history_size: int = 100) -> None:
        self.error_history: Deque[ErrorContext] = deque(maxlen=history_size)
        self.error_counts: Dict[str, int] = defaultdict(int)
        self.kind_counts: Dict[str, int] = defaultdict(int)
        self.logger = logging.getLogger(__name__)

    def classify_kind(self, error: BaseException) -> ErrorKind:
        error_name = type(error).__name__

        status = getattr(error, 'status', None)
        if isinstance(status, int):
            if status in _TRANSIENT_STATUSES or status >= 500:
                return ErrorKind.TRANSIENT
            # 401/403/404/410: wrong URL, blocked, or missing credentials
            return ErrorKind.CONFIGURATION

        if error_name in _CONFIGURATION_ERRORS:
            return ErrorKind.CONFIGURATION
        if error_name in _PARSE_ERRORS:
            return ErrorKind.PARSE
        if error_name in _TRANSIENT_ERRORS:
            return ErrorKind.TRANSIENT

        if isinstance(error, (asyncio.TimeoutError, aiohttp.ClientError, ConnectionError)):
            return ErrorKind.TRANSIENT
        if isinstance(error, (ValueError, KeyError, TypeError, AttributeError)):
            return ErrorKind.PARSE

        return ErrorKind.UNKNOWN

    def classify_severity(self, kind: ErrorKind) -> ErrorSeverity:
        if kind == ErrorKind.CONFIGURATION:
            return ErrorSeverity.HIGH
        if kind in (ErrorKind.PARSE, ErrorKind.UNKNOWN):
            return ErrorSeverity.MEDIUM
        return ErrorSeverity.LOW

    def handle_error(
        self,
        error: BaseException,
        source_id: str,
        operation: str,
        context: Optional[Dict[str, Any]] = None
    ) -> ErrorContext:
        """Record a failure and return its classified context."""
        kind = self.classify_kind(error)
        severity = self.classify_severity(kind)
        error_context = ErrorContext(
            error_type=type(error).__name__,
            error_message=str(error),
            kind=kind.value,
            severity=severity.value,
            source_id=source_id,
            operation=operation,
            timestamp=datetime.now(timezone.utc),
            stack_trace=''.join(traceback.format_exception(type(error), error, error.__traceback__)),
            recovery_action=self.get_recovery_suggestion(kind, error),
            metadata=context or {},
        )
        self._remember(error_context)
        return error_context

    def record_failure(
        self,
        source_id: str,
        operation: str,
        error_type: str,
        error_message: str,
        kind: str,
    ) -> ErrorContext:
        """Record a failure that was already classified (e.g. from a FetchOutcome)."""
        try:
            severity = self.classify_severity(ErrorKind(kind))
        except ValueError:
            severity = ErrorSeverity.MEDIUM
        error_context = ErrorContext(
            error_type=error_type,
            error_message=error_message,
            kind=kind,
            severity=severity.value,
            source_id=source_id,
            operation=operation,
            timestamp=datetime.now(timezone.utc),
        )
        self._remember(error_context)
        return error_context

    def _remember(self, error_context: ErrorContext) -> None:
        self.error_history.append(error_context)
        self.error_counts[error_context.error_type] += 1
        self.kind_counts[error_context.kind] += 1

        self.logger.debug(json.dumps({
            'event': 'source_error',
            'source_id': error_context.source_id,
            'operation': error_context.operation,
            'kind': error_context.kind,
            'severity': error_context.severity,
            'error_type': error_context.error_type,
            'error_message': error_context.error_message[:200],
        }))

    def get_recovery_suggestion(self, kind: ErrorKind, error: BaseException) -> Optional[str]:
        if kind == ErrorKind.TRANSIENT:
            if getattr(error, 'status', None) == 429:
                return "Rate limited. Back off and let the cache absorb requests."
            return "Network or upstream hiccup. Retried with backoff; will try again next round."
        if kind == ErrorKind.PARSE:
            return "Payload did not match the expected shape. Check the feed URL or crawl selector."
        if kind == ErrorKind.CONFIGURATION:
            return "Source is misconfigured or blocking us. Verify URL, selector and credentials."
        return None

    def detect_error_patterns(self) -> List[str]:
        patterns: List[str] = []
        tuple_counts: Dict[Tuple[str, str], int] = defaultdict(int)
        for ctx in self.error_history:
            tuple_counts[(ctx.error_type, ctx.source_id)] += 1

        for (etype, source_id), count in tuple_counts.items():
            if count >= 3:
                patterns.append(
                    f"Repeated pattern: {etype} from {source_id} occurred {count} times recently"
                )
        return patterns

    def get_error_statistics(self, recent: int = 10) -> Dict[str, Any]:
        return {
            'total_errors': sum(self.error_counts.values()),
            'error_types': dict(self.error_counts),
            'error_kinds': dict(self.kind_counts),
            'patterns': self.detect_error_patterns(),
            'recent': [ctx.to_dict() for ctx in list(self.error_history)[-recent:]],
        }
