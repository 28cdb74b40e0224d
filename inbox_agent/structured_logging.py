"""
Structured logging for the ingestion, classification and unsubscribe pipelines.

Each component owns a StructuredLogger writing one JSON document per record to
the standard library logger ``inbox_agent.<component>``. Records carry the
component's standing context plus per-call extras, with secrets masked before
serialization.
"""

import json
import logging
import re
import time
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

ROOT_LOGGER_NAME = "inbox_agent"
MASK = '***'


class SensitiveDataFilter:
    """Masks credentials in free text and in (nested) structured fields."""

    SENSITIVE_KEYS = frozenset({
        'password', 'token', 'access_token', 'refresh_token', 'api_key',
        'key', 'secret', 'authorization', 'screenshot_base64'
    })

    # name=value / name: "value" pairs inside free text
    _ASSIGNMENT = re.compile(
        r'(token|password|api_key|secret)(["\']?\s*[:=]\s*["\']?)[^"\'\s&]+', re.IGNORECASE
    )
    _BEARER = re.compile(r'Bearer\s+[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE)
    _ANTHROPIC_KEY = re.compile(r'sk-ant-[A-Za-z0-9\-_]+')

    def filter_message(self, message: str) -> str:
        masked = self._ASSIGNMENT.sub(lambda m: f"{m.group(1)}={MASK}", message)
        masked = self._BEARER.sub(f'Bearer {MASK}', masked)
        return self._ANTHROPIC_KEY.sub(f'sk-ant-{MASK}', masked)

    def filter_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.filter_message(value)
        if isinstance(value, dict):
            return self.filter_dict(value)
        if isinstance(value, (list, tuple)):
            return [self.filter_value(v) for v in value]
        return value

    def filter_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: MASK if str(key).lower() in self.SENSITIVE_KEYS else self.filter_value(value)
            for key, value in data.items()
        }


class StructuredLogger:
    """JSON logger for one component, with standing context and outcome counters."""

    def __init__(self, component: str):
        self.component = component
        self.logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")
        self.context: Dict[str, Any] = {}
        self.filter = SensitiveDataFilter()
        self._counts: Dict[str, Dict[str, int]] = defaultdict(
            lambda: {'total': 0, 'success': 0, 'failure': 0}
        )

    def add_context(self, key: str, value: Any) -> None:
        """Attach a field to every later record from this logger."""
        self.context[key] = value

    @contextmanager
    def scoped_context(self, context: Dict[str, Any]) -> Iterator[None]:
        """Attach fields for the duration of a block only."""
        saved = dict(self.context)
        self.context.update(context)
        try:
            yield
        finally:
            self.context = saved

    def _render(self, message: str, extra: Optional[Dict[str, Any]] = None, **sections) -> str:
        record: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'component': self.component,
            'message': self.filter.filter_message(message),
            'context': self.filter.filter_dict(self.context),
        }
        if extra:
            record['extra'] = self.filter.filter_dict(extra)
        record.update(sections)
        return json.dumps(record, default=str)

    def _emit(self, level: str, message: str, extra: Optional[Dict[str, Any]]):
        getattr(self.logger, level)(self._render(message, extra))

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None):
        # skip serialization for the noisiest level
        if self.logger.isEnabledFor(logging.DEBUG):
            self._emit('debug', message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit('info', message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit('warning', message, extra)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._emit('error', message, extra)

    def log_exception(self, exception: Exception, extra: Optional[Dict[str, Any]] = None):
        """Log an exception with its type, its ``context`` (if any) and the traceback."""
        details: Dict[str, Any] = {'type': type(exception).__name__, 'message': str(exception)}
        context = getattr(exception, 'context', None)
        if context:
            details['context'] = self.filter.filter_dict(context)
        self.logger.error(
            self._render(f"Exception occurred: {exception}", extra, exception=details),
            exc_info=exception
        )

    @contextmanager
    def time_operation(self, operation_name: str) -> Iterator[None]:
        """Log the duration of a block, and whether it raised."""
        started = time.perf_counter()
        self.debug(f"Starting {operation_name}", {"operation": operation_name})
        try:
            yield
        except Exception as e:
            self.error(f"Operation {operation_name} failed", {
                "operation": operation_name,
                "duration_seconds": round(time.perf_counter() - started, 3),
                "status": "failure",
                "error": str(e),
            })
            raise
        self.info(f"Operation {operation_name} completed successfully", {
            "operation": operation_name,
            "duration_seconds": round(time.perf_counter() - started, 3),
            "status": "success",
        })

    def log_operation_count(self, operation: str, success: bool):
        counts = self._counts[operation]
        counts['total'] += 1
        counts['success' if success else 'failure'] += 1

    def get_operation_stats(self) -> Dict[str, Dict[str, int]]:
        return {op: dict(counts) for op, counts in self._counts.items()}


def configure_logging(
    level: str = "INFO",
    format: str = "json",
    output: str = "console",
    filename: Optional[str] = None
) -> logging.Logger:
    """
    Install handlers on the package logger, replacing any earlier ones.

    Args:
        level: Standard level name; unknown names fall back to INFO
        format: "json" passes the structured record through untouched,
                anything else prefixes time, logger name and level
        output: "console", "file" or "both"
        filename: Log file path, required for file output
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    pattern = '%(message)s' if format == "json" else '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    handlers = []
    if output in ("console", "both"):
        handlers.append(logging.StreamHandler())
    if output in ("file", "both") and filename:
        handlers.append(logging.FileHandler(filename))

    for handler in handlers:
        handler.setFormatter(logging.Formatter(pattern))
        root.addHandler(handler)
    return root
