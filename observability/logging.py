"""
Structured JSON logging for Stack Probes.

Every log line is a single JSON object carrying the correlation IDs of the
probe run (run, suite, check) so that a run can be followed end to end once
the lines land in Loki.
"""

import json
import os
import uuid
import logging
import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from contextvars import ContextVar
import functools

# Context variables for run correlation
RUN_ID: ContextVar[str] = ContextVar('run_id', default=None)
SUITE: ContextVar[str] = ContextVar('suite', default=None)
CHECK: ContextVar[str] = ContextVar('check', default=None)
TRACE_ID: ContextVar[str] = ContextVar('trace_id', default=None)
SPAN_ID: ContextVar[str] = ContextVar('span_id', default=None)

DEFAULT_LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

_configured_loggers = []


class StructuredLogger:
    """Structured JSON logger with correlation IDs and latency tracking."""

    def __init__(self, name: str, level: Optional[int] = None,
                 static_fields: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level if level is not None else _parse_level(DEFAULT_LOG_LEVEL))
        self.static_fields = dict(static_fields or {})

        # Remove any existing handlers to avoid duplicates
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        handler = logging.StreamHandler()
        handler.setFormatter(self.JSONFormatter())
        self.logger.addHandler(handler)

        # Prevent propagation to avoid duplicate logs
        self.logger.propagate = False
        _configured_loggers.append(self)

    class JSONFormatter(logging.Formatter):
        """JSON formatter with correlation IDs and structured fields."""

        def format(self, record):
            log_entry = {
                'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                'level': record.levelname,
                'logger': record.name,
                'message': record.getMessage(),
                'module': record.module,
                'function': record.funcName,
                'line': record.lineno,
            }

            if RUN_ID.get():
                log_entry['run_id'] = RUN_ID.get()
            if SUITE.get():
                log_entry['suite'] = SUITE.get()
            if CHECK.get():
                log_entry['check'] = CHECK.get()
            if TRACE_ID.get():
                log_entry['trace_id'] = TRACE_ID.get()
            if SPAN_ID.get():
                log_entry['span_id'] = SPAN_ID.get()

            if hasattr(record, 'extra_fields'):
                log_entry.update(record.extra_fields)

            if record.exc_info:
                log_entry['exception'] = self.formatException(record.exc_info)
                log_entry['exception_type'] = record.exc_info[0].__name__ if record.exc_info[0] else None

            return json.dumps(log_entry, default=str)

    def _log_with_extras(self, level: int, message: str, **extra_fields):
        """Log message with extra structured fields."""
        fields = dict(self.static_fields)
        fields.update(extra_fields)
        self.logger.log(level, message, extra={'extra_fields': fields})

    def debug(self, message: str, **extra_fields):
        self._log_with_extras(logging.DEBUG, message, **extra_fields)

    def info(self, message: str, **extra_fields):
        self._log_with_extras(logging.INFO, message, **extra_fields)

    def warning(self, message: str, **extra_fields):
        self._log_with_extras(logging.WARNING, message, **extra_fields)

    def error(self, message: str, **extra_fields):
        self._log_with_extras(logging.ERROR, message, **extra_fields)

    def critical(self, message: str, **extra_fields):
        self._log_with_extras(logging.CRITICAL, message, **extra_fields)

    def exception(self, message: str, **extra_fields):
        """Log exception with traceback and extra fields."""
        fields = dict(self.static_fields)
        fields.update(extra_fields)
        self.logger.exception(message, extra={'extra_fields': fields})

    # Probe events
    def suite_started(self, suite: str, checks_planned: Optional[int] = None):
        self.info(
            "Suite started",
            suite_name=suite,
            checks_planned=checks_planned,
            event_type="suite_started"
        )

    def suite_completed(self, suite: str, passed: int, failed: int, warnings: int,
                        duration_ms: float, exit_code: int, aborted: bool = False):
        """Log suite completion with its counters."""
        level = logging.INFO if exit_code == 0 else logging.ERROR
        self._log_with_extras(
            level,
            f"Suite {suite} {'passed' if exit_code == 0 else 'failed'}",
            suite_name=suite,
            passed=passed,
            failed=failed,
            warnings=warnings,
            latency_ms=duration_ms,
            exit_code=exit_code,
            aborted=aborted,
            event_type="suite_completed"
        )

    def check_completed(self, check: str, status: str, critical: bool,
                        duration_ms: float, attempts: int = 1, message: Optional[str] = None):
        """Log a single check result."""
        if status == "fail" and critical:
            level = logging.ERROR
        elif status in ("fail", "warn"):
            level = logging.WARNING
        else:
            level = logging.INFO
        self._log_with_extras(
            level,
            message or f"Check {check} finished with status {status}",
            check_name=check,
            status=status,
            critical=critical,
            latency_ms=duration_ms,
            attempts=attempts,
            event_type="check_completed"
        )

    def retry_attempt(self, service: str, attempt: int, max_attempts: int,
                      status_code: int, wait_seconds: float):
        self.info(
            f"Retry {attempt}/{max_attempts} - {service} not ready yet "
            f"(HTTP {status_code:03d}), waiting {wait_seconds:g}s...",
            service=service,
            attempt=attempt,
            max_attempts=max_attempts,
            status_code=status_code,
            wait_seconds=wait_seconds,
            event_type="retry_attempt"
        )

    def http_probe(self, service: str, method: str, url: str, status_code: int,
                   duration_ms: float, error: Optional[str] = None):
        """Log an outbound HTTP probe."""
        self._log_with_extras(
            logging.DEBUG if error is None else logging.WARNING,
            "HTTP probe completed" if error is None else "HTTP probe failed",
            service=service,
            method=method,
            url=url,
            status_code=status_code,
            latency_ms=duration_ms,
            error=error,
            event_type="http_probe"
        )

    def api_request(self, method: str, path: str, status_code: int, duration_ms: float):
        self.info(
            "Request completed",
            method=method,
            path=path,
            status=status_code,
            duration_ms=duration_ms,
            event_type="api_request"
        )


def _parse_level(level) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def configure_logging(level) -> None:
    """Apply a log level to every pre-configured structured logger."""
    numeric = _parse_level(level)
    for structured in _configured_loggers:
        structured.logger.setLevel(numeric)


# Context management functions
def set_run_context(run_id: str = None, suite: str = None, check: str = None,
                    trace_id: str = None, span_id: str = None):
    """Set correlation context for subsequent log lines."""
    if run_id:
        RUN_ID.set(run_id)
    if suite:
        SUITE.set(suite)
    if check:
        CHECK.set(check)
    if trace_id:
        TRACE_ID.set(trace_id)
    if span_id:
        SPAN_ID.set(span_id)


def clear_run_context():
    for ctx_var in [RUN_ID, SUITE, CHECK, TRACE_ID, SPAN_ID]:
        ctx_var.set(None)


def get_run_context() -> Dict[str, Optional[str]]:
    return {
        'run_id': RUN_ID.get(),
        'suite': SUITE.get(),
        'check': CHECK.get(),
        'trace_id': TRACE_ID.get(),
        'span_id': SPAN_ID.get()
    }


def generate_run_id() -> str:
    """Generate unique probe run ID."""
    return f"run-{uuid.uuid4().hex[:8]}"


def generate_trace_id() -> str:
    """Generate a 128-bit hex trace ID (W3C trace-context width)."""
    return uuid.uuid4().hex


def generate_span_id() -> str:
    return uuid.uuid4().hex[:16]


def log_function_call(logger: StructuredLogger = None, level: int = logging.DEBUG):
    """Decorator to log function calls with timing."""
    def decorator(func):
        func_logger = logger or StructuredLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            func_name = func.__name__

            func_logger._log_with_extras(
                level, f"Function {func_name} started",
                function=func_name,
                args_count=len(args),
                kwargs_keys=list(kwargs.keys())
            )

            try:
                result = func(*args, **kwargs)
                duration_ms = (time.time() - start_time) * 1000

                func_logger._log_with_extras(
                    level, f"Function {func_name} completed successfully",
                    function=func_name,
                    latency_ms=duration_ms,
                    success=True
                )

                return result

            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000

                func_logger._log_with_extras(
                    logging.ERROR, f"Function {func_name} failed: {e}",
                    function=func_name,
                    latency_ms=duration_ms,
                    success=False,
                    exception_type=e.__class__.__name__
                )

                raise

        return wrapper

    return decorator


# Pre-configured loggers for different components
probe_logger = StructuredLogger("stackprobes.probe")
suite_logger = StructuredLogger("stackprobes.suite")
config_logger = StructuredLogger("stackprobes.config")
database_logger = StructuredLogger("stackprobes.database")
