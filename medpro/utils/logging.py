"""
Structured logging configuration for the MedPro practitioner client.
Provides request tracking, latency metrics, and compliance logging.

Patient data (CPF, records, transcriptions) and credentials must never be
passed as log arguments. Log identifiers and counts instead.
"""

import asyncio
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
import json
from typing import Dict, Mapping, Optional

from medpro.utils.config import settings

# Request context for tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
practitioner_id_var: ContextVar[Optional[str]] = ContextVar(
    "practitioner_id", default=None
)
session_id_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

REDACTED = "[REDACTED]"
_SENSITIVE_HEADERS = {"authorization", "cookie", "set-cookie"}


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add request context if available
        if request_id := request_id_var.get():
            log_entry["request_id"] = request_id
        if practitioner_id := practitioner_id_var.get():
            log_entry["practitioner_id"] = practitioner_id
        if session_id := session_id_var.get():
            log_entry["session_id"] = session_id

        # Add extra fields from record
        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def redact_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy of request headers that is safe to log."""
    return {
        key: (REDACTED if key.lower() in _SENSITIVE_HEADERS else value)
        for key, value in headers.items()
    }


def mask_identifier(value: Optional[str], visible: int = 3) -> str:
    """Keep only the last characters of an identifier such as a CPF."""
    if not value:
        return ""
    text = str(value)
    if len(text) <= visible:
        return "*" * len(text)
    return "*" * (len(text) - visible) + text[-visible:]


class LatencyLogger:
    """Specialized logger for latency tracking and performance monitoring."""

    def __init__(self, name: str = "medpro.latency"):
        self.logger = logging.getLogger(name)

    def log_latency(
        self,
        operation: str,
        duration_ms: float,
        success: bool = True,
        endpoint: Optional[str] = None,
        **kwargs,
    ) -> None:
        """Log operation latency with context."""
        extra_fields = {
            "type": "latency",
            "operation": operation,
            "duration_ms": round(duration_ms, 2),
            "success": success,
            "endpoint": endpoint,
            **kwargs,
        }

        threshold_exceeded = kwargs.get("threshold_exceeded", False)
        if not success:
            level = logging.WARNING
        elif threshold_exceeded:
            level = logging.WARNING
        else:
            level = logging.DEBUG

        message = f"{operation} completed in {duration_ms:.2f}ms"
        if not success:
            message += " [FAILED]"
        if threshold_exceeded:
            message += " [THRESHOLD EXCEEDED]"

        self.logger.log(level, message, extra={"extra_fields": extra_fields})


class ComplianceLogger:
    """Audit trail for access to patient resources."""

    def __init__(self, name: str = "medpro.compliance"):
        self.logger = logging.getLogger(name)

    def log_data_access(
        self,
        resource_type: str,
        resource_id: str,
        user_id: str,
        operation: str,
        success: bool,
        **kwargs,
    ) -> None:
        """Log data access for audit trail."""
        extra_fields = {
            "type": "data_access",
            "resource_type": resource_type,
            "resource_id": resource_id,
            "user_id": user_id,
            "operation": operation,
            "success": success,
            "timestamp": _utc_timestamp(),
            **kwargs,
        }

        self.logger.info(
            f"Data access: {operation} {resource_type}",
            extra={"extra_fields": extra_fields},
        )


_HANDLER_MARKER = "_medpro_handler"


def setup_logging() -> None:
    """Configure application logging. Safe to call more than once."""
    if settings.enable_structured_logging:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    app_logger = logging.getLogger("medpro")
    app_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    if any(getattr(h, _HANDLER_MARKER, False) for h in app_logger.handlers):
        return

    # Console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    setattr(console_handler, _HANDLER_MARKER, True)
    app_logger.addHandler(console_handler)

    # File handler for compliance logs
    if settings.compliance_log_file:
        file_handler = logging.FileHandler(settings.compliance_log_file)
        file_handler.setFormatter(StructuredFormatter())
        compliance_logger = logging.getLogger("medpro.compliance")
        compliance_logger.addHandler(file_handler)
        compliance_logger.setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Get logger instance with proper configuration."""
    return logging.getLogger(name)


def get_latency_logger() -> LatencyLogger:
    """Get latency logger instance."""
    return LatencyLogger()


def get_compliance_logger() -> ComplianceLogger:
    """Get compliance logger instance."""
    return ComplianceLogger()


class RequestContext:
    """Context manager for request tracking."""

    def __init__(
        self,
        request_id: Optional[str] = None,
        practitioner_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        self.request_id = request_id or str(uuid.uuid4())
        self.practitioner_id = practitioner_id
        self.session_id = session_id
        self._tokens = []

    def __enter__(self):
        self._tokens.append(request_id_var.set(self.request_id))
        if self.practitioner_id:
            self._tokens.append(practitioner_id_var.set(self.practitioner_id))
        if self.session_id:
            self._tokens.append(session_id_var.set(self.session_id))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # Restore previous context variable values using the tokens
        for token in reversed(self._tokens):
            token.var.reset(token)
        self._tokens.clear()


def _check_threshold(operation: str, duration_ms: float) -> bool:
    """Check if operation duration exceeds configured thresholds."""
    name = operation.lower()
    if "transcri" in name:
        return duration_ms > settings.transcription_latency_threshold
    if "assistant" in name or "message" in name or "ask" in name:
        return duration_ms > settings.assistant_latency_threshold
    return duration_ms > settings.api_latency_threshold


def monitor_latency(operation: str, endpoint: Optional[str] = None):
    """Decorator to monitor operation latency with threshold checking."""

    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            success = True
            try:
                return await func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000
                get_latency_logger().log_latency(
                    operation=operation,
                    duration_ms=duration_ms,
                    success=success,
                    endpoint=endpoint,
                    threshold_exceeded=_check_threshold(operation, duration_ms),
                )

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000
                get_latency_logger().log_latency(
                    operation=operation,
                    duration_ms=duration_ms,
                    success=success,
                    endpoint=endpoint,
                    threshold_exceeded=_check_threshold(operation, duration_ms),
                )

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


# Initialize logging on module import
setup_logging()
