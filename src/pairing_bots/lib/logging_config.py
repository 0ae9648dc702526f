"""
Structured logging configuration with an audit trail for pairing runs.

Provides JSON-formatted logging with OpenTelemetry correlation and an
audit logger for session lifecycle, role and verdict events.
"""

import json
import logging
import logging.config
import logging.handlers
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path

from opentelemetry import trace


_RESERVED_RECORD_KEYS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message", "taskName",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter with OpenTelemetry trace correlation."""

    def __init__(self, include_trace: bool = True, extra_fields: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.include_trace = include_trace
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Add trace context if available
        if self.include_trace:
            current_span = trace.get_current_span()
            if current_span and current_span.is_recording():
                span_context = current_span.get_span_context()
                log_entry.update({
                    "trace_id": format(span_context.trace_id, "032x"),
                    "span_id": format(span_context.span_id, "016x")
                })

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        # Add extra fields from record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS and not key.startswith("otel"):
                log_entry[key] = value

        log_entry.update(self.extra_fields)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class AuditLogger:
    """Logger for session lifecycle and role-change events."""

    def __init__(self, logger_name: str = "pairing_bots.audit"):
        self.logger = logging.getLogger(logger_name)

    def log_session_event(
        self,
        event_type: str,
        task_length: int,
        execution_mode: str,
        result: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log a session lifecycle event (start, completion, failure)."""
        self.logger.info(
            f"Session event: {event_type}",
            extra={
                "audit_type": "session",
                "event_type": event_type,
                "task_length": task_length,
                "execution_mode": execution_mode,
                "result": result,
                "metadata": metadata or {}
            }
        )

    def log_role_event(
        self,
        event_type: str,
        round_number: int,
        from_agent: str,
        to_agent: str,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log a driver swap."""
        self.logger.info(
            f"Role event: {event_type} {from_agent} -> {to_agent}",
            extra={
                "audit_type": "role",
                "event_type": event_type,
                "round": round_number,
                "from_agent": from_agent,
                "to_agent": to_agent,
                "reason": reason,
                "metadata": metadata or {}
            }
        )

    def log_verdict_event(
        self,
        verdict: str,
        rounds: int,
        swap_count: int,
        checkpoint_count: int,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log the final joint verdict of a run."""
        self.logger.info(
            f"Verdict event: {verdict}",
            extra={
                "audit_type": "verdict",
                "verdict": verdict,
                "rounds": rounds,
                "swap_count": swap_count,
                "checkpoint_count": checkpoint_count,
                "metadata": metadata or {}
            }
        )


def setup_logging(config: Dict[str, Any]) -> None:
    """Setup structured logging configuration."""
    log_level = config.get("level", "INFO").upper()
    log_format = config.get("format", "structured")

    log_dir = Path(config.get("directory", "~/.pairing-bots/logs")).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": StructuredFormatter,
                "include_trace": config.get("include_trace", True),
                "extra_fields": {
                    "service": "pairing-bots",
                    "environment": config.get("environment", "development")
                }
            },
            "simple": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "structured" if log_format == "structured" else "simple",
                # stdout carries the run report
                "stream": sys.stderr
            },
            "application_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": log_level,
                "formatter": "structured",
                "filename": str(log_dir / "pairing-bots.log"),
                "maxBytes": config.get("max_file_size", 10 * 1024 * 1024),  # 10MB
                "backupCount": config.get("backup_count", 5)
            },
            "audit_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "INFO",
                "formatter": "structured",
                "filename": str(log_dir / "audit.jsonl"),
                "maxBytes": config.get("max_file_size", 10 * 1024 * 1024),  # 10MB
                "backupCount": config.get("backup_count", 5)
            }
        },
        "loggers": {
            "pairing_bots": {
                "level": log_level,
                "handlers": ["console", "application_file"],
                "propagate": False
            },
            "pairing_bots.audit": {
                "level": "INFO",
                "handlers": ["audit_file"],
                "propagate": False
            },
            "opentelemetry": {
                "level": "WARNING",
                "handlers": ["console", "application_file"],
                "propagate": False
            }
        },
        "root": {
            "level": log_level,
            "handlers": ["console"]
        }
    }

    logging.config.dictConfig(logging_config)

    logger = logging.getLogger("pairing_bots.logging")
    logger.debug("Structured logging initialized", extra={
        "config": {
            "level": log_level,
            "format": log_format,
            "directory": str(log_dir)
        }
    })


def get_audit_logger() -> AuditLogger:
    """Get the configured audit logger instance."""
    return AuditLogger()
