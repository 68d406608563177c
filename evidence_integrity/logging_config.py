"""
Logging configuration for the evidence integrity subsystem.

Provides structured JSON logging for the chain-of-custody audit trail.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional, TextIO

# Context variable correlating every event of one evidence capture
capture_id_var: ContextVar[str] = ContextVar('capture_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems like ELK, Splunk, or CloudWatch.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        capture_id = capture_id_var.get()
        if capture_id:
            log_data["capture_id"] = capture_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for chain-of-custody events.

    Records manifest generation, proof rejections and the health
    transitions of external trust services.
    """

    def __init__(self, name: str = "evidence_integrity.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "capture_id": capture_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def manifest_generated(
        self,
        combined_hash: str,
        file_names: List[str],
        has_pisa_chain: bool
    ) -> None:
        """Log a generated hashes.json manifest."""
        self._log(
            logging.INFO,
            "MANIFEST_GENERATED",
            combined_hash=combined_hash,
            file_names=file_names,
            has_pisa_chain=has_pisa_chain,
            message=f"Manifest generated for {len(file_names)} files"
        )

    def proof_rejected(self, leaf_index: Any, reason: str) -> None:
        """Log a Merkle inclusion proof that failed verification."""
        self._log(
            logging.WARNING,
            "PROOF_REJECTED",
            leaf_index=leaf_index,
            reason=reason,
            message=f"Inclusion proof rejected: {reason}"
        )

    def circuit_transition(
        self,
        service_name: str,
        old_state: str,
        new_state: str,
        failure_count: int
    ) -> None:
        """Log a circuit breaker state transition."""
        level = logging.WARNING if new_state == "OPEN" else logging.INFO
        self._log(
            level,
            "CIRCUIT_TRANSITION",
            service_name=service_name,
            old_state=old_state,
            new_state=new_state,
            failure_count=failure_count,
            message=f"[{service_name}] {old_state} -> {new_state}"
        )

    def circuit_rejected(self, service_name: str) -> None:
        """Log a call rejected by an open circuit."""
        self._log(
            logging.WARNING,
            "CIRCUIT_REJECTED",
            service_name=service_name,
            message=f"Call to {service_name} rejected, circuit open"
        )

    def retry_scheduled(
        self,
        attempt: int,
        max_attempts: int,
        delay_ms: int,
        error: BaseException
    ) -> None:
        """Log a retry scheduled after a transient failure."""
        self._log(
            logging.INFO,
            "RETRY_SCHEDULED",
            attempt=attempt,
            max_attempts=max_attempts,
            delay_ms=delay_ms,
            error_type=type(error).__name__,
            message=f"Attempt {attempt}/{max_attempts} failed, retrying in {delay_ms}ms"
        )

    def retries_exhausted(self, attempts: int, error: BaseException) -> None:
        """Log an operation that failed on every attempt."""
        self._log(
            logging.ERROR,
            "RETRIES_EXHAUSTED",
            attempts=attempts,
            error_type=type(error).__name__,
            error=str(error),
            message=f"Operation failed after {attempts} attempts"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
    stream: Optional[TextIO] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
        stream: Console stream, stdout by default
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_capture_id(capture_id: Optional[str] = None) -> str:
    """
    Set the capture ID for the current context.

    Args:
        capture_id: Capture ID to set, or None to generate one

    Returns:
        The capture ID that was set
    """
    if capture_id is None:
        capture_id = str(uuid.uuid4())
    capture_id_var.set(capture_id)
    return capture_id


def get_capture_id() -> str:
    """Get the current capture ID."""
    return capture_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
