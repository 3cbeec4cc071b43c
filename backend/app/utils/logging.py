"""Structured logging for pipeline batches."""

import json
import logging
from typing import Any

from backend.app.utils.retry import BatchContext

logger = logging.getLogger(__name__)


class StructuredFormatter(logging.Formatter):
    """Appends the ``structured`` extra payload to the log line as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        structured = getattr(record, "structured", None)
        if structured:
            line = f"{line} {json.dumps(structured, default=str, sort_keys=True)}"
        return line


def configure_logging(level: str = "INFO") -> None:
    """Install the structured formatter on the root logger."""
    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())


class StructuredBatchLogger:
    """Structured logger for batch attempts."""

    def log_attempt(
        self,
        ctx: BatchContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log batch attempt with structured data."""
        log_data: dict[str, Any] = {
            "operation": ctx.operation,
            "batch_index": ctx.batch_index,
            "batch_size": ctx.batch_size,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Batch attempt: {ctx.operation} #{ctx.batch_index} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
