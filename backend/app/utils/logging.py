"""Logging setup and structured lifecycle logging."""

import logging
import sys
from typing import Any

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for the API process and CLI scripts.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    logging.basicConfig(level=numeric_level, handlers=[handler], force=True)

    # Third-party clients are chatty at INFO
    for noisy in ("httpx", "httpcore", "botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class PipelineLogger:
    """Structured logger for document lifecycle events."""

    def log_transition(
        self,
        *,
        owner_id: str,
        document_id: str,
        status: str,
        location: str,
        error_reason: str | None = None,
        extra_fields: dict[str, Any] | None = None,
    ) -> None:
        """Log a document status change with structured data."""
        log_data: dict[str, Any] = {
            "owner_id": owner_id,
            "document_id": document_id,
            "status": status,
            "location": location,
        }
        if extra_fields:
            log_data.update(extra_fields)
        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Document {document_id} -> {status}"

        if status == "FAILED":
            logger.warning(log_msg, extra={"structured": log_data})
        else:
            logger.info(log_msg, extra={"structured": log_data})

    def log_skip(self, *, location: str, reason: str) -> None:
        """Log a notification that did not map to a processable document."""
        logger.info(
            f"Skipping notification for {location}: {reason}",
            extra={"structured": {"location": location, "reason": reason}},
        )
