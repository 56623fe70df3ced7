"""Structured logging for dicom-manifest.

Wraps structlog so that builders, validators and the adversarial generator
emit key/value events that can be rendered as JSON or for the console.
Patient-identifying fields are redacted before rendering.
"""

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from dicom_manifest.core.config import get_settings

SENSITIVE_FIELDS = {
    "patient_id",
    "patient_name",
    "patient_birth_date",
    "other_patient_ids",
    "accession_number",
}


def redact_sensitive_data(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Processor to redact patient identifiers from log entries.

    Args:
        logger: The wrapped logger instance
        method_name: The name of the method being called
        event_dict: The event dictionary to process

    Returns:
        Processed event dictionary with identifiers redacted

    """
    for key in list(event_dict):
        if key.lower() in SENSITIVE_FIELDS:
            event_dict[key] = "***REDACTED***"

    return event_dict


def add_timestamp(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Processor to add ISO-formatted timestamp to log entries."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def add_audit_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Processor to mark audit events (construction failures, rejected documents).

    Args:
        logger: The wrapped logger instance
        method_name: The name of the method being called
        event_dict: The event dictionary to process

    Returns:
        Event dictionary with audit category added

    """
    if event_dict.get("audit_event"):
        event_dict["event_category"] = "AUDIT"

    return event_dict


def configure_logging(
    log_level: str | None = None,
    json_format: bool | None = None,
    log_file: Path | None = None,
) -> None:
    """Configure structlog for the application.

    Arguments left as None are taken from the logging section of the
    settings (LOGGING__LOG_LEVEL, LOGGING__LOG_FORMAT, LOGGING__LOG_FILE).

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to output JSON format (True) or human-readable (False)
        log_file: Optional file path to write logs to

    Example:
        >>> configure_logging(log_level="DEBUG", json_format=False)
        >>> logger = get_logger("dicom_manifest")
        >>> logger.info("kos_manifest_built", instances=3)

    """
    config = get_settings().logging
    if log_level is None:
        log_level = config.log_level.value
    if json_format is None:
        json_format = config.log_format == "json"
    if log_file is None:
        log_file = config.log_file

    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    level = getattr(logging, log_level.upper())
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
        force=True,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_sensitive_data,
        add_audit_context,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        logging.root.addHandler(file_handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a configured structlog logger.

    Args:
        name: Logger name (typically module name using __name__)

    Returns:
        Configured structlog BoundLogger instance

    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


class AuditEventLogger:
    """Logger for events an operator has to be able to trace afterwards."""

    def __init__(self, logger: structlog.stdlib.BoundLogger):
        self.logger = logger

    def log_construction_failure(
        self, study_uid: str | None, reason: str, error_code: str | None = None
    ) -> None:
        """Log a manifest that could not be built.

        Args:
            study_uid: Study the manifest was requested for
            reason: Human-readable failure reason
            error_code: Error code carried by the raised exception

        """
        self.logger.warning(
            "manifest_construction_failed",
            audit_event=True,
            event_type="CONSTRUCTION_FAILURE",
            study_uid=study_uid,
            reason=reason,
            error_code=error_code,
        )

    def log_nonconformant_document(
        self,
        sop_instance_uid: str | None,
        profile: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log a document that failed validation.

        Args:
            sop_instance_uid: SOP Instance UID of the validated document
            profile: Profile the document was validated against
            details: Error/warning counts and similar

        """
        self.logger.info(
            "nonconformant_document",
            audit_event=True,
            event_type="NONCONFORMANT_DOCUMENT",
            sop_instance_uid=sop_instance_uid,
            profile=profile,
            details=details or {},
        )

    def log_adversarial_injection(
        self, sop_instance_uid: str | None, injections: list[str]
    ) -> None:
        """Log the defects planted into a generated document."""
        self.logger.info(
            "adversarial_injection",
            audit_event=True,
            event_type="ADVERSARIAL_INJECTION",
            sop_instance_uid=sop_instance_uid,
            injections=injections,
        )
