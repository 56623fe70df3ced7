"""Custom exceptions for manifest construction and generation.

Validation findings are never raised; they are collected into a
ValidationResult. Exceptions are reserved for situations where no
document can be produced at all.
"""

from typing import Any


class ManifestError(Exception):
    """Base exception for dicom-manifest operations.

    Attributes:
        message: Human-readable error description
        error_code: Optional error code for categorization
        context: Additional context information

    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}


class ConstructionError(ManifestError):
    """Raised when a builder cannot assemble a manifest from its inputs."""

    STUDY_NOT_FOUND = "STUDY_NOT_FOUND"
    NO_SERIES = "NO_SERIES"
    NO_INSTANCES = "NO_INSTANCES"


class ConfigurationError(ManifestError):
    """Raised when generator or builder options are out of range."""

    pass


class GenerationError(ManifestError):
    """Raised when the adversarial generator is asked for something it cannot do."""

    pass
