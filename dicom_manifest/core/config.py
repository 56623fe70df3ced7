"""Configuration Management - Builder, Validator and Generator Settings.

Builder defaults, validation options, adversarial generator probabilities
and logging options. Values load from environment variables (nested with
``__``, e.g. ``GENERATOR__SEED=42``) and an optional ``.env`` file.
"""

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dicom_manifest.core.constants import (
    CORRUPT_P,
    EVIDENCE_MISMATCH_P,
    FORBIDDEN_TAG_P,
    MADO_VIOLATION_P,
    SKIP_STEP_P,
    UTF8_CHARACTER_SET,
)


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ManifestDefaults(BaseSettings):
    """Values written into a manifest when the source records lack them.

    Identifiers here describe the issuing site; they are never derived
    from patient data.
    """

    patient_id_issuer_oid: str = Field(
        default="1.2.3.4.5.6.7.8.9",
        description="Universal entity ID of the patient ID issuer",
    )
    patient_id_issuer_local_namespace: str = Field(
        default="HOSPITAL_A", description="IssuerOfPatientID when none is recorded"
    )
    accession_number_issuer_oid: str = Field(
        default="1.2.3.4.5.6.7.8.10",
        description="Universal entity ID of the accession number issuer",
    )
    retrieve_location_uid: str = Field(
        default="1.2.3.4.5.6.7.8.9.10",
        description="Repository unique ID written on evidence series items",
    )
    wado_rs_base_url: str = Field(
        default="https://pacs.example.org/dicom-web/studies",
        description="WADO-RS base used to build RetrieveURL",
    )
    retrieve_ae_title: str = Field(
        default="MANIFEST_SCP", max_length=16, description="RetrieveAETitle"
    )
    institution_name: str = Field(
        default="IHE Demo Hospital", description="InstitutionName default"
    )
    manufacturer: str = Field(default="dicom-manifest", description="Manufacturer")
    manufacturer_model_name: str = Field(
        default="Manifest Builder", description="ManufacturerModelName"
    )
    software_versions: str = Field(default="1.0.0", description="SoftwareVersions")
    character_set: str = Field(
        default=UTF8_CHARACTER_SET, description="SpecificCharacterSet of new documents"
    )

    @field_validator("wado_rs_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Keep the base URL joinable with '/'."""
        return v.rstrip("/")


class GeneratorConfig(BaseSettings):
    """Adversarial generator configuration.

    Probabilities are per document, except skip_step_p which applies to
    every optional construction step.
    """

    skip_step_p: float = Field(
        default=SKIP_STEP_P, ge=0.0, le=1.0, description="Step omission probability"
    )
    corrupt_p: float = Field(
        default=CORRUPT_P, ge=0.0, le=1.0, description="Single-field corruption"
    )
    mado_violation_p: float = Field(
        default=MADO_VIOLATION_P,
        ge=0.0,
        le=1.0,
        description="Catalogued MADO violation",
    )
    evidence_mismatch_p: float = Field(
        default=EVIDENCE_MISMATCH_P,
        ge=0.0,
        le=1.0,
        description="Evidence/content desynchronization",
    )
    forbidden_tag_p: float = Field(
        default=FORBIDDEN_TAG_P,
        ge=0.0,
        le=1.0,
        description="Forbidden attribute injection",
    )
    seed: int | None = Field(
        default=None, description="Seed for the process-wide default dice"
    )
    max_forbidden_tags: int = Field(
        default=5, ge=1, le=20, description="Upper bound of forbidden tags per document"
    )


class ValidationConfig(BaseSettings):
    """Validator defaults."""

    verbose: bool = Field(
        default=False, description="Emit structural INFO notes unless overridden"
    )
    default_profile: str = Field(
        default="none", description="Profile used when none is requested"
    )


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="json", description="Log format: json or console"
    )
    log_file: Path | None = Field(
        default=None, description="Optional file receiving a copy of every log line"
    )


class Settings(BaseSettings):
    """Main application settings.

    Usage:
        from dicom_manifest.core.config import get_settings
        settings = get_settings()
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="dicom-manifest", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")

    defaults: ManifestDefaults = Field(default_factory=ManifestDefaults)
    generator: GeneratorConfig = Field(default_factory=GeneratorConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def get_summary(self) -> str:
        """Get configuration summary."""
        return f"""
dicom-manifest Configuration
============================
Defaults:
  - Institution: {self.defaults.institution_name}
  - Retrieve Location UID: {self.defaults.retrieve_location_uid}
  - WADO-RS Base: {self.defaults.wado_rs_base_url}
  - Character Set: {self.defaults.character_set}

Generator:
  - Skip Step: {self.generator.skip_step_p}
  - Corrupt: {self.generator.corrupt_p}
  - MADO Violation: {self.generator.mado_violation_p}
  - Evidence Mismatch: {self.generator.evidence_mismatch_p}
  - Forbidden Tags: {self.generator.forbidden_tag_p}
  - Seed: {self.generator.seed}

Validation:
  - Default Profile: {self.validation.default_profile}
  - Verbose: {self.validation.verbose}

Logging:
  - Level: {self.logging.log_level.value}
  - Format: {self.logging.log_format}
  - File: {self.logging.log_file}
"""


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings(force_reload: bool = False) -> Settings:
    """Get application settings (singleton).

    Args:
        force_reload: Force reload settings from environment

    Returns:
        Settings instance

    """
    global _settings
    if _settings is None or force_reload:
        _settings = Settings()
    return _settings
