"""
dicom-manifest - DICOM imaging manifest engine.

Builds Key Object Selection (KOS) and MADO manifests from archive query
results, validates documents against the generic KOS rules and the IHE
XDS-I.b and MADO profiles, and generates adversarial documents to measure
validator coverage.
"""

__version__ = "1.0.0"
__license__ = "MIT"

from dicom_manifest.adversarial import (
    AdversarialCampaign,
    AdversarialGenerator,
    generate_adversarial_document,
)
from dicom_manifest.builders import (
    KosManifestBuilder,
    MadoManifestBuilder,
    ManifestCreator,
    build_kos,
    build_mado,
)
from dicom_manifest.core.exceptions import (
    ConfigurationError,
    ConstructionError,
    GenerationError,
    ManifestError,
)
from dicom_manifest.core.types import ValidationProfile
from dicom_manifest.model.result import ValidationResult, ValidationSeverity
from dicom_manifest.validation import validate

__all__ = [
    "__version__",
    "__license__",
    "AdversarialCampaign",
    "AdversarialGenerator",
    "ConfigurationError",
    "ConstructionError",
    "GenerationError",
    "KosManifestBuilder",
    "MadoManifestBuilder",
    "ManifestCreator",
    "ManifestError",
    "ValidationProfile",
    "ValidationResult",
    "ValidationSeverity",
    "build_kos",
    "build_mado",
    "generate_adversarial_document",
    "validate",
]
