"""Core types, constants, configuration and exceptions."""

from .config import Settings, get_settings
from .exceptions import (
    ConfigurationError,
    ConstructionError,
    GenerationError,
    ManifestError,
)
from .types import CodedConcept, RelationshipType, ValidationProfile, ValueType
from .uid import create_normalized_uid, normalize_uid

__all__ = [
    "CodedConcept",
    "ConfigurationError",
    "ConstructionError",
    "GenerationError",
    "ManifestError",
    "RelationshipType",
    "Settings",
    "ValidationProfile",
    "ValueType",
    "create_normalized_uid",
    "get_settings",
    "normalize_uid",
]
