"""Manifest validation: IOD module tables, profile passes and advanced checks."""

from .consistency import check_consistency
from .validator import generic_passes, profile_passes, run_pass, validate

__all__ = [
    "check_consistency",
    "generic_passes",
    "profile_passes",
    "run_pass",
    "validate",
]
