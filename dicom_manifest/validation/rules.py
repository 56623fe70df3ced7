"""Attribute-rule helpers shared by every validation pass.

Rule kinds follow the DICOM attribute types:

- Type 1: present and non-empty
- Type 2: present, may be empty
- Type 1C / 2C: as Type 1 / 2 when a condition holds
- Enumerated: value, when present, drawn from a fixed set
- Exact: value must equal a fixed string

Helpers report into a ValidationResult and return whether the check passed
so callers can skip dependent checks.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydicom.datadict import tag_for_keyword
from pydicom.dataset import Dataset
from pydicom.multival import MultiValue
from pydicom.sequence import Sequence

from dicom_manifest.core.constants import MAX_UID_LENGTH
from dicom_manifest.model.result import ValidationResult, ValidationSeverity

_UID_CHARACTERS = re.compile(r"^[0-9.]+$")


def tag_label(keyword: str) -> str:
    """Render a keyword with its tag, e.g. 'PatientID (0010,0020)'."""
    tag = tag_for_keyword(keyword)
    if tag is None:
        return keyword
    return f"{keyword} ({tag >> 16:04X},{tag & 0xFFFF:04X})"


def is_empty(value: Any) -> bool:
    """Zero-length value, whitespace-only text, or a sequence without items."""
    if value is None:
        return True
    if isinstance(value, (str, bytes)):
        return not value.strip()
    if isinstance(value, (Sequence, MultiValue, list, tuple)):
        return len(value) == 0
    return not str(value).strip()


def text_of(dataset: Dataset | None, keyword: str) -> str:
    """Attribute value as stripped text; empty string when absent."""
    if dataset is None:
        return ""
    value = dataset.get(keyword)
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("latin-1", errors="replace").strip()
    return str(value).strip()


def sequence_items(dataset: Dataset | None, keyword: str) -> list[Dataset]:
    """Items of a sequence attribute; empty list when absent or not a sequence."""
    if dataset is None:
        return []
    value = dataset.get(keyword)
    if not isinstance(value, (Sequence, MultiValue, list)):
        return []
    return [item for item in value if isinstance(item, Dataset)]


def check_required(
    dataset: Dataset,
    keyword: str,
    result: ValidationResult,
    path: str,
    severity: ValidationSeverity = ValidationSeverity.ERROR,
) -> bool:
    """Type 1: the attribute must be present with a non-empty value."""
    if keyword not in dataset:
        result.add(severity, f"Missing required attribute {tag_label(keyword)}", path)
        return False
    if is_empty(dataset.get(keyword)):
        result.add(severity, f"Required attribute {tag_label(keyword)} is empty", path)
        return False
    return True


def check_type2(
    dataset: Dataset,
    keyword: str,
    result: ValidationResult,
    path: str,
    severity: ValidationSeverity = ValidationSeverity.ERROR,
) -> bool:
    """Type 2: the attribute must be present; an empty value is allowed."""
    if keyword not in dataset:
        result.add(
            severity,
            f"Missing Type 2 attribute {tag_label(keyword)} (may be empty but "
            "must be present)",
            path,
        )
        return False
    return True


def check_conditional(
    dataset: Dataset,
    keyword: str,
    condition: bool,
    reason: str,
    result: ValidationResult,
    path: str,
) -> bool:
    """Type 1C: required and non-empty only when condition holds."""
    if not condition:
        return True
    if keyword not in dataset or is_empty(dataset.get(keyword)):
        result.add_error(f"{tag_label(keyword)} is required when {reason}", path)
        return False
    return True


def check_enumerated(
    dataset: Dataset,
    keyword: str,
    allowed: Iterable[str],
    result: ValidationResult,
    path: str,
    severity: ValidationSeverity = ValidationSeverity.ERROR,
) -> bool:
    """Value, when present, must be one of allowed."""
    if keyword not in dataset:
        return True
    allowed = tuple(allowed)
    value = text_of(dataset, keyword)
    if value not in allowed:
        result.add(
            severity,
            f"Invalid value '{value}' for {tag_label(keyword)}; "
            f"expected one of {', '.join(repr(a) for a in allowed)}",
            path,
        )
        return False
    return True


def check_exact(
    dataset: Dataset,
    keyword: str,
    expected: str,
    result: ValidationResult,
    path: str,
) -> bool:
    """Value, when present, must equal expected."""
    if keyword not in dataset:
        return True
    value = text_of(dataset, keyword)
    if value != expected:
        result.add_error(
            f"{tag_label(keyword)} must be '{expected}', found '{value}'", path
        )
        return False
    return True


def check_uid(value: str, label: str, result: ValidationResult, path: str) -> bool:
    """Syntax check of a UID value; empty values are left to presence checks.

    Digits and dots only, no empty component, at most 64 characters. A
    numeric component with a leading zero is reported as a warning.
    """
    if not value:
        return True
    if len(value) > MAX_UID_LENGTH:
        result.add_error(
            f"{label} exceeds {MAX_UID_LENGTH} characters ({len(value)}): {value}",
            path,
        )
        return False
    if not _UID_CHARACTERS.match(value):
        result.add_error(f"{label} contains invalid characters: {value}", path)
        return False
    if value.startswith(".") or value.endswith(".") or ".." in value:
        result.add_error(f"{label} has an empty component: {value}", path)
        return False
    if any(len(part) > 1 and part.startswith("0") for part in value.split(".")):
        result.add_warning(
            f"{label} has a component with a leading zero: {value}", path
        )
    return True


def check_uid_attribute(
    dataset: Dataset, keyword: str, result: ValidationResult, path: str
) -> bool:
    """Type 1 check followed by UID syntax check."""
    if not check_required(dataset, keyword, result, path):
        return False
    return check_uid(text_of(dataset, keyword), tag_label(keyword), result, path)


class RuleKind(str, Enum):
    """Kinds of table-driven attribute rules."""

    TYPE1 = "type1"
    TYPE2 = "type2"
    ENUMERATED = "enumerated"
    EXACT = "exact"
    UID = "uid"


@dataclass
class AttributeRule:
    """One row of a module table."""

    keyword: str
    kind: RuleKind
    allowed: tuple[str, ...] = field(default_factory=tuple)
    severity: ValidationSeverity = ValidationSeverity.ERROR

    def evaluate(self, dataset: Dataset, result: ValidationResult, path: str) -> bool:
        if self.kind == RuleKind.TYPE1:
            return check_required(dataset, self.keyword, result, path, self.severity)
        if self.kind == RuleKind.TYPE2:
            return check_type2(dataset, self.keyword, result, path, self.severity)
        if self.kind == RuleKind.ENUMERATED:
            return check_enumerated(
                dataset, self.keyword, self.allowed, result, path, self.severity
            )
        if self.kind == RuleKind.EXACT:
            return check_exact(dataset, self.keyword, self.allowed[0], result, path)
        if self.kind == RuleKind.UID:
            return check_uid_attribute(dataset, self.keyword, result, path)
        raise ValueError(f"Unhandled rule kind: {self.kind}")


def evaluate_rules(
    dataset: Dataset,
    rules: Iterable[AttributeRule],
    result: ValidationResult,
    path: str,
) -> bool:
    """Evaluate every rule of a table; True when all passed."""
    passed = True
    for rule in rules:
        passed = rule.evaluate(dataset, result, path) and passed
    return passed
