"""Validation result model.

A ValidationResult is an ordered list of findings. Each finding carries a
severity and a breadcrumb path naming the module and, for nested data,
the sequence items that lead to it, e.g.
``KeyObjectDocument>Evidence[0]>Series[2]>ReferencedSOP[1]``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ValidationSeverity(str, Enum):
    """Severity of a validation finding."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ValidationMessage:
    """A single validation finding."""

    severity: ValidationSeverity
    message: str
    path: str = ""

    def __str__(self) -> str:
        label = self.severity.value.upper()
        if self.path:
            return f"[{label}] {self.path}: {self.message}"
        return f"[{label}] {self.message}"


def item_path(parent: str, name: str, index: int) -> str:
    """Build the breadcrumb of a sequence item below parent."""
    return f"{parent}>{name}[{index}]"


@dataclass
class ValidationResult:
    """Ordered collection of findings for one document."""

    messages: list[ValidationMessage] = field(default_factory=list)

    def add(self, severity: ValidationSeverity, message: str, path: str = "") -> None:
        self.messages.append(ValidationMessage(severity, message, path))

    def add_error(self, message: str, path: str = "") -> None:
        self.add(ValidationSeverity.ERROR, message, path)

    def add_warning(self, message: str, path: str = "") -> None:
        self.add(ValidationSeverity.WARNING, message, path)

    def add_info(self, message: str, path: str = "") -> None:
        self.add(ValidationSeverity.INFO, message, path)

    def merge(self, other: ValidationResult) -> None:
        """Append all findings of another result, keeping their order."""
        self.messages.extend(other.messages)

    @property
    def is_valid(self) -> bool:
        """A document is valid when no ERROR was reported."""
        return not self.has_errors()

    def has_errors(self) -> bool:
        return any(m.severity == ValidationSeverity.ERROR for m in self.messages)

    def get_messages_by_severity(
        self, severity: ValidationSeverity
    ) -> list[ValidationMessage]:
        return [m for m in self.messages if m.severity == severity]

    @property
    def errors(self) -> list[ValidationMessage]:
        return self.get_messages_by_severity(ValidationSeverity.ERROR)

    @property
    def warnings(self) -> list[ValidationMessage]:
        return self.get_messages_by_severity(ValidationSeverity.WARNING)

    @property
    def infos(self) -> list[ValidationMessage]:
        return self.get_messages_by_severity(ValidationSeverity.INFO)

    def messages_under(
        self, path_prefix: str, severity: ValidationSeverity | None = None
    ) -> list[ValidationMessage]:
        """Return findings whose path starts with path_prefix.

        Args:
            path_prefix: Module name or breadcrumb prefix
            severity: Restrict to one severity when given

        """
        return [
            m
            for m in self.messages
            if m.path.startswith(path_prefix)
            and (severity is None or m.severity == severity)
        ]

    def has_error_at(self, path: str, fragment: str) -> bool:
        """True when an ERROR recorded at exactly path mentions fragment."""
        return any(
            m.severity == ValidationSeverity.ERROR
            and m.path == path
            and fragment in m.message
            for m in self.messages
        )

    def summary(self) -> str:
        return (
            f"{'VALID' if self.is_valid else 'INVALID'}: "
            f"{len(self.errors)} error(s), {len(self.warnings)} warning(s), "
            f"{len(self.infos)} info(s)"
        )

    def __str__(self) -> str:
        lines = [self.summary()]
        lines.extend(str(m) for m in self.messages)
        return "\n".join(lines)
