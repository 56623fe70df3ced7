"""Shared enums and value types for SR content and validation profiles."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydicom.dataset import Dataset


class ValueType(str, Enum):
    """SR content item value types used by KOS and MADO documents."""

    CONTAINER = "CONTAINER"
    CODE = "CODE"
    TEXT = "TEXT"
    NUM = "NUM"
    UIDREF = "UIDREF"
    IMAGE = "IMAGE"
    COMPOSITE = "COMPOSITE"


#: Value types accepted by the SR content checks (WAVEFORM and PNAME are
#: legal in TID 2010 trees even though the builders never emit them)
ALLOWED_VALUE_TYPES: frozenset[str] = frozenset(
    {v.value for v in ValueType} | {"WAVEFORM", "PNAME"}
)

#: Value types that reference a composite object
REFERENCE_VALUE_TYPES: frozenset[str] = frozenset({"IMAGE", "COMPOSITE", "WAVEFORM"})


class RelationshipType(str, Enum):
    """Relationship of a content item to its parent."""

    CONTAINS = "CONTAINS"
    HAS_ACQ_CONTEXT = "HAS ACQ CONTEXT"
    HAS_PROPERTIES = "HAS PROPERTIES"
    HAS_OBS_CONTEXT = "HAS OBS CONTEXT"
    HAS_CONCEPT_MOD = "HAS CONCEPT MOD"
    INFERRED_FROM = "INFERRED FROM"
    SELECTED_FROM = "SELECTED FROM"


class ContinuityOfContent(str, Enum):
    """ContinuityOfContent values for CONTAINER items."""

    SEPARATE = "SEPARATE"
    CONTINUOUS = "CONTINUOUS"


class ValidationProfile(str, Enum):
    """Validation profiles selectable when checking a document.

    - NONE: generic KOS module and template rules only
    - XDSI_MANIFEST: IHE XDS-I.b imaging manifest
    - MADO: IHE Manifest-based Access to DICOM Objects
    """

    NONE = "none"
    XDSI_MANIFEST = "IHEXDSIManifest"
    MADO = "IHEMADO"

    @classmethod
    def resolve(cls, name: ValidationProfile | str | None) -> ValidationProfile | None:
        """Map a profile name or alias to a profile.

        Returns None for names that match no profile so the caller can
        report the unknown request.
        """
        if name is None:
            return cls.NONE
        if isinstance(name, ValidationProfile):
            return name
        key = name.strip().lower()
        return _PROFILE_ALIASES.get(key)


_PROFILE_ALIASES: dict[str, ValidationProfile] = {
    "": ValidationProfile.NONE,
    "none": ValidationProfile.NONE,
    "ihexdsimanifest": ValidationProfile.XDSI_MANIFEST,
    "xdsimanifest": ValidationProfile.XDSI_MANIFEST,
    "xdsi": ValidationProfile.XDSI_MANIFEST,
    "ihemado": ValidationProfile.MADO,
    "mado": ValidationProfile.MADO,
}


@dataclass
class CodedConcept:
    """A (code value, coding scheme, code meaning) triple."""

    code_value: str
    coding_scheme: str
    code_meaning: str

    def to_dataset(self) -> Dataset:
        """Build a code sequence item."""
        item = Dataset()
        item.CodeValue = self.code_value
        item.CodingSchemeDesignator = self.coding_scheme
        item.CodeMeaning = self.code_meaning
        return item

    def matches(self, item: Dataset | None) -> bool:
        """Check whether a code sequence item carries this code value and scheme."""
        if item is None:
            return False
        return (
            str(item.get("CodeValue", "")) == self.code_value
            and str(item.get("CodingSchemeDesignator", "")) == self.coding_scheme
        )

    @classmethod
    def from_item(cls, item: Dataset) -> CodedConcept:
        return cls(
            str(item.get("CodeValue", "")),
            str(item.get("CodingSchemeDesignator", "")),
            str(item.get("CodeMeaning", "")),
        )

    def __str__(self) -> str:
        return f"({self.code_value}, {self.coding_scheme}, '{self.code_meaning}')"
