"""Catalogue of MADO violations.

Each category targets one part of a manifest and offers several
strategies. Every strategy is chosen so that the validator reports the
defect under a fixed module path, which the generator records on the
InjectedDefect.

Categories:
- patient, study, equipment, timezone: header R+ attributes
- title, template, content: SR document content
- evidence: Key Object Document evidence
- mismatch: evidence and content out of step
"""

from __future__ import annotations

from pydicom.dataset import Dataset
from pydicom.sequence import Sequence

from dicom_manifest.core.constants import (
    CT_IMAGE_STORAGE,
    DCMR,
    MANIFEST,
    REJECTED_FOR_QUALITY_REASONS,
    SERIES_DESCRIPTION,
    TID_IMAGE_LIBRARY,
)
from dicom_manifest.core.exceptions import GenerationError
from dicom_manifest.core.types import CodedConcept, RelationshipType
from dicom_manifest.model.content import ImageNode, TextNode

from .base import DefectInjector, InjectedDefect, Strategy
from .dice import Dice


def _drop(dataset: Dataset, *keywords: str) -> None:
    for keyword in keywords:
        if keyword in dataset:
            delattr(dataset, keyword)


def _items(dataset: Dataset, keyword: str) -> list[Dataset]:
    value = dataset.get(keyword)
    return list(value) if isinstance(value, Sequence) else []


def _append_content(dataset: Dataset, item: Dataset) -> None:
    if "ContentSequence" not in dataset:
        dataset.ContentSequence = Sequence()
    dataset.ContentSequence.append(item)


# =============================================================================
# Header R+ attributes
# =============================================================================


class PatientViolation(DefectInjector):
    """Patient identification the MADO profile requires."""

    @property
    def category(self) -> str:
        return "patient"

    def strategies(self) -> list[Strategy]:
        return [
            ("missing_patient_id", "Patient", self._missing_patient_id),
            ("missing_issuer_qualifiers", "Patient", self._missing_qualifiers),
            ("non_iso_issuer_type", "Patient", self._non_iso_issuer_type),
            ("invalid_patient_sex", "Patient", self._invalid_patient_sex),
        ]

    def _missing_patient_id(self, dataset: Dataset) -> None:
        _drop(dataset, "PatientID")

    def _missing_qualifiers(self, dataset: Dataset) -> None:
        _drop(dataset, "IssuerOfPatientIDQualifiersSequence")

    def _non_iso_issuer_type(self, dataset: Dataset) -> None:
        item = Dataset()
        item.UniversalEntityID = "hospital.example.org"
        item.UniversalEntityIDType = "DNS"
        dataset.IssuerOfPatientIDQualifiersSequence = Sequence([item])

    def _invalid_patient_sex(self, dataset: Dataset) -> None:
        dataset.PatientSex = "X"


class StudyViolation(DefectInjector):
    """Study date, accession number and its issuer."""

    @property
    def category(self) -> str:
        return "study"

    def strategies(self) -> list[Strategy]:
        return [
            ("missing_study_date", "Study", self._missing_study_date),
            ("missing_accession_number", "Study", self._missing_accession),
            ("missing_accession_issuer", "Study", self._missing_accession_issuer),
            ("malformed_study_uid", "Study", self._malformed_study_uid),
        ]

    def _missing_study_date(self, dataset: Dataset) -> None:
        _drop(dataset, "StudyDate")

    def _missing_accession(self, dataset: Dataset) -> None:
        _drop(dataset, "AccessionNumber", "IssuerOfAccessionNumberSequence")
        self._single_request(dataset)

    def _missing_accession_issuer(self, dataset: Dataset) -> None:
        if not str(dataset.get("AccessionNumber", "") or ""):
            dataset.AccessionNumber = f"ACC-{self.dice.token(6).upper()}"
        _drop(dataset, "IssuerOfAccessionNumberSequence")
        self._single_request(dataset)

    def _malformed_study_uid(self, dataset: Dataset) -> None:
        dataset.StudyInstanceUID = "1.2.840.ABC"

    @staticmethod
    def _single_request(dataset: Dataset) -> None:
        # accession rules only apply to single-request manifests
        requests = _items(dataset, "ReferencedRequestSequence")
        if len(requests) > 1:
            dataset.ReferencedRequestSequence = Sequence(requests[:1])


class EquipmentViolation(DefectInjector):
    """Manufacturer and institution."""

    @property
    def category(self) -> str:
        return "equipment"

    def strategies(self) -> list[Strategy]:
        return [
            ("missing_manufacturer", "Equipment", self._missing_manufacturer),
            ("missing_institution", "Equipment", self._missing_institution),
        ]

    def _missing_manufacturer(self, dataset: Dataset) -> None:
        _drop(dataset, "Manufacturer")

    def _missing_institution(self, dataset: Dataset) -> None:
        _drop(dataset, "InstitutionName", "InstitutionCodeSequence")


class TimezoneViolation(DefectInjector):
    """TimezoneOffsetFromUTC absent or malformed."""

    @property
    def category(self) -> str:
        return "timezone"

    def strategies(self) -> list[Strategy]:
        return [
            ("utc_literal", "Timezone", self._utc_literal),
            ("out_of_range_offset", "Timezone", self._out_of_range),
            ("missing_offset", "SOPCommon", self._missing_offset),
        ]

    def _utc_literal(self, dataset: Dataset) -> None:
        dataset.TimezoneOffsetFromUTC = "UTC"

    def _out_of_range(self, dataset: Dataset) -> None:
        dataset.TimezoneOffsetFromUTC = self.dice.choice(["+1530", "-1500", "+0960"])

    def _missing_offset(self, dataset: Dataset) -> None:
        _drop(dataset, "TimezoneOffsetFromUTC")


# =============================================================================
# SR document content
# =============================================================================


class TitleViolation(DefectInjector):
    """Document title outside the MADO title codes."""

    @property
    def category(self) -> str:
        return "title"

    def strategies(self) -> list[Strategy]:
        return [
            ("rejection_note_title", "SRDocumentContent", self._rejection_title),
            ("local_scheme_title", "SRDocumentContent", self._local_scheme_title),
            ("missing_title", "SRDocumentContent", self._missing_title),
        ]

    def _rejection_title(self, dataset: Dataset) -> None:
        dataset.ConceptNameCodeSequence = Sequence(
            [REJECTED_FOR_QUALITY_REASONS.to_dataset()]
        )

    def _local_scheme_title(self, dataset: Dataset) -> None:
        local = CodedConcept(MANIFEST.code_value, "99LOCAL", MANIFEST.code_meaning)
        dataset.ConceptNameCodeSequence = Sequence([local.to_dataset()])

    def _missing_title(self, dataset: Dataset) -> None:
        _drop(dataset, "ConceptNameCodeSequence")


class TemplateViolation(DefectInjector):
    """Content template identification."""

    @property
    def category(self) -> str:
        return "template"

    def strategies(self) -> list[Strategy]:
        return [
            ("wrong_mapping_resource", "Template", self._wrong_mapping_resource),
            ("unknown_template", "Template", self._unknown_template),
            ("missing_template", "Template", self._missing_template),
        ]

    @staticmethod
    def _template(resource: str, identifier: str) -> Sequence:
        item = Dataset()
        item.MappingResource = resource
        item.TemplateIdentifier = identifier
        return Sequence([item])

    def _wrong_mapping_resource(self, dataset: Dataset) -> None:
        dataset.ContentTemplateSequence = self._template("99LOCAL", TID_IMAGE_LIBRARY)

    def _unknown_template(self, dataset: Dataset) -> None:
        dataset.ContentTemplateSequence = self._template(DCMR, "9999")

    def _missing_template(self, dataset: Dataset) -> None:
        _drop(dataset, "ContentTemplateSequence")


class ContentViolation(DefectInjector):
    """Malformed content items and root attributes."""

    @property
    def category(self) -> str:
        return "content"

    def strategies(self) -> list[Strategy]:
        return [
            ("disallowed_value_type", "SRDocumentContent", self._disallowed_type),
            ("invalid_relationship", "SRDocumentContent", self._bad_relationship),
            ("text_without_value", "SRDocumentContent", self._text_without_value),
            ("missing_continuity", "SRDocumentContent", self._missing_continuity),
        ]

    def _disallowed_type(self, dataset: Dataset) -> None:
        item = Dataset()
        item.RelationshipType = RelationshipType.CONTAINS.value
        item.ValueType = "SCOORD"
        item.ConceptNameCodeSequence = Sequence([SERIES_DESCRIPTION.to_dataset()])
        _append_content(dataset, item)

    def _bad_relationship(self, dataset: Dataset) -> None:
        item = TextNode(
            relationship=RelationshipType.CONTAINS,
            concept_name=SERIES_DESCRIPTION,
            value="Unrelated note",
        ).to_dataset()
        item.RelationshipType = "HAS PARENT"
        _append_content(dataset, item)

    def _text_without_value(self, dataset: Dataset) -> None:
        item = TextNode(
            relationship=RelationshipType.CONTAINS,
            concept_name=SERIES_DESCRIPTION,
            value="",
        ).to_dataset()
        del item.TextValue
        _append_content(dataset, item)

    def _missing_continuity(self, dataset: Dataset) -> None:
        _drop(dataset, "ContinuityOfContent")


# =============================================================================
# Evidence
# =============================================================================


class EvidenceViolation(DefectInjector):
    """Key Object Document attributes and evidence structure."""

    @property
    def category(self) -> str:
        return "evidence"

    def strategies(self) -> list[Strategy]:
        return [
            ("malformed_evidence_study_uid", "KeyObjectDocument", self._bad_uid),
            ("missing_referenced_series", "KeyObjectDocument", self._no_series),
            ("missing_instance_number", "KeyObjectDocument", self._no_number),
            ("missing_content_date", "KeyObjectDocument", self._no_content_date),
        ]

    def _first_study(self, dataset: Dataset) -> Dataset:
        studies = _items(dataset, "CurrentRequestedProcedureEvidenceSequence")
        if studies:
            return studies[0]
        study = Dataset()
        study.StudyInstanceUID = str(dataset.get("StudyInstanceUID", "") or "")
        study.ReferencedSeriesSequence = Sequence()
        dataset.CurrentRequestedProcedureEvidenceSequence = Sequence([study])
        return study

    def _bad_uid(self, dataset: Dataset) -> None:
        self._first_study(dataset).StudyInstanceUID = "1.2..840"

    def _no_series(self, dataset: Dataset) -> None:
        _drop(self._first_study(dataset), "ReferencedSeriesSequence")

    def _no_number(self, dataset: Dataset) -> None:
        _drop(dataset, "InstanceNumber")

    def _no_content_date(self, dataset: Dataset) -> None:
        _drop(dataset, "ContentDate")


class EvidenceMismatch(DefectInjector):
    """Desynchronize the content tree from the evidence list.

    Dropping a content reference leaves an evidence entry nothing shows
    (warning); a phantom reference shows an instance the evidence does not
    list (error). A drop falls back to a phantom when no content reference
    is also listed in the evidence.
    """

    @property
    def category(self) -> str:
        return "mismatch"

    def strategies(self) -> list[Strategy]:
        return [
            ("drop_content_reference", "EvidenceConsistency", self._drop_reference),
            ("phantom_reference", "EvidenceConsistency", self._phantom_reference),
        ]

    def _drop_reference(self, dataset: Dataset) -> None:
        evidence_uids = {
            str(sop.get("ReferencedSOPInstanceUID", ""))
            for study in _items(dataset, "CurrentRequestedProcedureEvidenceSequence")
            for series in _items(study, "ReferencedSeriesSequence")
            for sop in _items(series, "ReferencedSOPSequence")
        }
        located = list(_reference_items(dataset))
        counts: dict[str, int] = {}
        for _, _, uid in located:
            counts[uid] = counts.get(uid, 0) + 1
        candidates = [
            (parent, index)
            for parent, index, uid in located
            if uid in evidence_uids and counts[uid] == 1
        ]
        if not candidates:
            self._phantom_reference(dataset)
            return
        parent, index = self.dice.choice(candidates)
        del parent.ContentSequence[index]

    def _phantom_reference(self, dataset: Dataset) -> None:
        phantom = ImageNode(
            relationship=RelationshipType.CONTAINS,
            sop_class_uid=CT_IMAGE_STORAGE,
            sop_instance_uid=self.dice.uid(),
        )
        _append_content(dataset, phantom.to_dataset())


def _reference_items(dataset: Dataset) -> list[tuple[Dataset, int, str]]:
    """(parent, index in its ContentSequence, instance UID) of single references."""
    found = []
    for index, item in enumerate(_items(dataset, "ContentSequence")):
        refs = _items(item, "ReferencedSOPSequence")
        if str(item.get("ValueType", "")) in ("IMAGE", "COMPOSITE") and len(refs) == 1:
            found.append(
                (dataset, index, str(refs[0].get("ReferencedSOPInstanceUID", "")))
            )
        found.extend(_reference_items(item))
    return found


# =============================================================================
# Registry
# =============================================================================

VIOLATIONS: dict[str, type[DefectInjector]] = {
    "patient": PatientViolation,
    "study": StudyViolation,
    "equipment": EquipmentViolation,
    "timezone": TimezoneViolation,
    "title": TitleViolation,
    "template": TemplateViolation,
    "evidence": EvidenceViolation,
    "content": ContentViolation,
    "mismatch": EvidenceMismatch,
}

#: Categories drawn for the MADO violation injection
MADO_VIOLATION_CATEGORIES: tuple[str, ...] = tuple(
    category for category in VIOLATIONS if category != "mismatch"
)


def get_violation(category: str, dice: Dice) -> DefectInjector:
    """Instantiate the injector of a category.

    Raises:
        GenerationError: If the category is not in the catalogue

    """
    injector_cls = VIOLATIONS.get(category)
    if injector_cls is None:
        raise GenerationError(
            f"Unknown violation category: {category}",
            error_code="UNKNOWN_CATEGORY",
            context={"category": category, "known": sorted(VIOLATIONS)},
        )
    return injector_cls(dice)


def inject_violation(dataset: Dataset, category: str, dice: Dice) -> InjectedDefect:
    """Inject one violation of the given category into dataset in place."""
    return get_violation(category, dice).inject(dataset)
