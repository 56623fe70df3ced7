"""SR Document Content checks.

Walks the content tree of a KOS/MADO document item by item. The walkers
here work on raw datasets rather than the ContentNode model because
documents under validation may be arbitrarily malformed.
"""

from __future__ import annotations

from collections.abc import Iterator

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import (
    KEY_OBJECT_DESCRIPTION,
    TITLE_MODIFIER,
    TITLES_REQUIRING_MODIFIER,
)
from dicom_manifest.core.types import (
    ALLOWED_VALUE_TYPES,
    REFERENCE_VALUE_TYPES,
    CodedConcept,
    ContinuityOfContent,
    RelationshipType,
)
from dicom_manifest.model.result import ValidationResult, item_path

from .retrieval import check_retrieve_information
from .rules import (
    check_enumerated,
    check_required,
    check_uid_attribute,
    sequence_items,
    text_of,
)

MODULE = "SRDocumentContent"

_RELATIONSHIP_TYPES = tuple(r.value for r in RelationshipType)
_CONTINUITY = tuple(c.value for c in ContinuityOfContent)


# =============================================================================
# Tree walking
# =============================================================================


def walk_content(
    dataset: Dataset, path: str = MODULE
) -> Iterator[tuple[Dataset, str]]:
    """Yield (content item, breadcrumb) depth-first below dataset."""
    for i, item in enumerate(sequence_items(dataset, "ContentSequence")):
        child_path = item_path(path, "ContentSequence", i)
        yield item, child_path
        yield from walk_content(item, child_path)


def concept_of(item: Dataset) -> Dataset | None:
    """First ConceptNameCodeSequence item, if any."""
    codes = sequence_items(item, "ConceptNameCodeSequence")
    return codes[0] if codes else None


def has_concept(item: Dataset, concept: CodedConcept) -> bool:
    return concept.matches(concept_of(item))


def collect_content_references(dataset: Dataset) -> list[tuple[str, str]]:
    """(class UID, instance UID) pairs of every referencing content item."""
    pairs = []
    for item, _ in walk_content(dataset):
        if text_of(item, "ValueType") not in REFERENCE_VALUE_TYPES:
            continue
        for ref in sequence_items(item, "ReferencedSOPSequence"):
            instance_uid = text_of(ref, "ReferencedSOPInstanceUID")
            if instance_uid:
                pairs.append((text_of(ref, "ReferencedSOPClassUID"), instance_uid))
    return pairs


# =============================================================================
# Document root
# =============================================================================


def check_document_content(dataset: Dataset, result: ValidationResult) -> None:
    """Root container, content template, every content item, KOS constraints."""
    if check_required(dataset, "ValueType", result, MODULE):
        value_type = text_of(dataset, "ValueType")
        if value_type != "CONTAINER":
            result.add_error(
                f"Root ValueType must be CONTAINER, found '{value_type}'", MODULE
            )
    title = check_concept_name(dataset, result, MODULE, required=True)
    if check_required(dataset, "ContinuityOfContent", result, MODULE):
        continuity = text_of(dataset, "ContinuityOfContent")
        if continuity != ContinuityOfContent.SEPARATE.value:
            result.add_error(
                f"Root ContinuityOfContent must be SEPARATE, found '{continuity}'",
                MODULE,
            )
    _check_template_sequence(dataset, result)

    if check_required(dataset, "ContentSequence", result, MODULE):
        for i, item in enumerate(sequence_items(dataset, "ContentSequence")):
            check_content_item(item, result, item_path(MODULE, "ContentSequence", i))

    check_key_object_constraints(dataset, title, result)


def _check_template_sequence(dataset: Dataset, result: ValidationResult) -> None:
    if not check_required(dataset, "ContentTemplateSequence", result, MODULE):
        return
    for i, item in enumerate(sequence_items(dataset, "ContentTemplateSequence")):
        path = item_path(MODULE, "ContentTemplateSequence", i)
        check_required(item, "MappingResource", result, path)
        check_required(item, "TemplateIdentifier", result, path)


def check_concept_name(
    item: Dataset, result: ValidationResult, path: str, required: bool
) -> Dataset | None:
    """Check a ConceptNameCodeSequence; returns its code item when usable."""
    if "ConceptNameCodeSequence" not in item:
        if required:
            check_required(item, "ConceptNameCodeSequence", result, path)
        return None
    if not check_required(item, "ConceptNameCodeSequence", result, path):
        return None
    codes = sequence_items(item, "ConceptNameCodeSequence")
    if not codes:
        return None
    if check_code_item(codes[0], result, item_path(path, "ConceptNameCodeSequence", 0)):
        return codes[0]
    return None


def check_code_item(code: Dataset, result: ValidationResult, path: str) -> bool:
    passed = check_required(code, "CodeValue", result, path)
    passed = check_required(code, "CodingSchemeDesignator", result, path) and passed
    return check_required(code, "CodeMeaning", result, path) and passed


# =============================================================================
# Content items
# =============================================================================


def check_content_item(item: Dataset, result: ValidationResult, path: str) -> None:
    """Check one content item and recurse into its children."""
    if check_required(item, "RelationshipType", result, path):
        check_enumerated(item, "RelationshipType", _RELATIONSHIP_TYPES, result, path)

    if check_required(item, "ValueType", result, path):
        value_type = text_of(item, "ValueType")
        if value_type not in ALLOWED_VALUE_TYPES:
            result.add_error(f"Disallowed ValueType '{value_type}'", path)
        else:
            check_concept_name(
                item, result, path, required=value_type not in REFERENCE_VALUE_TYPES
            )
            _check_value(item, value_type, result, path)

    for i, child in enumerate(sequence_items(item, "ContentSequence")):
        check_content_item(child, result, item_path(path, "ContentSequence", i))


def _check_value(
    item: Dataset, value_type: str, result: ValidationResult, path: str
) -> None:
    if value_type == "CODE":
        if check_required(item, "ConceptCodeSequence", result, path):
            code = sequence_items(item, "ConceptCodeSequence")[0]
            check_code_item(code, result, item_path(path, "ConceptCodeSequence", 0))
    elif value_type == "TEXT":
        check_required(item, "TextValue", result, path)
    elif value_type == "NUM":
        _check_measured_value(item, result, path)
    elif value_type == "UIDREF":
        check_uid_attribute(item, "UID", result, path)
    elif value_type == "PNAME":
        check_required(item, "PersonName", result, path)
    elif value_type in REFERENCE_VALUE_TYPES:
        _check_reference(item, result, path)
    elif value_type == "CONTAINER":
        if "ContentSequence" not in item:
            result.add_warning("CONTAINER has no ContentSequence", path)
        check_enumerated(item, "ContinuityOfContent", _CONTINUITY, result, path)


def _check_measured_value(item: Dataset, result: ValidationResult, path: str) -> None:
    if not check_required(item, "MeasuredValueSequence", result, path):
        return
    measured = sequence_items(item, "MeasuredValueSequence")[0]
    measured_path = item_path(path, "MeasuredValueSequence", 0)
    check_required(measured, "NumericValue", result, measured_path)
    if check_required(
        measured, "MeasurementUnitsCodeSequence", result, measured_path
    ):
        units = sequence_items(measured, "MeasurementUnitsCodeSequence")[0]
        check_code_item(
            units,
            result,
            item_path(measured_path, "MeasurementUnitsCodeSequence", 0),
        )


def _check_reference(item: Dataset, result: ValidationResult, path: str) -> None:
    if "PurposeOfReferenceCodeSequence" in item:
        result.add_error(
            "PurposeOfReferenceCodeSequence is not allowed on references "
            "in a Key Object Selection document",
            path,
        )
    if not check_required(item, "ReferencedSOPSequence", result, path):
        return
    for i, ref in enumerate(sequence_items(item, "ReferencedSOPSequence")):
        ref_path = item_path(path, "ReferencedSOPSequence", i)
        check_uid_attribute(ref, "ReferencedSOPClassUID", result, ref_path)
        check_uid_attribute(ref, "ReferencedSOPInstanceUID", result, ref_path)
        check_retrieve_information(ref, result, ref_path)


# =============================================================================
# Key Object Selection constraints
# =============================================================================


def check_key_object_constraints(
    dataset: Dataset, title: Dataset | None, result: ValidationResult
) -> None:
    """Constraints of TID 2010 on the document as a whole."""
    if not any(
        text_of(item, "ValueType") in REFERENCE_VALUE_TYPES
        for item, _ in walk_content(dataset)
    ):
        result.add_error(
            "Document references no IMAGE, COMPOSITE or WAVEFORM content item",
            MODULE,
        )

    root_items = sequence_items(dataset, "ContentSequence")
    if title is not None and text_of(title, "CodeValue") in TITLES_REQUIRING_MODIFIER:
        has_modifier = any(
            text_of(item, "RelationshipType") == "HAS CONCEPT MOD"
            and text_of(item, "ValueType") == "CODE"
            and has_concept(item, TITLE_MODIFIER)
            for item in root_items
        )
        if not has_modifier:
            result.add_error(
                f"Document title {text_of(title, 'CodeValue')} requires a "
                f"HAS CONCEPT MOD title modifier {TITLE_MODIFIER}",
                MODULE,
            )

    descriptions = [
        item
        for item in root_items
        if text_of(item, "ValueType") == "TEXT"
        and has_concept(item, KEY_OBJECT_DESCRIPTION)
    ]
    if len(descriptions) > 1:
        result.add_error(
            f"At most one Key Object Description is allowed, found {len(descriptions)}",
            MODULE,
        )
