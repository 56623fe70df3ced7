"""IHE XDS-I.b imaging manifest profile.

Adds File Meta Information checks and the XDSIManifest module on top of the
generic Key Object Selection passes. The forbidden-element scan and the
content reference scan are shared with the MADO profile.
"""

from __future__ import annotations

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import (
    CURVE_GROUP_BASE,
    DCMR,
    FORBIDDEN_BULK_DATA,
    FORBIDDEN_IMAGE_ATTRIBUTES,
    IOCM_REJECTION_CODES,
    MANIFEST,
    OVERLAY_GROUP_BASE,
    REPEATING_GROUP_DATA_ELEMENT,
    TID_KEY_OBJECT_SELECTION,
)
from dicom_manifest.core.types import REFERENCE_VALUE_TYPES, RelationshipType
from dicom_manifest.model.result import ValidationResult, item_path

from .content_tree import concept_of
from .retrieval import check_retrieval_addressing
from .rules import (
    check_enumerated,
    check_required,
    check_type2,
    sequence_items,
    tag_label,
    text_of,
)

MODULE = "XDSIManifest"
FILE_META_MODULE = "FileMetaInformation"

FILE_META_ATTRIBUTES: tuple[str, ...] = (
    "MediaStorageSOPClassUID",
    "MediaStorageSOPInstanceUID",
    "TransferSyntaxUID",
)


def check_file_meta(dataset: Dataset, result: ValidationResult) -> None:
    """File Meta Information, when the dataset carries one."""
    file_meta = getattr(dataset, "file_meta", None)
    if file_meta is None or len(file_meta) == 0:
        result.add_info(
            "File Meta Information not present; ensure it is written when the "
            "manifest is stored as a file",
            FILE_META_MODULE,
        )
        return
    for keyword in FILE_META_ATTRIBUTES:
        check_type2(file_meta, keyword, result, FILE_META_MODULE)
    media_class = text_of(file_meta, "MediaStorageSOPClassUID")
    sop_class = text_of(dataset, "SOPClassUID")
    if media_class and sop_class and media_class != sop_class:
        result.add_error(
            f"MediaStorageSOPClassUID {media_class} does not match SOPClassUID "
            f"{sop_class}",
            FILE_META_MODULE,
        )


def check_forbidden_elements(
    dataset: Dataset, result: ValidationResult, module: str
) -> None:
    """A manifest points at images; it must not carry image data itself."""
    for keyword, description in FORBIDDEN_BULK_DATA:
        if keyword in dataset:
            result.add_error(
                f"{tag_label(keyword)} is present; a manifest must not contain "
                f"{description}",
                module,
            )
    for keyword, source in FORBIDDEN_IMAGE_ATTRIBUTES:
        if keyword in dataset:
            result.add_warning(
                f"{tag_label(keyword)} is present; {source} attributes do not "
                "belong in a manifest",
                module,
            )
    for element in dataset:
        group, number = element.tag.group, element.tag.element
        if number != REPEATING_GROUP_DATA_ELEMENT:
            continue
        if group & 0xFF00 == OVERLAY_GROUP_BASE:
            result.add_error(
                f"Overlay Data ({group:04X},3000) is present; a manifest must not "
                "contain overlay data",
                module,
            )
        elif group & 0xFF00 == CURVE_GROUP_BASE:
            result.add_warning(
                f"Curve Data ({group:04X},3000) is present; a manifest should not "
                "contain curve data",
                module,
            )
    for element in dataset:
        if element.tag.group == 0x0002:
            result.add_error(
                f"File Meta Information element {element.tag} found in the main "
                "dataset",
                module,
            )


def check_iocm_title(dataset: Dataset, result: ValidationResult, module: str) -> bool:
    """IOCM rejection notes are not sharing manifests; False when one is found."""
    code_value = text_of(concept_of(dataset), "CodeValue")
    if code_value in IOCM_REJECTION_CODES:
        result.add_error(
            f"Document title {code_value} is an IOCM rejection note title, not "
            "allowed for a sharing manifest",
            module,
        )
        return False
    return True


def scan_content_references(
    dataset: Dataset,
    result: ValidationResult,
    module: str,
    allow_duplicates: bool = False,
    require_contains: bool = True,
) -> set[str]:
    """Walk every reference item; report self references and duplicates.

    Returns the referenced SOP Instance UIDs.
    """
    self_uid = text_of(dataset, "SOPInstanceUID")
    seen: set[str] = set()
    for i, item in enumerate(sequence_items(dataset, "ContentSequence")):
        path = item_path(module, "ContentSequence", i)
        relationship = text_of(item, "RelationshipType")
        if (
            require_contains
            and relationship
            and relationship != RelationshipType.CONTAINS.value
        ):
            result.add_error(
                "Top-level content item RelationshipType must be CONTAINS, found "
                f"'{relationship}'",
                path,
            )
        _scan_item(item, path, self_uid, seen, result, allow_duplicates)
    return seen


def _scan_item(
    item: Dataset,
    path: str,
    self_uid: str,
    seen: set[str],
    result: ValidationResult,
    allow_duplicates: bool,
) -> None:
    if text_of(item, "ValueType") in REFERENCE_VALUE_TYPES:
        for r, ref in enumerate(sequence_items(item, "ReferencedSOPSequence")):
            uid = text_of(ref, "ReferencedSOPInstanceUID")
            if not uid:
                continue
            ref_path = item_path(path, "ReferencedSOPSequence", r)
            if self_uid and uid == self_uid:
                result.add_error(
                    "Manifest references itself (ReferencedSOPInstanceUID equals "
                    "the document SOPInstanceUID)",
                    ref_path,
                )
            if uid in seen and not allow_duplicates:
                result.add_error(
                    f"Duplicate referenced SOP Instance UID in content: {uid}",
                    ref_path,
                )
            seen.add(uid)
    for i, child in enumerate(sequence_items(item, "ContentSequence")):
        _scan_item(
            child,
            item_path(path, "ContentSequence", i),
            self_uid,
            seen,
            result,
            allow_duplicates,
        )


def check_xdsi_manifest(dataset: Dataset, result: ValidationResult) -> None:
    """The IHE XDS-I.b manifest module."""
    check_forbidden_elements(dataset, result, MODULE)

    title = concept_of(dataset)
    if title is None:
        result.add_error("Document title (ConceptNameCodeSequence) is missing", MODULE)
    elif check_iocm_title(dataset, result, MODULE) and not MANIFEST.matches(title):
        result.add_error(
            f"Document title must be {MANIFEST} for an XDS-I.b manifest, found "
            f"({text_of(title, 'CodeValue')}, "
            f"{text_of(title, 'CodingSchemeDesignator')})",
            MODULE,
        )

    if check_required(dataset, "CompletionFlag", result, MODULE):
        check_enumerated(dataset, "CompletionFlag", ("COMPLETE",), result, MODULE)
    if check_required(dataset, "VerificationFlag", result, MODULE):
        check_enumerated(
            dataset, "VerificationFlag", ("VERIFIED", "UNVERIFIED"), result, MODULE
        )

    templates = sequence_items(dataset, "ContentTemplateSequence")
    if templates:
        resource = text_of(templates[0], "MappingResource")
        identifier = text_of(templates[0], "TemplateIdentifier")
        if resource and resource != DCMR:
            result.add_error(
                f"ContentTemplateSequence MappingResource must be {DCMR}, found "
                f"'{resource}'",
                MODULE,
            )
        if identifier and identifier != TID_KEY_OBJECT_SELECTION:
            result.add_error(
                f"XDS-I.b manifests use TID {TID_KEY_OBJECT_SELECTION}, found "
                f"TID {identifier}",
                MODULE,
            )

    if not sequence_items(dataset, "ContentSequence"):
        result.add_error("ContentSequence is missing or empty", MODULE)

    referenced = scan_content_references(dataset, result, MODULE)
    if not referenced:
        result.add_error("Manifest content references no SOP instances", MODULE)

    check_retrieval_addressing(dataset, result, MODULE)
