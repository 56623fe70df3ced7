"""TID 1600 Image Library shape of MADO manifests.

Expected layout::

    root CONTAINER (Manifest / Manifest with Description)
      Modality, Study Instance UID, Target Region   (study context)
      CONTAINER Image Library (111028, DCM)
        study context again, as HAS ACQ CONTEXT
        CONTAINER Image Library Group (126200, DCM)  one per series
          seven series descriptors
          IMAGE / COMPOSITE entries
"""

from __future__ import annotations

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import (
    ANATOMY_SCHEMES,
    IMAGE_LIBRARY,
    IMAGE_LIBRARY_GROUP,
    INSTANCE_NUMBER,
    KOS_OBJECT_DESCRIPTION,
    KOS_TITLE,
    MADO_TITLE_CODES,
    MODALITY,
    MULTIFRAME_SOP_CLASSES,
    NUMBER_OF_FRAMES,
    NUMBER_OF_SERIES_RELATED_INSTANCES,
    SERIES_DATE,
    SERIES_DESCRIPTION,
    SERIES_INSTANCE_UID,
    SERIES_NUMBER,
    SERIES_TIME,
    SOP_INSTANCE_UID,
    STUDY_INSTANCE_UID,
    TARGET_REGION,
)
from dicom_manifest.core.types import REFERENCE_VALUE_TYPES, CodedConcept
from dicom_manifest.model.result import ValidationResult, item_path
from dicom_manifest.utils.logger import get_logger

from .content_tree import concept_of, has_concept
from .rules import sequence_items, text_of

logger = get_logger(__name__)

MODULE = "TID1600"

#: Series descriptors every Image Library Group must carry
GROUP_DESCRIPTORS: tuple[CodedConcept, ...] = (
    MODALITY,
    SERIES_INSTANCE_UID,
    SERIES_DESCRIPTION,
    SERIES_DATE,
    SERIES_TIME,
    SERIES_NUMBER,
    NUMBER_OF_SERIES_RELATED_INSTANCES,
)

#: Study context items expected next to the Image Library
STUDY_CONTEXT: tuple[CodedConcept, ...] = (MODALITY, STUDY_INSTANCE_UID, TARGET_REGION)


def _is_container(item: Dataset, concept: CodedConcept) -> bool:
    return text_of(item, "ValueType") == "CONTAINER" and has_concept(item, concept)


def check_tid1600(
    dataset: Dataset, result: ValidationResult, verbose: bool = False
) -> None:
    """Root container, Image Library and study-level context."""
    if not _check_root(dataset, result):
        return
    root_items = sequence_items(dataset, "ContentSequence")
    if not root_items:
        result.add_error(
            "ContentSequence is empty; the TID 1600 Image Library is missing", MODULE
        )
        return

    libraries = [item for item in root_items if _is_container(item, IMAGE_LIBRARY)]
    if not libraries:
        result.add_error(
            f"TID 1600 Image Library {IMAGE_LIBRARY} is missing from the content "
            "tree",
            MODULE,
        )
        if _has_appendix_b_series(dataset):
            result.add_info(
                "Evidence series carry Appendix B attributes (Modality, "
                "RetrieveLocationUID or RetrieveURL), but the Image Library is "
                "still required",
                MODULE,
            )
    for i, library in enumerate(libraries):
        path = item_path(MODULE, "ImageLibrary", i)
        result.add_info(f"Image Library {IMAGE_LIBRARY} detected", path)
        check_image_library(library, result, path, verbose)

    check_study_context(root_items, result)


def _check_root(dataset: Dataset, result: ValidationResult) -> bool:
    if text_of(dataset, "ValueType") != "CONTAINER":
        result.add_error("Root content item must be a CONTAINER", MODULE)
        return False
    title = concept_of(dataset)
    if title is None:
        result.add_error("Root container has no document title", MODULE)
        return False
    code_value = text_of(title, "CodeValue")
    scheme = text_of(title, "CodingSchemeDesignator")
    if code_value in MADO_TITLE_CODES and scheme == "DCM":
        result.add_info(
            f"Root container title ({code_value}, DCM, "
            f"'{text_of(title, 'CodeMeaning')}')",
            MODULE,
        )
    else:
        result.add_warning(
            f"Root container title ({code_value}, {scheme}) is not a MADO "
            "manifest title",
            MODULE,
        )
    if text_of(dataset, "ContinuityOfContent") != "SEPARATE":
        result.add_error("Root ContinuityOfContent must be SEPARATE", MODULE)
    return True


def _has_appendix_b_series(dataset: Dataset) -> bool:
    for study in sequence_items(dataset, "CurrentRequestedProcedureEvidenceSequence"):
        for series in sequence_items(study, "ReferencedSeriesSequence"):
            if any(
                keyword in series
                for keyword in ("Modality", "RetrieveLocationUID", "RetrieveURL")
            ):
                return True
    return False


def _is_library_context(item: Dataset) -> bool:
    return text_of(item, "RelationshipType") == "HAS ACQ CONTEXT" and any(
        has_concept(item, concept) for concept in STUDY_CONTEXT
    )


def check_image_library(
    library: Dataset, result: ValidationResult, path: str, verbose: bool = False
) -> None:
    """Groups and entries below one Image Library container."""
    items = sequence_items(library, "ContentSequence")
    if not items:
        result.add_error("Image Library container has no content", path)
        return

    groups = entries = 0
    for i, item in enumerate(items):
        value_type = text_of(item, "ValueType")
        if _is_container(item, IMAGE_LIBRARY_GROUP):
            groups += 1
            check_image_library_group(item, result, item_path(path, "Group", i))
        elif _is_library_context(item):
            continue
        elif value_type in REFERENCE_VALUE_TYPES:
            entries += 1
            check_image_library_entry(item, result, item_path(path, "Entry", i))
        else:
            result.add_info(
                f"{value_type or 'Untyped'} item next to the Image Library groups; "
                "not checked",
                item_path(path, "Item", i),
            )

    if groups == 0 and entries == 0:
        result.add_error("Image Library holds no groups and no entries", path)
    elif verbose:
        result.add_info(f"Found {groups} Image Library Group(s)", path)


def check_image_library_group(
    group: Dataset, result: ValidationResult, path: str
) -> None:
    items = sequence_items(group, "ContentSequence")
    if not items:
        result.add_error("Image Library Group has no content", path)
        return

    for concept in GROUP_DESCRIPTORS:
        if not any(has_concept(item, concept) for item in items):
            result.add_error(f"Image Library Group is missing {concept}", path)

    entries = [
        item for item in items if text_of(item, "ValueType") in REFERENCE_VALUE_TYPES
    ]
    if not entries:
        result.add_warning(
            "Image Library Group has no IMAGE or COMPOSITE entries", path
        )
    for k, entry in enumerate(entries):
        check_image_library_entry(entry, result, item_path(path, "Entry", k))


def check_image_library_entry(
    entry: Dataset, result: ValidationResult, path: str
) -> None:
    if text_of(entry, "ValueType") == "COMPOSITE":
        result.add_warning(
            "Image Library Entry uses ValueType COMPOSITE; IMAGE is expected for "
            "image references",
            path,
        )
    refs = sequence_items(entry, "ReferencedSOPSequence")
    if not refs:
        result.add_error("Image Library Entry has no ReferencedSOPSequence", path)
        return
    if len(refs) != 1:
        result.add_error(
            f"Image Library Entry must reference exactly one instance, found "
            f"{len(refs)}",
            path,
        )
    sop_class = text_of(refs[0], "ReferencedSOPClassUID")
    if not sop_class:
        result.add_error("Image Library Entry has no ReferencedSOPClassUID", path)
    if not text_of(refs[0], "ReferencedSOPInstanceUID"):
        result.add_error("Image Library Entry has no ReferencedSOPInstanceUID", path)

    children = sequence_items(entry, "ContentSequence")
    has_frames = False
    for child in children:
        if has_concept(child, NUMBER_OF_FRAMES):
            has_frames = True
        elif has_concept(child, INSTANCE_NUMBER):
            value_type = text_of(child, "ValueType")
            if value_type != "TEXT":
                result.add_error(
                    f"Instance Number must be a TEXT item, found '{value_type}'", path
                )
    if sop_class in MULTIFRAME_SOP_CLASSES and not has_frames:
        result.add_warning(
            f"Number of Frames expected for multi-frame SOP class {sop_class}", path
        )
    _check_key_object_descriptors(children, result, path)


def _check_key_object_descriptors(
    children: list[Dataset], result: ValidationResult, path: str
) -> None:
    """Entries for key object notes carry a KOS title and the flagged instances."""
    has_title = any(has_concept(child, KOS_TITLE) for child in children)
    has_description = any(
        has_concept(child, KOS_OBJECT_DESCRIPTION) for child in children
    )
    has_uids = any(has_concept(child, SOP_INSTANCE_UID) for child in children)
    if not (has_title or has_description or has_uids):
        return
    if not has_title:
        result.add_error(f"Key object reference is missing {KOS_TITLE}", path)
    if not has_uids:
        result.add_error(
            f"Key object reference is missing {SOP_INSTANCE_UID} items naming the "
            "flagged instances",
            path,
        )


def check_study_context(root_items: list[Dataset], result: ValidationResult) -> None:
    """Study-level Modality, Study Instance UID and Target Region."""
    for concept in STUDY_CONTEXT:
        matches = [item for item in root_items if has_concept(item, concept)]
        if not matches:
            result.add_error(f"Study context item {concept} is missing", MODULE)
            continue
        item = matches[0]
        if concept is STUDY_INSTANCE_UID and not text_of(item, "UID"):
            result.add_error("Study Instance UID item has no UID value", MODULE)
        elif concept is TARGET_REGION:
            _check_target_region(item, result)


def _check_target_region(item: Dataset, result: ValidationResult) -> None:
    codes = sequence_items(item, "ConceptCodeSequence")
    if not codes:
        result.add_warning("Target Region item has no ConceptCodeSequence", MODULE)
        return
    if not text_of(codes[0], "CodeValue"):
        result.add_error("Target Region code has no CodeValue", MODULE)
    scheme = text_of(codes[0], "CodingSchemeDesignator")
    if scheme not in ANATOMY_SCHEMES:
        logger.debug("unexpected_target_region_scheme", scheme=scheme)
        result.add_info(
            f"Target Region uses coding scheme '{scheme}'; an anatomy scheme "
            f"({', '.join(sorted(ANATOMY_SCHEMES))}) is expected",
            MODULE,
        )
