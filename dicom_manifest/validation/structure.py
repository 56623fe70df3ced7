"""Structural conformance checks.

SOP class sanity of referenced instances, template identification,
empty Type 1 sequences and private attribute hygiene.
"""

from __future__ import annotations

from collections.abc import Iterator

from pydicom.dataset import Dataset
from pydicom.tag import BaseTag
from pydicom.uid import UID_dictionary

from dicom_manifest.core.constants import (
    DCMR,
    TID_IMAGE_LIBRARY,
    TID_KEY_OBJECT_SELECTION,
    VERIFICATION_SOP_CLASS,
)
from dicom_manifest.model.result import ValidationResult, item_path

from .content_tree import walk_content
from .modules import iter_referenced_instances
from .rules import sequence_items, tag_label, text_of

#: Root sequences that must never be present without items, with the module
#: path under which the IOD module passes report them
ROOT_TYPE1_SEQUENCES: tuple[tuple[str, str], ...] = (
    ("CurrentRequestedProcedureEvidenceSequence", "KeyObjectDocument"),
    ("ConceptNameCodeSequence", "SRDocumentContent"),
    ("ContentTemplateSequence", "SRDocumentContent"),
)


def check_sop_classes(dataset: Dataset, result: ValidationResult) -> None:
    """Referenced SOP classes must be storage classes known to the standard."""
    module = "SOPClass"
    references = list(iter_referenced_instances(dataset))
    for item, path in walk_content(dataset):
        for i, ref in enumerate(sequence_items(item, "ReferencedSOPSequence")):
            references.append(
                (
                    item_path(path, "ReferencedSOPSequence", i),
                    text_of(ref, "ReferencedSOPClassUID"),
                    text_of(ref, "ReferencedSOPInstanceUID"),
                )
            )

    known: set[str] = set()
    for path, sop_class, _ in references:
        if not sop_class:
            continue
        entry = UID_dictionary.get(sop_class)
        if entry is not None and entry[1] == "Transfer Syntax":
            result.add_error(
                f"ReferencedSOPClassUID {sop_class} is a transfer syntax "
                f"({entry[0]}), not a SOP class",
                f"{module}>{path}",
            )
        elif sop_class == VERIFICATION_SOP_CLASS:
            result.add_warning(
                "ReferencedSOPClassUID is the Verification SOP Class, which has "
                "no storable instances",
                f"{module}>{path}",
            )
        elif entry is not None:
            if sop_class not in known:
                known.add(sop_class)
                result.add_info(f"Referenced SOP class: {entry[0]}", module)
        else:
            result.add_warning(
                f"ReferencedSOPClassUID {sop_class} is not a known SOP class",
                f"{module}>{path}",
            )


def check_template(dataset: Dataset, result: ValidationResult) -> None:
    """Identify the content template (TID 2010, or TID 1600 for MADO)."""
    module = "Template"
    templates = sequence_items(dataset, "ContentTemplateSequence")
    if not templates:
        result.add_warning(
            "ContentTemplateSequence missing or empty; template cannot be identified",
            module,
        )
        return

    identified = set()
    for i, item in enumerate(templates):
        path = item_path(module, "ContentTemplate", i)
        identifier = text_of(item, "TemplateIdentifier")
        resource = text_of(item, "MappingResource")
        if not identifier:
            result.add_warning("Template item without TemplateIdentifier", path)
            continue
        if identifier not in (TID_KEY_OBJECT_SELECTION, TID_IMAGE_LIBRARY):
            result.add_info(
                f"Template {identifier} ({resource}) is not checked", path
            )
            continue
        if resource != DCMR:
            result.add_error(
                f"Template {identifier} must cite MappingResource {DCMR}, "
                f"found '{resource}'",
                path,
            )
            continue
        identified.add(identifier)
        result.add_info(f"Template identified: TID {identifier} ({DCMR})", path)

    if TID_KEY_OBJECT_SELECTION not in identified:
        result.add_warning(
            f"No TID {TID_KEY_OBJECT_SELECTION} ({DCMR}) template item found", module
        )


def check_empty_sequences(dataset: Dataset, result: ValidationResult) -> None:
    """Type 1 sequences that are present but hold no items.

    A sequence already reported as empty at its owning module path (by the
    IOD module passes earlier in the same run) is not reported again.
    """
    module = "Structure"
    for keyword, owner in ROOT_TYPE1_SEQUENCES:
        if keyword in dataset and not sequence_items(dataset, keyword):
            label = tag_label(keyword)
            if not result.has_error_at(owner, label):
                result.add_error(f"{label} is present but empty", module)
    label = tag_label("ConceptNameCodeSequence")
    for item, path in walk_content(dataset):
        if "ConceptNameCodeSequence" not in item:
            continue
        if sequence_items(item, "ConceptNameCodeSequence"):
            continue
        if not result.has_error_at(path, label):
            result.add_error(f"{label} is present but empty", f"{module}>{path}")


def _has_creator(dataset: Dataset, group: int) -> bool:
    return any(
        BaseTag(group << 16 | element) in dataset for element in range(0x10, 0x100)
    )


def iter_items(dataset: Dataset, path: str) -> Iterator[tuple[Dataset, str]]:
    """Yield dataset and every nested sequence item with its breadcrumb."""
    yield dataset, path
    for element in dataset:
        if element.VR != "SQ":
            continue
        tag = element.tag
        name = element.keyword or f"({tag.group:04X},{tag.element:04X})"
        for i, item in enumerate(element.value or []):
            yield from iter_items(item, item_path(path, name, i))


def check_private_attributes(dataset: Dataset, result: ValidationResult) -> None:
    """Private groups are reported wherever they occur; data without a
    creator in the same item is an error."""
    module = "PrivateAttributes"
    found = False
    for item, path in iter_items(dataset, module):
        groups = sorted({elem.tag.group for elem in item if elem.tag.group % 2})
        for group in groups:
            found = True
            result.add_warning(
                f"Private group {group:04X} present; content is not interpretable "
                "by other systems",
                path,
            )
            has_data = any(
                element.tag.group == group and element.tag.element >= 0x1000
                for element in item
            )
            if has_data and not _has_creator(item, group):
                result.add_error(
                    f"Private group {group:04X} holds data elements without a "
                    "private creator (gggg,0010-00FF)",
                    path,
                )
    if not found:
        result.add_info("No private attributes", module)
