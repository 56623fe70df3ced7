"""IHE MADO profile passes.

MADO tightens several IE modules (R+ attributes of the Patient, Study,
Equipment and SOP Common modules, the document title) and adds the
MADOProfile module. The TID 1600 content shape is checked in tid1600.
"""

from __future__ import annotations

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import MADO_TITLE_CODES, MANIFEST_WITH_DESCRIPTION
from dicom_manifest.model.result import ValidationResult, item_path

from .content_tree import concept_of
from .retrieval import check_retrieval_addressing
from .rules import check_required, sequence_items, tag_label, text_of
from .xdsi import check_forbidden_elements, check_iocm_title, scan_content_references

MODULE = "MADOProfile"

#: Universal Entity ID type required for the patient identifier issuer
ISSUER_ID_TYPE = "ISO"


def check_mado_title(dataset: Dataset, result: ValidationResult) -> None:
    """Title must be Manifest (113030) or Manifest with Description (ddd001)."""
    module = "SRDocumentContent"
    title = concept_of(dataset)
    if title is None:
        result.add_error(
            "ConceptNameCodeSequence (document title) is missing; MADO requires "
            f"{MANIFEST_WITH_DESCRIPTION}",
            module,
        )
        return
    code_value = text_of(title, "CodeValue")
    scheme = text_of(title, "CodingSchemeDesignator")
    if code_value not in MADO_TITLE_CODES or scheme != "DCM":
        result.add_error(
            "MADO document title must be (113030, DCM, 'Manifest') or "
            f"{MANIFEST_WITH_DESCRIPTION}; found ({code_value}, {scheme}, "
            f"'{text_of(title, 'CodeMeaning')}')",
            module,
        )


def check_mado_patient(dataset: Dataset, result: ValidationResult) -> None:
    module = "Patient"
    if not text_of(dataset, "PatientID"):
        result.add_error(
            f"{tag_label('PatientID')} is required (R+) in MADO manifests", module
        )
    qualifiers = sequence_items(dataset, "IssuerOfPatientIDQualifiersSequence")
    if not qualifiers:
        result.add_error(
            f"{tag_label('IssuerOfPatientIDQualifiersSequence')} is required with "
            "one item",
            module,
        )
        return
    path = item_path(module, "IssuerOfPatientIDQualifiers", 0)
    if not text_of(qualifiers[0], "UniversalEntityID"):
        result.add_error(f"{tag_label('UniversalEntityID')} is missing or empty", path)
    id_type = text_of(qualifiers[0], "UniversalEntityIDType")
    if not id_type:
        result.add_error(
            f"{tag_label('UniversalEntityIDType')} is missing or empty", path
        )
    elif id_type.upper() != ISSUER_ID_TYPE:
        result.add_error(
            f"UniversalEntityIDType must be '{ISSUER_ID_TYPE}', found '{id_type}'",
            path,
        )
    if "OtherPatientIDsSequence" not in dataset:
        result.add_info(
            "OtherPatientIDsSequence not present; regional identifiers may help "
            "cross-border use",
            module,
        )


def check_mado_study(dataset: Dataset, result: ValidationResult) -> None:
    module = "Study"
    for keyword in ("StudyDate", "StudyTime"):
        if not text_of(dataset, keyword):
            result.add_error(
                f"{tag_label(keyword)} is required (R+) in MADO manifests", module
            )

    accession = text_of(dataset, "AccessionNumber")
    requests = sequence_items(dataset, "ReferencedRequestSequence")
    if len(requests) > 1:
        if accession:
            result.add_error(
                f"AccessionNumber must be empty when the manifest covers "
                f"{len(requests)} requests",
                module,
            )
        return
    if "AccessionNumber" not in dataset or not accession:
        result.add_error(
            f"{tag_label('AccessionNumber')} is required (R+) in MADO manifests",
            module,
        )
        return
    if not sequence_items(dataset, "IssuerOfAccessionNumberSequence"):
        result.add_error(
            f"{tag_label('IssuerOfAccessionNumberSequence')} is required when "
            "AccessionNumber is not empty",
            module,
        )


def check_mado_equipment(dataset: Dataset, result: ValidationResult) -> None:
    module = "Equipment"
    if not text_of(dataset, "Manufacturer"):
        result.add_error(
            f"{tag_label('Manufacturer')} is required (R+) in MADO manifests", module
        )
    if not text_of(dataset, "InstitutionName") and not sequence_items(
        dataset, "InstitutionCodeSequence"
    ):
        result.add_error(
            "InstitutionName or InstitutionCodeSequence is required (R+) in MADO "
            "manifests",
            module,
        )


def check_mado_sop_common(dataset: Dataset, result: ValidationResult) -> None:
    check_required(dataset, "TimezoneOffsetFromUTC", result, "SOPCommon")


def check_mado_profile(dataset: Dataset, result: ValidationResult) -> None:
    """The MADOProfile module."""
    check_forbidden_elements(dataset, result, MODULE)
    check_iocm_title(dataset, result, MODULE)
    scan_content_references(
        dataset, result, MODULE, allow_duplicates=True, require_contains=False
    )
    _check_referenced_requests(dataset, result)
    check_retrieval_addressing(dataset, result, MODULE)


def _check_referenced_requests(dataset: Dataset, result: ValidationResult) -> None:
    requests = sequence_items(dataset, "ReferencedRequestSequence")
    if not requests:
        result.add_error(
            "ReferencedRequestSequence is missing or empty; MADO requires one item "
            "per Accession Number / Placer Order",
            MODULE,
        )
        return
    for i, item in enumerate(requests):
        path = item_path(MODULE, "ReferencedRequest", i)
        if not text_of(item, "StudyInstanceUID"):
            result.add_error("StudyInstanceUID is missing or empty", path)
        if not text_of(item, "AccessionNumber"):
            result.add_error("AccessionNumber is missing or empty", path)
        elif "IssuerOfAccessionNumberSequence" not in item:
            result.add_error(
                f"{tag_label('IssuerOfAccessionNumberSequence')} is missing", path
            )
        if not text_of(item, "PlacerOrderNumberImagingServiceRequest"):
            result.add_error(
                f"{tag_label('PlacerOrderNumberImagingServiceRequest')} is missing "
                "or empty",
                path,
            )
