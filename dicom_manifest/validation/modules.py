"""IOD module checks of the Key Object Selection Document.

Each module is a table of AttributeRule rows plus the few checks that
cannot be expressed as a row (evidence structure, identical documents,
verification). Module tables are evaluated the same way in every
profile; profile passes only add findings on top.
"""

from __future__ import annotations

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import KOS_SOP_CLASS_UID
from dicom_manifest.model.evidence import iter_evidence_items
from dicom_manifest.model.result import (
    ValidationResult,
    ValidationSeverity,
    item_path,
)

from .content_tree import check_document_content, collect_content_references
from .retrieval import check_retrieve_information
from .rules import (
    AttributeRule,
    RuleKind,
    check_conditional,
    check_required,
    check_type2,
    check_uid,
    check_uid_attribute,
    evaluate_rules,
    sequence_items,
    tag_label,
    text_of,
)

# =============================================================================
# Module tables
# =============================================================================

PATIENT_MODULE: list[AttributeRule] = [
    AttributeRule("PatientName", RuleKind.TYPE2),
    AttributeRule("PatientID", RuleKind.TYPE2),
    AttributeRule("PatientBirthDate", RuleKind.TYPE2),
    AttributeRule("PatientSex", RuleKind.TYPE2),
    AttributeRule("PatientSex", RuleKind.ENUMERATED, ("M", "F", "O", "")),
    AttributeRule(
        "IssuerOfPatientID", RuleKind.TYPE1, severity=ValidationSeverity.WARNING
    ),
]

STUDY_MODULE: list[AttributeRule] = [
    AttributeRule("StudyInstanceUID", RuleKind.UID),
    AttributeRule("StudyDate", RuleKind.TYPE2),
    AttributeRule("StudyTime", RuleKind.TYPE2),
    AttributeRule("ReferringPhysicianName", RuleKind.TYPE2),
    AttributeRule("StudyID", RuleKind.TYPE2),
    AttributeRule("AccessionNumber", RuleKind.TYPE2),
]

SERIES_MODULE: list[AttributeRule] = [
    AttributeRule("Modality", RuleKind.TYPE1),
    AttributeRule("Modality", RuleKind.EXACT, ("KO",)),
    AttributeRule("SeriesInstanceUID", RuleKind.UID),
    AttributeRule("SeriesNumber", RuleKind.TYPE1),
    AttributeRule("ReferencedPerformedProcedureStepSequence", RuleKind.TYPE2),
]

EQUIPMENT_MODULE: list[AttributeRule] = [
    AttributeRule("Manufacturer", RuleKind.TYPE2),
]

KEY_OBJECT_DOCUMENT_MODULE: list[AttributeRule] = [
    AttributeRule("InstanceNumber", RuleKind.TYPE1),
    AttributeRule("ContentDate", RuleKind.TYPE1),
    AttributeRule("ContentTime", RuleKind.TYPE1),
    AttributeRule("ReferencedRequestSequence", RuleKind.TYPE2),
]

SR_DOCUMENT_FLAGS: list[AttributeRule] = [
    AttributeRule(
        "CompletionFlag", RuleKind.TYPE1, severity=ValidationSeverity.WARNING
    ),
    AttributeRule("CompletionFlag", RuleKind.ENUMERATED, ("COMPLETE", "PARTIAL")),
    AttributeRule(
        "VerificationFlag", RuleKind.TYPE1, severity=ValidationSeverity.WARNING
    ),
    AttributeRule(
        "VerificationFlag", RuleKind.ENUMERATED, ("VERIFIED", "UNVERIFIED")
    ),
]

SOP_COMMON_MODULE: list[AttributeRule] = [
    AttributeRule("SOPClassUID", RuleKind.UID),
    AttributeRule("SOPInstanceUID", RuleKind.UID),
]


# =============================================================================
# Passes
# =============================================================================


def check_header(dataset: Dataset, result: ValidationResult) -> None:
    """The document must be a Key Object Selection Document."""
    sop_class = text_of(dataset, "SOPClassUID")
    if sop_class != KOS_SOP_CLASS_UID:
        result.add_error(
            f"SOPClassUID is '{sop_class}', expected Key Object Selection "
            f"Document Storage ({KOS_SOP_CLASS_UID})",
            "Header",
        )


def check_patient_module(dataset: Dataset, result: ValidationResult) -> None:
    evaluate_rules(dataset, PATIENT_MODULE, result, "Patient")


def check_study_module(dataset: Dataset, result: ValidationResult) -> None:
    evaluate_rules(dataset, STUDY_MODULE, result, "Study")


def check_series_module(dataset: Dataset, result: ValidationResult) -> None:
    evaluate_rules(dataset, SERIES_MODULE, result, "Series")


def check_equipment_module(dataset: Dataset, result: ValidationResult) -> None:
    evaluate_rules(dataset, EQUIPMENT_MODULE, result, "Equipment")


def check_sop_common_module(dataset: Dataset, result: ValidationResult) -> None:
    evaluate_rules(dataset, SOP_COMMON_MODULE, result, "SOPCommon")
    if "InstanceCreatorUID" in dataset:
        check_uid(
            text_of(dataset, "InstanceCreatorUID"),
            tag_label("InstanceCreatorUID"),
            result,
            "SOPCommon",
        )


def check_key_object_document_module(
    dataset: Dataset, result: ValidationResult
) -> None:
    """Key Object Document module: request, evidence and identical documents."""
    module = "KeyObjectDocument"
    evaluate_rules(dataset, KEY_OBJECT_DOCUMENT_MODULE, result, module)

    references_instances = bool(collect_content_references(dataset))
    if check_conditional(
        dataset,
        "CurrentRequestedProcedureEvidenceSequence",
        references_instances,
        "the document references instances",
        result,
        module,
    ):
        _check_evidence_structure(dataset, result, module)
    _check_identical_documents(dataset, result, module)


def _check_evidence_structure(
    dataset: Dataset, result: ValidationResult, module: str
) -> None:
    studies = sequence_items(dataset, "CurrentRequestedProcedureEvidenceSequence")
    for i, study in enumerate(studies):
        study_path = item_path(module, "Evidence", i)
        check_uid_attribute(study, "StudyInstanceUID", result, study_path)
        if not check_required(study, "ReferencedSeriesSequence", result, study_path):
            continue
        for j, series in enumerate(sequence_items(study, "ReferencedSeriesSequence")):
            series_path = item_path(study_path, "Series", j)
            check_uid_attribute(series, "SeriesInstanceUID", result, series_path)
            check_retrieve_information(series, result, series_path)
            if not check_required(
                series, "ReferencedSOPSequence", result, series_path
            ):
                continue
            for k, sop in enumerate(sequence_items(series, "ReferencedSOPSequence")):
                sop_path = item_path(series_path, "ReferencedSOP", k)
                check_uid_attribute(sop, "ReferencedSOPClassUID", result, sop_path)
                check_uid_attribute(sop, "ReferencedSOPInstanceUID", result, sop_path)
                check_retrieve_information(sop, result, sop_path)


def _check_identical_documents(
    dataset: Dataset, result: ValidationResult, module: str
) -> None:
    study_uids = {
        text_of(study, "StudyInstanceUID")
        for study in sequence_items(
            dataset, "CurrentRequestedProcedureEvidenceSequence"
        )
    }
    study_uids.discard("")
    multi_study = len(study_uids) > 1
    present = "IdenticalDocumentsSequence" in dataset

    if present and not multi_study:
        result.add_warning(
            "IdenticalDocumentsSequence present although evidence spans a single "
            "study",
            module,
        )
    if not check_conditional(
        dataset,
        "IdenticalDocumentsSequence",
        multi_study,
        "evidence spans more than one study",
        result,
        module,
    ):
        return
    for i, item in enumerate(sequence_items(dataset, "IdenticalDocumentsSequence")):
        path = item_path(module, "IdenticalDocuments", i)
        check_uid_attribute(item, "StudyInstanceUID", result, path)
        series_items = sequence_items(item, "ReferencedSeriesSequence")
        if not series_items:
            result.add_error(
                f"{tag_label('ReferencedSeriesSequence')} is required", path
            )
            continue
        for j, series in enumerate(series_items):
            series_path = item_path(path, "Series", j)
            check_uid_attribute(series, "SeriesInstanceUID", result, series_path)
            if not check_required(
                series, "ReferencedSOPSequence", result, series_path
            ):
                continue
            for k, sop in enumerate(sequence_items(series, "ReferencedSOPSequence")):
                sop_path = item_path(series_path, "ReferencedSOP", k)
                check_uid_attribute(sop, "ReferencedSOPClassUID", result, sop_path)
                check_uid_attribute(sop, "ReferencedSOPInstanceUID", result, sop_path)


def check_sr_document_content_module(
    dataset: Dataset, result: ValidationResult
) -> None:
    """SR Document General flags, verification, and the content tree."""
    module = "SRDocumentContent"
    evaluate_rules(dataset, SR_DOCUMENT_FLAGS, result, module)
    if text_of(dataset, "VerificationFlag") == "VERIFIED":
        _check_verification(dataset, result, module)
    check_document_content(dataset, result)


def _check_verification(
    dataset: Dataset, result: ValidationResult, module: str
) -> None:
    if not check_conditional(
        dataset,
        "VerifyingObserverSequence",
        True,
        "VerificationFlag is VERIFIED",
        result,
        module,
    ):
        return
    for i, observer in enumerate(sequence_items(dataset, "VerifyingObserverSequence")):
        path = item_path(module, "VerifyingObserver", i)
        check_required(observer, "VerifyingObserverName", result, path)
        check_type2(observer, "VerifyingOrganization", result, path)
        check_required(
            observer,
            "VerificationDateTime",
            result,
            path,
            ValidationSeverity.WARNING,
        )
    check_conditional(
        dataset,
        "VerificationDateTime",
        True,
        "VerificationFlag is VERIFIED",
        result,
        module,
    )


def iter_referenced_instances(dataset: Dataset) -> list[tuple[str, str, str]]:
    """(path, class UID, instance UID) of every evidence SOP item."""
    pairs = []
    for i, _, j, _, k, sop in iter_evidence_items(dataset):
        path = item_path(
            item_path(item_path("KeyObjectDocument", "Evidence", i), "Series", j),
            "ReferencedSOP",
            k,
        )
        pairs.append(
            (
                path,
                text_of(sop, "ReferencedSOPClassUID"),
                text_of(sop, "ReferencedSOPInstanceUID"),
            )
        )
    return pairs
