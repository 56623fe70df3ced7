"""Evidence/content consistency.

Every instance shown in the content tree must be listed in the evidence
(CurrentRequestedProcedureEvidenceSequence); evidence entries the tree never
shows are tolerated with a warning. An instance listed in both places must
carry the same SOP class UID in each.
"""

from __future__ import annotations

from pydicom.dataset import Dataset

from dicom_manifest.model.evidence import (
    collect_evidence_references,
    evidence_counts,
)
from dicom_manifest.model.result import ValidationResult

from .content_tree import collect_content_references

MODULE = "EvidenceConsistency"


def check_consistency(
    dataset: Dataset, result: ValidationResult, verbose: bool = False
) -> None:
    """Cross-check content references against the evidence list."""
    content_refs = collect_content_references(dataset)
    evidence_refs = collect_evidence_references(dataset)

    if not content_refs:
        result.add_info("Content tree references no instances", MODULE)
    elif not evidence_refs:
        result.add_error(
            f"Content tree references {len(content_refs)} instance(s) but "
            "CurrentRequestedProcedureEvidenceSequence lists none",
            MODULE,
        )
        return

    evidence_classes: dict[str, set[str]] = {}
    for sop_class, instance_uid in evidence_refs:
        evidence_classes.setdefault(instance_uid, set()).add(sop_class)
    content_uids = {instance_uid for _, instance_uid in content_refs}

    reported: set[tuple[str, str]] = set()
    for sop_class, instance_uid in content_refs:
        if (sop_class, instance_uid) in reported:
            continue
        listed = evidence_classes.get(instance_uid)
        if listed is None:
            reported.add((sop_class, instance_uid))
            result.add_error(
                f"Phantom reference: content references SOP Instance {instance_uid} "
                f"(class {sop_class or 'unknown'}) that is not listed in the evidence",
                MODULE,
            )
        elif sop_class and sop_class not in listed:
            reported.add((sop_class, instance_uid))
            result.add_error(
                f"SOP class mismatch: content references SOP Instance "
                f"{instance_uid} as {sop_class} but the evidence lists it as "
                f"{', '.join(sorted(c for c in listed if c)) or 'unknown'}",
                MODULE,
            )

    warned: set[str] = set()
    for _, instance_uid in evidence_refs:
        if instance_uid in content_uids or instance_uid in warned:
            continue
        warned.add(instance_uid)
        result.add_warning(
            f"Evidence lists SOP Instance {instance_uid} that the content tree "
            "does not reference",
            MODULE,
        )

    if verbose:
        studies, series, instances = evidence_counts(dataset)
        result.add_info(
            f"Evidence structure: {studies} study(ies), {series} series, "
            f"{instances} instance(s)",
            MODULE,
        )
