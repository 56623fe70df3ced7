"""Profile-aware manifest validation.

validate() runs an ordered list of passes over a dataset and collects every
finding into one ValidationResult. Passes are independent: a pass that
raises is reported as a warning and the remaining passes still run.

Pass order (generic):

1. Header and IE module tables
2. Digital signature structure
3. Encoding, padding and timezone
4. SOP class sanity, template identification, empty sequences,
   private attributes
5. Evidence/content consistency

Profiles append their passes after the generic list.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from functools import partial

from pydicom.dataset import Dataset

from dicom_manifest.core.config import get_settings
from dicom_manifest.core.types import ValidationProfile
from dicom_manifest.model.result import ValidationResult, ValidationSeverity
from dicom_manifest.utils.logger import AuditEventLogger, get_logger

from .consistency import check_consistency
from .encoding import check_character_set, check_padding
from .mado import (
    check_mado_equipment,
    check_mado_patient,
    check_mado_profile,
    check_mado_sop_common,
    check_mado_study,
    check_mado_title,
)
from .modules import (
    check_equipment_module,
    check_header,
    check_key_object_document_module,
    check_patient_module,
    check_series_module,
    check_sop_common_module,
    check_sr_document_content_module,
    check_study_module,
)
from .signature import check_digital_signatures
from .structure import (
    check_empty_sequences,
    check_private_attributes,
    check_sop_classes,
    check_template,
)
from .tid1600 import check_tid1600
from .timezone import check_timezone
from .xdsi import check_file_meta, check_xdsi_manifest

logger = get_logger(__name__)
audit_logger = AuditEventLogger(logger)

Pass = tuple[str, Callable[[Dataset, ValidationResult], None]]

#: Passes that inspect values as stored, before other passes convert them
STORED_VALUE_PASSES = frozenset({"Padding"})


def generic_passes(verbose: bool = False) -> list[Pass]:
    """Passes run for every document, in order."""
    return [
        ("Header", check_header),
        ("Patient", check_patient_module),
        ("Study", check_study_module),
        ("Series", check_series_module),
        ("Equipment", check_equipment_module),
        ("KeyObjectDocument", check_key_object_document_module),
        ("SRDocumentContent", check_sr_document_content_module),
        ("SOPCommon", check_sop_common_module),
        ("DigitalSignature", check_digital_signatures),
        ("Encoding", check_character_set),
        ("Padding", check_padding),
        ("Timezone", check_timezone),
        ("SOPClass", check_sop_classes),
        ("Template", check_template),
        ("Structure", check_empty_sequences),
        ("PrivateAttributes", check_private_attributes),
        ("EvidenceConsistency", partial(check_consistency, verbose=verbose)),
    ]


def profile_passes(profile: ValidationProfile, verbose: bool = False) -> list[Pass]:
    """Passes a profile appends to the generic list."""
    if profile == ValidationProfile.XDSI_MANIFEST:
        return [
            ("FileMetaInformation", check_file_meta),
            ("XDSIManifest", check_xdsi_manifest),
        ]
    if profile == ValidationProfile.MADO:
        return [
            ("SRDocumentContent", check_mado_title),
            ("Patient", check_mado_patient),
            ("Study", check_mado_study),
            ("Equipment", check_mado_equipment),
            ("SOPCommon", check_mado_sop_common),
            ("MADOProfile", check_mado_profile),
            ("TID1600", partial(check_tid1600, verbose=verbose)),
        ]
    return []


def run_pass(
    name: str,
    check: Callable[[Dataset, ValidationResult], None],
    dataset: Dataset,
    result: ValidationResult,
) -> None:
    """Run one pass; an exception degrades to a warning under the pass name."""
    try:
        check(dataset, result)
    except Exception as e:
        logger.warning("validation_pass_failed", validation_pass=name, error=str(e))
        result.add_warning(f"Unable to complete {name} checks: {e}", name)


def validate(
    dataset: Dataset,
    profile: ValidationProfile | str | None = None,
    verbose: bool | None = None,
) -> ValidationResult:
    """Validate a manifest against the generic rules and an optional profile.

    Args:
        dataset: Document to validate; never modified
        profile: "none", "IHEXDSIManifest", "IHEMADO" (or a ValidationProfile).
            Unknown names fall back to the generic passes with a warning;
            Settings.validation.default_profile when omitted.
        verbose: Add informational summaries; Settings.validation.verbose when
            omitted

    Returns:
        Ordered findings of every pass

    """
    settings = get_settings().validation
    if profile is None:
        profile = settings.default_profile
    if verbose is None:
        verbose = settings.verbose
    result = ValidationResult()
    resolved = ValidationProfile.resolve(profile)
    if verbose:
        result.add_info(
            f"Validating with profile {(resolved or ValidationProfile.NONE).value}",
            "Profile",
        )

    stored = copy.deepcopy(dataset)
    passes = generic_passes(verbose)
    if resolved is not None:
        passes.extend(profile_passes(resolved, verbose))

    for name, check in passes:
        target = stored if name in STORED_VALUE_PASSES else dataset
        run_pass(name, check, target, result)

    if resolved is None:
        result.add_warning(
            f"Unknown profile requested: {profile}. Performed standard validation.",
            "Profile",
        )

    profile_name = resolved.value if resolved is not None else str(profile)
    sop_instance_uid = str(dataset.get("SOPInstanceUID", "") or "") or None
    logger.info(
        "validation_complete",
        profile=profile_name,
        sop_instance_uid=sop_instance_uid,
        errors=len(result.errors),
        warnings=len(result.warnings),
    )
    if not result.is_valid:
        audit_logger.log_nonconformant_document(
            sop_instance_uid,
            profile_name,
            {
                "errors": len(result.errors),
                "warnings": len(result.warnings),
                "modules": sorted(
                    {
                        m.path.split(">")[0]
                        for m in result.get_messages_by_severity(
                            ValidationSeverity.ERROR
                        )
                    }
                ),
            },
        )
    return result
