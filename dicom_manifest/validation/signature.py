"""Digital signature structure checks.

Only structural presence is checked; signatures are never verified
cryptographically.
"""

from __future__ import annotations

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import SIGNED_MANIFEST
from dicom_manifest.model.result import ValidationResult, item_path

from .content_tree import concept_of
from .rules import check_required, sequence_items

MODULE = "DigitalSignature"

#: Attributes every DigitalSignaturesSequence item must carry
SIGNATURE_ATTRIBUTES: tuple[str, ...] = (
    "MACIDNumber",
    "DigitalSignatureUID",
    "DigitalSignatureDateTime",
    "CertificateType",
    "CertificateOfSigner",
    "Signature",
    "MACAlgorithm",
    "DataElementsSigned",
)

MAC_PARAMETER_ATTRIBUTES: tuple[str, ...] = (
    "MACIDNumber",
    "MACCalculationTransferSyntaxUID",
    "MACAlgorithm",
    "DataElementsSigned",
)


def check_digital_signatures(dataset: Dataset, result: ValidationResult) -> None:
    """Signed manifests need a structurally complete signature block."""
    signed_title = SIGNED_MANIFEST.matches(concept_of(dataset))
    present = "DigitalSignaturesSequence" in dataset

    if signed_title and not sequence_items(dataset, "DigitalSignaturesSequence"):
        result.add_error(
            f"Document title {SIGNED_MANIFEST} requires a non-empty "
            "DigitalSignaturesSequence",
            MODULE,
        )
        return
    if not present:
        return

    for i, item in enumerate(sequence_items(dataset, "DigitalSignaturesSequence")):
        path = item_path(MODULE, "DigitalSignatures", i)
        for keyword in SIGNATURE_ATTRIBUTES:
            check_required(item, keyword, result, path)

    for i, item in enumerate(sequence_items(dataset, "MACParametersSequence")):
        path = item_path(MODULE, "MACParameters", i)
        for keyword in MAC_PARAMETER_ATTRIBUTES:
            check_required(item, keyword, result, path)
