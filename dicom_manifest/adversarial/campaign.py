"""Generate-and-validate campaigns.

A campaign generates a batch of adversarial documents, validates each one
against the profile it was generated for and tallies what the validator
reported. Documents can be written to disk for use with other tools.
"""

from __future__ import annotations

import struct
from pathlib import Path

from pydicom.dataset import Dataset
from pydicom.errors import BytesLengthException

from dicom_manifest.core.config import GeneratorConfig
from dicom_manifest.core.types import ValidationProfile
from dicom_manifest.model.result import ValidationResult, ValidationSeverity
from dicom_manifest.utils.logger import get_logger
from dicom_manifest.validation.validator import validate

from .dice import Dice, default_dice
from .generator import AdversarialDocument, AdversarialGenerator

logger = get_logger(__name__)

#: Errors pydicom raises when a malformed dataset cannot be encoded
WRITE_ERRORS = (
    OSError,
    struct.error,
    BytesLengthException,
    ValueError,
    TypeError,
    AttributeError,
    OverflowError,
    UnicodeEncodeError,
)


class CampaignStats:
    """Track statistics during a campaign."""

    def __init__(self) -> None:
        self.documents = 0
        self.invalid_documents = 0
        self.written = 0
        self.write_failures = 0
        self.missed_injections = 0
        self.findings_per_module: dict[str, int] = {}
        self.injections_per_category: dict[str, int] = {}
        self.write_error_types: dict[str, int] = {}

    def record_document(
        self, document: AdversarialDocument, result: ValidationResult
    ) -> None:
        """Record one validated document."""
        self.documents += 1
        if not result.is_valid:
            self.invalid_documents += 1
        for message in result.messages:
            if message.severity == ValidationSeverity.INFO:
                continue
            module = message.path.split(">")[0] or "(document)"
            self.findings_per_module[module] = (
                self.findings_per_module.get(module, 0) + 1
            )
        for defect in document.injections:
            self.injections_per_category[defect.category] = (
                self.injections_per_category.get(defect.category, 0) + 1
            )
            if defect.expected_module and not _reported(
                result, defect.expected_module
            ):
                self.missed_injections += 1

    def record_write_failure(self, error_type: str) -> None:
        self.write_failures += 1
        self.write_error_types[error_type] = (
            self.write_error_types.get(error_type, 0) + 1
        )


def _reported(result: ValidationResult, module: str) -> bool:
    return any(
        message.severity != ValidationSeverity.INFO
        for message in result.messages_under(module)
    )


class AdversarialCampaign:
    """Generate, validate and optionally write a batch of adversarial documents.

    Args:
        count: Number of documents
        profile: Profile documents are generated for and validated against
        seed: Replays the same batch when given
        output_dir: Directory the documents are written to; nothing is
            written when omitted
        config: Generator probabilities; Settings.generator when omitted

    """

    def __init__(
        self,
        count: int,
        profile: ValidationProfile | str = ValidationProfile.MADO,
        seed: int | None = None,
        output_dir: str | Path | None = None,
        config: GeneratorConfig | None = None,
    ) -> None:
        self.count = max(1, count)
        self.profile = profile
        self.dice = Dice.from_seed(seed) if seed is not None else default_dice()
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.generator = AdversarialGenerator(self.dice, config)
        self.stats = CampaignStats()
        self.written_files: list[Path] = []

    def run(self) -> CampaignStats:
        """Run the campaign.

        Returns:
            Statistics of the run

        """
        self.stats = CampaignStats()
        self.written_files = []
        if self.output_dir is not None:
            self.output_dir.mkdir(parents=True, exist_ok=True)

        logger.info(
            "campaign_started",
            count=self.count,
            profile=str(self.profile),
            output_dir=str(self.output_dir) if self.output_dir else None,
        )
        for n in range(self.count):
            document = self.generator.generate(self.profile)
            result = validate(document.dataset, document.profile)
            self.stats.record_document(document, result)
            if self.output_dir is not None:
                self._write(document, n)

        logger.info(
            "campaign_complete",
            documents=self.stats.documents,
            invalid_documents=self.stats.invalid_documents,
            missed_injections=self.stats.missed_injections,
            written=self.stats.written,
            write_failures=self.stats.write_failures,
        )
        return self.stats

    def _write(self, document: AdversarialDocument, n: int) -> Path | None:
        assert self.output_dir is not None
        filename = (
            f"EVIL_{document.profile.value}_{n}_{self.dice.token(6)}.dcm"
        )
        path = self.output_dir / filename
        dataset: Dataset = document.dataset
        try:
            dataset.save_as(path, enforce_file_format=False)
        except WRITE_ERRORS as e:
            self.stats.record_write_failure(type(e).__name__)
            logger.debug("campaign_write_failed", path=str(path), error=str(e))
            return None
        self.stats.written += 1
        self.written_files.append(path)
        return path
