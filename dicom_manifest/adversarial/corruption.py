"""Single-field corruption.

Overwrites exactly one field of a finished manifest with a value that is
plausible on the wire but wrong for a Key Object Selection document.
"""

from __future__ import annotations

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import CT_IMAGE_STORAGE

from .base import DefectInjector, InjectedDefect, Strategy
from .dice import Dice

#: Private tag written without a private creator
STRAY_PRIVATE_TAG = 0x0043102A


class FieldCorruptor(DefectInjector):
    """Corrupts one header or content-root field."""

    @property
    def category(self) -> str:
        return "corruption"

    def strategies(self) -> list[Strategy]:
        return [
            ("wrong_sop_class", "Header", self._wrong_sop_class),
            ("utc_timezone", "Timezone", self._utc_timezone),
            ("ct_modality", "Series", self._ct_modality),
            ("text_root_value_type", "SRDocumentContent", self._text_root),
            ("empty_study_uid", "Study", self._empty_study_uid),
            ("continuous_root", "SRDocumentContent", self._continuous_root),
            ("stray_private_tag", "PrivateAttributes", self._stray_private_tag),
            ("wrong_vr_patient_name", None, self._wrong_vr_patient_name),
        ]

    def _wrong_sop_class(self, dataset: Dataset) -> None:
        dataset.SOPClassUID = CT_IMAGE_STORAGE

    def _utc_timezone(self, dataset: Dataset) -> None:
        dataset.TimezoneOffsetFromUTC = "UTC"

    def _ct_modality(self, dataset: Dataset) -> None:
        dataset.Modality = "CT"

    def _text_root(self, dataset: Dataset) -> None:
        dataset.ValueType = "TEXT"

    def _empty_study_uid(self, dataset: Dataset) -> None:
        dataset.StudyInstanceUID = ""

    def _continuous_root(self, dataset: Dataset) -> None:
        dataset.ContinuityOfContent = "CONTINUOUS"

    def _stray_private_tag(self, dataset: Dataset) -> None:
        dataset.add_new(STRAY_PRIVATE_TAG, "LO", "EVIL")

    def _wrong_vr_patient_name(self, dataset: Dataset) -> None:
        dataset.add_new(0x00100010, "LO", "NOT^A^PN")


def corrupt_one(dataset: Dataset, dice: Dice) -> InjectedDefect:
    """Corrupt one randomly chosen field of dataset in place."""
    return FieldCorruptor(dice).inject(dataset)
