"""Synthetic study used as input of the adversarial generator.

The study mimics what an archive query returns: one study record, five
series records and their instance records, all as pydicom Datasets.

==============  ===  =====================  ===========================
Series          Mod  Description            Instances
==============  ===  =====================  ===========================
1               CT   Routine Abdomen        5 CT images
2               CT   Enhanced Recons        1 multi-frame Enhanced CT
3               OT   Scanned Docs           1 Secondary Capture
4               US   Ultrasound Preview     1 US image
5               KO   Key Images             1 key image note (KOS)
==============  ===  =====================  ===========================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import (
    CT_IMAGE_STORAGE,
    ENHANCED_CT_IMAGE_STORAGE,
    KOS_SOP_CLASS_UID,
    SECONDARY_CAPTURE_IMAGE_STORAGE,
    US_IMAGE_STORAGE,
)

from .dice import Dice

#: (modality, description, [SOP class of each instance])
SIMULATED_SERIES: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    ("CT", "Routine Abdomen", (CT_IMAGE_STORAGE,) * 5),
    ("CT", "Enhanced Recons", (ENHANCED_CT_IMAGE_STORAGE,)),
    ("OT", "Scanned Docs", (SECONDARY_CAPTURE_IMAGE_STORAGE,)),
    ("US", "Ultrasound Preview", (US_IMAGE_STORAGE,)),
    ("KO", "Key Images", (KOS_SOP_CLASS_UID,)),
)


@dataclass
class SimulatedStudy:
    """Query results of one synthetic study."""

    study: Dataset
    series: list[Dataset] = field(default_factory=list)
    instances: dict[str, list[Dataset]] = field(default_factory=dict)

    @property
    def study_uid(self) -> str:
        return str(self.study.StudyInstanceUID)

    def instances_of(self, index: int) -> list[Dataset]:
        return self.instances[str(self.series[index].SeriesInstanceUID)]

    @property
    def key_image_note_uids(self) -> set[str]:
        """SOP Instance UIDs of the key image notes in the study."""
        return {
            str(record.SOPInstanceUID)
            for records in self.instances.values()
            for record in records
            if record.SOPClassUID == KOS_SOP_CLASS_UID
        }

    @property
    def key_images(self) -> list[str]:
        """Instances flagged by the key image note.

        The first multi-frame object and the second routine CT image.
        """
        return [
            str(self.instances_of(1)[0].SOPInstanceUID),
            str(self.instances_of(0)[1].SOPInstanceUID),
        ]


def simulate_study(dice: Dice, moment: datetime | None = None) -> SimulatedStudy:
    """Create the five-series synthetic study.

    Args:
        dice: Source of UIDs and series times
        moment: Study date/time; defaults to now

    Returns:
        Study, series and instance records

    """
    moment = moment or datetime.now()
    study = Dataset()
    study.StudyInstanceUID = dice.uid()
    study.StudyDate = moment.strftime("%Y%m%d")
    study.StudyTime = moment.strftime("%H%M%S")
    study.StudyID = "STUDY-001"
    study.StudyDescription = "Simulated abdomen study"
    study.AccessionNumber = "ACC-MADO-001"
    study.ReferringPhysicianName = "^"
    study.PatientName = "MADO^TEST^PATIENT"
    study.PatientID = "MADO-12345"
    study.IssuerOfPatientID = "HUPA"
    study.PatientBirthDate = "19870828"
    study.PatientSex = "O"

    simulated = SimulatedStudy(study=study)
    for number, (modality, description, sop_classes) in enumerate(
        SIMULATED_SERIES, start=1
    ):
        series_uid = dice.uid()
        series = Dataset()
        series.SeriesInstanceUID = series_uid
        series.Modality = modality
        series.SeriesDescription = description
        series.SeriesNumber = number
        series.SeriesDate = study.StudyDate
        acquired = moment + timedelta(minutes=dice.between(1, 59))
        series.SeriesTime = acquired.strftime("%H%M%S")
        simulated.series.append(series)

        records = []
        for instance_number, sop_class in enumerate(sop_classes, start=1):
            record = Dataset()
            record.SOPClassUID = sop_class
            record.SOPInstanceUID = dice.uid()
            record.SeriesInstanceUID = series_uid
            record.InstanceNumber = instance_number
            if sop_class == ENHANCED_CT_IMAGE_STORAGE:
                record.NumberOfFrames = dice.between(20, 220)
            records.append(record)
        simulated.instances[series_uid] = records
    return simulated
