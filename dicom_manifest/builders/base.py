"""Base class for manifest builders.

ManifestBuilder owns everything the KOS and MADO shapes share: input
checks, header modules, the single pass over referenced instances that
produces both evidence entries and content leaves, the content template
and the file meta information. Subclasses decide how leaves are arranged
in the content tree.

Every optional attribute or sequence is written through ``_emit(step)``.
The default step gate emits everything; the adversarial generator passes a
gate that skips steps at random to replay construction with omissions.
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from collections.abc import Sequence as SequenceType
from dataclasses import dataclass
from datetime import datetime
from typing import Any, NoReturn

from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.sequence import Sequence
from pydicom.uid import PYDICOM_IMPLEMENTATION_UID

from dicom_manifest.core.config import ManifestDefaults, get_settings
from dicom_manifest.core.constants import (
    DCMR,
    DEFAULT_PATIENT_ID,
    DEFAULT_PATIENT_NAME,
    DEFAULT_PATIENT_SEX,
    DEFAULT_STUDY_ID,
    EXPLICIT_VR_LITTLE_ENDIAN,
    KOS_SOP_CLASS_UID,
)
from dicom_manifest.core.exceptions import ConstructionError
from dicom_manifest.core.types import CodedConcept, RelationshipType
from dicom_manifest.core.uid import create_normalized_uid, normalize_uid
from dicom_manifest.model.content import (
    CompositeNode,
    ContainerNode,
    ContentNode,
    ImageNode,
)
from dicom_manifest.model.evidence import EvidenceEntry, build_evidence_sequence
from dicom_manifest.utils.logger import AuditEventLogger, get_logger

logger = get_logger(__name__)
audit = AuditEventLogger(logger)

#: Sort key for instances without a usable InstanceNumber
MISSING_INSTANCE_NUMBER = sys.maxsize

#: SOP class prefixes referenced as COMPOSITE rather than IMAGE
NON_IMAGE_SOP_CLASS_PREFIXES = (
    "1.2.840.10008.5.1.4.1.1.88.",  # Structured reports and KOS
    "1.2.840.10008.5.1.4.1.1.104.",  # Encapsulated documents
)

StepGate = Callable[[str], bool]
UidFactory = Callable[[], str]
Clock = Callable[[], datetime]


def always_emit(step: str) -> bool:
    """Step gate that keeps every construction step."""
    return True


def local_now() -> datetime:
    return datetime.now().astimezone()


def instance_sort_key(record: Dataset) -> int:
    """Numeric InstanceNumber, or a sentinel that sorts after every number."""
    value = record.get("InstanceNumber")
    if value is None:
        return MISSING_INSTANCE_NUMBER
    try:
        return int(str(value).strip())
    except ValueError:
        return MISSING_INSTANCE_NUMBER


def sort_instances(records: SequenceType[Dataset]) -> list[Dataset]:
    """Order instance records by instance number; ties keep source order."""
    return sorted(records, key=instance_sort_key)


def record_text(record: Dataset | None, keyword: str, default: str = "") -> str:
    """Read an attribute from a source record as stripped text."""
    if record is None:
        return default
    value = record.get(keyword)
    if value is None:
        return default
    text = str(value).strip()
    return text if text else default


def normalize_patient_sex(value: str) -> str:
    value = value.strip().upper()
    return value if value in ("M", "F", "O") else DEFAULT_PATIENT_SEX


def timezone_offset(moment: datetime) -> str:
    """Format the UTC offset of moment as +HHMM / -HHMM."""
    offset = moment.strftime("%z")
    return offset if offset else "+0000"


@dataclass
class ReferencedInstance:
    """An instance picked up by the reference pass, UIDs already normalized."""

    study_uid: str
    series_uid: str
    sop_class_uid: str
    sop_instance_uid: str
    series_index: int
    series_record: Dataset
    instance_record: Dataset


class ManifestBuilder(ABC):
    """Shared construction logic of KOS and MADO manifests."""

    document_title: CodedConcept
    template_identifier: str

    def __init__(
        self,
        defaults: ManifestDefaults | None = None,
        uid_factory: UidFactory | None = None,
        clock: Clock | None = None,
        step_gate: StepGate | None = None,
    ) -> None:
        self.defaults = defaults or get_settings().defaults
        self.uid_factory = uid_factory or create_normalized_uid
        self.clock = clock or local_now
        self.step_gate = step_gate or always_emit
        self.skipped_steps: list[str] = []

    @property
    @abstractmethod
    def kind(self) -> str:
        """Short manifest kind used in log events ("kos", "mado")."""

    @abstractmethod
    def _build_content(
        self,
        study: Dataset,
        series: SequenceType[Dataset],
        references: list[ReferencedInstance],
        leaves: list[ContentNode | None],
    ) -> ContainerNode:
        """Arrange content leaves (aligned with references) under a root."""

    def build(
        self,
        study: Dataset | None,
        series: SequenceType[Dataset],
        instances: Mapping[str, SequenceType[Dataset]],
    ) -> Dataset:
        """Assemble a manifest from query results.

        Args:
            study: Study-level record, or None when the study query found nothing
            series: Series-level records of the study
            instances: Instance-level records keyed by SeriesInstanceUID

        Returns:
            The manifest dataset, file meta attached

        Raises:
            ConstructionError: If the study, its series or its instances are absent

        """
        self.skipped_steps = []
        if study is None:
            self._fail("Study not found", ConstructionError.STUDY_NOT_FOUND, None)
        study_uid = normalize_uid(record_text(study, "StudyInstanceUID")) or ""
        if not series:
            self._fail(
                "No series found for study", ConstructionError.NO_SERIES, study_uid
            )
        references = self._collect_references(study_uid, series, instances)
        if not references:
            self._fail(
                "No instances found for study",
                ConstructionError.NO_INSTANCES,
                study_uid,
            )

        now = self.clock()
        dataset = Dataset()
        sop_instance_uid = normalize_uid(self.uid_factory()) or ""
        dataset.SOPClassUID = KOS_SOP_CLASS_UID
        dataset.SOPInstanceUID = sop_instance_uid
        self._populate_header(dataset, study, study_uid, now)

        entries, leaves = self._reference_pass(references)
        if self._emit("CurrentRequestedProcedureEvidenceSequence"):
            dataset.CurrentRequestedProcedureEvidenceSequence = (
                build_evidence_sequence(entries)
            )

        root = self._build_content(study, series, references, leaves)
        root.write_into(dataset)
        if self._emit("ContentTemplateSequence"):
            template = Dataset()
            template.MappingResource = DCMR
            template.TemplateIdentifier = self.template_identifier
            dataset.ContentTemplateSequence = Sequence([template])

        self._attach_file_meta(dataset)
        logger.info(
            f"{self.kind}_manifest_built",
            series=len({r.series_uid for r in references}),
            instances=len(references),
            skipped_steps=len(self.skipped_steps),
        )
        return dataset

    # -------------------------------------------------------------------------
    # Construction steps
    # -------------------------------------------------------------------------

    def _emit(self, step: str) -> bool:
        """Ask the step gate whether an optional step is written."""
        if self.step_gate(step):
            return True
        self.skipped_steps.append(step)
        return False

    def _set(self, dataset: Dataset, keyword: str, value: Any) -> None:
        if self._emit(keyword):
            setattr(dataset, keyword, value)

    def _fail(self, reason: str, error_code: str, study_uid: str | None) -> NoReturn:
        audit.log_construction_failure(study_uid, reason, error_code)
        raise ConstructionError(
            reason, error_code=error_code, context={"study_uid": study_uid}
        )

    def _collect_references(
        self,
        study_uid: str,
        series: SequenceType[Dataset],
        instances: Mapping[str, SequenceType[Dataset]],
    ) -> list[ReferencedInstance]:
        references = []
        for index, series_record in enumerate(series):
            raw_series_uid = record_text(series_record, "SeriesInstanceUID")
            series_uid = normalize_uid(raw_series_uid) or ""
            members = instances.get(raw_series_uid)
            if members is None:
                members = instances.get(series_uid, [])
            for record in sort_instances(members):
                sop_instance_uid = normalize_uid(record_text(record, "SOPInstanceUID"))
                if not sop_instance_uid:
                    logger.debug("Skipping instance without SOPInstanceUID")
                    continue
                sop_class_uid = normalize_uid(record_text(record, "SOPClassUID"))
                references.append(
                    ReferencedInstance(
                        study_uid=study_uid,
                        series_uid=series_uid,
                        sop_class_uid=sop_class_uid or "",
                        sop_instance_uid=sop_instance_uid,
                        series_index=index,
                        series_record=series_record,
                        instance_record=record,
                    )
                )
        return references

    def _reference_pass(
        self, references: list[ReferencedInstance]
    ) -> tuple[list[EvidenceEntry], list[ContentNode | None]]:
        """Produce evidence entries and content leaves in one walk."""
        addressing: dict[str, dict[str, str | None]] = {}
        entries: list[EvidenceEntry] = []
        leaves: list[ContentNode | None] = []
        for ref in references:
            if ref.series_uid not in addressing:
                addressing[ref.series_uid] = self._series_addressing(ref)
            if self._emit("evidence.instance"):
                entries.append(
                    EvidenceEntry(
                        study_instance_uid=ref.study_uid,
                        series_instance_uid=ref.series_uid,
                        sop_class_uid=ref.sop_class_uid,
                        sop_instance_uid=ref.sop_instance_uid,
                        hints=self._evidence_hints(ref),
                        **addressing[ref.series_uid],
                    )
                )
            leaves.append(
                self._content_leaf(ref) if self._emit("content.instance") else None
            )
        return entries, leaves

    def _series_addressing(self, ref: ReferencedInstance) -> dict[str, str | None]:
        base = self.defaults.wado_rs_base_url
        url = f"{base}/{ref.study_uid}/series/{ref.series_uid}"
        return {
            "retrieve_ae_title": (
                self.defaults.retrieve_ae_title
                if self._emit("RetrieveAETitle")
                else None
            ),
            "retrieve_location_uid": (
                self.defaults.retrieve_location_uid
                if self._emit("RetrieveLocationUID")
                else None
            ),
            "retrieve_url": url if self._emit("RetrieveURL") else None,
            "modality": None,
        }

    def _evidence_hints(self, ref: ReferencedInstance) -> dict[str, Any]:
        return {}

    def _content_leaf(self, ref: ReferencedInstance) -> ContentNode:
        node_class = ImageNode
        if ref.sop_class_uid.startswith(NON_IMAGE_SOP_CLASS_PREFIXES):
            node_class = CompositeNode
        return node_class(
            relationship=RelationshipType.CONTAINS,
            sop_class_uid=ref.sop_class_uid,
            sop_instance_uid=ref.sop_instance_uid,
        )

    # -------------------------------------------------------------------------
    # Header modules
    # -------------------------------------------------------------------------

    def _populate_header(
        self, dataset: Dataset, study: Dataset, study_uid: str, now: datetime
    ) -> None:
        defaults = self.defaults
        self._set(dataset, "SpecificCharacterSet", defaults.character_set)
        self._set(dataset, "InstanceCreationDate", now.strftime("%Y%m%d"))
        self._set(dataset, "InstanceCreationTime", now.strftime("%H%M%S"))
        self._set(dataset, "TimezoneOffsetFromUTC", timezone_offset(now))

        # Patient
        self._set(
            dataset,
            "PatientName",
            record_text(study, "PatientName", DEFAULT_PATIENT_NAME),
        )
        self._set(
            dataset, "PatientID", record_text(study, "PatientID", DEFAULT_PATIENT_ID)
        )
        self._set(
            dataset,
            "IssuerOfPatientID",
            record_text(
                study, "IssuerOfPatientID", defaults.patient_id_issuer_local_namespace
            ),
        )
        self._set(
            dataset,
            "IssuerOfPatientIDQualifiersSequence",
            Sequence([_universal_entity(defaults.patient_id_issuer_oid)]),
        )
        self._set(dataset, "PatientBirthDate", record_text(study, "PatientBirthDate"))
        self._set(
            dataset,
            "PatientSex",
            normalize_patient_sex(record_text(study, "PatientSex")),
        )

        # General Study
        accession = record_text(study, "AccessionNumber")
        self._set(dataset, "StudyInstanceUID", study_uid)
        today, clock_time = now.strftime("%Y%m%d"), now.strftime("%H%M%S")
        self._set(dataset, "StudyDate", record_text(study, "StudyDate", today))
        self._set(dataset, "StudyTime", record_text(study, "StudyTime", clock_time))
        self._set(
            dataset,
            "ReferringPhysicianName",
            record_text(study, "ReferringPhysicianName"),
        )
        self._set(dataset, "StudyID", record_text(study, "StudyID", DEFAULT_STUDY_ID))
        self._set(dataset, "AccessionNumber", accession)
        if accession:
            self._set(
                dataset,
                "IssuerOfAccessionNumberSequence",
                Sequence([_universal_entity(defaults.accession_number_issuer_oid)]),
            )
        description = record_text(study, "StudyDescription")
        if description:
            self._set(dataset, "StudyDescription", description)

        # Key Object Document Series
        self._set(dataset, "Modality", "KO")
        self._set(
            dataset,
            "SeriesInstanceUID",
            normalize_uid(self.uid_factory()),
        )
        self._set(dataset, "SeriesNumber", 1)
        self._set(dataset, "ReferencedPerformedProcedureStepSequence", Sequence([]))

        # General Equipment
        self._set(dataset, "Manufacturer", defaults.manufacturer)
        self._set(
            dataset,
            "InstitutionName",
            record_text(study, "InstitutionName", defaults.institution_name),
        )
        self._set(dataset, "ManufacturerModelName", defaults.manufacturer_model_name)
        self._set(dataset, "SoftwareVersions", defaults.software_versions)

        # Key Object Document
        self._set(dataset, "InstanceNumber", 1)
        self._set(dataset, "ContentDate", now.strftime("%Y%m%d"))
        self._set(dataset, "ContentTime", now.strftime("%H%M%S"))
        self._set(
            dataset,
            "ReferencedRequestSequence",
            Sequence([self._request_item(study_uid, accession)]),
        )
        self._set(dataset, "CompletionFlag", "COMPLETE")
        self._set(dataset, "VerificationFlag", "UNVERIFIED")

    def _request_item(self, study_uid: str, accession: str) -> Dataset:
        item = Dataset()
        item.StudyInstanceUID = study_uid
        item.AccessionNumber = accession
        if accession:
            item.IssuerOfAccessionNumberSequence = Sequence(
                [_universal_entity(self.defaults.accession_number_issuer_oid)]
            )
            item.PlacerOrderNumberImagingServiceRequest = accession
            item.FillerOrderNumberImagingServiceRequest = accession
        item.RequestedProcedureID = accession or DEFAULT_STUDY_ID
        return item

    def _attach_file_meta(self, dataset: Dataset) -> None:
        file_meta = FileMetaDataset()
        file_meta.MediaStorageSOPClassUID = dataset.SOPClassUID
        file_meta.MediaStorageSOPInstanceUID = dataset.SOPInstanceUID
        file_meta.TransferSyntaxUID = EXPLICIT_VR_LITTLE_ENDIAN
        file_meta.ImplementationClassUID = PYDICOM_IMPLEMENTATION_UID
        dataset.file_meta = file_meta


def _universal_entity(oid: str) -> Dataset:
    item = Dataset()
    item.UniversalEntityID = oid
    item.UniversalEntityIDType = "ISO"
    return item
