"""MADO manifest builder (TID 1600 Image Library).

Content layout::

    root CONTAINER (Manifest with Description)
      CODE    Modality                 (study level)
      UIDREF  Study Instance UID
      CODE    Target Region
      CONTAINER Image Library
        CONTAINER Image Library Group   (one per series)
          CODE/UIDREF/TEXT/NUM series descriptors
          IMAGE entries sorted by instance number
            TEXT Instance Number, NUM Number of Frames, extended metadata
"""

from __future__ import annotations

from collections.abc import Mapping
from collections.abc import Sequence as SequenceType
from dataclasses import dataclass, field
from typing import Any

from pydicom.datadict import tag_for_keyword
from pydicom.dataset import Dataset
from pydicom.multival import MultiValue

from dicom_manifest.core.constants import (
    ABDOMEN,
    DEFAULT_SERIES_DESCRIPTION,
    IMAGE_LIBRARY,
    IMAGE_LIBRARY_GROUP,
    INSTANCE_NUMBER,
    MANIFEST_WITH_DESCRIPTION,
    MODALITY,
    MULTIFRAME_SOP_CLASSES,
    NO_UNITS,
    NUMBER_OF_FRAMES,
    NUMBER_OF_SERIES_RELATED_INSTANCES,
    SERIES_DATE,
    SERIES_DESCRIPTION,
    SERIES_INSTANCE_UID,
    SERIES_NUMBER,
    SERIES_TIME,
    STUDY_INSTANCE_UID,
    TARGET_REGION,
    TID_IMAGE_LIBRARY,
)
from dicom_manifest.core.types import CodedConcept, RelationshipType
from dicom_manifest.model.content import (
    CodeNode,
    ContainerNode,
    ContentNode,
    NumNode,
    TextNode,
    UidRefNode,
)

from .base import ManifestBuilder, ReferencedInstance, record_text

#: Attributes copied into entries in extended mode: (keyword, numeric)
EXTENDED_METADATA: tuple[tuple[str, bool], ...] = (
    ("Rows", True),
    ("Columns", True),
    ("BitsAllocated", True),
    ("BitsStored", True),
    ("HighBit", True),
    ("PixelRepresentation", True),
    ("SamplesPerPixel", True),
    ("PhotometricInterpretation", False),
    ("PixelSpacing", True),
    ("SliceThickness", True),
    ("SliceLocation", True),
    ("ImagePositionPatient", True),
    ("ImageOrientationPatient", True),
    ("WindowCenter", True),
    ("WindowWidth", True),
    ("RescaleIntercept", True),
    ("RescaleSlope", True),
    ("RescaleType", False),
)

#: Per-instance attributes that may be copied onto evidence SOP items
EVIDENCE_HINTS: tuple[str, ...] = ("NumberOfFrames", "Rows", "Columns")


@dataclass
class MadoOptions:
    """Switches of the MADO builder."""

    extended_metadata: bool = False
    evidence_hints: bool = False
    title: CodedConcept = field(default_factory=lambda: MANIFEST_WITH_DESCRIPTION)
    target_region: CodedConcept = field(default_factory=lambda: ABDOMEN)


def metadata_concept(keyword: str) -> CodedConcept:
    """Concept name of an extended-metadata item, coded by attribute tag."""
    tag = tag_for_keyword(keyword)
    if tag is None:
        raise KeyError(keyword)
    return CodedConcept(f"({tag >> 16:04X},{tag & 0xFFFF:04X})", "DCM", keyword)


def _attribute_text(record: Dataset, keyword: str, numeric: bool) -> str | None:
    """Render an attribute verbatim; None when absent or not numeric as required."""
    value = record.get(keyword)
    if value is None or value == "":
        return None
    values = list(value) if isinstance(value, (MultiValue, list, tuple)) else [value]
    parts = [str(v).strip() for v in values]
    if numeric:
        try:
            for part in parts:
                float(part)
        except ValueError:
            return None
    text = "\\".join(parts)
    return text or None


def _parse_int(text: str) -> int | None:
    try:
        return int(text)
    except ValueError:
        return None


class MadoManifestBuilder(ManifestBuilder):
    """Builds MADO manifests with an Image Library content tree."""

    template_identifier = TID_IMAGE_LIBRARY

    def __init__(self, options: MadoOptions | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.options = options or MadoOptions()
        self.document_title = self.options.title

    @property
    def kind(self) -> str:
        return "mado"

    def _series_addressing(self, ref: ReferencedInstance) -> dict[str, str | None]:
        addressing = super()._series_addressing(ref)
        modality = record_text(ref.series_record, "Modality")
        if modality and self._emit("evidence.Modality"):
            addressing["modality"] = modality
        return addressing

    def _evidence_hints(self, ref: ReferencedInstance) -> dict[str, Any]:
        if not self.options.evidence_hints:
            return {}
        hints = {}
        for keyword in EVIDENCE_HINTS:
            text = _attribute_text(ref.instance_record, keyword, numeric=True)
            if text is None or "\\" in text:
                continue
            number = _parse_int(text)
            if number is not None:
                hints[keyword] = number
        return hints

    def _build_content(
        self,
        study: Dataset,
        series: SequenceType[Dataset],
        references: list[ReferencedInstance],
        leaves: list[ContentNode | None],
    ) -> ContainerNode:
        root = ContainerNode(concept_name=self.document_title)
        study_modality = record_text(references[0].series_record, "Modality", "OT")
        study_uid = references[0].study_uid

        for node in self._study_context(
            RelationshipType.CONTAINS, "content", study_modality, study_uid
        ):
            root.add(node)

        if not self._emit("content.ImageLibrary"):
            return root
        library = ContainerNode(
            relationship=RelationshipType.CONTAINS, concept_name=IMAGE_LIBRARY
        )
        root.add(library)
        for node in self._study_context(
            RelationshipType.HAS_ACQ_CONTEXT, "library", study_modality, study_uid
        ):
            library.add(node)

        grouped: dict[int, list[tuple[ReferencedInstance, ContentNode | None]]] = {}
        for ref, leaf in zip(references, leaves):
            grouped.setdefault(ref.series_index, []).append((ref, leaf))

        for series_index, members in grouped.items():
            if not self._emit("content.ImageLibraryGroup"):
                continue
            library.add(self._group(study, series_index, members))
        return root

    def _study_context(
        self,
        relationship: RelationshipType,
        scope: str,
        modality: str,
        study_uid: str,
    ) -> list[ContentNode]:
        """Modality, Study Instance UID and Target Region of the study."""
        nodes: list[ContentNode] = []
        if self._emit(f"{scope}.Modality"):
            nodes.append(self._code(relationship, MODALITY, modality))
        if self._emit(f"{scope}.StudyInstanceUID"):
            nodes.append(
                UidRefNode(
                    relationship=relationship,
                    concept_name=STUDY_INSTANCE_UID,
                    uid=study_uid,
                )
            )
        if self._emit(f"{scope}.TargetRegion"):
            nodes.append(
                CodeNode(
                    relationship=relationship,
                    concept_name=TARGET_REGION,
                    value=self.options.target_region,
                )
            )
        return nodes

    def _group(
        self,
        study: Dataset,
        series_index: int,
        members: list[tuple[ReferencedInstance, ContentNode | None]],
    ) -> ContainerNode:
        ref = members[0][0]
        record = ref.series_record
        group = ContainerNode(
            relationship=RelationshipType.CONTAINS, concept_name=IMAGE_LIBRARY_GROUP
        )
        context = RelationshipType.HAS_ACQ_CONTEXT
        study_date = record_text(study, "StudyDate", self.clock().strftime("%Y%m%d"))
        study_time = record_text(study, "StudyTime", self.clock().strftime("%H%M%S"))
        descriptors: list[tuple[str, ContentNode]] = [
            (
                "Modality",
                self._code(context, MODALITY, record_text(record, "Modality", "OT")),
            ),
            (
                "SeriesInstanceUID",
                UidRefNode(
                    relationship=context,
                    concept_name=SERIES_INSTANCE_UID,
                    uid=ref.series_uid,
                ),
            ),
            (
                "SeriesDescription",
                self._text(
                    context,
                    SERIES_DESCRIPTION,
                    record_text(
                        record, "SeriesDescription", DEFAULT_SERIES_DESCRIPTION
                    ),
                ),
            ),
            (
                "SeriesDate",
                self._text(
                    context, SERIES_DATE, record_text(record, "SeriesDate", study_date)
                ),
            ),
            (
                "SeriesTime",
                self._text(
                    context, SERIES_TIME, record_text(record, "SeriesTime", study_time)
                ),
            ),
            (
                "SeriesNumber",
                self._text(
                    context,
                    SERIES_NUMBER,
                    record_text(record, "SeriesNumber", str(series_index + 1)),
                ),
            ),
            (
                "NumberOfSeriesRelatedInstances",
                NumNode(
                    relationship=context,
                    concept_name=NUMBER_OF_SERIES_RELATED_INSTANCES,
                    value=str(len(members)),
                    units=NO_UNITS,
                ),
            ),
        ]
        for step, node in descriptors:
            if self._emit(f"group.{step}"):
                group.add(node)

        for member_ref, leaf in members:
            if leaf is None:
                continue
            leaf.add(*self._entry_children(member_ref))
            group.add(leaf)
        return group

    def _entry_children(self, ref: ReferencedInstance) -> list[ContentNode]:
        """Acquisition context items nested below one IMAGE entry."""
        record = ref.instance_record
        context = RelationshipType.HAS_ACQ_CONTEXT
        children: list[ContentNode] = []

        instance_number = record_text(record, "InstanceNumber")
        if instance_number and self._emit("entry.InstanceNumber"):
            children.append(self._text(context, INSTANCE_NUMBER, instance_number))

        if ref.sop_class_uid in MULTIFRAME_SOP_CLASSES:
            frames = _parse_int(record_text(record, "NumberOfFrames"))
            if frames is not None and self._emit("entry.NumberOfFrames"):
                children.append(
                    NumNode(
                        relationship=context,
                        concept_name=NUMBER_OF_FRAMES,
                        value=str(frames),
                        units=NO_UNITS,
                    )
                )

        if self.options.extended_metadata:
            for keyword, numeric in EXTENDED_METADATA:
                text = _attribute_text(record, keyword, numeric)
                if text is None:
                    continue
                children.append(self._text(context, metadata_concept(keyword), text))
        return children

    @staticmethod
    def _code(
        relationship: RelationshipType, concept: CodedConcept, modality: str
    ) -> CodeNode:
        return CodeNode(
            relationship=relationship,
            concept_name=concept,
            value=CodedConcept(modality, "DCM", modality),
        )

    @staticmethod
    def _text(
        relationship: RelationshipType, concept: CodedConcept, value: str
    ) -> TextNode:
        return TextNode(relationship=relationship, concept_name=concept, value=value)


def build_mado(
    study: Dataset | None,
    series: SequenceType[Dataset],
    instances: Mapping[str, SequenceType[Dataset]],
    options: MadoOptions | None = None,
    **kwargs: Any,
) -> Dataset:
    """Build a MADO manifest with an Image Library for a study.

    Raises:
        ConstructionError: If the study, its series or its instances are absent

    """
    return MadoManifestBuilder(options=options, **kwargs).build(
        study, series, instances
    )
