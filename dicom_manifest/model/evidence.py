"""Evidence model.

The evidence list (CurrentRequestedProcedureEvidenceSequence) enumerates
every referenced instance grouped study > series > instance. Builders
produce it from EvidenceEntry records; validators read it back with
collect_evidence_references, which tolerates missing levels.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from pydicom.dataset import Dataset
from pydicom.sequence import Sequence


@dataclass
class EvidenceEntry:
    """One referenced instance plus the retrieval addressing of its series."""

    study_instance_uid: str
    series_instance_uid: str
    sop_class_uid: str
    sop_instance_uid: str
    retrieve_location_uid: str | None = None
    retrieve_url: str | None = None
    retrieve_ae_title: str | None = None
    modality: str | None = None
    hints: dict[str, Any] = field(default_factory=dict)


def build_evidence_sequence(entries: Iterable[EvidenceEntry]) -> Sequence:
    """Group entries study > series > instance, preserving first-seen order."""
    studies: dict[str, dict[str, list[EvidenceEntry]]] = {}
    for entry in entries:
        series = studies.setdefault(entry.study_instance_uid, {})
        series.setdefault(entry.series_instance_uid, []).append(entry)

    study_items = []
    for study_uid, series_map in studies.items():
        study_item = Dataset()
        study_item.StudyInstanceUID = study_uid
        series_items = []
        for series_uid, members in series_map.items():
            series_items.append(_series_item(series_uid, members))
        study_item.ReferencedSeriesSequence = Sequence(series_items)
        study_items.append(study_item)
    return Sequence(study_items)


def _series_item(series_uid: str, members: list[EvidenceEntry]) -> Dataset:
    first = members[0]
    item = Dataset()
    item.SeriesInstanceUID = series_uid
    if first.modality:
        item.Modality = first.modality
    if first.retrieve_ae_title:
        item.RetrieveAETitle = first.retrieve_ae_title
    if first.retrieve_location_uid:
        item.RetrieveLocationUID = first.retrieve_location_uid
    if first.retrieve_url:
        item.RetrieveURL = first.retrieve_url

    sop_items = []
    for entry in members:
        sop = Dataset()
        sop.ReferencedSOPClassUID = entry.sop_class_uid
        sop.ReferencedSOPInstanceUID = entry.sop_instance_uid
        for keyword, value in entry.hints.items():
            setattr(sop, keyword, value)
        sop_items.append(sop)
    item.ReferencedSOPSequence = Sequence(sop_items)
    return item


def iter_evidence_items(
    dataset: Dataset,
) -> Iterator[tuple[int, Dataset, int, Dataset, int, Dataset]]:
    """Yield (study idx, study item, series idx, series item, SOP idx, SOP item)."""
    studies = dataset.get("CurrentRequestedProcedureEvidenceSequence") or []
    for i, study in enumerate(studies):
        for j, series in enumerate(study.get("ReferencedSeriesSequence") or []):
            for k, sop in enumerate(series.get("ReferencedSOPSequence") or []):
                yield i, study, j, series, k, sop


def collect_evidence_references(dataset: Dataset) -> list[tuple[str, str]]:
    """Return (class UID, instance UID) pairs listed in the evidence."""
    pairs = []
    for _, _, _, _, _, sop in iter_evidence_items(dataset):
        instance_uid = str(sop.get("ReferencedSOPInstanceUID", "") or "")
        if not instance_uid:
            continue
        pairs.append((str(sop.get("ReferencedSOPClassUID", "") or ""), instance_uid))
    return pairs


def evidence_counts(dataset: Dataset) -> tuple[int, int, int]:
    """Count studies, series and instances listed in the evidence."""
    studies = dataset.get("CurrentRequestedProcedureEvidenceSequence") or []
    series_count = sum(len(s.get("ReferencedSeriesSequence") or []) for s in studies)
    instance_count = sum(1 for _ in iter_evidence_items(dataset))
    return len(studies), series_count, instance_count
