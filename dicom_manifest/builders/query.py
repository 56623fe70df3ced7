"""Query collaborator interface and query-driven manifest creation.

The network query service (C-FIND, QIDO-RS, ...) lives outside this
package. Anything satisfying QueryService can feed ManifestCreator, which
runs the study/series/instance queries and hands the records to a builder.
"""

from __future__ import annotations

from typing import Any, Protocol

from pydicom.dataset import Dataset

from dicom_manifest.core.exceptions import ConfigurationError

from .base import ManifestBuilder, record_text
from .kos import KosManifestBuilder
from .mado import MadoManifestBuilder


class QueryService(Protocol):
    """Protocol of the study/series/instance query collaborator."""

    def find_study(
        self, study_uid: str, patient_id: str | None = None
    ) -> Dataset | None:
        """Return the study-level record, or None when nothing matched"""
        raise NotImplementedError("Subclasses must implement find_study()")

    def find_series(
        self, study_uid: str, series_uid: str | None = None
    ) -> list[Dataset]:
        """Return the series-level records of a study, or of one series"""
        raise NotImplementedError("Subclasses must implement find_series()")

    def find_instances(self, study_uid: str, series_uid: str) -> list[Dataset]:
        """Return the instance-level records of a series"""
        raise NotImplementedError("Subclasses must implement find_instances()")


BUILDERS: dict[str, type[ManifestBuilder]] = {
    "kos": KosManifestBuilder,
    "mado": MadoManifestBuilder,
}


class ManifestCreator:
    """Query a study and build a KOS or MADO manifest for it."""

    def __init__(
        self, query: QueryService, kind: str = "kos", **builder_options: Any
    ) -> None:
        if kind not in BUILDERS:
            raise ConfigurationError(
                f"Unknown manifest kind: {kind}", context={"known": sorted(BUILDERS)}
            )
        self.query = query
        self.builder = BUILDERS[kind](**builder_options)

    def create(self, study_uid: str, patient_id: str | None = None) -> Dataset:
        """Query the study and build its manifest.

        Raises:
            ConstructionError: If the study, its series or its instances are absent

        """
        study = self.query.find_study(study_uid, patient_id)
        series: list[Dataset] = []
        instances: dict[str, list[Dataset]] = {}
        if study is not None:
            series = self.query.find_series(study_uid)
            for record in series:
                series_uid = record_text(record, "SeriesInstanceUID")
                instances[series_uid] = self.query.find_instances(study_uid, series_uid)
        return self.builder.build(study, series, instances)
