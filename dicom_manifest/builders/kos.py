"""KOS manifest builder (TID 2010 Key Object Selection).

The content tree is flat: a Key Object Description text item followed by
one IMAGE (or COMPOSITE) reference per instance, in evidence order.
"""

from __future__ import annotations

from collections.abc import Mapping
from collections.abc import Sequence as SequenceType
from typing import Any

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import (
    KEY_OBJECT_DESCRIPTION,
    MANIFEST,
    TID_KEY_OBJECT_SELECTION,
)
from dicom_manifest.core.types import RelationshipType
from dicom_manifest.model.content import ContainerNode, ContentNode, TextNode

from .base import ManifestBuilder, ReferencedInstance


class KosManifestBuilder(ManifestBuilder):
    """Builds XDS-I.b style KOS manifests."""

    document_title = MANIFEST
    template_identifier = TID_KEY_OBJECT_SELECTION

    def __init__(self, description: str = "Manifest", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.description = description

    @property
    def kind(self) -> str:
        return "kos"

    def _build_content(
        self,
        study: Dataset,
        series: SequenceType[Dataset],
        references: list[ReferencedInstance],
        leaves: list[ContentNode | None],
    ) -> ContainerNode:
        root = ContainerNode(concept_name=self.document_title)
        if self._emit("content.KeyObjectDescription"):
            root.add(
                TextNode(
                    relationship=RelationshipType.CONTAINS,
                    concept_name=KEY_OBJECT_DESCRIPTION,
                    value=self.description,
                )
            )
        root.add(*(leaf for leaf in leaves if leaf is not None))
        return root


def build_kos(
    study: Dataset | None,
    series: SequenceType[Dataset],
    instances: Mapping[str, SequenceType[Dataset]],
    **kwargs: Any,
) -> Dataset:
    """Build a KOS manifest referencing every instance of a study.

    Args:
        study: Study-level record (None when the study was not found)
        series: Series-level records
        instances: Instance-level records keyed by SeriesInstanceUID
        **kwargs: Builder options (defaults, uid_factory, clock, step_gate,
            description)

    Returns:
        The KOS manifest dataset

    Raises:
        ConstructionError: If the study, its series or its instances are absent

    """
    return KosManifestBuilder(**kwargs).build(study, series, instances)
