"""SR content tree model.

Builders assemble documents as a tree of ContentNode objects and
serialize it once. Each SR value type has exactly one node class;
the registry below is consulted on serialization so an unknown value
type fails loudly instead of producing a half-written item.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import ClassVar

from pydicom.dataset import Dataset
from pydicom.sequence import Sequence

from dicom_manifest.core.exceptions import ManifestError
from dicom_manifest.core.types import (
    CodedConcept,
    ContinuityOfContent,
    RelationshipType,
    ValueType,
)


@dataclass(kw_only=True)
class ContentNode:
    """Base of all SR content items.

    The document root is a ContainerNode without a relationship.
    """

    value_type: ClassVar[ValueType]

    relationship: RelationshipType | None = None
    concept_name: CodedConcept | None = None
    children: list[ContentNode] = field(default_factory=list)

    def write_into(self, target: Dataset) -> Dataset:
        """Write this node's attributes (and its subtree) into target."""
        if NODE_TYPES.get(self.value_type) is not type(self):
            raise ManifestError(
                f"No serializer registered for value type {self.value_type}",
                context={"node": type(self).__name__},
            )
        if self.relationship is not None:
            target.RelationshipType = self.relationship.value
        target.ValueType = self.value_type.value
        if self.concept_name is not None:
            target.ConceptNameCodeSequence = Sequence([self.concept_name.to_dataset()])
        self._write_value(target)
        if self.children:
            target.ContentSequence = Sequence(
                [child.to_dataset() for child in self.children]
            )
        return target

    def to_dataset(self) -> Dataset:
        return self.write_into(Dataset())

    def _write_value(self, target: Dataset) -> None:
        raise NotImplementedError

    def add(self, *nodes: ContentNode) -> ContentNode:
        self.children.extend(nodes)
        return self


@dataclass(kw_only=True)
class ContainerNode(ContentNode):
    value_type: ClassVar[ValueType] = ValueType.CONTAINER

    continuity: ContinuityOfContent = ContinuityOfContent.SEPARATE

    def _write_value(self, target: Dataset) -> None:
        target.ContinuityOfContent = self.continuity.value


@dataclass(kw_only=True)
class CodeNode(ContentNode):
    value_type: ClassVar[ValueType] = ValueType.CODE

    value: CodedConcept

    def _write_value(self, target: Dataset) -> None:
        target.ConceptCodeSequence = Sequence([self.value.to_dataset()])


@dataclass(kw_only=True)
class TextNode(ContentNode):
    value_type: ClassVar[ValueType] = ValueType.TEXT

    value: str

    def _write_value(self, target: Dataset) -> None:
        target.TextValue = self.value


@dataclass(kw_only=True)
class NumNode(ContentNode):
    value_type: ClassVar[ValueType] = ValueType.NUM

    value: str
    units: CodedConcept

    def _write_value(self, target: Dataset) -> None:
        measured = Dataset()
        measured.NumericValue = self.value
        measured.MeasurementUnitsCodeSequence = Sequence([self.units.to_dataset()])
        target.MeasuredValueSequence = Sequence([measured])


@dataclass(kw_only=True)
class UidRefNode(ContentNode):
    value_type: ClassVar[ValueType] = ValueType.UIDREF

    uid: str

    def _write_value(self, target: Dataset) -> None:
        target.UID = self.uid


@dataclass(kw_only=True)
class ImageNode(ContentNode):
    """Reference to an image instance; carries no concept name in TID 2010."""

    value_type: ClassVar[ValueType] = ValueType.IMAGE

    sop_class_uid: str
    sop_instance_uid: str

    def _write_value(self, target: Dataset) -> None:
        target.ReferencedSOPSequence = Sequence([self._reference_item()])

    def _reference_item(self) -> Dataset:
        ref = Dataset()
        ref.ReferencedSOPClassUID = self.sop_class_uid
        ref.ReferencedSOPInstanceUID = self.sop_instance_uid
        return ref


@dataclass(kw_only=True)
class CompositeNode(ImageNode):
    """Reference to a non-image composite instance."""

    value_type: ClassVar[ValueType] = ValueType.COMPOSITE


NODE_TYPES: dict[ValueType, type[ContentNode]] = {
    ValueType.CONTAINER: ContainerNode,
    ValueType.CODE: CodeNode,
    ValueType.TEXT: TextNode,
    ValueType.NUM: NumNode,
    ValueType.UIDREF: UidRefNode,
    ValueType.IMAGE: ImageNode,
    ValueType.COMPOSITE: CompositeNode,
}


def iter_nodes(node: ContentNode) -> Iterator[ContentNode]:
    """Walk a content tree depth-first, parents before children."""
    yield node
    for child in node.children:
        yield from iter_nodes(child)


def iter_references(node: ContentNode) -> Iterator[tuple[str, str]]:
    """Yield (SOP class UID, SOP instance UID) of every referencing leaf."""
    for current in iter_nodes(node):
        if isinstance(current, ImageNode):
            yield current.sop_class_uid, current.sop_instance_uid


def find_child(node: ContentNode, concept: CodedConcept) -> ContentNode | None:
    """Return the first direct child whose concept name equals concept."""
    for child in node.children:
        if child.concept_name == concept:
            return child
    return None
