"""Tests for the SR content tree model."""

import pytest

from dicom_manifest.core.constants import (
    CT_IMAGE_STORAGE,
    KEY_OBJECT_DESCRIPTION,
    KOS_SOP_CLASS_UID,
    MANIFEST,
    NO_UNITS,
    NUMBER_OF_FRAMES,
    SERIES_INSTANCE_UID,
)
from dicom_manifest.core.exceptions import ManifestError
from dicom_manifest.core.types import RelationshipType
from dicom_manifest.model.content import (
    CodeNode,
    CompositeNode,
    ContainerNode,
    ContentNode,
    ImageNode,
    NumNode,
    TextNode,
    UidRefNode,
    find_child,
    iter_nodes,
    iter_references,
)

CONTAINS = RelationshipType.CONTAINS


@pytest.fixture
def tree() -> ContainerNode:
    root = ContainerNode(concept_name=MANIFEST)
    root.add(
        TextNode(
            relationship=CONTAINS, concept_name=KEY_OBJECT_DESCRIPTION, value="Manifest"
        ),
        ImageNode(
            relationship=CONTAINS,
            sop_class_uid=CT_IMAGE_STORAGE,
            sop_instance_uid="1.2.3.1",
        ),
        CompositeNode(
            relationship=CONTAINS,
            sop_class_uid=KOS_SOP_CLASS_UID,
            sop_instance_uid="1.2.3.2",
        ),
    )
    return root


class TestSerialization:
    """Test that each node writes its value type's attributes."""

    def test_root_container(self, tree):
        """Verify the root has no relationship and is SEPARATE."""
        item = tree.to_dataset()

        assert "RelationshipType" not in item
        assert item.ValueType == "CONTAINER"
        assert item.ContinuityOfContent == "SEPARATE"
        assert item.ConceptNameCodeSequence[0].CodeValue == "113030"
        assert len(item.ContentSequence) == 3

    def test_image_reference(self, tree):
        """Verify IMAGE items carry one ReferencedSOPSequence item."""
        image = tree.to_dataset().ContentSequence[1]

        assert image.ValueType == "IMAGE"
        assert image.RelationshipType == "CONTAINS"
        assert "ConceptNameCodeSequence" not in image
        assert image.ReferencedSOPSequence[0].ReferencedSOPInstanceUID == "1.2.3.1"

    def test_composite_reference(self, tree):
        """Verify COMPOSITE reuses the reference layout of IMAGE."""
        composite = tree.to_dataset().ContentSequence[2]

        assert composite.ValueType == "COMPOSITE"
        assert composite.ReferencedSOPSequence[0].ReferencedSOPClassUID == (
            KOS_SOP_CLASS_UID
        )

    def test_num_node(self):
        """Verify NUM items nest value and units in MeasuredValueSequence."""
        item = NumNode(
            relationship=RelationshipType.HAS_ACQ_CONTEXT,
            concept_name=NUMBER_OF_FRAMES,
            value="120",
            units=NO_UNITS,
        ).to_dataset()

        measured = item.MeasuredValueSequence[0]
        assert item.RelationshipType == "HAS ACQ CONTEXT"
        assert measured.NumericValue == 120
        assert measured.MeasurementUnitsCodeSequence[0].CodeValue == "1"

    def test_code_and_uidref(self):
        """Verify CODE and UIDREF values."""
        code = CodeNode(
            relationship=CONTAINS, concept_name=MANIFEST, value=MANIFEST
        ).to_dataset()
        uidref = UidRefNode(
            relationship=CONTAINS, concept_name=SERIES_INSTANCE_UID, uid="1.2.3"
        ).to_dataset()

        assert code.ConceptCodeSequence[0].CodeValue == "113030"
        assert uidref.UID == "1.2.3"

    def test_unregistered_node_type_fails(self):
        """Test that a node class outside the registry cannot be written."""

        class StrayNode(TextNode):
            pass

        with pytest.raises(ManifestError):
            StrayNode(value="x").to_dataset()

    def test_base_node_has_no_value(self):
        """Test that the abstract node refuses to serialize its value."""
        with pytest.raises(NotImplementedError):
            ContentNode()._write_value(None)


class TestTreeWalking:
    """Test tree traversal helpers."""

    def test_iter_nodes_depth_first(self, tree):
        """Verify parents come before children."""
        nodes = list(iter_nodes(tree))

        assert nodes[0] is tree
        assert len(nodes) == 4

    def test_iter_references(self, tree):
        """Verify IMAGE and COMPOSITE leaves are both references."""
        assert list(iter_references(tree)) == [
            (CT_IMAGE_STORAGE, "1.2.3.1"),
            (KOS_SOP_CLASS_UID, "1.2.3.2"),
        ]

    def test_find_child(self, tree):
        """Verify lookup by concept name among direct children."""
        assert isinstance(find_child(tree, KEY_OBJECT_DESCRIPTION), TextNode)
        assert find_child(tree, NUMBER_OF_FRAMES) is None
