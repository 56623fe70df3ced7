"""Tests for the XDS-I.b and MADO profile passes."""

import copy
from functools import partial

import pytest
from pydicom.dataset import Dataset
from pydicom.sequence import Sequence

from dicom_manifest.core.constants import (
    ENHANCED_CT_IMAGE_STORAGE,
    IMAGE_LIBRARY,
    IMAGE_LIBRARY_GROUP,
    INSTANCE_NUMBER,
    MANIFEST,
    MANIFEST_WITH_DESCRIPTION,
    OF_INTEREST,
    REJECTED_FOR_QUALITY_REASONS,
    SERIES_DATE,
    SOP_INSTANCE_UID,
    TARGET_REGION,
)
from dicom_manifest.core.types import CodedConcept
from dicom_manifest.model.result import ValidationResult
from dicom_manifest.validation.mado import (
    check_mado_equipment,
    check_mado_patient,
    check_mado_profile,
    check_mado_sop_common,
    check_mado_study,
    check_mado_title,
)
from dicom_manifest.validation.tid1600 import check_tid1600
from dicom_manifest.validation.xdsi import check_file_meta, check_xdsi_manifest


def run(check, dataset) -> ValidationResult:
    result = ValidationResult()
    check(dataset, result)
    return result


def titled(document, concept):
    document.ConceptNameCodeSequence = Sequence([concept.to_dataset()])
    return document


def has(item, concept) -> bool:
    codes = item.get("ConceptNameCodeSequence") or []
    return bool(codes) and concept.matches(codes[0])


def library_of(document):
    return next(item for item in document.ContentSequence if has(item, IMAGE_LIBRARY))


def group_of(document):
    return next(
        item
        for item in library_of(document).ContentSequence
        if has(item, IMAGE_LIBRARY_GROUP)
    )


def first_entry(document):
    return next(
        item for item in group_of(document).ContentSequence if item.ValueType == "IMAGE"
    )


def uidref_item(concept, uid) -> Dataset:
    item = Dataset()
    item.RelationshipType = "HAS ACQ CONTEXT"
    item.ValueType = "UIDREF"
    item.ConceptNameCodeSequence = Sequence([concept.to_dataset()])
    item.UID = uid
    return item


class TestFileMeta:
    """Test the File Meta Information pass."""

    def test_matching(self, kos_document):
        assert run(check_file_meta, kos_document).messages == []

    def test_mismatched_class(self, kos_document):
        kos_document.file_meta.MediaStorageSOPClassUID = "1.2.840.10008.5.1.4.1.1.2"

        result = run(check_file_meta, kos_document)

        assert result.errors[0].path == "FileMetaInformation"
        assert "does not match SOPClassUID" in result.errors[0].message

    def test_absent(self):
        result = run(check_file_meta, Dataset())

        assert result.is_valid
        assert "not present" in result.infos[0].message


class TestXdsiManifest:
    """Test the XDS-I.b manifest module on a built KOS."""

    def test_built_document(self, kos_document):
        assert run(check_xdsi_manifest, kos_document).errors == []

    def test_pixel_data_forbidden(self, kos_document):
        kos_document.PixelData = b"\x00\x00"

        result = run(check_xdsi_manifest, kos_document)

        assert "pixel data" in result.errors[0].message

    def test_image_attribute_warns(self, kos_document):
        kos_document.Rows = 512

        result = run(check_xdsi_manifest, kos_document)

        assert result.is_valid
        assert "Image Pixel" in result.warnings[0].message

    @pytest.mark.parametrize(
        "group,is_error",
        [
            pytest.param(0x6000, True, id="overlay"),
            pytest.param(0x6002, True, id="overlay-repeat"),
            pytest.param(0x5000, False, id="curve"),
        ],
    )
    def test_repeating_groups(self, kos_document, group, is_error):
        kos_document.add_new((group << 16) | 0x3000, "OW", b"\x00\x00")

        result = run(check_xdsi_manifest, kos_document)

        assert result.is_valid is not is_error
        flagged = result.errors if is_error else result.warnings
        assert f"({group:04X},3000)" in flagged[0].message

    @pytest.mark.parametrize(
        "concept,fragment",
        [
            pytest.param(
                MANIFEST_WITH_DESCRIPTION, "must be (113030", id="not-manifest"
            ),
            pytest.param(
                REJECTED_FOR_QUALITY_REASONS, "IOCM rejection note", id="iocm"
            ),
        ],
    )
    def test_title(self, kos_document, concept, fragment):
        result = run(check_xdsi_manifest, titled(kos_document, concept))

        assert len(result.errors) == 1
        assert fragment in result.errors[0].message

    def test_partial_document(self, kos_document):
        kos_document.CompletionFlag = "PARTIAL"

        result = run(check_xdsi_manifest, kos_document)

        assert "CompletionFlag" in result.errors[0].message

    def test_image_library_template(self, kos_document):
        kos_document.ContentTemplateSequence[0].TemplateIdentifier = "1600"

        result = run(check_xdsi_manifest, kos_document)

        assert "found TID 1600" in result.errors[0].message

    def test_duplicate_reference(self, kos_document):
        duplicate = copy.deepcopy(kos_document.ContentSequence[1])
        kos_document.ContentSequence.append(duplicate)

        result = run(check_xdsi_manifest, kos_document)

        assert result.errors[0].path == (
            "XDSIManifest>ContentSequence[4]>ReferencedSOPSequence[0]"
        )
        assert "Duplicate" in result.errors[0].message

    def test_self_reference(self, kos_document):
        reference = kos_document.ContentSequence[2].ReferencedSOPSequence[0]
        reference.ReferencedSOPInstanceUID = kos_document.SOPInstanceUID

        result = run(check_xdsi_manifest, kos_document)

        assert "references itself" in result.errors[0].message

    def test_top_level_relationship(self, kos_document):
        """Verify top-level items must be CONTAINS."""
        kos_document.ContentSequence[0].RelationshipType = "HAS OBS CONTEXT"

        result = run(check_xdsi_manifest, kos_document)

        assert result.errors[0].path == "XDSIManifest>ContentSequence[0]"


class TestMadoHeader:
    """Test MADO tightening of the IE modules."""

    def test_built_document(self, mado_document):
        for check in (
            check_mado_title,
            check_mado_patient,
            check_mado_study,
            check_mado_equipment,
            check_mado_sop_common,
            check_mado_profile,
        ):
            assert run(check, mado_document).errors == [], check.__name__

    @pytest.mark.parametrize(
        "concept,valid",
        [
            pytest.param(MANIFEST, True, id="manifest"),
            pytest.param(MANIFEST_WITH_DESCRIPTION, True, id="with-description"),
            pytest.param(OF_INTEREST, False, id="of-interest"),
            pytest.param(CodedConcept("ddd001", "99LOCAL", "x"), False, id="scheme"),
        ],
    )
    def test_title(self, mado_document, concept, valid):
        result = run(check_mado_title, titled(mado_document, concept))

        assert result.is_valid is valid

    def test_patient_id_required(self, mado_document):
        mado_document.PatientID = ""

        result = run(check_mado_patient, mado_document)

        assert "PatientID" in result.errors[0].message

    def test_issuer_type_must_be_iso(self, mado_document):
        qualifiers = mado_document.IssuerOfPatientIDQualifiersSequence[0]
        qualifiers.UniversalEntityIDType = "DNS"

        result = run(check_mado_patient, mado_document)

        assert result.errors[0].path == "Patient>IssuerOfPatientIDQualifiers[0]"
        assert any("OtherPatientIDsSequence" in m.message for m in result.infos)

    def test_accession_required(self, mado_document):
        mado_document.AccessionNumber = ""

        result = run(check_mado_study, mado_document)

        assert "AccessionNumber" in result.errors[0].message

    def test_accession_issuer_required(self, mado_document):
        del mado_document.IssuerOfAccessionNumberSequence

        result = run(check_mado_study, mado_document)

        assert "IssuerOfAccessionNumberSequence" in result.errors[0].message

    def test_several_requests_with_accession(self, mado_document):
        """Verify a multi-request manifest must leave AccessionNumber empty."""
        requests = mado_document.ReferencedRequestSequence
        requests.append(copy.deepcopy(requests[0]))

        result = run(check_mado_study, mado_document)

        assert "must be empty when the manifest covers 2 requests" in (
            result.errors[0].message
        )

    def test_several_requests_without_accession(self, mado_document):
        requests = mado_document.ReferencedRequestSequence
        requests.append(copy.deepcopy(requests[0]))
        mado_document.AccessionNumber = ""

        assert run(check_mado_study, mado_document).errors == []

    def test_institution_code_is_alternative(self, mado_document):
        del mado_document.InstitutionName
        code = Dataset()
        code.CodeValue = "HOSP"
        code.CodingSchemeDesignator = "99LOCAL"
        code.CodeMeaning = "Hospital"
        mado_document.InstitutionCodeSequence = Sequence([code])

        assert run(check_mado_equipment, mado_document).errors == []

    def test_manufacturer_required(self, mado_document):
        mado_document.Manufacturer = ""

        assert not run(check_mado_equipment, mado_document).is_valid

    def test_timezone_required(self, mado_document):
        del mado_document.TimezoneOffsetFromUTC

        result = run(check_mado_sop_common, mado_document)

        assert result.errors[0].path == "SOPCommon"


class TestMadoProfileModule:
    """Test the MADOProfile module."""

    def test_request_without_placer_order(self, mado_document):
        request = mado_document.ReferencedRequestSequence[0]
        del request.PlacerOrderNumberImagingServiceRequest

        result = run(check_mado_profile, mado_document)

        assert result.errors[0].path == "MADOProfile>ReferencedRequest[0]"

    def test_missing_requests(self, mado_document):
        del mado_document.ReferencedRequestSequence

        result = run(check_mado_profile, mado_document)

        assert "ReferencedRequestSequence" in result.errors[0].message

    def test_duplicates_allowed(self, mado_document):
        """Test that the same instance may appear twice in the library."""
        group_of(mado_document).ContentSequence.append(
            copy.deepcopy(first_entry(mado_document))
        )

        assert run(check_mado_profile, mado_document).errors == []

    def test_forbidden_pixel_data(self, mado_document):
        mado_document.PixelData = b"\x00\x00"

        result = run(check_mado_profile, mado_document)

        assert result.errors[0].path == "MADOProfile"


class TestTid1600:
    """Test the Image Library shape."""

    def test_built_document(self, mado_document):
        result = run(partial(check_tid1600, verbose=True), mado_document)

        assert result.errors == []
        assert result.warnings == []
        assert any("Found 1 Image Library Group(s)" in m.message for m in result.infos)

    def test_library_study_context_accepted(self, mado_document):
        """Verify study context inside the Image Library is not flagged."""
        result = run(check_tid1600, mado_document)

        assert not any("not checked" in m.message for m in result.messages)

    def test_missing_descriptor(self, mado_document):
        group = group_of(mado_document)
        group.ContentSequence = Sequence(
            [item for item in group.ContentSequence if not has(item, SERIES_DATE)]
        )

        result = run(check_tid1600, mado_document)

        assert result.errors[0].message == (
            "Image Library Group is missing (ddd003, DCM, 'Series Date')"
        )
        assert result.errors[0].path.startswith("TID1600>ImageLibrary[0]>Group[")

    def test_composite_entry_warns(self, mado_document):
        first_entry(mado_document).ValueType = "COMPOSITE"

        result = run(check_tid1600, mado_document)

        assert result.errors == []
        assert "COMPOSITE" in result.warnings[0].message

    def test_entry_with_two_references(self, mado_document):
        entry = first_entry(mado_document)
        duplicate = copy.deepcopy(entry.ReferencedSOPSequence[0])
        entry.ReferencedSOPSequence.append(duplicate)

        result = run(check_tid1600, mado_document)

        assert "exactly one instance, found 2" in result.errors[0].message

    def test_instance_number_must_be_text(self, mado_document):
        child = next(
            item
            for item in first_entry(mado_document).ContentSequence
            if has(item, INSTANCE_NUMBER)
        )
        child.ValueType = "NUM"

        result = run(check_tid1600, mado_document)

        assert "Instance Number must be a TEXT item" in result.errors[0].message

    def test_multiframe_needs_frames(self, mado_document):
        reference = first_entry(mado_document).ReferencedSOPSequence[0]
        reference.ReferencedSOPClassUID = ENHANCED_CT_IMAGE_STORAGE

        result = run(check_tid1600, mado_document)

        assert "Number of Frames expected" in result.warnings[0].message

    def test_key_object_reference_without_title(self, mado_document):
        """Verify key object notes in the library need a KOS title."""
        entry = first_entry(mado_document)
        entry.ContentSequence.append(uidref_item(SOP_INSTANCE_UID, "1.2.3.4"))

        result = run(check_tid1600, mado_document)

        assert len(result.errors) == 1
        assert "KOS Title" in result.errors[0].message

    def test_non_mado_root_title(self, mado_document):
        result = run(check_tid1600, titled(mado_document, OF_INTEREST))

        assert result.is_valid
        assert "not a MADO manifest title" in result.warnings[0].message

    def test_empty_library(self, mado_document):
        del library_of(mado_document).ContentSequence

        result = run(check_tid1600, mado_document)

        assert "Image Library container has no content" in result.errors[0].message

    def test_missing_target_region(self, mado_document):
        mado_document.ContentSequence = Sequence(
            [
                item
                for item in mado_document.ContentSequence
                if not has(item, TARGET_REGION)
            ]
        )

        result = run(check_tid1600, mado_document)

        assert "Study context item (123014, DCM, 'Target Region')" in (
            result.errors[0].message
        )

    def test_local_target_region_scheme(self, mado_document):
        region = next(
            item for item in mado_document.ContentSequence if has(item, TARGET_REGION)
        )
        region.ConceptCodeSequence[0].CodingSchemeDesignator = "99LOCAL"

        result = run(check_tid1600, mado_document)

        assert result.is_valid
        assert any("coding scheme '99LOCAL'" in m.message for m in result.infos)

    def test_root_must_be_container(self, mado_document):
        mado_document.ValueType = "TEXT"

        result = run(check_tid1600, mado_document)

        assert [m.message for m in result.messages] == [
            "Root content item must be a CONTAINER"
        ]
