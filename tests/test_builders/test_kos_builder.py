"""Tests for the KOS manifest builder."""

import pytest
from conftest import (
    FIXED_NOW,
    INSTANCE_UIDS,
    SERIES_UID,
    STUDY_UID,
    make_instance,
    make_series,
    sequential_uids,
)
from pydicom.dataset import Dataset

from dicom_manifest.builders.base import (
    instance_sort_key,
    sort_instances,
    timezone_offset,
)
from dicom_manifest.builders.kos import KosManifestBuilder, build_kos
from dicom_manifest.core.constants import (
    CT_IMAGE_STORAGE,
    EXPLICIT_VR_LITTLE_ENDIAN,
    KOS_SOP_CLASS_UID,
)
from dicom_manifest.core.exceptions import ConstructionError
from dicom_manifest.model.evidence import collect_evidence_references
from dicom_manifest.validation import validate
from dicom_manifest.validation.content_tree import collect_content_references


class TestKosScenario:
    """One series of three instances."""

    def test_evidence_lists_three_references(self, kos_document):
        """Verify the evidence enumerates every instance once."""
        refs = collect_evidence_references(kos_document)

        assert [uid for _, uid in refs] == INSTANCE_UIDS

    def test_content_has_three_image_leaves(self, kos_document):
        """Verify the flat content tree references the same instances."""
        images = [
            item for item in kos_document.ContentSequence if item.ValueType == "IMAGE"
        ]

        assert len(images) == 3
        assert [
            item.ReferencedSOPSequence[0].ReferencedSOPInstanceUID for item in images
        ] == INSTANCE_UIDS

    def test_valid_under_generic_profile(self, kos_document):
        """Verify the built document has no ERROR under profile none."""
        result = validate(kos_document, "none")

        assert result.is_valid, str(result)

    def test_valid_as_xdsi_manifest(self, kos_document):
        """Verify the KOS shape satisfies the XDS-I.b manifest profile."""
        result = validate(kos_document, "IHEXDSIManifest")

        assert result.is_valid, str(result)

    def test_evidence_matches_content(self, kos_document):
        """Property: evidence and content reference the same pairs."""
        assert sorted(collect_evidence_references(kos_document)) == sorted(
            collect_content_references(kos_document)
        )


class TestKosHeader:
    """Test header modules and file meta."""

    def test_document_identity(self, kos_document):
        assert kos_document.SOPClassUID == KOS_SOP_CLASS_UID
        assert kos_document.Modality == "KO"
        assert kos_document.StudyInstanceUID == STUDY_UID
        assert kos_document.ConceptNameCodeSequence[0].CodeValue == "113030"
        assert kos_document.ContentTemplateSequence[0].TemplateIdentifier == "2010"

    def test_injected_clock_and_uids(self, kos_document):
        """Verify the clock and UID factory collaborators are used."""
        assert kos_document.SOPInstanceUID == "1.2.826.0.1.3680043.8.498.9.1"
        assert kos_document.ContentDate == FIXED_NOW.strftime("%Y%m%d")
        assert kos_document.TimezoneOffsetFromUTC == "+0100"

    def test_file_meta(self, kos_document):
        """Verify the document is directly writable."""
        meta = kos_document.file_meta

        assert meta.MediaStorageSOPClassUID == KOS_SOP_CLASS_UID
        assert meta.MediaStorageSOPInstanceUID == kos_document.SOPInstanceUID
        assert meta.TransferSyntaxUID == EXPLICIT_VR_LITTLE_ENDIAN

    def test_writes_and_reads_back(self, kos_document, temp_dir):
        """Verify the document survives a write/read cycle."""
        import pydicom

        path = temp_dir / "kos.dcm"
        kos_document.save_as(path, enforce_file_format=True)
        reread = pydicom.dcmread(path)

        assert reread.SOPInstanceUID == kos_document.SOPInstanceUID
        assert len(reread.ContentSequence) == len(kos_document.ContentSequence)

    def test_retrieval_addressing(self, kos_document):
        """Verify every evidence series says where its instances live."""
        series = kos_document.CurrentRequestedProcedureEvidenceSequence[0]
        item = series.ReferencedSeriesSequence[0]

        assert item.RetrieveURL.endswith(f"/{STUDY_UID}/series/{SERIES_UID}")
        assert item.RetrieveLocationUID
        assert item.RetrieveAETitle == "MANIFEST_SCP"

    def test_patient_defaults(self, series_records, instance_records):
        """Test that missing patient data falls back to defaults."""
        study = Dataset()
        study.StudyInstanceUID = STUDY_UID
        study.PatientSex = "unknown"

        document = build_kos(study, series_records, instance_records)

        assert document.PatientID == "UNKNOWN"
        assert document.PatientSex == "O"


class TestUidNormalization:
    """Test that evidence and content carry byte-identical UIDs."""

    def test_zero_padded_uids_normalized(self, study_record):
        series = make_series("1.2.840.0099.1")
        instances = {"1.2.840.0099.1": [make_instance("1.2.840.0099.1.007", 1)]}

        document = build_kos(study_record, [series], instances)

        evidence = document.CurrentRequestedProcedureEvidenceSequence[0]
        series_item = evidence.ReferencedSeriesSequence[0]
        assert series_item.SeriesInstanceUID == "1.2.840.99.1"
        assert collect_evidence_references(document) == [
            (CT_IMAGE_STORAGE, "1.2.840.99.1.7")
        ]
        assert collect_content_references(document) == [
            (CT_IMAGE_STORAGE, "1.2.840.99.1.7")
        ]


class TestConstructionFailures:
    """Test the empty-study boundary."""

    def test_study_not_found(self, series_records, instance_records):
        with pytest.raises(ConstructionError) as exc_info:
            build_kos(None, series_records, instance_records)

        assert exc_info.value.error_code == ConstructionError.STUDY_NOT_FOUND

    def test_no_series(self, study_record):
        with pytest.raises(ConstructionError) as exc_info:
            build_kos(study_record, [], {})

        assert exc_info.value.error_code == ConstructionError.NO_SERIES
        assert exc_info.value.context["study_uid"] == STUDY_UID

    def test_no_instances(self, study_record, series_records):
        """Verify a study whose series are empty produces no document."""
        with pytest.raises(ConstructionError, match="No instances found"):
            build_kos(study_record, series_records, {SERIES_UID: []})

    def test_instances_without_uid_skipped(self, study_record, series_records):
        """Test that records lacking SOPInstanceUID are not referenced."""
        record = Dataset()
        record.SOPClassUID = CT_IMAGE_STORAGE

        with pytest.raises(ConstructionError) as exc_info:
            build_kos(study_record, series_records, {SERIES_UID: [record]})

        assert exc_info.value.error_code == ConstructionError.NO_INSTANCES


class TestStepGate:
    """Test optional-step omission."""

    def test_skipped_steps_recorded(
        self, study_record, series_records, instance_records
    ):
        """Verify refused steps are recorded and not written."""
        builder = KosManifestBuilder(
            uid_factory=sequential_uids(),
            step_gate=lambda step: step not in ("PatientID", "ContentTemplateSequence"),
        )

        document = builder.build(study_record, series_records, instance_records)

        assert "PatientID" not in document
        assert "ContentTemplateSequence" not in document
        assert builder.skipped_steps == ["PatientID", "ContentTemplateSequence"]

    def test_every_step_skipped_still_builds(
        self, study_record, series_records, instance_records
    ):
        """Test that the builder survives a gate refusing everything."""
        builder = KosManifestBuilder(step_gate=lambda step: False)

        document = builder.build(study_record, series_records, instance_records)

        assert document.SOPClassUID == KOS_SOP_CLASS_UID
        assert "CurrentRequestedProcedureEvidenceSequence" in builder.skipped_steps
        assert not validate(document).is_valid

    def test_custom_description(self, study_record, series_records, instance_records):
        document = build_kos(
            study_record, series_records, instance_records, description="For review"
        )

        assert document.ContentSequence[0].TextValue == "For review"


class TestInstanceOrdering:
    """Test instance sort keys shared by both builders."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            pytest.param(7, 7, id="int"),
            pytest.param(" 12 ", 12, id="padded-text"),
        ],
    )
    def test_numeric_keys(self, value, expected):
        record = Dataset()
        record.InstanceNumber = value

        assert instance_sort_key(record) == expected

    def test_missing_and_non_numeric_sort_last_stably(self):
        """Verify unusable numbers go last and keep source order."""
        missing = make_instance("1.1", None)
        text = Dataset()
        text.SOPInstanceUID = "1.2"
        text.add_new(0x00200013, "LO", "abc")
        numbered = [make_instance("1.3", 3), make_instance("1.4", 1)]

        ordered = sort_instances([missing, numbered[0], text, numbered[1]])

        assert [r.SOPInstanceUID for r in ordered] == ["1.4", "1.3", "1.1", "1.2"]

    def test_timezone_offset_of_naive_time(self):
        """Test that a naive time formats as +0000."""
        assert timezone_offset(FIXED_NOW.replace(tzinfo=None)) == "+0000"
