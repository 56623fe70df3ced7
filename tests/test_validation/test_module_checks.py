"""Tests for attribute rules, IE module tables and the content tree walker."""

import pytest
from pydicom.dataset import Dataset
from pydicom.multival import MultiValue
from pydicom.sequence import Sequence

from dicom_manifest.core.constants import (
    CT_IMAGE_STORAGE,
    KEY_OBJECT_DESCRIPTION,
    REJECTED_FOR_QUALITY_REASONS,
)
from dicom_manifest.model.result import ValidationResult, ValidationSeverity
from dicom_manifest.validation.content_tree import (
    check_content_item,
    walk_content,
)
from dicom_manifest.validation.modules import (
    check_key_object_document_module,
    check_patient_module,
    check_series_module,
    check_sr_document_content_module,
    check_study_module,
    iter_referenced_instances,
)
from dicom_manifest.validation.rules import (
    AttributeRule,
    RuleKind,
    check_conditional,
    check_uid,
    is_empty,
    sequence_items,
    tag_label,
)


def run(check, dataset) -> ValidationResult:
    result = ValidationResult()
    check(dataset, result)
    return result


def text_item(concept, value, relationship="CONTAINS") -> Dataset:
    item = Dataset()
    item.RelationshipType = relationship
    item.ValueType = "TEXT"
    item.ConceptNameCodeSequence = Sequence([concept.to_dataset()])
    item.TextValue = value
    return item


class TestRules:
    """Test the attribute rule helpers."""

    def test_tag_label(self):
        assert tag_label("PatientID") == "PatientID (0010,0020)"
        assert tag_label("NotAKeyword") == "NotAKeyword"

    @pytest.mark.parametrize(
        "value,expected",
        [
            pytest.param(None, True, id="none"),
            pytest.param("   ", True, id="blank"),
            pytest.param(b"", True, id="empty-bytes"),
            pytest.param([], True, id="empty-list"),
            pytest.param(Sequence([]), True, id="empty-sequence"),
            pytest.param(Sequence([Dataset()]), False, id="sequence"),
            pytest.param(MultiValue(str, []), True, id="empty-multivalue"),
            pytest.param("x", False, id="text"),
            pytest.param(0, False, id="zero"),
        ],
    )
    def test_is_empty(self, value, expected):
        assert is_empty(value) is expected

    def test_sequence_items_of_pydicom_sequence(self):
        """Verify items of a pydicom Sequence are returned as a list."""
        code = Dataset()
        code.CodeValue = "113000"
        dataset = Dataset()
        dataset.ConceptNameCodeSequence = Sequence([code])

        assert sequence_items(dataset, "ConceptNameCodeSequence") == [code]
        assert sequence_items(dataset, "ContentSequence") == []

    @pytest.mark.parametrize(
        "value,passed,severity",
        [
            pytest.param("1.2.840.10008.1.1", True, None, id="valid"),
            pytest.param("", True, None, id="empty-left-to-presence"),
            pytest.param("1.2.a", False, ValidationSeverity.ERROR, id="letters"),
            pytest.param("1..2", False, ValidationSeverity.ERROR, id="empty-part"),
            pytest.param("1.2.", False, ValidationSeverity.ERROR, id="trailing-dot"),
            pytest.param("1.2.03", True, ValidationSeverity.WARNING, id="lead-zero"),
            pytest.param("1." * 32 + "1", False, ValidationSeverity.ERROR, id="long"),
        ],
    )
    def test_check_uid(self, value, passed, severity):
        """Verify UID syntax findings and their severity."""
        result = ValidationResult()

        assert check_uid(value, "UID", result, "Test") is passed
        assert [m.severity for m in result.messages] == (
            [severity] if severity else []
        )

    def test_conditional_not_triggered(self):
        """Test that a false condition never reports."""
        result = ValidationResult()

        assert check_conditional(Dataset(), "PatientID", False, "x", result, "M")
        assert result.messages == []

    def test_conditional_triggered(self):
        result = ValidationResult()

        assert not check_conditional(
            Dataset(), "PatientID", True, "the moon is full", result, "M"
        )
        assert "required when the moon is full" in result.errors[0].message

    def test_exact_rule(self):
        dataset = Dataset()
        dataset.Modality = "CT"
        result = ValidationResult()

        passed = AttributeRule("Modality", RuleKind.EXACT, ("KO",)).evaluate(
            dataset, result, "Series"
        )

        assert not passed
        assert "must be 'KO', found 'CT'" in result.errors[0].message

    def test_type1_rule_severity(self):
        """Verify a rule can downgrade a missing attribute to a warning."""
        result = ValidationResult()
        rule = AttributeRule(
            "IssuerOfPatientID", RuleKind.TYPE1, severity=ValidationSeverity.WARNING
        )

        rule.evaluate(Dataset(), result, "Patient")

        assert result.is_valid
        assert len(result.warnings) == 1


class TestModuleTables:
    """Test the IE module passes on a built KOS."""

    def test_built_document_passes(self, kos_document):
        for check in (
            check_patient_module,
            check_study_module,
            check_series_module,
            check_key_object_document_module,
            check_sr_document_content_module,
        ):
            assert run(check, kos_document).errors == [], check.__name__

    def test_invalid_patient_sex(self, kos_document):
        kos_document.PatientSex = "X"

        result = run(check_patient_module, kos_document)

        assert len(result.errors) == 1
        assert "PatientSex" in result.errors[0].message

    def test_missing_issuer_is_warning(self, kos_document):
        del kos_document.IssuerOfPatientID

        result = run(check_patient_module, kos_document)

        assert result.is_valid
        assert "IssuerOfPatientID" in result.warnings[0].message

    def test_type2_absent_vs_empty(self, kos_document):
        """Test that Type 2 attributes may be empty but not absent."""
        kos_document.PatientBirthDate = ""
        assert run(check_patient_module, kos_document).is_valid

        del kos_document.PatientBirthDate
        assert not run(check_patient_module, kos_document).is_valid

    def test_study_uid_leading_zero(self, kos_document):
        kos_document.StudyInstanceUID = "1.2.03.4"

        result = run(check_study_module, kos_document)

        assert result.is_valid
        assert "leading zero" in result.warnings[0].message

    def test_series_modality_must_be_ko(self, kos_document):
        kos_document.Modality = "CT"

        result = run(check_series_module, kos_document)

        assert result.errors[0].path == "Series"
        assert "'KO'" in result.errors[0].message


class TestKeyObjectDocumentModule:
    """Test evidence and identical-document checks."""

    def test_evidence_required_when_referencing(self, kos_document):
        del kos_document.CurrentRequestedProcedureEvidenceSequence

        result = run(check_key_object_document_module, kos_document)

        assert any(
            "required when the document references instances" in m.message
            for m in result.errors
        )

    def test_bad_retrieve_url_in_evidence(self, kos_document):
        """Verify evidence series addressing is format-checked."""
        evidence = kos_document.CurrentRequestedProcedureEvidenceSequence[0]
        evidence.ReferencedSeriesSequence[0].RetrieveURL = "ftp://pacs /x"

        result = run(check_key_object_document_module, kos_document)

        assert result.errors[0].path == "KeyObjectDocument>Evidence[0]>Series[0]"
        assert "RetrieveURL" in result.errors[0].message

    def test_evidence_sop_without_class(self, kos_document):
        study = kos_document.CurrentRequestedProcedureEvidenceSequence[0]
        sop = study.ReferencedSeriesSequence[0].ReferencedSOPSequence[0]
        sop.ReferencedSOPClassUID = ""

        result = run(check_key_object_document_module, kos_document)

        assert result.errors[0].path.endswith("ReferencedSOP[0]")

    def test_multi_study_needs_identical_documents(self, kos_document):
        """Verify evidence spanning two studies requires the sequence."""
        other = Dataset()
        other.StudyInstanceUID = "1.2.3.4"
        series = Dataset()
        series.SeriesInstanceUID = "1.2.3.4.1"
        sop = Dataset()
        sop.ReferencedSOPClassUID = CT_IMAGE_STORAGE
        sop.ReferencedSOPInstanceUID = "1.2.3.4.1.1"
        series.ReferencedSOPSequence = Sequence([sop])
        other.ReferencedSeriesSequence = Sequence([series])
        kos_document.CurrentRequestedProcedureEvidenceSequence.append(other)

        result = run(check_key_object_document_module, kos_document)

        assert any("IdenticalDocumentsSequence" in m.message for m in result.errors)

    def test_identical_documents_single_study(self, kos_document):
        kos_document.IdenticalDocumentsSequence = Sequence([])

        result = run(check_key_object_document_module, kos_document)

        assert result.is_valid
        assert "single study" in result.warnings[0].message

    def test_iter_referenced_instances(self, kos_document):
        paths = [path for path, _, _ in iter_referenced_instances(kos_document)]

        assert paths[2] == "KeyObjectDocument>Evidence[0]>Series[0]>ReferencedSOP[2]"


class TestSrDocumentContent:
    """Test the SR content module."""

    def test_verified_needs_observer(self, kos_document):
        kos_document.VerificationFlag = "VERIFIED"

        result = run(check_sr_document_content_module, kos_document)

        assert len(result.errors) == 1
        assert "VerifyingObserverSequence" in result.errors[0].message

    def test_completion_flag_enumerated(self, kos_document):
        kos_document.CompletionFlag = "DONE"

        result = run(check_sr_document_content_module, kos_document)

        assert "CompletionFlag" in result.errors[0].message

    def test_root_must_be_separate(self, kos_document):
        kos_document.ContinuityOfContent = "CONTINUOUS"

        result = run(check_sr_document_content_module, kos_document)

        assert "SEPARATE" in result.errors[0].message

    def test_purpose_of_reference_forbidden(self, kos_document):
        image = kos_document.ContentSequence[1]
        image.PurposeOfReferenceCodeSequence = Sequence([Dataset()])

        result = run(check_sr_document_content_module, kos_document)

        assert result.errors[0].path == "SRDocumentContent>ContentSequence[1]"

    def test_single_description(self, kos_document):
        kos_document.ContentSequence.append(text_item(KEY_OBJECT_DESCRIPTION, "2nd"))

        result = run(check_sr_document_content_module, kos_document)

        assert "At most one Key Object Description" in result.errors[0].message

    def test_rejection_title_needs_modifier(self, kos_document):
        """Verify titles such as 113001 require a title modifier."""
        kos_document.ConceptNameCodeSequence = Sequence(
            [REJECTED_FOR_QUALITY_REASONS.to_dataset()]
        )

        result = run(check_sr_document_content_module, kos_document)

        assert "title modifier" in result.errors[0].message

    def test_no_references(self, kos_document):
        kos_document.ContentSequence = Sequence([kos_document.ContentSequence[0]])

        result = run(check_sr_document_content_module, kos_document)

        assert "references no IMAGE" in result.errors[0].message


class TestContentItems:
    """Test single content items."""

    def test_disallowed_value_type(self):
        item = Dataset()
        item.RelationshipType = "CONTAINS"
        item.ValueType = "SCOORD"
        result = ValidationResult()

        check_content_item(item, result, "Item")

        assert "Disallowed ValueType 'SCOORD'" in result.errors[0].message

    def test_num_without_units(self):
        """Verify a NUM item needs measurement units."""
        item = Dataset()
        item.RelationshipType = "CONTAINS"
        item.ValueType = "NUM"
        item.ConceptNameCodeSequence = Sequence(
            [KEY_OBJECT_DESCRIPTION.to_dataset()]
        )
        measured = Dataset()
        measured.NumericValue = 3
        item.MeasuredValueSequence = Sequence([measured])
        result = ValidationResult()

        check_content_item(item, result, "Item")

        assert result.errors[0].path == "Item>MeasuredValueSequence[0]"
        assert "MeasurementUnitsCodeSequence" in result.errors[0].message

    def test_container_without_children(self):
        item = Dataset()
        item.RelationshipType = "CONTAINS"
        item.ValueType = "CONTAINER"
        item.ConceptNameCodeSequence = Sequence(
            [KEY_OBJECT_DESCRIPTION.to_dataset()]
        )
        result = ValidationResult()

        check_content_item(item, result, "Item")

        assert result.is_valid
        assert "no ContentSequence" in result.warnings[0].message

    def test_walk_content_paths(self, mado_document):
        """Verify breadcrumbs name every level of the tree."""
        paths = [path for _, path in walk_content(mado_document)]

        assert paths[0] == "SRDocumentContent>ContentSequence[0]"
        assert any(
            path.count(">ContentSequence[") == 4 for path in paths
        ), "entry children are four levels deep"
