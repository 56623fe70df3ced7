"""
Pytest configuration and shared fixtures for dicom-manifest tests.
"""

import logging
import tempfile
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import structlog
from pydicom.dataset import Dataset

from dicom_manifest.adversarial.dice import Dice
from dicom_manifest.builders.kos import build_kos
from dicom_manifest.builders.mado import build_mado
from dicom_manifest.core.constants import CT_IMAGE_STORAGE

STUDY_UID = "1.2.826.0.1.3680043.8.498.1"
SERIES_UID = "1.2.826.0.1.3680043.8.498.1.1"
INSTANCE_UIDS = [f"1.2.826.0.1.3680043.8.498.1.1.{n}" for n in (1, 2, 3)]

#: Fixed clock so built documents do not depend on the wall clock
FIXED_NOW = datetime(2024, 3, 14, 9, 26, 53, tzinfo=timezone(timedelta(hours=1)))


def fixed_clock() -> datetime:
    return FIXED_NOW


def sequential_uids(prefix: str = "1.2.826.0.1.3680043.8.498.9"):
    """UID factory returning prefix.1, prefix.2, ..."""
    counter = iter(range(1, 10_000))
    return lambda: f"{prefix}.{next(counter)}"


def make_study(accession: str = "") -> Dataset:
    study = Dataset()
    study.StudyInstanceUID = STUDY_UID
    study.StudyDate = "20240314"
    study.StudyTime = "081500"
    study.PatientName = "Doe^Jane"
    study.PatientID = "PAT001"
    study.IssuerOfPatientID = "HOSPITAL_A"
    study.PatientBirthDate = "19750315"
    study.PatientSex = "F"
    study.StudyID = "42"
    study.AccessionNumber = accession
    return study


def make_series(series_uid: str = SERIES_UID, modality: str = "CT") -> Dataset:
    series = Dataset()
    series.SeriesInstanceUID = series_uid
    series.Modality = modality
    series.SeriesDescription = "Abdomen Routine"
    series.SeriesNumber = 1
    series.SeriesDate = "20240314"
    series.SeriesTime = "082000"
    return series


def make_instance(
    sop_instance_uid: str,
    instance_number=None,
    sop_class_uid: str = CT_IMAGE_STORAGE,
) -> Dataset:
    instance = Dataset()
    instance.SOPClassUID = sop_class_uid
    instance.SOPInstanceUID = sop_instance_uid
    if instance_number is not None:
        instance.InstanceNumber = instance_number
    return instance


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files.

    Yields:
        Path to temporary directory that will be cleaned up after test
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def study_record() -> Dataset:
    """Study-level query record without an accession number."""
    return make_study()


@pytest.fixture
def mado_study_record() -> Dataset:
    """Study-level query record with the accession number MADO requires."""
    return make_study(accession="ACC-2024-0042")


@pytest.fixture
def series_records() -> list[Dataset]:
    """One CT series."""
    return [make_series()]


@pytest.fixture
def instance_records() -> dict[str, list[Dataset]]:
    """Three CT instances of the single series, keyed by series UID."""
    return {
        SERIES_UID: [
            make_instance(uid, number)
            for number, uid in enumerate(INSTANCE_UIDS, start=1)
        ]
    }


@pytest.fixture
def builder_options() -> dict:
    """Deterministic builder collaborators."""
    return {"uid_factory": sequential_uids(), "clock": fixed_clock}


@pytest.fixture
def kos_document(study_record, series_records, instance_records, builder_options):
    """KOS manifest of one series with three instances."""
    return build_kos(study_record, series_records, instance_records, **builder_options)


@pytest.fixture
def mado_document(
    mado_study_record, series_records, instance_records, builder_options
):
    """MADO manifest of one series with three instances."""
    return build_mado(
        mado_study_record, series_records, instance_records, **builder_options
    )


@pytest.fixture
def dice() -> Dice:
    """Seeded dice; every test sees the same sequence."""
    return Dice.from_seed(1234)


@pytest.fixture
def reset_structlog():
    """Reset structlog configuration after each test.

    This ensures tests don't interfere with each other's logging configuration.
    """
    yield

    structlog.reset_defaults()
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)


@pytest.fixture
def capture_logs(reset_structlog):
    """Capture log output for testing.

    Returns:
        List that will contain captured log entries
    """
    captured = []

    def capture_processor(logger, method_name, event_dict):
        """Capture event dict before rendering."""
        captured.append(event_dict.copy())
        return event_dict

    logging.basicConfig(level=logging.DEBUG)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            capture_processor,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    yield captured

    captured.clear()
