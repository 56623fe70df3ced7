"""Shared constants for manifest construction and validation.

Coded concepts, SOP class UIDs and generator probabilities used across the
builders, the validator and the adversarial generator. Codes with a
``ddd`` prefix are the provisional IHE RAD MADO codes (scheme DCM).

References:
- DICOM PS3.3 A.35.4 Key Object Selection Document IOD
- DICOM PS3.16 TID 2010 Key Object Selection, TID 1600 Image Library
- IHE RAD TF-3 XDS-I.b and MADO profiles

"""

from __future__ import annotations

from typing import Final

from dicom_manifest.core.types import CodedConcept

# =============================================================================
# SOP Classes and Transfer Syntaxes
# =============================================================================

#: Key Object Selection Document Storage
KOS_SOP_CLASS_UID: Final[str] = "1.2.840.10008.5.1.4.1.1.88.59"

#: CT Image Storage
CT_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.2"

#: Enhanced CT Image Storage
ENHANCED_CT_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.2.1"

#: Secondary Capture Image Storage
SECONDARY_CAPTURE_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.7"

#: Ultrasound Image Storage
US_IMAGE_STORAGE: Final[str] = "1.2.840.10008.5.1.4.1.1.6.1"

#: Verification SOP Class (never a storable object)
VERIFICATION_SOP_CLASS: Final[str] = "1.2.840.10008.1.1"

#: Explicit VR Little Endian
EXPLICIT_VR_LITTLE_ENDIAN: Final[str] = "1.2.840.10008.1.2.1"

#: SOP classes whose instances carry NumberOfFrames
MULTIFRAME_SOP_CLASSES: Final[frozenset[str]] = frozenset(
    {
        "1.2.840.10008.5.1.4.1.1.2.1",  # Enhanced CT
        "1.2.840.10008.5.1.4.1.1.2.2",  # Legacy Converted Enhanced CT
        "1.2.840.10008.5.1.4.1.1.3.1",  # US Multi-frame
        "1.2.840.10008.5.1.4.1.1.4.1",  # Enhanced MR
        "1.2.840.10008.5.1.4.1.1.4.3",  # Enhanced MR Color
        "1.2.840.10008.5.1.4.1.1.4.4",  # Legacy Converted Enhanced MR
        "1.2.840.10008.5.1.4.1.1.6.2",  # Enhanced US Volume
        "1.2.840.10008.5.1.4.1.1.7.1",  # Multi-frame Single Bit SC
        "1.2.840.10008.5.1.4.1.1.7.2",  # Multi-frame Grayscale Byte SC
        "1.2.840.10008.5.1.4.1.1.7.3",  # Multi-frame Grayscale Word SC
        "1.2.840.10008.5.1.4.1.1.7.4",  # Multi-frame True Color SC
        "1.2.840.10008.5.1.4.1.1.12.1.1",  # Enhanced XA
        "1.2.840.10008.5.1.4.1.1.12.2.1",  # Enhanced XRF
        "1.2.840.10008.5.1.4.1.1.77.1.6",  # VL Whole Slide Microscopy
        "1.2.840.10008.5.1.4.1.1.128.1",  # Legacy Converted Enhanced PET
        "1.2.840.10008.5.1.4.1.1.130",  # Enhanced PET
    }
)

# =============================================================================
# Templates
# =============================================================================

#: Mapping resource for DICOM templates
DCMR: Final[str] = "DCMR"

#: TID 2010 Key Object Selection
TID_KEY_OBJECT_SELECTION: Final[str] = "2010"

#: TID 1600 Image Library (MADO)
TID_IMAGE_LIBRARY: Final[str] = "1600"

# =============================================================================
# Document Titles (CID 7010)
# =============================================================================

MANIFEST: Final = CodedConcept("113030", "DCM", "Manifest")
MANIFEST_WITH_DESCRIPTION: Final = CodedConcept(
    "ddd001", "DCM", "Manifest with Description"
)
SIGNED_MANIFEST: Final = CodedConcept("113031", "DCM", "Signed Manifest")
OF_INTEREST: Final = CodedConcept("113000", "DCM", "Of Interest")
REJECTED_FOR_QUALITY_REASONS: Final = CodedConcept(
    "113001", "DCM", "Rejected for Quality Reasons"
)
QUALITY_ISSUE: Final = CodedConcept("113010", "DCM", "Quality Issue")
BEST_IN_SET: Final = CodedConcept("113013", "DCM", "Best In Set")

#: IOCM rejection titles that must not appear in a manifest
IOCM_REJECTION_CODES: Final[frozenset[str]] = frozenset(
    {
        "113001",  # Rejected for Quality Reasons
        "113037",  # Rejected for Patient Safety Reasons
        "113039",  # Data Retention Policy Expired
    }
)

#: Titles that require a HAS CONCEPT MOD title modifier
TITLES_REQUIRING_MODIFIER: Final[frozenset[str]] = frozenset(
    {"113001", "113010", "113013"}
)

#: Accepted MADO document titles
MADO_TITLE_CODES: Final[frozenset[str]] = frozenset({"113030", "ddd001"})

# =============================================================================
# Content Item Concepts
# =============================================================================

KEY_OBJECT_DESCRIPTION: Final = CodedConcept(
    "113012", "DCM", "Key Object Description"
)
TITLE_MODIFIER: Final = CodedConcept("113011", "DCM", "Document Title Modifier")
IMAGE_LIBRARY: Final = CodedConcept("111028", "DCM", "Image Library")
IMAGE_LIBRARY_GROUP: Final = CodedConcept("126200", "DCM", "Image Library Group")
MODALITY: Final = CodedConcept("121139", "DCM", "Modality")
TARGET_REGION: Final = CodedConcept("123014", "DCM", "Target Region")
NUMBER_OF_FRAMES: Final = CodedConcept("121140", "DCM", "Number of Frames")
STUDY_INSTANCE_UID: Final = CodedConcept("ddd011", "DCM", "Study Instance UID")
SERIES_DESCRIPTION: Final = CodedConcept("ddd002", "DCM", "Series Description")
SERIES_DATE: Final = CodedConcept("ddd003", "DCM", "Series Date")
SERIES_TIME: Final = CodedConcept("ddd004", "DCM", "Series Time")
SERIES_NUMBER: Final = CodedConcept("ddd005", "DCM", "Series Number")
SERIES_INSTANCE_UID: Final = CodedConcept("ddd006", "DCM", "Series Instance UID")
SOP_INSTANCE_UID: Final = CodedConcept("ddd007", "DCM", "SOP Instance UID")
KOS_TITLE: Final = CodedConcept("ddd008", "DCM", "KOS Title")
KOS_OBJECT_DESCRIPTION: Final = CodedConcept(
    "ddd009", "DCM", "KOS Object Description"
)
INSTANCE_NUMBER: Final = CodedConcept("ddd012", "DCM", "Instance Number")
NUMBER_OF_SERIES_RELATED_INSTANCES: Final = CodedConcept(
    "ddd013", "DCM", "Number of Series Related Instances"
)
NO_UNITS: Final = CodedConcept("1", "UCUM", "no units")
ABDOMEN: Final = CodedConcept("T-D4000", "SRT", "Abdomen")

#: Coding schemes accepted for a target region without an INFO note
ANATOMY_SCHEMES: Final[frozenset[str]] = frozenset({"SCT", "SRT", "SNM3", "FMA"})

# =============================================================================
# Header Defaults
# =============================================================================

DEFAULT_PATIENT_ID: Final[str] = "UNKNOWN"
DEFAULT_PATIENT_NAME: Final[str] = "UNKNOWN^PATIENT"
DEFAULT_PATIENT_SEX: Final[str] = "O"
DEFAULT_STUDY_ID: Final[str] = "1"
DEFAULT_SERIES_DESCRIPTION: Final[str] = "(no Series Description)"
UTF8_CHARACTER_SET: Final[str] = "ISO_IR 192"

#: Maximum length of a UI value
MAX_UID_LENGTH: Final[int] = 64

#: Maximum length of an AE value
MAX_AE_TITLE_LENGTH: Final[int] = 16

# =============================================================================
# Adversarial Generator Probabilities
# =============================================================================

#: Probability that a construction step is skipped
SKIP_STEP_P: Final[float] = 0.20

#: Probability that one written field is corrupted
CORRUPT_P: Final[float] = 0.05

#: Probability that a MADO document receives a catalogued violation
MADO_VIOLATION_P: Final[float] = 0.35

#: Probability that evidence and content are desynchronized
EVIDENCE_MISMATCH_P: Final[float] = 0.40

#: Probability that forbidden attributes are added
FORBIDDEN_TAG_P: Final[float] = 0.30

# =============================================================================
# Attributes a Manifest Must Not Carry
# =============================================================================

#: Bulk data whose presence is an error: (keyword, description)
FORBIDDEN_BULK_DATA: Final[tuple[tuple[str, str], ...]] = (
    ("PixelData", "pixel data"),
    ("FloatPixelData", "pixel data"),
    ("DoubleFloatPixelData", "pixel data"),
    ("WaveformData", "waveform data"),
    ("AudioSampleData", "audio data"),
    ("SpectroscopyData", "spectroscopy data"),
)

#: Image-level attributes whose presence is a warning: (keyword, module)
FORBIDDEN_IMAGE_ATTRIBUTES: Final[tuple[tuple[str, str], ...]] = (
    ("Rows", "Image Pixel"),
    ("Columns", "Image Pixel"),
    ("BitsAllocated", "Image Pixel"),
    ("BitsStored", "Image Pixel"),
    ("HighBit", "Image Pixel"),
    ("PixelRepresentation", "Image Pixel"),
    ("WindowCenter", "VOI LUT"),
    ("WindowWidth", "VOI LUT"),
    ("VOILUTSequence", "VOI LUT"),
    ("ModalityLUTSequence", "Modality LUT"),
    ("RescaleIntercept", "Modality LUT"),
    ("RescaleSlope", "Modality LUT"),
    ("ImagePositionPatient", "image plane"),
    ("ImageOrientationPatient", "image plane"),
    ("SliceLocation", "image plane"),
    ("SliceThickness", "image plane"),
    ("KVP", "acquisition"),
    ("ExposureTime", "acquisition"),
    ("XRayTubeCurrent", "acquisition"),
)

#: Element number of overlay (60xx) and curve (50xx) data
REPEATING_GROUP_DATA_ELEMENT: Final[int] = 0x3000
OVERLAY_GROUP_BASE: Final[int] = 0x6000
CURVE_GROUP_BASE: Final[int] = 0x5000
