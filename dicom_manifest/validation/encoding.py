"""Character set and value padding checks."""

from __future__ import annotations

from collections.abc import Iterator

from pydicom.datadict import dictionary_VR, keyword_for_tag
from pydicom.dataelem import DataElement, RawDataElement
from pydicom.dataset import Dataset
from pydicom.multival import MultiValue

from dicom_manifest.core.constants import UTF8_CHARACTER_SET
from dicom_manifest.model.result import ValidationResult

#: VRs whose values are affected by SpecificCharacterSet
TEXT_VRS: frozenset[str] = frozenset(
    {
        "AE",
        "AS",
        "CS",
        "DA",
        "DS",
        "DT",
        "IS",
        "LO",
        "LT",
        "PN",
        "SH",
        "ST",
        "TM",
        "UC",
        "UR",
        "UT",
    }
)

#: VRs whose values must be padded with SPACE, never NULL
SPACE_PADDED_VRS: frozenset[str] = frozenset({"CS", "SH", "LO", "ST", "LT", "UT"})

ESC = "\x1b"


def iter_text_values(dataset: Dataset) -> Iterator[tuple[DataElement, str]]:
    """Yield (element, value) for every text value, descending into sequences."""
    for element in dataset:
        if element.VR == "SQ":
            for item in element.value or []:
                yield from iter_text_values(item)
            continue
        if element.VR not in TEXT_VRS and element.VR != "UI":
            continue
        values = element.value
        if values is None:
            continue
        if not isinstance(values, (MultiValue, list, tuple)):
            values = [values]
        for value in values:
            if isinstance(value, bytes):
                value = value.decode("latin-1", errors="replace")
            yield element, str(value)


def character_sets(dataset: Dataset) -> list[str]:
    value = dataset.get("SpecificCharacterSet")
    if value is None:
        return []
    if isinstance(value, (MultiValue, list, tuple)):
        return [str(v).strip() for v in value]
    return [str(value).strip()] if str(value).strip() else []


def check_character_set(dataset: Dataset, result: ValidationResult) -> None:
    """High-bit characters need a declared character set; ESC needs ISO 2022."""
    module = "Encoding"
    charsets = character_sets(dataset)
    has_high_bit = False
    high_bit_keyword = ""
    has_escape = False
    for element, value in iter_text_values(dataset):
        if element.VR == "UI":
            continue
        if not has_high_bit and any(ord(c) >= 0x80 for c in value):
            has_high_bit = True
            high_bit_keyword = element.keyword or str(element.tag)
        if ESC in value:
            has_escape = True

    if not charsets:
        result.add_info(
            "SpecificCharacterSet absent; default repertoire (ISO-IR 6) applies",
            module,
        )
        if has_high_bit:
            result.add_error(
                f"{high_bit_keyword} contains characters outside the default "
                "repertoire but SpecificCharacterSet is absent",
                module,
            )
    elif UTF8_CHARACTER_SET in charsets and len([c for c in charsets if c]) > 1:
        result.add_error(
            f"{UTF8_CHARACTER_SET} cannot be combined with other character sets: "
            f"{charsets}",
            module,
        )

    if has_escape:
        if any(c.startswith("ISO 2022") for c in charsets):
            result.add_info(
                "ISO 2022 escape sequences used with code extensions", module
            )
        else:
            result.add_error(
                "ESC (0x1B) found in a text value but SpecificCharacterSet declares "
                "no ISO 2022 code extension",
                module,
            )


def stored_values(dataset: Dataset) -> Iterator[tuple[str, str, str]]:
    """Yield (label, VR, value) for every text and UI value as stored.

    Elements that have not been accessed yet are still raw and keep their
    padding; pydicom strips it on conversion, so raw bytes are inspected
    wherever they are still available.
    """
    for tag in sorted(dataset.keys()):
        element = dataset.get_item(tag)
        if element is None:
            continue
        label = keyword_for_tag(tag) or str(element.tag)
        vr = element.VR
        if vr is None:
            try:
                vr = dictionary_VR(tag)
            except KeyError:
                continue
        if vr == "SQ":
            for item in dataset[tag].value or []:
                yield from stored_values(item)
            continue
        if vr not in TEXT_VRS and vr != "UI":
            continue
        if isinstance(element, RawDataElement):
            if element.value:
                yield label, vr, element.value.decode("latin-1", errors="replace")
            continue
        values = element.value
        if values is None:
            continue
        if isinstance(values, (MultiValue, list, tuple)):
            if not values:
                continue
            values = values[-1]
        if isinstance(values, bytes):
            values = values.decode("latin-1", errors="replace")
        yield label, vr, str(values)


def check_padding(dataset: Dataset, result: ValidationResult) -> None:
    """UI values are NULL-padded; text values are SPACE-padded."""
    module = "Padding"
    for label, vr, value in stored_values(dataset):
        if vr == "UI" and value.endswith(" "):
            result.add_error(
                f"{label} (UI) is padded with SPACE; UI values must be NULL-padded",
                module,
            )
        elif vr in SPACE_PADDED_VRS and value.endswith("\x00"):
            result.add_error(
                f"{label} ({vr}) is padded with NULL; text values must be "
                "SPACE-padded",
                module,
            )
