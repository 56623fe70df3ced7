"""Injection of attributes a manifest must not carry.

Pixel data, image pixel and LUT attributes, acquisition parameters and
overlay/curve data are added with realistic values so that a document
looks like an image header leaked into the manifest.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydicom.datadict import dictionary_VR, tag_for_keyword
from pydicom.dataset import Dataset
from pydicom.sequence import Sequence
from pydicom.tag import Tag

from dicom_manifest.core.config import get_settings
from dicom_manifest.core.constants import (
    CURVE_GROUP_BASE,
    FORBIDDEN_BULK_DATA,
    FORBIDDEN_IMAGE_ATTRIBUTES,
    OVERLAY_GROUP_BASE,
    REPEATING_GROUP_DATA_ELEMENT,
)

from .base import InjectedDefect
from .dice import Dice

CATEGORY = "forbidden"

#: Probability that a pick is overlay or curve data instead of a keyword
REPEATING_GROUP_P = 0.10

#: Number of repeating groups (60xx / 50xx with even xx)
REPEATING_GROUP_COUNT = 16

BULK_KEYWORDS = frozenset(keyword for keyword, _ in FORBIDDEN_BULK_DATA)
FORBIDDEN_KEYWORDS: tuple[str, ...] = tuple(
    keyword for keyword, _ in FORBIDDEN_BULK_DATA + FORBIDDEN_IMAGE_ATTRIBUTES
)


def _bulk(dice: Dice) -> bytes:
    # multiple of 8 keeps OW, OF and OD lengths valid
    return dice.random_bytes(8 * dice.between(2, 32))


def _lut_item(dice: Dice) -> Sequence:
    item = Dataset()
    item.LUTExplanation = dice.choice(["SOFT TISSUE", "LUNG", "BONE"])
    return Sequence([item])


#: Value factories for realistic values of each forbidden keyword
VALUE_FACTORIES: dict[str, Callable[[Dice], Any]] = {
    "Rows": lambda dice: dice.choice([256, 512, 1024]),
    "Columns": lambda dice: dice.choice([256, 512, 1024]),
    "BitsAllocated": lambda dice: dice.choice([8, 16]),
    "BitsStored": lambda dice: dice.choice([8, 12, 16]),
    "HighBit": lambda dice: dice.choice([7, 11, 15]),
    "PixelRepresentation": lambda dice: dice.choice([0, 1]),
    "WindowCenter": lambda dice: dice.choice(["40", "-600", "300"]),
    "WindowWidth": lambda dice: dice.choice(["400", "1500", "2000"]),
    "VOILUTSequence": _lut_item,
    "ModalityLUTSequence": _lut_item,
    "RescaleIntercept": lambda dice: dice.choice(["-1024", "0"]),
    "RescaleSlope": lambda dice: "1",
    "ImagePositionPatient": lambda dice: [
        "-250.0",
        "-250.0",
        f"{-dice.randbelow(400)}.5",
    ],
    "ImageOrientationPatient": lambda dice: ["1", "0", "0", "0", "1", "0"],
    "SliceLocation": lambda dice: f"{-dice.randbelow(400)}.5",
    "SliceThickness": lambda dice: dice.choice(["0.625", "1.25", "2.5", "5"]),
    "KVP": lambda dice: dice.choice(["80", "100", "120", "140"]),
    "ExposureTime": lambda dice: dice.between(500, 2000),
    "XRayTubeCurrent": lambda dice: dice.between(100, 500),
}


def _element_vr(keyword: str) -> str:
    vr = dictionary_VR(keyword)
    # ambiguous bulk VRs ("OB or OW") are written as OW
    return "OW" if " or " in vr else vr


def _add_keyword(dataset: Dataset, keyword: str, dice: Dice) -> bool:
    tag = tag_for_keyword(keyword)
    if tag is None or tag in dataset:
        return False
    if keyword in BULK_KEYWORDS:
        value: Any = _bulk(dice)
    else:
        value = VALUE_FACTORIES[keyword](dice)
    dataset.add_new(tag, _element_vr(keyword), value)
    return True


def _add_repeating_group(dataset: Dataset, dice: Dice) -> str | None:
    overlay = dice.chance(0.5)
    base = OVERLAY_GROUP_BASE if overlay else CURVE_GROUP_BASE
    group = base + 2 * dice.randbelow(REPEATING_GROUP_COUNT)
    tag = Tag(group, REPEATING_GROUP_DATA_ELEMENT)
    if tag in dataset:
        return None
    dataset.add_new(tag, "OW", dice.random_bytes(2 * dice.between(8, 128)))
    return f"{'overlay' if overlay else 'curve'}_data:{group:04X}"


def add_forbidden_tags(
    dataset: Dataset,
    dice: Dice,
    module: str | None = None,
    max_tags: int | None = None,
) -> list[InjectedDefect]:
    """Add 1 to max_tags forbidden attributes; present attributes are kept.

    Args:
        dataset: Manifest to modify in place
        dice: Source of randomness
        module: Validator module reporting forbidden attributes for the
            document's profile (None for the generic profile)
        max_tags: Upper bound of picks; Settings.generator.max_forbidden_tags
            when omitted

    Returns:
        One defect per attribute actually added

    """
    max_tags = max_tags or get_settings().generator.max_forbidden_tags
    defects = []
    for _ in range(dice.between(1, max_tags)):
        if dice.chance(REPEATING_GROUP_P):
            strategy = _add_repeating_group(dataset, dice)
            if strategy is not None:
                defects.append(InjectedDefect(CATEGORY, strategy, module))
            continue
        keyword = dice.choice(FORBIDDEN_KEYWORDS)
        if _add_keyword(dataset, keyword, dice):
            kind = "bulk_data" if keyword in BULK_KEYWORDS else "image_attribute"
            defects.append(InjectedDefect(CATEGORY, f"{kind}:{keyword}", module))
    return defects
