"""Timezone offset checks."""

from __future__ import annotations

import re
from datetime import datetime, timedelta

from pydicom.dataset import Dataset

from dicom_manifest.model.result import ValidationResult

from .rules import text_of

MODULE = "Timezone"

_OFFSET = re.compile(r"^([+-])(\d{2})(\d{2})$")


def parse_offset(value: str) -> timedelta | None:
    """Parse +HHMM / -HHMM into a timedelta; None when malformed or out of range."""
    match = _OFFSET.match(value)
    if not match:
        return None
    sign, hours, minutes = match.group(1), int(match.group(2)), int(match.group(3))
    if hours > 14 or minutes > 59 or (hours == 14 and minutes != 0):
        return None
    delta = timedelta(hours=hours, minutes=minutes)
    return -delta if sign == "-" else delta


def check_timezone(dataset: Dataset, result: ValidationResult) -> None:
    """Format and range of TimezoneOffsetFromUTC, and UTC content time."""
    content_date = text_of(dataset, "ContentDate")
    study_date = text_of(dataset, "StudyDate")

    if "TimezoneOffsetFromUTC" not in dataset or not text_of(
        dataset, "TimezoneOffsetFromUTC"
    ):
        result.add_warning(
            "TimezoneOffsetFromUTC absent; local times cannot be related to UTC",
            MODULE,
        )
        if study_date and content_date and study_date != content_date:
            result.add_warning(
                f"StudyDate {study_date} differs from ContentDate {content_date} "
                "and no timezone offset is given; dates may straddle midnight",
                MODULE,
            )
        return

    value = text_of(dataset, "TimezoneOffsetFromUTC")
    match = _OFFSET.match(value)
    if not match:
        result.add_error(
            f"TimezoneOffsetFromUTC '{value}' must have the form +HHMM or -HHMM",
            MODULE,
        )
        return
    offset = parse_offset(value)
    if offset is None:
        result.add_error(
            f"TimezoneOffsetFromUTC '{value}' out of range (hours 00-14, "
            "minutes 00-59, 14 only with 00 minutes)",
            MODULE,
        )
        return
    result.add_info(f"TimezoneOffsetFromUTC {value} is valid", MODULE)

    content_time = text_of(dataset, "ContentTime")
    if not content_date or not content_time:
        return
    try:
        stamp = content_date[:8] + content_time[:6].ljust(6, "0")
        local = datetime.strptime(stamp, "%Y%m%d%H%M%S")
    except ValueError:
        result.add_warning(
            f"Unable to convert ContentDate/ContentTime '{content_date} "
            f"{content_time}' to UTC",
            MODULE,
        )
        return
    utc = local - offset
    result.add_info(f"Content date/time in UTC: {utc.isoformat()}Z", MODULE)
