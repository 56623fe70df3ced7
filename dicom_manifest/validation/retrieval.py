"""Retrieval addressing checks.

Evidence series items (and content references that carry their own
addressing) tell a consumer where to fetch instances from: a WADO-RS
RetrieveURL, an XDS repository RetrieveLocationUID, or a DIMSE
RetrieveAETitle.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from pydicom.dataset import Dataset

from dicom_manifest.core.constants import MAX_AE_TITLE_LENGTH, MAX_UID_LENGTH
from dicom_manifest.model.result import ValidationResult, item_path

from .rules import sequence_items, text_of

_HTTP_URL = re.compile(r"^https?://\S+$")
_LOCATION_UID = re.compile(r"^[0-9.]+$")
_STRICT_LOCATION_UID = re.compile(r"^(0|[1-9][0-9]*)(\.(0|[1-9][0-9]*))*$")


def check_retrieve_information(
    item: Dataset, result: ValidationResult, path: str
) -> None:
    """Format checks of whatever addressing attributes an item carries."""
    if "RetrieveURL" in item:
        url = text_of(item, "RetrieveURL")
        if not _HTTP_URL.match(url):
            result.add_error(
                f"RetrieveURL must be an http(s) URL without spaces: '{url}'", path
            )
    if "RetrieveAETitle" in item:
        ae_title = text_of(item, "RetrieveAETitle")
        if len(ae_title) > MAX_AE_TITLE_LENGTH:
            result.add_warning(
                f"RetrieveAETitle exceeds {MAX_AE_TITLE_LENGTH} characters: "
                f"'{ae_title}'",
                path,
            )
        if not ae_title.isprintable():
            result.add_warning(
                "RetrieveAETitle contains non-printable characters", path
            )
    if "RetrieveLocationUID" in item:
        location = text_of(item, "RetrieveLocationUID")
        if not _LOCATION_UID.match(location) or len(location) > MAX_UID_LENGTH:
            result.add_error(
                f"RetrieveLocationUID is not a valid UID: '{location}'", path
            )


def check_retrieval_addressing(
    dataset: Dataset, result: ValidationResult, module: str
) -> None:
    """Every evidence series item must say where its instances live.

    Reports mixed addressing styles across series and validates each
    RetrieveURL and RetrieveLocationUID found.
    """
    modes: set[str] = set()
    any_series = False
    studies = sequence_items(dataset, "CurrentRequestedProcedureEvidenceSequence")
    for i, study in enumerate(studies):
        for j, series in enumerate(sequence_items(study, "ReferencedSeriesSequence")):
            any_series = True
            path = item_path(item_path(module, "Evidence", i), "Series", j)
            modes.add(_series_addressing_mode(series, result, path))

    if not any_series:
        result.add_error("No retrievable series found in evidence", module)
        return
    if "both" in modes:
        result.add_info(
            "Series provide both RetrieveURL and RetrieveLocationUID", module
        )
    if len(modes - {"none"}) > 1:
        result.add_warning(
            "Evidence mixes retrieval addressing styles across series", module
        )


def _check_wado_url(url: str, result: ValidationResult, path: str) -> None:
    parsed = urlparse(url)
    if not parsed.scheme:
        result.add_error(f"RetrieveURL has no scheme: '{url}'", path)
        return
    if parsed.scheme not in ("http", "https"):
        result.add_warning(f"RetrieveURL uses non-HTTP scheme '{parsed.scheme}'", path)
    elif parsed.scheme == "http":
        result.add_warning("RetrieveURL uses http; https is expected", path)
    if not parsed.netloc:
        result.add_error(f"RetrieveURL has no host: '{url}'", path)
    if "/studies" not in parsed.path:
        result.add_info("RetrieveURL does not look like a WADO-RS study URL", path)


def _check_location_uid(location: str, result: ValidationResult, path: str) -> None:
    if not _STRICT_LOCATION_UID.match(location):
        result.add_error(
            f"RetrieveLocationUID is not a valid UID (digits, dots, no leading "
            f"zeros): '{location}'",
            path,
        )
    elif len(location) > MAX_UID_LENGTH:
        result.add_error(
            f"RetrieveLocationUID exceeds {MAX_UID_LENGTH} characters", path
        )


def _series_addressing_mode(
    series: Dataset, result: ValidationResult, path: str
) -> str:
    url = text_of(series, "RetrieveURL")
    location = text_of(series, "RetrieveLocationUID")
    if not url and not location:
        result.add_error(
            "Series has neither RetrieveURL nor RetrieveLocationUID; "
            "instances cannot be retrieved",
            path,
        )
        return "none"
    if url:
        _check_wado_url(url, result, path)
    if location:
        _check_location_uid(location, result, path)
    if url and location:
        return "both"
    return "url" if url else "location"
