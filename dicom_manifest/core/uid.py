"""UID normalization.

Archives sometimes return UIDs with zero-padded components ("1.2.03.4")
or surrounding whitespace. Every UID copied from a source record into a
manifest passes through normalize_uid exactly once so that evidence and
content always carry byte-identical values.
"""

from __future__ import annotations

from pydicom.uid import generate_uid


def normalize_uid(uid: str | None) -> str | None:
    """Strip whitespace and leading zeros from each numeric UID component.

    Non-numeric components are left as they are so that malformed input
    stays visible to the validator instead of being silently repaired.

    Args:
        uid: UID as found in a source record

    Returns:
        The normalized UID, or None when uid is None

    """
    if uid is None:
        return None
    text = str(uid).strip()
    if not text:
        return text

    components = []
    for component in text.split("."):
        if component.isdigit():
            component = component.lstrip("0") or "0"
        components.append(component)
    return ".".join(components)


def create_normalized_uid() -> str:
    """Generate a fresh UID (2.25 / pydicom root) in normalized form."""
    normalized = normalize_uid(str(generate_uid()))
    assert normalized is not None
    return normalized
