"""Encoding selection for playback."""

from app.schemas import QualityPreference


def select_resolution(formats: list[str], preference: QualityPreference | str | None) -> str | None:
    """Pick one encoding from `formats`, ordered lowest to highest quality.

    low -> first, high -> last, medium (and anything unrecognised) -> index
    len // 2. The index is clamped to the list bounds. Returns None when
    `formats` is empty.
    """
    if not formats:
        return None

    try:
        quality = QualityPreference(str(preference).lower()) if preference else QualityPreference.MEDIUM
    except ValueError:
        quality = QualityPreference.MEDIUM

    if quality == QualityPreference.LOW:
        index = 0
    elif quality == QualityPreference.HIGH:
        index = len(formats) - 1
    else:
        index = len(formats) // 2

    index = max(0, min(index, len(formats) - 1))
    return formats[index]
