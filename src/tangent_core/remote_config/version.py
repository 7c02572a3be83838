"""Dotted numeric version strings.

Comparison is segment-wise and numeric ("1.10.0" > "1.9.0"); missing
trailing segments count as zero ("1.2" == "1.2.0").
"""
from itertools import zip_longest

from .exceptions import InvalidVersionError


def parse_version(version: str) -> tuple[int, ...]:
    """Parse a dotted numeric version into integer segments.

    Args:
        version: e.g. "2.3.0"

    Returns:
        Tuple of segments, e.g. (2, 3, 0)

    Raises:
        InvalidVersionError: On empty, non-string, or non-numeric segments
    """
    if not isinstance(version, str):
        raise InvalidVersionError(version)

    text = version.strip()
    if not text:
        raise InvalidVersionError(version)

    segments = []
    for part in text.split("."):
        if not (part.isascii() and part.isdigit()):
            raise InvalidVersionError(version)
        segments.append(int(part))

    return tuple(segments)


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1 as left is older, equal or newer than right."""
    for a, b in zip_longest(parse_version(left), parse_version(right), fillvalue=0):
        if a != b:
            return 1 if a > b else -1
    return 0


def is_newer(candidate: str, baseline: str) -> bool:
    """True iff candidate is strictly newer than baseline."""
    return compare_versions(candidate, baseline) > 0
