"""Mapping between free-form revenue/headcount evidence and the fixed bands."""

from __future__ import annotations

import re
from typing import Final

from app.models.enrichment import REVENUE_BANDS, SIZE_BANDS, UNKNOWN_SIZE

REVENUE_BAND_RANGES: Final[tuple[tuple[str, float, float], ...]] = (
    ("0-500K", 0, 500_000),
    ("500K-1M", 500_000, 1_000_000),
    ("1M-5M", 1_000_000, 5_000_000),
    ("5M-10M", 5_000_000, 10_000_000),
    ("10M-25M", 10_000_000, 25_000_000),
    ("25M-75M", 25_000_000, 75_000_000),
    ("75M-200M", 75_000_000, 200_000_000),
    ("200M-500M", 200_000_000, 500_000_000),
    ("500M-1B", 500_000_000, 1_000_000_000),
    ("1B-10B", 1_000_000_000, 10_000_000_000),
    ("10B-100B", 10_000_000_000, 100_000_000_000),
    ("100B-1T", 100_000_000_000, 1_000_000_000_000),
)

# (band, lower bound, upper bound or None for open-ended)
SIZE_BAND_RANGES: Final[tuple[tuple[str, int, int | None], ...]] = (
    ("0-1 Employees", 0, 1),
    ("2-10 Employees", 2, 10),
    ("11-50 Employees", 11, 50),
    ("51-200 Employees", 51, 200),
    ("201-500 Employees", 201, 500),
    ("501-1,000 Employees", 501, 1_000),
    ("1,001-5,000 Employees", 1_001, 5_000),
    ("5,001-10,000 Employees", 5_001, 10_000),
    ("10,001+ Employees", 10_001, None),
)

_NUMBER_RE = re.compile(r"[-+]?\d*\.?\d+")
_BILLION_RE = re.compile(r"billion|\d\s*bn?\b|\bbn\b")
_MILLION_RE = re.compile(r"million|\d\s*m[mn]?\b|\bm[mn]\b")
_THOUSAND_RE = re.compile(r"thousand|\bk\b|\d\s*k\b")
_TRILLION_RE = re.compile(r"trillion|\d\s*tn?\b|\btn\b")


def parse_revenue_amount_to_usd(raw: str | None) -> float | None:
    """Convert text such as ``"$42M"`` or ``"1.2 billion"`` to a positive USD amount."""
    if not raw:
        return None
    cleaned = re.sub(r"\s+", " ", raw.replace(",", "")).strip().lower()
    match = _NUMBER_RE.search(cleaned)
    if not match:
        return None
    try:
        base = float(match.group(0))
    except ValueError:
        return None

    if _TRILLION_RE.search(cleaned):
        multiplier = 1_000_000_000_000
    elif _BILLION_RE.search(cleaned):
        multiplier = 1_000_000_000
    elif _MILLION_RE.search(cleaned):
        multiplier = 1_000_000
    elif _THOUSAND_RE.search(cleaned):
        multiplier = 1_000
    else:
        multiplier = 1
    value = base * multiplier
    return value if value > 0 else None


def usd_to_revenue_band(usd: float | None) -> str | None:
    """Map a USD amount to its band using half-open [min, max) ranges."""
    if usd is None or usd <= 0:
        return None
    for band, lower, upper in REVENUE_BAND_RANGES:
        if lower <= usd < upper:
            return band
    return REVENUE_BANDS[-1]


def employee_count_to_band(count: int) -> str:
    for band, _, upper in SIZE_BAND_RANGES:
        if upper is None or count <= upper:
            return band
    return SIZE_BANDS[-1]  # pragma: no cover


def parse_employee_count(raw: str | int | None) -> int | None:
    """Extract a headcount from ``"11-50"``, ``"1,000+"``, ``"2.5k employees"`` or ``76``.

    Ranges resolve to their midpoint.
    """
    if raw is None:
        return None
    if isinstance(raw, int):
        return raw if raw >= 0 else None
    text = raw.replace(",", "").replace(" ", "").lower()
    if not re.search(r"\d", text):
        return None
    range_match = re.search(r"(\d+)[-–](\d+)", text)
    if range_match:
        lower, upper = int(range_match.group(1)), int(range_match.group(2))
        return (lower + upper) // 2
    number_match = re.search(r"(\d+(?:\.\d+)?)(k)?", text)
    if not number_match:
        return None
    value = float(number_match.group(1))
    if number_match.group(2):
        value *= 1_000
    return int(value)


def employee_text_to_band(raw: str | int | None) -> str | None:
    count = parse_employee_count(raw)
    if count is None:
        return None
    return employee_count_to_band(count)


def normalize_revenue_band(value: str | None) -> str | None:
    """Return the canonical band for an exact (case/space-insensitive) match, else None."""
    if not value:
        return None
    compact = value.replace(" ", "").upper()
    for band in REVENUE_BANDS:
        if band.upper() == compact:
            return band
    return None


def normalize_size_band(value: str | None) -> str:
    """Return a canonical size band or ``"unknown"``.

    Accepts the enumerated labels and bare forms such as ``"51-200"`` or ``"10,001+"``;
    the first number decides the band.
    """
    if not value:
        return UNKNOWN_SIZE
    stripped = value.strip()
    if stripped in SIZE_BANDS:
        return stripped
    if stripped.lower() in ("unknown", "n/a", "null", "none"):
        return UNKNOWN_SIZE
    match = re.search(r"\d+", stripped.replace(",", ""))
    if not match:
        return UNKNOWN_SIZE
    return employee_count_to_band(int(match.group(0)))


def revenue_band_index(band: str | None) -> int:
    """Position of a band in magnitude order; -1 when missing or invalid."""
    if band in REVENUE_BANDS:
        return REVENUE_BANDS.index(band)
    return -1


def size_band_index(band: str | None) -> int:
    if band in SIZE_BANDS:
        return SIZE_BANDS.index(band)
    return -1


def size_band_lower_bound(band: str | None) -> int | None:
    for label, lower, _ in SIZE_BAND_RANGES:
        if label == band:
            return max(lower, 1)
    return None


def revenue_band_lower_bound(band: str | None) -> float | None:
    for label, lower, _ in REVENUE_BAND_RANGES:
        if label == band:
            return lower
    return None


def is_passing_revenue(band: str | None, threshold: str) -> bool:
    """True when the band is at or above the passing threshold band."""
    index = revenue_band_index(band)
    return index >= 0 and index >= revenue_band_index(threshold)
