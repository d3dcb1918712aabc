import pytest

from app.models.enrichment import REVENUE_BANDS, SIZE_BANDS, UNKNOWN_SIZE
from app.services.enrichment.bands import (
    employee_count_to_band,
    is_passing_revenue,
    normalize_revenue_band,
    normalize_size_band,
    parse_employee_count,
    parse_revenue_amount_to_usd,
    usd_to_revenue_band,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("$42M", 42_000_000),
        ("$1.2 billion", 1_200_000_000),
        ("850K", 850_000),
        ("USD 3,500,000", 3_500_000),
        ("$2.1T", 2_100_000_000_000),
        ("$2.1bn", 2_100_000_000),
        ("$2.1 bn", 2_100_000_000),
        ("$450mn", 450_000_000),
        ("$450 mn", 450_000_000),
        ("$12mm", 12_000_000),
        ("$1.3tn", 1_300_000_000_000),
    ],
)
def test_parse_revenue_amount_handles_suffixes(raw, expected):
    assert parse_revenue_amount_to_usd(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", [None, "", "not disclosed", "$0"])
def test_parse_revenue_amount_rejects_unusable_text(raw):
    assert parse_revenue_amount_to_usd(raw) is None


def test_revenue_bands_are_half_open():
    assert usd_to_revenue_band(9_999_999) == "5M-10M"
    assert usd_to_revenue_band(10_000_000) == "10M-25M"
    assert usd_to_revenue_band(42_000_000) == "25M-75M"
    assert usd_to_revenue_band(5_000_000_000_000) == "100B-1T"
    assert usd_to_revenue_band(0) is None


def test_every_amount_maps_into_the_band_list():
    for usd in (1, 499_999, 750_000, 60_000_000, 3e9, 9.9e11):
        assert usd_to_revenue_band(usd) in REVENUE_BANDS


def test_employee_count_to_band_boundaries():
    assert employee_count_to_band(1) == "0-1 Employees"
    assert employee_count_to_band(50) == "11-50 Employees"
    assert employee_count_to_band(51) == "51-200 Employees"
    assert employee_count_to_band(10_001) == "10,001+ Employees"
    assert all(employee_count_to_band(n) in SIZE_BANDS for n in (0, 7, 333, 4_000, 250_000))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("11-50", 30), ("1,000+", 1_000), ("2.5k employees", 2_500), (76, 76), ("about 400 staff", 400)],
)
def test_parse_employee_count(raw, expected):
    assert parse_employee_count(raw) == expected


def test_parse_employee_count_without_digits():
    assert parse_employee_count("a few dozen") is None
    assert parse_employee_count(None) is None


def test_normalize_revenue_band_requires_exact_label():
    assert normalize_revenue_band("25m-75m") == "25M-75M"
    assert normalize_revenue_band(" 10M - 25M ") == "10M-25M"
    assert normalize_revenue_band("$25M-$75M") is None
    assert normalize_revenue_band(None) is None


def test_normalize_size_band_accepts_bare_ranges():
    assert normalize_size_band("51-200") == "51-200 Employees"
    assert normalize_size_band("10,001+") == "10,001+ Employees"
    assert normalize_size_band("201-500 Employees") == "201-500 Employees"
    assert normalize_size_band("n/a") == UNKNOWN_SIZE
    assert normalize_size_band("lots") == UNKNOWN_SIZE


def test_is_passing_revenue_uses_band_order():
    assert is_passing_revenue("10M-25M", "10M-25M")
    assert is_passing_revenue("1B-10B", "10M-25M")
    assert not is_passing_revenue("5M-10M", "10M-25M")
    assert not is_passing_revenue(None, "10M-25M")


def test_attached_suffixes_land_in_the_right_band():
    assert usd_to_revenue_band(parse_revenue_amount_to_usd("$2.1bn")) == "1B-10B"
    assert usd_to_revenue_band(parse_revenue_amount_to_usd("$1.8B")) == "1B-10B"
    assert usd_to_revenue_band(parse_revenue_amount_to_usd("$450mn")) == "200M-500M"
