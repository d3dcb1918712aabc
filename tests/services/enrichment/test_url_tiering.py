from app.models.evidence import EmployeeEvidence, FirstPassResult, RevenueEvidence
from app.services.enrichment.url_tiering import (
    UrlTier,
    classify_url,
    is_own_site,
    normalize_url,
    select_urls,
    supplemental_budget,
)

AGGREGATORS = [
    "https://www.zoominfo.com/c/acme-foods/1",
    "https://www.crunchbase.com/organization/acme-foods",
    "https://owler.com/company/acmefoods",
    "https://growjo.com/company/Acme_Foods",
    "https://www.cbinsights.com/company/acme-foods",
]


def _first_pass(*, revenue: bool, employees: bool) -> FirstPassResult:
    return FirstPassResult(
        company_name="Acme Foods",
        revenue_found=[RevenueEvidence(amount="$42M", amount_usd=42_000_000)] if revenue else [],
        employee_count_found=[EmployeeEvidence(amount="150")] if employees else [],
    )


def test_supplemental_budget_scales_with_missing_evidence():
    assert supplemental_budget(True, True) == 0
    assert supplemental_budget(False, True) == 2
    assert supplemental_budget(False, False) == 4


def test_classify_url_tiers():
    assert classify_url("https://shop.acmefoods.com/about", "acmefoods.com") is UrlTier.ESSENTIAL
    assert classify_url("https://www.linkedin.com/company/acme-foods", "acmefoods.com") is UrlTier.ESSENTIAL
    assert classify_url("https://www.zoominfo.com/c/acme", "acmefoods.com") is UrlTier.SUPPLEMENTAL
    assert classify_url("https://news.example.com/acme", "acmefoods.com") is UrlTier.EXCLUDED


def test_is_own_site_matches_domain_and_subdomains_only():
    assert is_own_site("https://www.AcmeFoods.com/about", "acmefoods.com")
    assert is_own_site("https://shop.acmefoods.com", "www.acmefoods.com")
    assert not is_own_site("https://zoominfo.com/c/acmefoods.com", "acmefoods.com")
    assert not is_own_site("https://notacmefoods.com", "acmefoods.com")


def test_normalize_url_drops_trailing_slash_and_lowercases_host():
    assert normalize_url("WWW.AcmeFoods.com/About/") == "https://www.acmefoods.com/About"


def test_select_urls_with_complete_evidence_skips_aggregators():
    urls = ["https://acmefoods.com/about", *AGGREGATORS, "https://news.example.com/acme"]
    selection = select_urls(urls, "acmefoods.com", _first_pass(revenue=True, employees=True))

    assert selection.selected == ["https://acmefoods.com/about"]
    assert selection.excluded == ["https://news.example.com/acme"]


def test_select_urls_caps_aggregators_when_evidence_missing():
    urls = ["https://acmefoods.com/about", *AGGREGATORS]
    partial = select_urls(urls, "acmefoods.com", _first_pass(revenue=False, employees=True))
    empty = select_urls(urls, "acmefoods.com", _first_pass(revenue=False, employees=False))

    assert len(partial.selected) == 3
    assert len(empty.selected) == 5
    assert empty.selected[0] == "https://acmefoods.com/about"


def test_select_urls_adds_root_when_no_company_page():
    selection = select_urls(
        ["https://www.linkedin.com/company/acme-foods", "https://acmefoods.com/about/"],
        "acmefoods.com",
        _first_pass(revenue=True, employees=True),
    )
    assert "https://acmefoods.com" not in selection.selected

    only_linkedin = select_urls(
        ["https://www.linkedin.com/company/acme-foods"],
        "acmefoods.com",
        _first_pass(revenue=True, employees=True),
    )
    assert only_linkedin.selected[0] == "https://acmefoods.com"


def test_select_urls_deduplicates():
    selection = select_urls(
        ["https://acmefoods.com/about", "https://acmefoods.com/about/", ""],
        "acmefoods.com",
        _first_pass(revenue=True, employees=True),
    )
    assert selection.selected == ["https://acmefoods.com/about"]
