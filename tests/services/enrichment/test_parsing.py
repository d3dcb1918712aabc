import pytest

from app.services.enrichment.parsing import (
    ParseFailure,
    ParseSuccess,
    company_name_from_domain,
    parse_first_pass,
    parse_json_object,
    parse_revenue_item,
    salvage_string_fields,
    strip_citations,
)

FIRST_PASS_TEXT = """Here is what I found:
```json
{
  "company_name": "Acme Foods [1]",
  "parent_company": "Nestle",
  "relationship_type": "subsidiary",
  "headquarters": {"city": "Austin", "state": "TX", "country": "United States"},
  "urls_to_crawl": ["https://acmefoods.com/about", ""],
  "revenue_found": [
    {"amount": "$42M", "source": "ZoomInfo", "year": "FY2023", "is_estimate": "true"},
    {"amount": "not found"}
  ],
  "employee_count_found": [{"amount": "150", "source": "LinkedIn"}, {"amount": "unknown"}],
  "linkedin_url_candidates": [
    {"url": "https://linkedin.com/company/acme-b", "confidence": "low"},
    {"url": "https://linkedin.com/company/acme-foods", "confidence": "high"}
  ],
  "canonical_website": {"url": "https://acmefoods.com", "confidence": "HIGH"}
}
```"""


def test_strip_citations_removes_markers():
    assert strip_citations('{"a": "b" [2]} [3]') == '{"a": "b"}'


def test_parse_json_object_accepts_prose_wrapped_json():
    assert parse_json_object('Sure! {"a": 1} hope that helps') == {"a": 1}


@pytest.mark.parametrize("raw", ["", "no braces here", "[1, 2]"])
def test_parse_json_object_rejects_non_objects(raw):
    with pytest.raises(ValueError):
        parse_json_object(raw)


def test_parse_first_pass_coerces_loose_payload():
    parsed = parse_first_pass(FIRST_PASS_TEXT, domain="acmefoods.com")

    assert isinstance(parsed, ParseSuccess)
    result = parsed.value
    assert result.company_name == "Acme Foods"
    assert result.relationship_type == "subsidiary"
    assert result.headquarters.country_code == "US"
    assert result.urls_to_crawl == ["https://acmefoods.com/about"]
    assert len(result.revenue_found) == 1
    revenue = result.revenue_found[0]
    assert revenue.amount_usd == pytest.approx(42_000_000)
    assert revenue.year == 2023
    assert revenue.is_estimate is True
    assert [item.amount for item in result.employee_count_found] == ["150"]
    assert result.linkedin_url_candidates[0].confidence == "high"
    assert result.canonical_website is not None
    assert result.canonical_website.confidence == "high"


def test_parse_first_pass_reports_failures_instead_of_raising():
    assert isinstance(parse_first_pass("", domain="acme.com"), ParseFailure)
    failure = parse_first_pass("I could not find anything.", domain="acme.com")
    assert isinstance(failure, ParseFailure)
    assert failure.reason.startswith("invalid JSON")


def test_parse_first_pass_defaults_company_name_from_domain():
    parsed = parse_first_pass('{"revenue_found": []}', domain="www.blue-harbor.co")
    assert isinstance(parsed, ParseSuccess)
    assert parsed.value.company_name == "blue-harbor"


def test_parse_revenue_item_prefers_explicit_usd():
    item = parse_revenue_item({"amount": "about forty million", "amount_usd": 40_000_000, "scope": "Ultimate Parent"})
    assert item is not None
    assert item.amount_usd == 40_000_000
    assert item.scope == "ultimate_parent"


def test_salvage_string_fields_from_truncated_json():
    text = '{"company_name": "Acme Foods", "description": "Snacks \\"and\\" more", "company_size": "51-200'
    salvaged = salvage_string_fields(text, ["company_name", "description", "company_size"])
    assert salvaged == {"company_name": "Acme Foods", "description": 'Snacks \\"and\\" more'}


def test_company_name_from_domain():
    assert company_name_from_domain("acme-foods.com") == "acme-foods"
