import pytest

from app.clients.firecrawl import FirecrawlError, SearchHit
from app.models.evidence import FirstPassResult, Headquarters, LinkCandidate
from app.services.enrichment.identity_links import (
    IdentityLinkResolver,
    LinkedInSearcher,
    extract_company_links,
    follower_count,
    parse_linkedin_profile,
    validate_profile,
)
from tests.helpers.firecrawl_stub import StubFetcher, StubSearcher

ACME_PROFILE = """Acme Foods
Food Production
Website
https://acmefoods.com
Company size
51-200 employees
Headquarters
Austin, Texas
"""

IMPOSTOR_PROFILE = """Acme Foods Group
Website
https://acme-foods.co.uk
Company size
5,001-10,000 employees
Headquarters
Leeds, United Kingdom
"""


def _first_pass(**overrides) -> FirstPassResult:
    payload = {
        "company_name": "Acme Foods",
        "headquarters": Headquarters(city="Austin", country_code="US"),
    }
    payload.update(overrides)
    return FirstPassResult(**payload)


def test_extract_company_links_skips_platform_slugs():
    text = (
        "Follow us https://www.linkedin.com/company/acme-foods/ and "
        "https://linkedin.com/company/crunchbase or https://uk.linkedin.com/company/acme-foods"
    )
    assert extract_company_links(text) == ["https://www.linkedin.com/company/acme-foods"]


def test_parse_linkedin_profile_fields():
    profile = parse_linkedin_profile(ACME_PROFILE)
    assert profile.website == "https://acmefoods.com"
    assert profile.employees == "51-200"
    assert profile.location == "Austin, Texas"


def test_validate_profile_reports_every_mismatch():
    reason = validate_profile(
        parse_linkedin_profile(IMPOSTOR_PROFILE),
        domain="acmefoods.com",
        expected_size_band="51-200 Employees",
        expected_country="US",
    )
    assert reason is not None
    assert "website mismatch" in reason
    assert "location mismatch" in reason
    assert "headcount" not in reason


def test_validate_profile_flags_much_smaller_headcount():
    profile = parse_linkedin_profile("Website\nhttps://acmefoods.com\n2-10 employees")
    reason = validate_profile(
        profile, domain="acmefoods.com", expected_size_band="201-500 Employees", expected_country=None
    )
    assert reason is not None and reason.startswith("headcount mismatch")


def test_follower_count_units():
    assert follower_count("Acme Foods | 12K followers") == 12_000
    assert follower_count("1.5M followers on LinkedIn") == 1_500_000
    assert follower_count("no followers info") == 0.0


@pytest.mark.asyncio
async def test_link_on_company_site_wins_without_validation():
    pages = {"https://acmefoods.com": "Footer: https://www.linkedin.com/company/acme-foods | 180 employees"}
    decision = await IdentityLinkResolver(StubFetcher()).resolve("acmefoods.com", pages, _first_pass())

    assert decision.url == "https://www.linkedin.com/company/acme-foods"
    assert decision.source == "company_site"
    assert decision.validated is False
    assert decision.headcount == "180"


@pytest.mark.asyncio
async def test_mismatched_candidate_is_rejected_and_next_one_validated():
    fetcher = StubFetcher(
        {
            "https://www.linkedin.com/company/acme-foods-group": IMPOSTOR_PROFILE,
            "https://www.linkedin.com/company/acme-foods": ACME_PROFILE,
        }
    )
    first_pass = _first_pass(
        linkedin_url_candidates=[LinkCandidate(url="https://linkedin.com/company/acme-foods-group")]
    )
    decision = await IdentityLinkResolver(fetcher).resolve(
        "acmefoods.com",
        {"https://acmefoods.com": "Acme Foods makes snacks."},
        first_pass,
        expected_size_band="51-200 Employees",
        searched=[LinkCandidate(url="https://www.linkedin.com/company/acme-foods")],
    )

    assert decision.url == "https://www.linkedin.com/company/acme-foods"
    assert decision.source == "linkedin_search"
    assert decision.validated is True
    assert decision.headcount == "51-200"
    assert decision.rejected[0][0] == "https://www.linkedin.com/company/acme-foods-group"
    assert decision.credits_used == 2


@pytest.mark.asyncio
async def test_unfetchable_candidate_is_accepted_unvalidated():
    first_pass = _first_pass(urls_to_crawl=["https://www.linkedin.com/company/acme-foods/about"])
    decision = await IdentityLinkResolver(StubFetcher()).resolve(
        "acmefoods.com", {"https://acmefoods.com": "Acme Foods"}, first_pass
    )

    assert decision.url == "https://www.linkedin.com/company/acme-foods"
    assert decision.source == "first_pass_urls"
    assert decision.validated is False


@pytest.mark.asyncio
async def test_root_page_is_fetched_when_nothing_was_scraped():
    fetcher = StubFetcher({"https://acmefoods.com": "See https://www.linkedin.com/company/acme-foods"})
    decision = await IdentityLinkResolver(fetcher).resolve("acmefoods.com", {}, _first_pass())

    assert decision.source == "company_site"
    assert decision.credits_used == 1
    assert "https://acmefoods.com" in decision.pages


@pytest.mark.asyncio
async def test_no_candidates_returns_empty_decision():
    decision = await IdentityLinkResolver(None).resolve("acmefoods.com", {}, _first_pass())
    assert decision.url is None
    assert decision.rejected == []


@pytest.mark.asyncio
async def test_linkedin_search_ranks_by_followers():
    searcher = StubSearcher(
        {
            "site:linkedin.com/company": [
                SearchHit(url="https://www.linkedin.com/company/acme-foods-old", description="120 followers"),
                SearchHit(url="https://www.linkedin.com/company/acme-foods", description="8K followers"),
                SearchHit(url="https://www.linkedin.com/company/acme-foods/jobs", description="jobs"),
                SearchHit(url="https://www.linkedin.com/company/zoominfo", description="1M followers"),
            ]
        }
    )
    result = await LinkedInSearcher(searcher).search("Acme Foods")

    assert [candidate.url for candidate in result.candidates] == [
        "https://www.linkedin.com/company/acme-foods",
        "https://www.linkedin.com/company/acme-foods-old",
    ]
    assert result.credits_used == 1
    assert len(searcher.queries) == 1


@pytest.mark.asyncio
async def test_linkedin_search_survives_search_errors():
    searcher = StubSearcher({"Acme": FirecrawlError("down")})
    result = await LinkedInSearcher(searcher).search("Acme Foods")

    assert result.candidates == []
    assert len(searcher.queries) == 2
