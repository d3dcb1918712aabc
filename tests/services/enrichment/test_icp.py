from app.models.enrichment import EnrichmentRecord, IndustryCode
from app.services.enrichment.config import EnrichmentConfig
from app.services.enrichment.icp import apply_icp, assess_icp

CONFIG = EnrichmentConfig()


def _record(**overrides) -> EnrichmentRecord:
    payload = {
        "company_name": "Acme Foods",
        "website": "https://acmefoods.com",
        "domain": "acmefoods.com",
        "naics_codes_6_digit": [IndustryCode(code="311919"), IndustryCode(code="541611")],
        "hq_country": "US",
        "company_revenue": "25M-75M",
    }
    payload.update(overrides)
    return EnrichmentRecord(**payload)


def test_all_three_criteria_make_a_target():
    record = apply_icp(_record(), CONFIG)

    assert record.target_icp is True
    assert record.industry_pass and record.revenue_pass
    assert [code.code for code in record.target_icp_matches] == ["311919"]


def test_industry_match_is_exact_code_membership():
    assessment = assess_icp(_record(naics_codes_6_digit=[IndustryCode(code="311000")]), CONFIG)
    assert assessment.industry_pass is False
    assert assessment.target_icp is False


def test_revenue_below_threshold_fails():
    assessment = assess_icp(_record(company_revenue="5M-10M"), CONFIG)
    assert assessment.revenue_pass is False
    assert assessment.target_icp is False
    assert assess_icp(_record(company_revenue=None), CONFIG).revenue_pass is False


def test_region_passes_for_target_country_or_us_presence():
    assert assess_icp(_record(hq_country="MX"), CONFIG).region_pass
    assert not assess_icp(_record(hq_country="DE"), CONFIG).region_pass
    assert assess_icp(_record(hq_country="DE", is_us_subsidiary=True), CONFIG).region_pass
    assert assess_icp(_record(hq_country="unknown", is_us_hq=True), CONFIG).region_pass


def test_apply_icp_recomputes_stale_flags():
    stale = _record(company_revenue="1M-5M", target_icp=True, revenue_pass=True)
    assert apply_icp(stale, CONFIG).target_icp is False


def test_custom_tables_are_honoured():
    config = EnrichmentConfig(target_naics_codes=frozenset({"541611"}), target_regions=frozenset({"DE"}))
    assert assess_icp(_record(hq_country="DE"), config).target_icp is True
