import json

import pytest

from app.models.evidence import EmployeeEvidence, FirstPassResult, Headquarters, RevenueEvidence
from app.services.enrichment.bands import parse_revenue_amount_to_usd
from app.services.enrichment import deep_research as deep_research_module
from app.services.enrichment.deep_research import (
    DeepResearchRunner,
    detect_outliers,
    merge_deep_research,
    revenue_conflict,
)
from tests.helpers.model_stub import ScriptedModel

REVENUE_ANSWER = json.dumps({"revenue": "$38M", "source": "Press release", "year": 2024, "confidence": "high"})
EMPLOYEE_ANSWER = json.dumps({"employees": 180, "source": "LinkedIn", "confidence": "medium"})
LOCATION_ANSWER = json.dumps({"city": "Austin", "state": "TX", "country": "United States", "country_code": "US"})


@pytest.fixture(autouse=True)
def _metrics(monkeypatch, stub_metrics):
    monkeypatch.setattr(deep_research_module, "metrics", stub_metrics)
    return stub_metrics


def _routed_model() -> ScriptedModel:
    return ScriptedModel(
        route={
            "annual revenue": REVENUE_ANSWER,
            "How many employees": EMPLOYEE_ANSWER,
            "headquartered": LOCATION_ANSWER,
        }
    )


def test_revenue_conflict_uses_ratio():
    assert revenue_conflict([10_000_000, 60_000_000])
    assert not revenue_conflict([10_000_000, 50_000_000])
    assert not revenue_conflict([10_000_000])


def test_attached_billion_suffixes_do_not_conflict():
    amounts = [parse_revenue_amount_to_usd("$2.1bn"), parse_revenue_amount_to_usd("$1.8B")]
    assert not revenue_conflict([amount for amount in amounts if amount])


def test_detect_outliers_flags_gaps_and_mismatch():
    bare = FirstPassResult(company_name="Acme")
    report = detect_outliers(bare)
    assert report.missing_revenue and report.missing_employees and report.missing_location

    mismatch = FirstPassResult(
        company_name="Acme",
        headquarters=Headquarters(country_code="US"),
        revenue_found=[RevenueEvidence(amount="$150M", amount_usd=150_000_000)],
        employee_count_found=[EmployeeEvidence(amount="12")],
    )
    assert detect_outliers(mismatch).reasons == ["revenue_size_mismatch"]


def test_parent_scope_revenue_does_not_count_as_evidence():
    first_pass = FirstPassResult(
        company_name="Acme",
        revenue_found=[RevenueEvidence(amount="$90B", amount_usd=9e10, scope="ultimate_parent")],
    )
    assert detect_outliers(first_pass).missing_revenue


@pytest.mark.asyncio
async def test_complete_evidence_skips_research(acme_first_pass):
    model = _routed_model()
    outcome = await DeepResearchRunner(model).run("acmefoods.com", "Acme Foods", acme_first_pass)

    assert outcome.triggered is False
    assert model.prompts == []


@pytest.mark.asyncio
async def test_forced_research_runs_all_queries(acme_first_pass, stub_metrics):
    model = _routed_model()
    outcome = await DeepResearchRunner(model).run("acmefoods.com", "Acme Foods", acme_first_pass, force=True)

    assert outcome.triggered and outcome.forced
    assert outcome.reasons == ["forced"]
    assert len(model.prompts) == 3
    assert outcome.revenue is not None and outcome.revenue.amount_usd == pytest.approx(38_000_000)
    assert outcome.employees is not None and outcome.employees.count == 180
    assert outcome.location is not None and outcome.location.country_code == "US"
    assert outcome.usage.prompt_tokens == 3_000
    assert stub_metrics.counted("deep_research.triggered") == 1


@pytest.mark.asyncio
async def test_missing_location_only_queries_location():
    first_pass = FirstPassResult(
        company_name="Acme",
        revenue_found=[RevenueEvidence(amount="$42M", amount_usd=42_000_000)],
        employee_count_found=[EmployeeEvidence(amount="150")],
    )
    model = _routed_model()
    outcome = await DeepResearchRunner(model).run("acme.com", "Acme", first_pass)

    assert outcome.reasons == ["missing_location"]
    assert len(model.prompts) == 1
    assert outcome.revenue is None


@pytest.mark.asyncio
async def test_unparseable_query_is_dropped():
    model = ScriptedModel(route={"annual revenue": "no idea", "How many employees": EMPLOYEE_ANSWER, "headquartered": "?"})
    outcome = await DeepResearchRunner(model).run("acme.com", "Acme", FirstPassResult(company_name="Acme"))

    assert outcome.triggered
    assert outcome.revenue is None
    assert outcome.location is None
    assert outcome.employees is not None


def test_merge_prepends_findings_and_fills_blank_location():
    first_pass = FirstPassResult(
        company_name="Acme",
        revenue_found=[RevenueEvidence(amount="$42M", amount_usd=42_000_000)],
    )
    outcome = deep_research_module.DeepResearchOutcome(
        triggered=True,
        revenue=deep_research_module.RevenueFinding("$38M", 38_000_000, "10-K", 2024, "high"),
        employees=deep_research_module.EmployeeFinding(180, "LinkedIn", "medium"),
        location=deep_research_module.LocationFinding("Austin", "TX", "United States", "US"),
    )

    merged = merge_deep_research(first_pass, outcome)

    assert merged.revenue_found[0].source == "Deep Research: 10-K"
    assert merged.revenue_found[0].is_estimate is False
    assert merged.revenue_found[1].amount == "$42M"
    assert merged.employee_count_found[0].amount == "180"
    assert merged.headquarters.city == "Austin"


def test_merge_keeps_known_location(acme_first_pass):
    outcome = deep_research_module.DeepResearchOutcome(
        triggered=True,
        location=deep_research_module.LocationFinding("Toronto", None, "Canada", "CA"),
    )
    assert merge_deep_research(acme_first_pass, outcome).headquarters.city == "Austin"
