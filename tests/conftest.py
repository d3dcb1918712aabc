from __future__ import annotations

import pytest

from app.models.evidence import EmployeeEvidence, FirstPassResult, Headquarters, RevenueEvidence
from tests.helpers.metrics_stub import StubMetrics


@pytest.fixture
def stub_metrics() -> StubMetrics:
    return StubMetrics()


@pytest.fixture
def acme_first_pass() -> FirstPassResult:
    return FirstPassResult(
        company_name="Acme Foods",
        headquarters=Headquarters(city="Austin", state="TX", country="United States", country_code="US"),
        urls_to_crawl=["https://acmefoods.com", "https://acmefoods.com/about"],
        revenue_found=[
            RevenueEvidence(amount="$42M", amount_usd=42_000_000, source="ZoomInfo", year=2023, is_estimate=True),
        ],
        employee_count_found=[EmployeeEvidence(amount="150", source="LinkedIn")],
    )
