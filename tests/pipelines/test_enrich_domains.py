import json

import pytest

from app.services.enrichment.errors import EnrichmentPipelineError
from pipelines import enrich_domains


class _Result:
    def __init__(self, domain: str) -> None:
        self.domain = domain

    def model_dump(self, mode: str = "python") -> dict:
        return {"record": {"domain": self.domain}}


class _Pipeline:
    def __init__(self, failing: set[str]) -> None:
        self.failing = failing
        self.requests = []

    async def enrich(self, request):
        self.requests.append(request)
        if request.domain in self.failing:
            raise EnrichmentPipelineError(request.domain, "analysis", "model returned nothing")
        return _Result(request.domain)


def test_load_domains_merges_flags_and_file(tmp_path):
    source = tmp_path / "domains.txt"
    source.write_text("acmefoods.com\n# comment line\n\nblueharbor.com  # trailing note\nacmefoods.com\n")

    assert enrich_domains.load_domains(source, ["zenith.io", " "]) == [
        "zenith.io",
        "acmefoods.com",
        "blueharbor.com",
    ]
    assert enrich_domains.load_domains(None) == []


@pytest.mark.asyncio
async def test_enrich_all_reports_failed_domains_and_continues():
    pipeline = _Pipeline(failing={"broken.com"})

    rows = await enrich_domains.enrich_all(pipeline, ["acmefoods.com", "broken.com", "zenith.io"], refresh=True)

    assert rows[0] == {"record": {"domain": "acmefoods.com"}}
    assert rows[1]["domain"] == "broken.com"
    assert rows[1]["error"]["stage"] == "analysis"
    assert rows[1]["error"]["code"] == "E_ENRICHMENT_STAGE"
    assert rows[2] == {"record": {"domain": "zenith.io"}}
    assert all(request.refresh for request in pipeline.requests)


def test_main_without_domains_fails():
    assert enrich_domains.main([]) == 1


def test_main_without_model_keys_fails(monkeypatch, tmp_path):
    monkeypatch.setattr(enrich_domains.settings, "perplexity_api_key", None)
    monkeypatch.setattr(enrich_domains.settings, "openai_api_key", None)
    output = tmp_path / "out.json"

    assert enrich_domains.main(["--domain", "acmefoods.com", "--output", str(output)]) == 1
    assert not output.exists()


def test_main_writes_results(monkeypatch, tmp_path):
    async def fake_run(args, domains):
        return [{"record": {"domain": domain}} for domain in domains]

    monkeypatch.setattr(enrich_domains, "_run_async", fake_run)
    output = tmp_path / "nested" / "out.json"

    assert enrich_domains.main(["--domain", "acmefoods.com", "--output", str(output)]) == 0
    assert json.loads(output.read_text()) == [{"record": {"domain": "acmefoods.com"}}]
