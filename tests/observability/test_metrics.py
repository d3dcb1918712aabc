import logging

import pytest

from app.observability import metrics as metrics_module
from app.observability.metrics import ALERT_EVENT, METRIC_EVENT, MetricsReporter


@pytest.fixture
def reporter(monkeypatch) -> MetricsReporter:
    monkeypatch.setattr(metrics_module.settings, "metrics_disable", False)
    monkeypatch.setattr(metrics_module.settings, "metrics_backend", "stdout")
    monkeypatch.setattr(metrics_module.settings, "metrics_sample_rate", 1.0)
    monkeypatch.setattr(metrics_module.settings, "metrics_namespace", "enrichment")
    return MetricsReporter()


def _payloads(caplog, event: str) -> list[dict]:
    return [record.metrics for record in caplog.records if record.getMessage() == event]


def test_counters_are_namespaced(reporter, caplog):
    caplog.set_level(logging.INFO, logger="app.metrics")
    reporter.increment("cache.hit", tags={"source": "store"})

    payload = _payloads(caplog, METRIC_EVENT)[0]
    assert payload["metric"] == "enrichment.cache.hit"
    assert payload["type"] == "counter"
    assert payload["tags"] == {"source": "store"}


def test_timer_records_even_when_block_raises(reporter, caplog):
    caplog.set_level(logging.INFO, logger="app.metrics")
    with pytest.raises(RuntimeError):
        with reporter.timer("model.latency_ms", tags={"model": "sonar-pro"}):
            raise RuntimeError("boom")

    payload = _payloads(caplog, METRIC_EVENT)[0]
    assert payload["metric"] == "enrichment.model.latency_ms"
    assert payload["type"] == "timing"
    assert payload["value"] >= 0


def test_alert_payload(reporter, caplog):
    caplog.set_level(logging.INFO, logger="app.metrics")
    reporter.alert("scrape.credits_exhausted", value=1, threshold=0, severity="critical")

    payload = _payloads(caplog, ALERT_EVENT)[0]
    assert payload["severity"] == "critical"
    assert payload["metric"] == "enrichment.scrape.credits_exhausted"


def test_disabled_reporter_is_silent(monkeypatch, caplog):
    monkeypatch.setattr(metrics_module.settings, "metrics_disable", True)
    caplog.set_level(logging.INFO, logger="app.metrics")
    MetricsReporter().gauge("request.cost_usd", 0.02)

    assert _payloads(caplog, METRIC_EVENT) == []
