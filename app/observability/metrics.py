from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from app.config import settings

try:  # pragma: no cover - optional dependency
    from statsd import StatsClient
except Exception:  # pragma: no cover - optional dependency guard
    StatsClient = None  # type: ignore[assignment]

logger = logging.getLogger("app.metrics")

METRIC_EVENT = "enrichment.metric"
ALERT_EVENT = "enrichment.alert"


class MetricsReporter:
    """Pipeline telemetry: stage timings, counters, spend gauges and alerts.

    Every emission is logged as a structured event; with ``METRICS_BACKEND=statsd`` it is
    also forwarded to StatsD.
    """

    def __init__(self) -> None:
        self._disabled = settings.metrics_disable
        self._namespace = settings.metrics_namespace or "enrichment"
        self._backend = (settings.metrics_backend or "stdout").lower()
        self._sample_rate = max(0.0, min(settings.metrics_sample_rate, 1.0))
        self._schema_version = settings.metrics_schema_version
        self._statsd = self._connect_statsd() if self._backend == "statsd" and not self._disabled else None

    def _connect_statsd(self) -> Any:
        if StatsClient is None:
            logger.warning("statsd backend requested but statsd package is not installed.")
            return None
        try:
            return StatsClient(host=settings.metrics_statsd_host, port=settings.metrics_statsd_port, prefix="")
        except Exception as exc:  # pragma: no cover - socket setup failure
            self._log_backend_error("statsd.init", exc)
            return None

    def timing(self, metric: str, value_ms: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("timing", metric, value_ms, tags=tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("gauge", metric, value, tags=tags)

    def increment(
        self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None
    ) -> None:
        self._emit("counter", metric, value, tags=tags)

    @contextmanager
    def timer(self, metric: str, *, tags: dict[str, Any] | None = None) -> Iterator[None]:
        """Time the wrapped block in milliseconds, including when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timing(metric, (time.perf_counter() - start) * 1000, tags=tags)

    def alert(
        self,
        metric: str,
        *,
        value: float,
        threshold: float,
        severity: str,
        tags: dict[str, Any] | None = None,
    ) -> None:
        """Structured alert, e.g. scrape credits exhausted or a provider rejecting credentials."""
        if self._disabled:
            return
        self._log_event(
            ALERT_EVENT,
            {
                "metric": self._qualify(metric),
                "value": round(float(value), 4),
                "threshold": round(float(threshold), 4),
                "severity": severity,
                "schema_version": self._schema_version,
                "tags": tags or {},
            },
        )

    def _sampled_rate(self, metric_type: str) -> float | None:
        """Rate to report, or None when this emission is dropped by sampling."""
        if metric_type == "gauge" or self._sample_rate >= 1.0:
            return 1.0
        if secrets.randbelow(1_000_000) / 1_000_000 > self._sample_rate:
            return None
        return self._sample_rate

    def _emit(
        self, metric_type: str, metric: str, value: float, *, tags: dict[str, Any] | None
    ) -> None:
        if self._disabled or value is None:
            return
        rate = self._sampled_rate(metric_type)
        if rate is None:
            return
        name = self._qualify(metric)
        payload: dict[str, Any] = {
            "metric": name,
            "value": round(float(value), 4),
            "type": metric_type,
            "tags": tags or {},
        }
        if rate < 1.0:
            payload["sample_rate"] = round(rate, 4)
        self._log_event(METRIC_EVENT, payload)
        if self._statsd is None:
            return
        try:
            if metric_type == "timing":
                self._statsd.timing(name, value, rate=rate)
            elif metric_type == "gauge":
                self._statsd.gauge(name, value)
            else:
                self._statsd.incr(name, value, rate=rate)
        except Exception as exc:  # pragma: no cover - UDP send failure
            self._log_backend_error(name, exc)

    def _qualify(self, metric: str) -> str:
        trimmed = (metric or "").strip()
        if not trimmed:
            return self._namespace
        if trimmed.startswith(f"{self._namespace}."):
            return trimmed
        return f"{self._namespace}.{trimmed}"

    def _log_event(self, event: str, payload: dict[str, Any]) -> None:
        try:
            logger.info(event, extra={"metrics": payload})
        except Exception:  # pragma: no cover - logging handler failure
            logger.debug("Unable to log metrics payload", exc_info=True)

    def _log_backend_error(self, metric: str, exc: Exception) -> None:
        logger.warning(
            "metrics.backend_error",
            extra={"metric": metric, "backend": self._backend, "error": type(exc).__name__},
        )


metrics = MetricsReporter()
