import logging

import pytest

from app.services.enrichment.progress import LoggingProgressSink, ProgressEvent, RecordingProgressSink


@pytest.mark.asyncio
async def test_recording_sink_keeps_order():
    sink = RecordingProgressSink()
    await sink.emit(ProgressEvent(stage="first_pass", message="first_pass started", status="started"))
    await sink.emit(ProgressEvent(stage="first_pass", message="first_pass complete", status="complete", cost_usd=0.01))

    assert [event.status for event in sink.events] == ["started", "complete"]
    assert sink.events[1].cost_usd == 0.01


@pytest.mark.asyncio
async def test_logging_sink_logs_errors_as_warnings(caplog):
    caplog.set_level(logging.INFO, logger="pipelines.enrichment.progress")
    await LoggingProgressSink().emit(ProgressEvent(stage="scraping", message="scraping failed: boom", status="error"))

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.getMessage() == "enrichment.progress"
    assert record.stage == "scraping"
