"""Stage progress events for callers that want to stream pipeline status."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

logger = logging.getLogger("pipelines.enrichment.progress")

ProgressStatus = Literal["started", "complete", "error"]


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    message: str
    status: ProgressStatus
    cost_usd: float | None = None
    data: dict[str, Any] = field(default_factory=dict)


class ProgressSink(Protocol):
    async def emit(self, event: ProgressEvent) -> None:
        ...


class NullProgressSink:
    async def emit(self, event: ProgressEvent) -> None:
        return None


class LoggingProgressSink:
    """Writes each event as a log line; used by the batch CLI."""

    async def emit(self, event: ProgressEvent) -> None:
        level = logging.WARNING if event.status == "error" else logging.INFO
        logger.log(
            level,
            "enrichment.progress",
            extra={
                "stage": event.stage,
                "status": event.status,
                "progress_message": event.message,
                "cost_usd": event.cost_usd,
            },
        )


class RecordingProgressSink:
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    async def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)
