from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Union

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    in_progress = "in-progress"
    completed = "completed"
    failed = "failed"


@dataclass(frozen=True)
class SearchStarted:
    step: int
    radius: int
    result_count: int

    status = StepStatus.in_progress
    kind = "search_started"


@dataclass(frozen=True)
class StepCompleted:
    step: int
    radius: int
    result_count: int
    new_count: int
    from_cache: bool = False

    status = StepStatus.completed
    kind = "step_completed"


@dataclass(frozen=True)
class StepFailed:
    step: int
    radius: int
    result_count: int
    error: str

    status = StepStatus.failed
    kind = "step_failed"


@dataclass(frozen=True)
class Expanding:
    step: int
    from_radius: int
    to_radius: int
    result_count: int

    status = StepStatus.in_progress
    kind = "expanding"


@dataclass(frozen=True)
class SearchFinished:
    step: int
    result_count: int
    succeeded: bool

    kind = "search_finished"

    @property
    def status(self) -> StepStatus:
        return StepStatus.completed if self.succeeded else StepStatus.failed


ProgressEvent = Union[SearchStarted, StepCompleted, StepFailed, Expanding, SearchFinished]
ProgressCallback = Callable[[ProgressEvent], Any]


def event_to_dict(event: ProgressEvent) -> dict[str, Any]:
    return {"kind": event.kind, "status": event.status.value, **asdict(event)}


class ProgressReporter:
    """Fans progress events out to an optional callback and keeps a log of them."""

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self._callback = callback
        self.events: list[ProgressEvent] = []

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)
        if self._callback is None:
            return
        try:
            self._callback(event)
        except Exception:
            logger.warning("Progress callback raised on %s", event.kind, exc_info=True)

    def as_dicts(self) -> list[dict[str, Any]]:
        return [event_to_dict(e) for e in self.events]
