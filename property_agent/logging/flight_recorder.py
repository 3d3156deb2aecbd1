"""Per-request stage recorder for conversation turns.

Every HTTP request gets a ``FlightRecorder`` on ``request.state``. Services
bind the session id once they know it, time their stages with
``recorder.stage(...)`` and note decisions with ``recorder.log(...)``. When the
request finishes the middleware writes one ``turn.timings`` log line and
reports the per-stage durations in a ``Server-Timing`` response header.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

STAGES = ("EXTRACT", "GATE", "RESPOND", "SEARCH", "TTS", "CLASSIFY", "STORE", "CALL", "PARSE")

_REDACTED_KEYS = frozenset({"phone", "customer_phone", "email", "name", "customer_name"})


@dataclass
class StageEvent:
    stage: str
    message: str
    session_id: Optional[str] = None
    elapsed_ms: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def timed(self) -> bool:
        return self.elapsed_ms is not None


class FlightRecorder:
    def __init__(self, session_id: Optional[str] = None) -> None:
        self.session_id = session_id
        self.events: List[StageEvent] = []
        self.start_time = time.perf_counter()

    def bind(self, session_id: Optional[str]) -> None:
        if session_id:
            self.session_id = session_id

    @contextmanager
    def stage(self, stage: str, **metadata: Any) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            self._record(StageEvent(stage, f"{stage} completed", self.session_id, elapsed_ms, redact(metadata)))

    def log(self, stage: str, message: str, **metadata: Any) -> None:
        self._record(StageEvent(stage, message, self.session_id, None, redact(metadata)))

    def _record(self, event: StageEvent) -> None:
        if event.stage not in STAGES:
            logger.warning("flight_recorder.unknown_stage stage=%s", event.stage)
        self.events.append(event)
        logger.debug(
            "flight_recorder.event session=%s stage=%s message=%s elapsed_ms=%s metadata=%s",
            event.session_id,
            event.stage,
            event.message,
            event.elapsed_ms,
            event.metadata,
        )

    def messages(self, stage: str) -> List[str]:
        return [event.message for event in self.events if event.stage == stage]

    def timings(self) -> Dict[str, float]:
        """Milliseconds spent in each timed stage, in the order stages first ran."""
        totals: Dict[str, float] = {}
        for event in self.events:
            if event.timed:
                totals[event.stage] = round(totals.get(event.stage, 0.0) + event.elapsed_ms, 2)
        return totals

    def total_ms(self) -> float:
        return round((time.perf_counter() - self.start_time) * 1000, 2)

    def server_timing(self) -> str:
        return ", ".join(f"{stage.lower()};dur={ms:.2f}" for stage, ms in self.timings().items())


def redact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: "***" if key in _REDACTED_KEYS and value else value for key, value in payload.items()}


class FlightRecorderMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        recorder = FlightRecorder()
        request.state.flight_recorder = recorder
        response = await call_next(request)
        if recorder.events:
            timing = recorder.server_timing()
            if timing:
                response.headers["Server-Timing"] = timing
            logger.info(
                "turn.timings path=%s session=%s total_ms=%.2f stages=%s",
                request.url.path,
                recorder.session_id,
                recorder.total_ms(),
                recorder.timings(),
            )
        return response


def register_log_middleware(app: FastAPI) -> None:
    app.add_middleware(FlightRecorderMiddleware)


def get_recorder(request: Request) -> FlightRecorder:
    recorder = getattr(request.state, "flight_recorder", None)
    if recorder is None:
        recorder = FlightRecorder()
        request.state.flight_recorder = recorder
    return recorder
