from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta

from codenames.registry import Clock, utc_now


DEFAULT_WINDOW = timedelta(minutes=30)


@dataclass(frozen=True, slots=True)
class TelemetrySample:
    timestamp: datetime
    jitter: float
    participant_count: int

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "jitter": self.jitter,
            "participant_count": self.participant_count,
        }


@dataclass(frozen=True, slots=True)
class TelemetrySummary:
    duration_sec: float
    average_jitter: float
    average_participants: int


@dataclass(slots=True)
class _SessionSeries:
    started_at: datetime
    samples: deque[TelemetrySample]


class TelemetryBuffer:
    """Rolling window of conference health samples per session.

    Only samples from the last `window` are kept. Independent of match state; nothing
    here can fail a match action.
    """

    def __init__(self, *, window: timedelta = DEFAULT_WINDOW, clock: Clock = utc_now) -> None:
        self._window = window
        self._clock = clock
        self._lock = threading.Lock()
        self._series: dict[str, _SessionSeries] = {}

    @property
    def window(self) -> timedelta:
        return self._window

    def _trim(self, series: _SessionSeries, cutoff: datetime) -> None:
        # Samples are appended in time order, so stale ones sit at the left.
        while series.samples and series.samples[0].timestamp < cutoff:
            series.samples.popleft()

    def record(self, code: str, *, jitter: float, participant_count: int) -> TelemetrySample:
        now = self._clock()
        sample = TelemetrySample(timestamp=now, jitter=float(jitter), participant_count=int(participant_count))
        with self._lock:
            series = self._series.get(code)
            if series is None:
                series = _SessionSeries(started_at=now, samples=deque())
                self._series[code] = series
            series.samples.append(sample)
            self._trim(series, now - self._window)
        return sample

    def samples(self, code: str) -> list[TelemetrySample]:
        cutoff = self._clock() - self._window
        with self._lock:
            series = self._series.get(code)
            if series is None:
                return []
            return [s for s in series.samples if s.timestamp >= cutoff]

    def latest(self, code: str) -> TelemetrySample | None:
        with self._lock:
            series = self._series.get(code)
            if series is None or not series.samples:
                return None
            return series.samples[-1]

    def evict(self, code: str) -> None:
        with self._lock:
            self._series.pop(code, None)

    def prune(self) -> int:
        """Drop stale samples and sessions left empty. Returns how many sessions were dropped."""

        cutoff = self._clock() - self._window
        with self._lock:
            for series in self._series.values():
                self._trim(series, cutoff)
            empty = [code for code, series in self._series.items() if not series.samples]
            for code in empty:
                del self._series[code]
        return len(empty)

    def summarize(self, code: str) -> TelemetrySummary | None:
        now = self._clock()
        with self._lock:
            series = self._series.get(code)
            if series is None or not series.samples:
                return None
            samples = list(series.samples)
            started_at = series.started_at

        return TelemetrySummary(
            duration_sec=(now - started_at).total_seconds(),
            average_jitter=sum(s.jitter for s in samples) / len(samples),
            average_participants=round(sum(s.participant_count for s in samples) / len(samples)),
        )

    def __contains__(self, code: object) -> bool:
        with self._lock:
            return code in self._series
