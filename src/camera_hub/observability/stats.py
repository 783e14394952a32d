"""Acquisition statistics.

Records every provider call a camera makes (start/stop acquisition, feed
control, exposure, grabs) together with how long it took and whether it
succeeded, plus a running count of frames forwarded to subscription
handlers. Thread-safe so a provider delivering frames from a worker thread
can share the same collector.

Example:
    stats = AcquisitionStats()
    camera = Camera(config, stats=stats)

    stats.record_call(camera_id=0, operation="start_acquisition",
                      duration_ms=12.5, success=True)
    stats.record_frame(camera_id=0)

    summary = stats.get_summary(camera_id=0)
    print(f"{summary.frames_forwarded} frames, {summary.success_rate:.0%} ok")
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# =============================================================================
# Constants
# =============================================================================

#: Number of provider-call records kept per camera for duration statistics.
DEFAULT_STATS_WINDOW_SIZE: int = 1000


def _utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class StatsSummary:
    """Summary of provider activity for one camera.

    Attributes:
        camera_id: Camera identifier.
        total_calls: Provider calls attempted.
        successful_calls: Calls that completed without raising.
        failed_calls: Calls that raised.
        success_rate: successful / total (0.0 when no calls).
        min_duration_ms: Fastest successful call in the window.
        max_duration_ms: Slowest successful call in the window.
        avg_duration_ms: Mean successful call duration in the window.
        p95_duration_ms: 95th percentile successful call duration.
        calls_by_operation: Attempt count per provider operation.
        error_counts: Failure count per error type.
        frames_forwarded: Frames handed to subscription handlers.
        last_call_time: When the most recent call was recorded.
        uptime_seconds: Seconds since creation or last reset.
    """

    camera_id: int
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    success_rate: float = 0.0
    min_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    avg_duration_ms: float = 0.0
    p95_duration_ms: float = 0.0
    calls_by_operation: dict[str, int] = field(default_factory=dict)
    error_counts: dict[str, int] = field(default_factory=dict)
    frames_forwarded: int = 0
    last_call_time: datetime | None = None
    uptime_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable copy of the summary."""
        return {
            "camera_id": self.camera_id,
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "success_rate": self.success_rate,
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "avg_duration_ms": self.avg_duration_ms,
            "p95_duration_ms": self.p95_duration_ms,
            "calls_by_operation": dict(self.calls_by_operation),
            "error_counts": dict(self.error_counts),
            "frames_forwarded": self.frames_forwarded,
            "last_call_time": (
                self.last_call_time.isoformat() if self.last_call_time else None
            ),
            "uptime_seconds": self.uptime_seconds,
        }


@dataclass
class CallRecord:
    """One provider call."""

    timestamp: float  # monotonic
    operation: str
    duration_ms: float
    success: bool
    error_type: str | None = None


class AcquisitionStatsCollector:
    """Rolling statistics for a single camera."""

    def __init__(
        self,
        camera_id: int,
        window_size: int = DEFAULT_STATS_WINDOW_SIZE,
    ) -> None:
        self.camera_id = camera_id
        self._records: deque[CallRecord] = deque(maxlen=window_size)
        self._calls_by_operation: dict[str, int] = {}
        self._error_counts: dict[str, int] = {}
        self._total_calls = 0
        self._successful_calls = 0
        self._frames_forwarded = 0
        self._start_time = time.monotonic()
        self._last_call_time: datetime | None = None
        self._lock = threading.Lock()

    def record_call(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error_type: str | None = None,
    ) -> None:
        """Record one provider call outcome.

        Args:
            operation: Provider operation name, e.g. "start_acquisition".
            duration_ms: Wall time spent awaiting the provider.
            success: False when the provider raised.
            error_type: Exception class name for failures.
        """
        record = CallRecord(
            timestamp=time.monotonic(),
            operation=operation,
            duration_ms=duration_ms,
            success=success,
            error_type=error_type,
        )

        with self._lock:
            self._records.append(record)
            self._total_calls += 1
            self._calls_by_operation[operation] = (
                self._calls_by_operation.get(operation, 0) + 1
            )
            if success:
                self._successful_calls += 1
            elif error_type:
                self._error_counts[error_type] = (
                    self._error_counts.get(error_type, 0) + 1
                )
            self._last_call_time = _utc_now()

    def record_frame(self) -> None:
        """Count one frame forwarded to a handler."""
        with self._lock:
            self._frames_forwarded += 1

    def get_summary(self) -> StatsSummary:
        """Snapshot the counters and compute duration statistics.

        Durations come from successful calls in the rolling window only.
        The sort happens outside the lock.
        """
        with self._lock:
            total = self._total_calls
            successful = self._successful_calls
            calls_by_operation = self._calls_by_operation.copy()
            error_counts = self._error_counts.copy()
            frames = self._frames_forwarded
            last_call_time = self._last_call_time
            start_time = self._start_time
            durations = [r.duration_ms for r in self._records if r.success]

        if durations:
            min_dur = min(durations)
            max_dur = max(durations)
            avg_dur = sum(durations) / len(durations)
            p95_dur = _percentile(sorted(durations), 95)
        else:
            min_dur = max_dur = avg_dur = p95_dur = 0.0

        return StatsSummary(
            camera_id=self.camera_id,
            total_calls=total,
            successful_calls=successful,
            failed_calls=total - successful,
            success_rate=successful / total if total > 0 else 0.0,
            min_duration_ms=min_dur,
            max_duration_ms=max_dur,
            avg_duration_ms=avg_dur,
            p95_duration_ms=p95_dur,
            calls_by_operation=calls_by_operation,
            error_counts=error_counts,
            frames_forwarded=frames,
            last_call_time=last_call_time,
            uptime_seconds=time.monotonic() - start_time,
        )

    def reset(self) -> None:
        """Clear all records and counters and restart the uptime clock."""
        with self._lock:
            self._records.clear()
            self._calls_by_operation.clear()
            self._error_counts.clear()
            self._total_calls = 0
            self._successful_calls = 0
            self._frames_forwarded = 0
            self._start_time = time.monotonic()
            self._last_call_time = None


class AcquisitionStats:
    """Per-camera statistics container.

    Collectors are created lazily the first time a camera id is seen. One
    instance can be shared by several cameras.
    """

    def __init__(self, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        self._window_size = window_size
        self._collectors: dict[int, AcquisitionStatsCollector] = {}
        self._lock = threading.Lock()

    def _get_collector(self, camera_id: int) -> AcquisitionStatsCollector:
        with self._lock:
            if camera_id not in self._collectors:
                self._collectors[camera_id] = AcquisitionStatsCollector(
                    camera_id, self._window_size
                )
            return self._collectors[camera_id]

    def record_call(
        self,
        camera_id: int,
        operation: str,
        duration_ms: float,
        success: bool,
        error_type: str | None = None,
    ) -> None:
        """Record a provider call for ``camera_id``."""
        self._get_collector(camera_id).record_call(
            operation, duration_ms, success, error_type
        )

    def record_frame(self, camera_id: int) -> None:
        """Count a forwarded frame for ``camera_id``."""
        self._get_collector(camera_id).record_frame()

    def get_summary(self, camera_id: int) -> StatsSummary:
        """Summary for one camera; empty summary if never seen."""
        return self._get_collector(camera_id).get_summary()

    def get_all_summaries(self) -> dict[int, StatsSummary]:
        """Summaries for every camera that has recorded anything."""
        with self._lock:
            collectors = list(self._collectors.items())
        return {camera_id: c.get_summary() for camera_id, c in collectors}

    def reset(self, camera_id: int | None = None) -> None:
        """Reset one camera, or all of them when ``camera_id`` is None."""
        with self._lock:
            if camera_id is not None:
                if camera_id in self._collectors:
                    self._collectors[camera_id].reset()
            else:
                for collector in self._collectors.values():
                    collector.reset()

    def to_dict(self) -> dict[str, Any]:
        """Export every summary keyed by stringified camera id."""
        return {
            "cameras": {
                str(camera_id): summary.to_dict()
                for camera_id, summary in self.get_all_summaries().items()
            },
            "timestamp": _utc_now().isoformat(),
        }


def _percentile(sorted_data: list[float], p: float) -> float:
    """Linear-interpolated percentile of ascending ``sorted_data``.

    Examples:
        >>> _percentile([1.0, 2.0, 3.0, 4.0, 5.0], 50)
        3.0
        >>> _percentile([], 95)
        0.0
    """
    if not 0 <= p <= 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {p}")

    if not sorted_data:
        return 0.0

    k = (len(sorted_data) - 1) * (p / 100)
    floor_idx = int(k)
    ceil_idx = min(floor_idx + 1, len(sorted_data) - 1)

    if floor_idx == ceil_idx:
        return sorted_data[floor_idx]

    fraction = k - floor_idx
    return sorted_data[floor_idx] * (1 - fraction) + sorted_data[ceil_idx] * fraction
