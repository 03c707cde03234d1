"""
Calibration diagnostics: counters, drop reasons and histograms.

Nothing in the engine discards an observation, a range or a calibration
attempt without recording a drop reason here. Histograms hold recent
samples of fit RMSE, mapping error and position residuals.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging
import statistics
import threading
import time

logger = logging.getLogger(__name__)

# Always present in snapshots, even when zero
STANDARD_COUNTERS = (
    'observations_ingested',
    'observations_accepted',
    'sessions_started',
    'sessions_completed',
    'calibrations_succeeded',
    'calibrations_failed',
    'position_estimates',
)

DROP_REASONS = {
    'low_quality': 'Observation below signal strength threshold',
    'nlos': 'Observation not line of sight',
    'outside_acceptance_radius': 'Observation too far from reference point',
    'session_not_recording': 'Observation arrived after session stopped or paused',
    'unknown_session': 'Observation for a session that does not exist',
    'invalid_range': 'Anchor range failed gating',
    'collinear_anchors': 'Anchor geometry is singular',
    'insufficient_points': 'Fewer than 3 calibration points',
    'insufficient_tags': 'Fewer than 3 usable tags',
    'persistence_failed': 'Persistence collaborator failed',
    'stale_event': 'Event from a cancelled workflow run',
}


def _percentile(sorted_samples: Sequence[float], fraction: float) -> float:
    """Nearest-rank percentile of an already sorted, non-empty sequence."""
    if len(sorted_samples) == 1:
        return sorted_samples[0]
    index = min(int(len(sorted_samples) * fraction), len(sorted_samples) - 1)
    return sorted_samples[index]


@dataclass
class CounterSnapshot:
    """Copy of the collector state at one instant."""

    timestamp: float
    counters: Dict[str, int]
    drop_reasons: Dict[str, int]
    histograms: Dict[str, List[float]]

    def total_dropped(self) -> int:
        return sum(self.drop_reasons.values())

    def drop_rate(self, total_items: int) -> float:
        """Dropped items as a percentage of total_items."""
        if total_items <= 0:
            return 0.0
        return 100.0 * self.total_dropped() / total_items


class MetricsCollector:
    """
    Thread-safe metrics store shared by every engine component.

    Usage:
        metrics = MetricsCollector()
        metrics.increment('sessions_started')
        metrics.increment_drop('nlos')
        metrics.record_histogram('calibration_rmse_m', 0.04)
        print("\\n".join(metrics.summary_lines()))
    """

    DROP_REASONS = DROP_REASONS

    def __init__(self):
        self._lock = threading.Lock()
        self._start_time = time.time()
        self._counters: Counter = Counter()
        self._drops: Counter = Counter()
        self._histograms: Dict[str, List[float]] = {}
        self._seed_keys()

    def _seed_keys(self):
        with self._lock:
            for name in STANDARD_COUNTERS:
                self._counters.setdefault(name, 0)
            for reason in DROP_REASONS:
                self._drops.setdefault(reason, 0)

    def increment(self, counter_name: str, value: int = 1):
        with self._lock:
            self._counters[counter_name] += value

    def increment_drop(self, reason: str, value: int = 1):
        """
        Count dropped items under a reason code.

        Reasons outside DROP_REASONS are logged and still counted, so a
        typo never loses data.

        Args:
            reason: Drop reason code
            value: Number of items dropped
        """
        if reason not in DROP_REASONS:
            logger.warning(f"Unknown drop reason '{reason}'")

        with self._lock:
            self._drops[reason] += value
            self._counters['items_dropped'] += value

    def get_counter(self, counter_name: str) -> int:
        with self._lock:
            return self._counters.get(counter_name, 0)

    def get_drop_count(self, reason: str) -> int:
        with self._lock:
            return self._drops.get(reason, 0)

    def record_histogram(self, histogram_name: str, value: float, max_samples: int = 10000):
        """
        Add a sample to a histogram.

        Once a histogram exceeds max_samples only the newest half is kept.
        """
        with self._lock:
            samples = self._histograms.setdefault(histogram_name, [])
            samples.append(value)
            if len(samples) > max_samples:
                del samples[:len(samples) - max_samples // 2]

    def get_histogram_stats(self, histogram_name: str) -> Optional[Dict[str, float]]:
        """
        Summary statistics for one histogram.

        Returns:
            Dict with count, min, max, mean, median and p95, or None when
            nothing has been recorded
        """
        with self._lock:
            samples = sorted(self._histograms.get(histogram_name, ()))

        if not samples:
            return None
        return {
            'count': len(samples),
            'min': samples[0],
            'max': samples[-1],
            'mean': statistics.mean(samples),
            'median': statistics.median(samples),
            'p95': _percentile(samples, 0.95),
        }

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            return CounterSnapshot(
                timestamp=time.time(),
                counters=dict(self._counters),
                drop_reasons=dict(self._drops),
                histograms={name: list(s) for name, s in self._histograms.items()},
            )

    def reset(self):
        """Clear everything and restart the uptime clock."""
        with self._lock:
            self._counters.clear()
            self._drops.clear()
            self._histograms.clear()
            self._start_time = time.time()
        self._seed_keys()

    def get_uptime(self) -> float:
        return time.time() - self._start_time

    def summary_lines(self) -> List[str]:
        """Human-readable summary, one line per entry."""
        snapshot = self.snapshot()
        rule = "=" * 70
        lines = [rule, f"  METRICS SUMMARY (uptime: {self.get_uptime():.1f}s)", rule, "COUNTERS:"]
        lines.extend(f"  {name:30s}: {value:8d}" for name, value in sorted(snapshot.counters.items()))

        dropped = snapshot.total_dropped()
        if dropped:
            lines.append("DROP REASONS:")
            for reason, count in sorted(snapshot.drop_reasons.items()):
                if count:
                    lines.append(f"  {reason:30s}: {count:8d} ({100.0 * count / dropped:5.1f}%)")

        if snapshot.histograms:
            lines.append("HISTOGRAMS:")
            for name in sorted(snapshot.histograms):
                stats = self.get_histogram_stats(name)
                if stats:
                    lines.append(
                        f"  {name}: count={stats['count']}, mean={stats['mean']:.3f}, "
                        f"p95={stats['p95']:.3f}, max={stats['max']:.3f}"
                    )

        lines.append(rule)
        return lines
