"""
Observation preprocessing before mapping.

Removes the unstable start and end of a collection (the operator is still
walking away from / back to the tag), optionally drops non-line-of-sight
samples, and smooths the remainder with a trailing moving average.
"""

from dataclasses import dataclass, replace
from typing import List, Optional, Sequence
import math

from ace_core.geometry import Point3D, centroid
from ace_core.proto import ObservationPoint, SignalQuality


@dataclass
class PreprocessingConfig:
    """
    Configuration for preprocessing.

    Attributes:
        first_trim: Samples dropped from the start
        end_trim: Samples dropped from the end
        moving_average_window: Trailing window size (1 disables smoothing)
        filter_nlos: Drop non-line-of-sight samples
    """

    first_trim: int = 20
    end_trim: int = 20
    moving_average_window: int = 10
    filter_nlos: bool = False

    def __post_init__(self):
        """Validate configuration."""
        assert self.first_trim >= 0, "first_trim cannot be negative"
        assert self.end_trim >= 0, "end_trim cannot be negative"
        assert self.moving_average_window >= 1, "moving average window must be at least 1"


@dataclass
class ProcessingStatistics:
    """Effect of preprocessing on one batch."""

    original_count: int
    processed_count: int
    original_std_dev: float
    processed_std_dev: float

    @property
    def trimmed_count(self) -> int:
        return self.original_count - self.processed_count

    @property
    def trim_rate(self) -> float:
        if self.original_count == 0:
            return 0.0
        return self.trimmed_count / self.original_count

    @property
    def std_dev_improvement(self) -> float:
        """Relative reduction of positional spread (0-1)."""
        if self.original_std_dev == 0:
            return 0.0
        return (self.original_std_dev - self.processed_std_dev) / self.original_std_dev


def _position_spread(points: Sequence[Point3D]) -> float:
    """RMS distance from centroid."""
    if not points:
        return 0.0
    center = centroid(points)
    return math.sqrt(sum(p.distance_to(center) ** 2 for p in points) / len(points))


class ObservationPreprocessor:
    """
    Trim, filter and smooth observation batches.

    Usage:
        preprocessor = ObservationPreprocessor(PreprocessingConfig(first_trim=5, end_trim=5))
        cleaned = preprocessor.process(session.observations)
    """

    def __init__(self, config: Optional[PreprocessingConfig] = None):
        self.config = config or PreprocessingConfig()

    def process(self, observations: Sequence[ObservationPoint]) -> List[ObservationPoint]:
        """
        Run the full pipeline: trim, NLoS filter, moving average.

        Args:
            observations: Samples in capture order

        Returns:
            Processed samples (ids and timestamps preserved)
        """
        processed = self.trim(observations)
        if self.config.filter_nlos:
            processed = [o for o in processed if o.quality.is_line_of_sight]
        return self.moving_average(processed)

    def trim(self, observations: Sequence[ObservationPoint]) -> List[ObservationPoint]:
        """Drop the configured head and tail; batches too short are kept whole."""
        first = self.config.first_trim
        end = self.config.end_trim
        if len(observations) <= first + end:
            return list(observations)
        return list(observations[first:len(observations) - end])

    def moving_average(self, observations: Sequence[ObservationPoint]) -> List[ObservationPoint]:
        """
        Trailing moving average of position, distance, RSSI and quality.

        Line-of-sight is decided by majority vote inside the window. Batches
        shorter than the window are returned unchanged.
        """
        window = self.config.moving_average_window
        if window <= 1 or len(observations) < window:
            return list(observations)

        smoothed = []
        for i, observation in enumerate(observations):
            chunk = observations[max(0, i - window + 1):i + 1]
            n = len(chunk)
            los_votes = sum(1 for o in chunk if o.quality.is_line_of_sight)
            quality = SignalQuality(
                strength=sum(o.quality.strength for o in chunk) / n,
                is_line_of_sight=los_votes * 2 > n,
                confidence=sum(o.quality.confidence for o in chunk) / n,
                error_estimate=sum(o.quality.error_estimate for o in chunk) / n,
            )
            smoothed.append(replace(
                observation,
                position=centroid(o.position for o in chunk),
                distance=sum(o.distance for o in chunk) / n,
                rssi=sum(o.rssi for o in chunk) / n,
                quality=quality,
            ))
        return smoothed

    def smooth_points(self, points: Sequence[Point3D]) -> List[Point3D]:
        """Trailing moving average over bare points."""
        window = self.config.moving_average_window
        if window <= 1 or len(points) < window:
            return list(points)
        return [centroid(points[max(0, i - window + 1):i + 1]) for i in range(len(points))]

    def processing_statistics(
        self,
        original: Sequence[ObservationPoint],
        processed: Sequence[ObservationPoint],
    ) -> ProcessingStatistics:
        """Compare a batch before and after processing."""
        return ProcessingStatistics(
            original_count=len(original),
            processed_count=len(processed),
            original_std_dev=_position_spread([o.position for o in original]),
            processed_std_dev=_position_spread([o.position for o in processed]),
        )
