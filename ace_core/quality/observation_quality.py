"""
Observation quality evaluation.

Scores single observations, detects non-line-of-sight conditions across a
batch, filters by quality and time, and summarizes batches. The evaluator
holds only its configuration and can be shared freely.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ace_core.proto import ObservationPoint


@dataclass
class ObservationQualityConfig:
    """
    Thresholds for observation quality.

    Attributes:
        min_strength: Blocking lower bound on signal strength
        min_confidence: Blocking lower bound on confidence
        rssi_warning_dbm: RSSI below this is reported (non-blocking)
        error_estimate_warning_m: Error estimate above this is reported (non-blocking)
        nlos_los_percentage: NLoS is declared when LOS% is strictly below this
        filter_threshold: Default strength threshold for filter()
    """

    min_strength: float = 0.5
    min_confidence: float = 0.6
    rssi_warning_dbm: float = -75.0
    error_estimate_warning_m: float = 3.0
    nlos_los_percentage: float = 50.0
    filter_threshold: float = 0.5

    def __post_init__(self):
        """Validate configuration."""
        assert 0.0 <= self.min_strength <= 1.0, "min_strength must be in [0,1]"
        assert 0.0 <= self.min_confidence <= 1.0, "min_confidence must be in [0,1]"
        assert self.error_estimate_warning_m > 0, "error estimate threshold must be positive"
        assert 0.0 <= self.nlos_los_percentage <= 100.0, "LOS percentage must be in [0,100]"


@dataclass
class QualityEvaluation:
    """Verdict for one observation."""

    is_acceptable: bool
    quality_score: float
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class NLoSDetectionResult:
    """Line-of-sight summary for a batch of observations."""

    is_nlos_detected: bool
    line_of_sight_percentage: float
    average_signal_strength: float
    recommendation: str


@dataclass
class ObservationQualityStatistics:
    """
    Batch summary.

    Attributes:
        total_points: Observations in the batch
        valid_points: Observations evaluate() accepts
        average_quality: Mean strength over accepted observations
        line_of_sight_percentage: LOS share over all observations (0-100)
        average_error_estimate: Mean error estimate over accepted observations (m)
    """

    total_points: int = 0
    valid_points: int = 0
    average_quality: float = 0.0
    line_of_sight_percentage: float = 0.0
    average_error_estimate: float = 0.0

    @property
    def valid_ratio(self) -> float:
        return self.valid_points / self.total_points if self.total_points else 0.0

    @property
    def quality_assessment(self) -> str:
        """Short operator-facing verdict."""
        if self.total_points == 0:
            return 'no data'
        if self.average_quality >= 0.8 and self.line_of_sight_percentage >= 80.0:
            return 'excellent'
        if self.average_quality >= 0.6 and self.line_of_sight_percentage >= 60.0:
            return 'good'
        if self.average_quality >= 0.4:
            return 'fair'
        return 'poor'


# Remediation hints per issue
_RECOMMENDATIONS = {
    'low_strength': [
        "Move the tag closer to the antenna",
        "Remove obstacles between the tag and the antenna",
    ],
    'low_rssi': ["Adjust the antenna orientation"],
    'low_confidence': ["Keep the tag still and stabilize the environment"],
    'high_error': ["Re-collect the measurement at this position"],
}


class ObservationQualityEvaluator:
    """
    Evaluate and summarize observation quality.

    Usage:
        evaluator = ObservationQualityEvaluator()
        verdict = evaluator.evaluate(observation)
        if not verdict.is_acceptable:
            print(verdict.issues)
    """

    def __init__(self, config: Optional[ObservationQualityConfig] = None):
        """
        Initialize evaluator.

        Args:
            config: Quality thresholds (uses defaults if None)
        """
        self.config = config or ObservationQualityConfig()

    def evaluate(self, observation: ObservationPoint) -> QualityEvaluation:
        """
        Evaluate one observation.

        Acceptable iff strength >= min_strength and confidence >= min_confidence.
        Low RSSI and large error estimates are reported but never block.

        Args:
            observation: Sample to evaluate

        Returns:
            QualityEvaluation with issues and remediation hints
        """
        quality = observation.quality
        issues = []
        recommendations = []
        acceptable = True

        if quality.strength < self.config.min_strength:
            acceptable = False
            issues.append(f"Low signal strength ({quality.strength:.2f})")
            recommendations.extend(_RECOMMENDATIONS['low_strength'])

        if observation.rssi < self.config.rssi_warning_dbm:
            issues.append(f"Low RSSI ({observation.rssi:.1f} dBm)")
            recommendations.extend(_RECOMMENDATIONS['low_rssi'])

        if quality.confidence < self.config.min_confidence:
            acceptable = False
            issues.append(f"Low confidence ({quality.confidence:.2f})")
            recommendations.extend(_RECOMMENDATIONS['low_confidence'])

        if quality.error_estimate > self.config.error_estimate_warning_m:
            issues.append(f"High error estimate ({quality.error_estimate:.2f} m)")
            recommendations.extend(_RECOMMENDATIONS['high_error'])

        return QualityEvaluation(
            is_acceptable=acceptable,
            quality_score=quality.strength,
            issues=issues,
            recommendations=recommendations,
        )

    def evaluate_batch(self, observations: Sequence[ObservationPoint]) -> List[QualityEvaluation]:
        return [self.evaluate(o) for o in observations]

    def detect_nlos(self, observations: Sequence[ObservationPoint]) -> NLoSDetectionResult:
        """
        Detect non-line-of-sight conditions across a batch.

        Args:
            observations: Batch to inspect

        Returns:
            NLoSDetectionResult; NLoS iff LOS% < nlos_los_percentage
            (an empty batch has LOS% 0 and is reported as NLoS)
        """
        total = len(observations)
        if total == 0:
            los_pct = 0.0
            avg_strength = 0.0
        else:
            los_count = sum(1 for o in observations if o.quality.is_line_of_sight)
            los_pct = los_count / total * 100.0
            avg_strength = sum(o.quality.strength for o in observations) / total

        detected = los_pct < self.config.nlos_los_percentage
        if detected:
            recommendation = (
                "Non-line-of-sight conditions detected. Clear the path between "
                "tag and antenna or move the tag."
            )
        else:
            recommendation = "Line-of-sight conditions are good."

        return NLoSDetectionResult(
            is_nlos_detected=detected,
            line_of_sight_percentage=los_pct,
            average_signal_strength=avg_strength,
            recommendation=recommendation,
        )

    def filter(
        self,
        observations: Sequence[ObservationPoint],
        quality_threshold: Optional[float] = None,
        time_range: Optional[Tuple[float, float]] = None,
    ) -> List[ObservationPoint]:
        """
        Keep observations at or above a strength threshold and inside an
        optional inclusive time range.

        Args:
            observations: Batch to filter
            quality_threshold: Minimum strength (default config.filter_threshold)
            time_range: (start, end) timestamps, inclusive

        Returns:
            Filtered observations in input order
        """
        threshold = self.config.filter_threshold if quality_threshold is None else quality_threshold
        kept = []
        for observation in observations:
            if observation.quality.strength < threshold:
                continue
            if time_range is not None:
                start, end = time_range
                if not start <= observation.timestamp <= end:
                    continue
            kept.append(observation)
        return kept

    def extract_low_quality(
        self, observations: Sequence[ObservationPoint]
    ) -> List[ObservationPoint]:
        """Observations evaluate() rejects."""
        return [o for o in observations if not self.evaluate(o).is_acceptable]

    def extract_high_quality(
        self, observations: Sequence[ObservationPoint]
    ) -> List[ObservationPoint]:
        """Observations evaluate() accepts."""
        return [o for o in observations if self.evaluate(o).is_acceptable]

    def statistics(self, observations: Sequence[ObservationPoint]) -> ObservationQualityStatistics:
        """
        Summarize a batch.

        Returns:
            ObservationQualityStatistics (all zero for an empty batch)
        """
        total = len(observations)
        if total == 0:
            return ObservationQualityStatistics()

        accepted = self.extract_high_quality(observations)
        los_count = sum(1 for o in observations if o.quality.is_line_of_sight)

        if accepted:
            avg_quality = sum(o.quality.strength for o in accepted) / len(accepted)
            avg_error = sum(o.quality.error_estimate for o in accepted) / len(accepted)
        else:
            avg_quality = 0.0
            avg_error = 0.0

        return ObservationQualityStatistics(
            total_points=total,
            valid_points=len(accepted),
            average_quality=avg_quality,
            line_of_sight_percentage=los_count / total * 100.0,
            average_error_estimate=avg_error,
        )


def create_default_evaluator() -> ObservationQualityEvaluator:
    """
    Create evaluator with the standard calibration thresholds.

    Returns:
        Configured ObservationQualityEvaluator instance
    """
    return ObservationQualityEvaluator(ObservationQualityConfig())
