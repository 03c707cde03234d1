"""
Tag Position Estimation from Anchor Ranges.

Given ranges from a tag to anchors at known global positions, estimates the
tag position for live display.

Method FIRST_THREE (default):
- Use the first 3 valid ranges
- Subtract consecutive sphere equations (1-2, 2-3) to get a 2x2 linear system
- Solve with Cramer's rule; |det| < 1e-10 means collinear anchors (no fix)
- Z is the mean anchor height

Method LEAST_SQUARES:
- Use every valid range
- Subtract the first anchor's equation from each of the others
- Solve the overdetermined system with numpy least squares

Range differences cancel a common height offset, so anchors mounted at one
height give an exact planar solution regardless of tag height.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence
import logging
import math

import numpy as np

from ace_core.geometry import Point3D
from ace_core.metrics import get_metrics
from ace_core.proto import AnchorRange, AnchorRangeBatch, FixType, PositionEstimate, create_no_fix
from .range_gating import AnchorRangeGate, AnchorRangeGatingConfig

logger = logging.getLogger(__name__)

# |det| below this means the anchors are collinear
COLLINEAR_DET_EPSILON = 1e-10


class SolveMethod(Enum):
    """Position solving strategy."""

    FIRST_THREE = 'first_three'
    LEAST_SQUARES = 'least_squares'


@dataclass
class PositionEstimatorConfig:
    """
    Configuration for position estimation.

    Attributes:
        method: Solving strategy
        min_anchors: Minimum valid ranges required
        characteristic_area_m2: Triangle area at which geometry score ~0.63
        residual_scale_m: Residual at which residual score ~0.37
    """

    method: SolveMethod = SolveMethod.FIRST_THREE
    min_anchors: int = 3
    characteristic_area_m2: float = 50.0
    residual_scale_m: float = 0.5

    def __post_init__(self):
        """Validate configuration."""
        assert self.min_anchors >= 3, "planar trilateration needs at least 3 anchors"
        assert self.method == SolveMethod.LEAST_SQUARES or self.min_anchors == 3, \
            "first_three uses exactly 3 anchors; use least_squares for more"
        assert self.characteristic_area_m2 > 0, "characteristic area must be positive"
        assert self.residual_scale_m > 0, "residual scale must be positive"


def trilaterate_three(ranges: Sequence[AnchorRange]) -> Optional[Point3D]:
    """
    Closed-form 3-anchor trilateration.

    Args:
        ranges: Exactly 3 valid ranges

    Returns:
        Estimated position, or None if the anchors are collinear
    """
    p1, p2, p3 = (r.anchor_position for r in ranges[:3])
    r1, r2, r3 = (r.distance_m for r in ranges[:3])

    a = 2.0 * (p2.x - p1.x)
    b = 2.0 * (p2.y - p1.y)
    c = r1 ** 2 - r2 ** 2 - p1.x ** 2 + p2.x ** 2 - p1.y ** 2 + p2.y ** 2
    d = 2.0 * (p3.x - p2.x)
    e = 2.0 * (p3.y - p2.y)
    f = r2 ** 2 - r3 ** 2 - p2.x ** 2 + p3.x ** 2 - p2.y ** 2 + p3.y ** 2

    det = a * e - b * d
    if abs(det) < COLLINEAR_DET_EPSILON:
        return None

    x = (c * e - f * b) / det
    y = (a * f - d * c) / det
    z = (p1.z + p2.z + p3.z) / 3.0
    return Point3D(x, y, z)


def multilaterate_least_squares(ranges: Sequence[AnchorRange]) -> Optional[Point3D]:
    """
    Least-squares planar multilateration over all given ranges.

    Args:
        ranges: 3 or more valid ranges

    Returns:
        Estimated position, or None if the anchors are collinear
    """
    anchors = np.array([r.anchor_position.to_tuple() for r in ranges], dtype=np.float64)
    distances = np.array([r.distance_m for r in ranges], dtype=np.float64)

    x0, y0 = anchors[0, 0], anchors[0, 1]
    design = 2.0 * (anchors[1:, :2] - anchors[0, :2])
    rhs = (
        distances[0] ** 2 - distances[1:] ** 2
        - x0 ** 2 + anchors[1:, 0] ** 2
        - y0 ** 2 + anchors[1:, 1] ** 2
    )

    solution, _, rank, _ = np.linalg.lstsq(design, rhs, rcond=None)
    if rank < 2:
        return None
    return Point3D(float(solution[0]), float(solution[1]), float(anchors[:, 2].mean()))


class PositionEstimator:
    """
    Estimate tag positions from anchor ranges.

    Usage:
        estimator = PositionEstimator()
        position = estimator.estimate(ranges)       # Optional[Point3D]
        estimate = estimator.solve(ranges, "T1")    # PositionEstimate

    Notes:
        - Invalid ranges (non-finite, non-positive) are excluded before solving
        - Fewer than 3 valid ranges or collinear anchors give no position
    """

    def __init__(
        self,
        config: Optional[PositionEstimatorConfig] = None,
        gating_config: Optional[AnchorRangeGatingConfig] = None,
    ):
        """
        Initialize estimator.

        Args:
            config: Estimator configuration (uses defaults if None)
            gating_config: Range gating configuration (uses defaults if None)
        """
        self.config = config or PositionEstimatorConfig()
        self.gate = AnchorRangeGate(gating_config)
        self.metrics = get_metrics()

    def _select(self, ranges: Sequence[AnchorRange]) -> List[AnchorRange]:
        valid = self.gate.check_batch(list(ranges))
        if self.config.method == SolveMethod.FIRST_THREE:
            return valid[:3]
        return valid

    def _solve_selected(self, selected: List[AnchorRange]) -> Optional[Point3D]:
        if len(selected) < self.config.min_anchors:
            return None
        if self.config.method == SolveMethod.FIRST_THREE:
            position = trilaterate_three(selected)
        else:
            position = multilaterate_least_squares(selected)
        if position is None:
            self.metrics.increment_drop('collinear_anchors')
            logger.warning(
                f"Collinear anchor geometry: {[r.anchor_id for r in selected]}"
            )
        return position

    def estimate(self, ranges: Sequence[AnchorRange]) -> Optional[Point3D]:
        """
        Estimate a tag position.

        Args:
            ranges: Anchor ranges for one tag

        Returns:
            Position, or None when no fix is possible
        """
        return self._solve_selected(self._select(ranges))

    def solve(self, ranges: Sequence[AnchorRange], tag_id: str) -> PositionEstimate:
        """
        Estimate a tag position with quality diagnostics.

        Args:
            ranges: Anchor ranges for the tag
            tag_id: Tag identifier

        Returns:
            PositionEstimate (NO_FIX with failure_reason on failure)
        """
        batch = AnchorRangeBatch(tag_id, list(ranges))
        timestamp = batch.latest_timestamp
        selected = self._select(batch.ranges)
        if len(selected) < self.config.min_anchors:
            return create_no_fix(tag_id, timestamp, 'insufficient_anchors')

        position = self._solve_selected(selected)
        if position is None:
            return create_no_fix(tag_id, timestamp, 'collinear_anchors')

        residual = self._residual_rms(position, selected)
        geometry_score = self._compute_geometry_score(selected)
        residual_score = math.exp(-residual / self.config.residual_scale_m)
        quality = float(np.clip(0.4 * geometry_score + 0.6 * residual_score, 0.0, 1.0))

        self.metrics.increment('position_estimates')
        self.metrics.record_histogram('position_residual_m', residual)
        fix_type = (FixType.FIX_2D if self.config.method == SolveMethod.FIRST_THREE
                    else FixType.FIX_LSQ)
        return PositionEstimate(
            tag_id=tag_id,
            timestamp=timestamp,
            fix_type=fix_type,
            position=position,
            quality_score=quality,
            anchor_ids=[r.anchor_id for r in selected],
            residual_m=residual,
            geometry_score=geometry_score,
        )

    def _residual_rms(self, position: Point3D, ranges: Sequence[AnchorRange]) -> float:
        """RMS of planar range residuals."""
        errors = []
        for r in ranges:
            vertical = position.z - r.anchor_position.z
            planar_range = math.sqrt(max(r.distance_m ** 2 - vertical ** 2, 0.0))
            errors.append(position.distance_2d(r.anchor_position) - planar_range)
        return math.sqrt(sum(e * e for e in errors) / len(errors))

    def _compute_geometry_score(self, ranges: Sequence[AnchorRange]) -> float:
        """
        Geometry health score (0-1) from the triangle area of the first
        3 anchors: 1 - exp(-area / characteristic_area).
        """
        p0, p1, p2 = (r.anchor_position for r in ranges[:3])
        area = 0.5 * abs((p1 - p0).cross_2d(p2 - p0))
        score = 1.0 - math.exp(-area / self.config.characteristic_area_m2)
        return float(np.clip(score, 0.0, 1.0))


def create_default_estimator() -> PositionEstimator:
    """
    Create estimator with the closed-form 3-anchor method.

    Returns:
        Configured PositionEstimator instance
    """
    return PositionEstimator(PositionEstimatorConfig(method=SolveMethod.FIRST_THREE))
