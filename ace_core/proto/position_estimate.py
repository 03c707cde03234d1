"""
Live tag position estimates.

Produced by the position estimator for display on the floor map. A failed
solve still yields an estimate (NO_FIX) carrying the reason, so the display
can keep the last known position instead of dropping the tag.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional

from ace_core.geometry import Point3D


class FixType(IntEnum):
    NO_FIX = 0          # nothing solvable
    FIX_2D = 1          # closed form from the first three anchors
    FIX_LSQ = 2         # least squares over every valid anchor


@dataclass
class PositionEstimate:
    """
    Tag position in the global frame.

    Attributes:
        tag_id: Tag identifier
        timestamp: Newest range time that went into the solve
        fix_type: How the position was obtained
        position: Global position (m); last known position or None for NO_FIX
        quality_score: 0-1, 0 for NO_FIX
        anchor_ids: Anchors used, in solve order
        residual_m: RMS planar range residual (m)
        geometry_score: 0-1 anchor triangle health
        failure_reason: Drop reason code for NO_FIX
    """

    tag_id: str
    timestamp: float
    fix_type: FixType
    position: Optional[Point3D]
    quality_score: float = 0.0
    anchor_ids: List[str] = field(default_factory=list)
    residual_m: float = 0.0
    geometry_score: Optional[float] = None
    failure_reason: Optional[str] = None

    def __post_init__(self):
        if not 0.0 <= self.quality_score <= 1.0:
            raise ValueError(f"Quality score must be in [0,1]: {self.quality_score}")
        if self.residual_m < 0:
            raise ValueError(f"Residual cannot be negative: {self.residual_m}")
        if self.fix_type != FixType.NO_FIX and self.position is None:
            raise ValueError("A fix needs a position")

    @property
    def has_fix(self) -> bool:
        return self.fix_type != FixType.NO_FIX

    @property
    def num_anchors(self) -> int:
        return len(self.anchor_ids)

    def to_dict(self) -> dict:
        return {
            'tag_id': self.tag_id,
            'timestamp': self.timestamp,
            'fix_type': self.fix_type.name,
            'position': self.position.to_dict() if self.position is not None else None,
            'quality_score': self.quality_score,
            'anchor_ids': list(self.anchor_ids),
            'residual_m': self.residual_m,
            'geometry_score': self.geometry_score,
            'failure_reason': self.failure_reason,
        }


def create_no_fix(
    tag_id: str,
    timestamp: float,
    reason: str,
    last_position: Optional[Point3D] = None,
) -> PositionEstimate:
    """
    Estimate for a solve that produced no position.

    Args:
        tag_id: Tag identifier
        timestamp: Solve time
        reason: Drop reason code
        last_position: Last known position to keep showing, if any
    """
    return PositionEstimate(
        tag_id=tag_id,
        timestamp=timestamp,
        fix_type=FixType.NO_FIX,
        position=last_position,
        failure_reason=reason,
    )
