"""
Anchor range records.

A range is the measured distance from a tag to an anchor whose global
position is already known (typically a calibrated antenna). The position
estimator consumes one batch of ranges per tag.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import math
import time

from ace_core.geometry import Point3D


@dataclass(frozen=True)
class AnchorRange:
    """
    Distance from one anchor to one tag.

    Attributes:
        anchor_id: Anchor identifier (e.g. "A0")
        anchor_position: Anchor position in the global frame (m)
        distance_m: Measured distance (m)
        timestamp: Measurement time
        tag_id: Tag the distance was measured to

    Bad readings (non-finite, non-positive, unknown anchor position) are
    accepted here and flagged by is_valid; gating happens before solving.
    """

    anchor_id: str
    anchor_position: Point3D
    distance_m: float
    timestamp: float = field(default_factory=time.time)
    tag_id: str = "T0"

    @property
    def is_valid(self) -> bool:
        return (
            self.anchor_position.is_finite
            and math.isfinite(self.distance_m)
            and self.distance_m > 0
        )


@dataclass
class AnchorRangeBatch:
    """All ranges for one tag that are solved together."""

    tag_id: str
    ranges: List[AnchorRange]

    def by_anchor(self) -> Dict[str, AnchorRange]:
        """Latest range per anchor id."""
        latest: Dict[str, AnchorRange] = {}
        for r in self.ranges:
            current = latest.get(r.anchor_id)
            if current is None or r.timestamp >= current.timestamp:
                latest[r.anchor_id] = r
        return latest

    def range_for(self, anchor_id: str) -> Optional[AnchorRange]:
        return self.by_anchor().get(anchor_id)

    @property
    def valid_ranges(self) -> List[AnchorRange]:
        return [r for r in self.ranges if r.is_valid]

    @property
    def latest_timestamp(self) -> float:
        """Timestamp of the newest range; now for an empty batch."""
        return max((r.timestamp for r in self.ranges), default=time.time())
