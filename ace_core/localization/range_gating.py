"""
Anchor range gating.

With three anchors there is no redundancy to outvote a bad reading, so ranges
are screened before solving: unusable readings first, then distance bounds.
Each rejection is counted as an 'invalid_range' drop and the latest reason is
kept per (tag, anchor) pair for diagnostics.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging

from ace_core.metrics import get_metrics
from ace_core.proto import AnchorRange

logger = logging.getLogger(__name__)


@dataclass
class AnchorRangeGatingConfig:
    """
    Distance bounds for anchor ranges.

    Attributes:
        d_min_m: Ranges at or below this are rejected (m)
        d_max_m: Ranges above this are rejected (m)
    """

    d_min_m: float = 0.0
    d_max_m: float = 100.0        # indoor floor scale

    def __post_init__(self):
        assert self.d_min_m >= 0, "d_min cannot be negative"
        assert self.d_max_m > self.d_min_m, "d_max must be greater than d_min"


class AnchorRangeGate:
    """
    Screen anchor ranges before position estimation.

    Usage:
        gate = AnchorRangeGate(AnchorRangeGatingConfig(d_max_m=30.0))
        usable = gate.check_batch(ranges)
    """

    def __init__(self, config: Optional[AnchorRangeGatingConfig] = None):
        self.config = config or AnchorRangeGatingConfig()
        self.metrics = get_metrics()
        self._last_rejection: Dict[Tuple[str, str], str] = {}

    def _rejection(self, r: AnchorRange) -> Optional[str]:
        if not r.is_valid:
            return "invalid_message"
        if r.distance_m <= self.config.d_min_m:
            return "too_close"
        if r.distance_m > self.config.d_max_m:
            return "too_far"
        return None

    def check_range(self, range_report: AnchorRange) -> bool:
        """True when the range may be used for solving."""
        key = (range_report.tag_id, range_report.anchor_id)
        reason = self._rejection(range_report)

        if reason is None:
            self._last_rejection.pop(key, None)
            self.metrics.increment('anchor_ranges_accepted')
            return True

        self._last_rejection[key] = reason
        self.metrics.increment('anchor_ranges_rejected')
        self.metrics.increment_drop('invalid_range')
        logger.debug(
            f"Range {range_report.anchor_id}->{range_report.tag_id} "
            f"({range_report.distance_m} m) rejected: {reason}"
        )
        return False

    def check_batch(self, ranges: List[AnchorRange]) -> List[AnchorRange]:
        """Usable ranges, input order preserved."""
        return [r for r in ranges if self.check_range(r)]

    def get_rejection_reason(self, range_report: AnchorRange) -> Optional[str]:
        """Why this tag/anchor pair was last rejected, None if it passed since."""
        return self._last_rejection.get((range_report.tag_id, range_report.anchor_id))
