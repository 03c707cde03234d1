"""
Localization Module: live tag positioning from anchor ranges.

Key classes:
- PositionEstimator: 3-anchor Cramer trilateration or least-squares multilateration
- AnchorRangeGate: validity / bounds gating before solving
"""

from .range_gating import AnchorRangeGate, AnchorRangeGatingConfig
from .position_estimator import (
    PositionEstimator,
    PositionEstimatorConfig,
    SolveMethod,
    create_default_estimator,
    multilaterate_least_squares,
    trilaterate_three,
)

__all__ = [
    'AnchorRangeGate',
    'AnchorRangeGatingConfig',
    'PositionEstimator',
    'PositionEstimatorConfig',
    'SolveMethod',
    'create_default_estimator',
    'multilaterate_least_squares',
    'trilaterate_three',
]
