"""
Calibration Module: transform estimation, sessions, guided workflow.

Key classes:
- TransformEstimator / fit_*: exact, similarity and affine fits from correspondences
- CalibrationSession: per-antenna points -> transform
- CalibrationManager: sessions for all antennas, best-effort persistence
- AntennaCalibrator: multi-tag antenna position / heading estimation
- CollectionWindow: cancellable collection timeout with progress ticks
- CalibrationWorkflow: step-by-step reference point workflow
"""

from .transform_estimator import (
    TransformEstimator,
    TransformEstimatorConfig,
    TransformModel,
    compute_rmse,
    estimate_antenna_config,
    fit_affine,
    fit_exact_affine,
    fit_similarity,
    fit_transform,
)
from .calibration_session import (
    CalibrationManager,
    CalibrationSession,
    CalibrationStatistics,
)
from .antenna_calibration import (
    AntennaCalibrationConfig,
    AntennaCalibrationOutcome,
    AntennaCalibrator,
)
from .collection import CollectionWindow, WindowOutcome
from .workflow import (
    CalibrationWorkflow,
    WorkflowConfig,
    create_default_workflow,
)

__all__ = [
    # Estimation
    'TransformEstimator',
    'TransformEstimatorConfig',
    'TransformModel',
    'compute_rmse',
    'estimate_antenna_config',
    'fit_affine',
    'fit_exact_affine',
    'fit_similarity',
    'fit_transform',
    # Sessions
    'CalibrationManager',
    'CalibrationSession',
    'CalibrationStatistics',
    # Multi-tag
    'AntennaCalibrationConfig',
    'AntennaCalibrationOutcome',
    'AntennaCalibrator',
    # Workflow
    'CollectionWindow',
    'WindowOutcome',
    'CalibrationWorkflow',
    'WorkflowConfig',
    'create_default_workflow',
]
