"""
Proto Module: Message schemas and protocol definitions.

- observation: Signal quality, observation samples, sessions, reference mappings
- calibration: Correspondence points, calibration records, results, placements
- anchor_range: Anchor-to-tag ranges for live positioning
- position_estimate: Tag position output
- workflow: Guided workflow states, progress snapshots and results
"""

from .observation import (
    ObservationPoint,
    ObservationSession,
    ObservationStatus,
    ReferenceObservationMapping,
    SignalQuality,
)
from .calibration import (
    AntennaConfig,
    AntennaPosition,
    CalibrationData,
    CalibrationPoint,
    CalibrationResult,
)
from .anchor_range import AnchorRange, AnchorRangeBatch
from .position_estimate import FixType, PositionEstimate, create_no_fix
from .workflow import (
    CalibrationWorkflowResult,
    StepPhase,
    WorkflowProgress,
    WorkflowQualityStatistics,
    WorkflowStatus,
    WorkflowValidation,
)

__all__ = [
    # Observations
    'ObservationPoint',
    'ObservationSession',
    'ObservationStatus',
    'ReferenceObservationMapping',
    'SignalQuality',
    # Calibration records
    'AntennaConfig',
    'AntennaPosition',
    'CalibrationData',
    'CalibrationPoint',
    'CalibrationResult',
    # Positioning
    'AnchorRange',
    'AnchorRangeBatch',
    'FixType',
    'PositionEstimate',
    'create_no_fix',
    # Workflow
    'CalibrationWorkflowResult',
    'StepPhase',
    'WorkflowProgress',
    'WorkflowQualityStatistics',
    'WorkflowStatus',
    'WorkflowValidation',
]
