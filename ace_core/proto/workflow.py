"""
Workflow Message Schemas.

States of the guided calibration workflow and the snapshots it publishes to
observers (progress, validation, final result).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
import time

from ace_core.geometry import Point3D
from .calibration import CalibrationResult


class WorkflowStatus(Enum):
    """Top-level workflow state."""

    IDLE = 'idle'
    COLLECTING_REFERENCE = 'collecting_reference'
    COLLECTING_OBSERVATION = 'collecting_observation'
    CALCULATING = 'calculating'
    COMPLETED = 'completed'
    FAILED = 'failed'

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED)


class StepPhase(Enum):
    """Sub-state while walking through reference points."""

    PLACING_TAG = 'placing_tag'
    READY_TO_START = 'ready_to_start'
    COLLECTING = 'collecting'
    SHOWING_ANTENNA_POSITION = 'showing_antenna_position'
    COMPLETED = 'completed'


@dataclass(frozen=True)
class WorkflowProgress:
    """
    Snapshot published to workflow observers.

    Attributes:
        status: Top-level workflow state
        step_phase: Sub-state for the current reference point
        current_step: Index of the current reference point (0-based)
        total_steps: Number of reference points
        progress: Overall progress (0-1)
        collection_progress: Progress of the running collection window (0-1)
        instruction: Operator instruction for the current phase
        antenna_positions: Per-antenna centroid of the latest collection
        error_message: Aggregate failure description (FAILED only)
    """

    status: WorkflowStatus
    step_phase: Optional[StepPhase]
    current_step: int
    total_steps: int
    progress: float
    collection_progress: float = 0.0
    instruction: str = ""
    antenna_positions: Dict[str, Point3D] = field(default_factory=dict)
    error_message: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class WorkflowValidation:
    """Whether the workflow has enough data to proceed, and what is missing."""

    can_proceed: bool
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class WorkflowQualityStatistics:
    """
    Quality summary across everything collected in a workflow run.

    Attributes:
        total_observations: All samples recorded
        valid_observations: Samples with strength > 0.3
        average_signal_quality: Mean strength over all samples
        line_of_sight_percentage: Share of LOS samples (0-100)
        mapping_accuracy: Mean mapping quality over reference mappings
        processed_antennas: Number of antennas with data
    """

    total_observations: int = 0
    valid_observations: int = 0
    average_signal_quality: float = 0.0
    line_of_sight_percentage: float = 0.0
    mapping_accuracy: float = 0.0
    processed_antennas: int = 0

    def to_dict(self) -> dict:
        return {
            'total_observations': self.total_observations,
            'valid_observations': self.valid_observations,
            'average_signal_quality': self.average_signal_quality,
            'line_of_sight_percentage': self.line_of_sight_percentage,
            'mapping_accuracy': self.mapping_accuracy,
            'processed_antennas': self.processed_antennas,
        }


@dataclass
class CalibrationWorkflowResult:
    """
    Final outcome of a workflow run.

    Attributes:
        success: True only if every attempted antenna calibrated
        processed_antennas: Antenna ids attempted
        calibration_results: Per-antenna results (including failures)
        quality_statistics: Data quality summary
        error_message: Aggregate failure description
    """

    success: bool
    processed_antennas: List[str]
    calibration_results: Dict[str, CalibrationResult]
    quality_statistics: WorkflowQualityStatistics
    error_message: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def succeeded_antennas(self) -> List[str]:
        return [aid for aid, r in self.calibration_results.items() if r.success]

    @property
    def failed_antennas(self) -> List[str]:
        return [aid for aid, r in self.calibration_results.items() if not r.success]

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'processed_antennas': list(self.processed_antennas),
            'calibration_results': {aid: r.to_dict()
                                    for aid, r in self.calibration_results.items()},
            'quality_statistics': self.quality_statistics.to_dict(),
            'error_message': self.error_message,
            'timestamp': self.timestamp,
        }
