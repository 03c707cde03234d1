"""
Multi-tag antenna calibration.

Several tags sit at surveyed global positions while every antenna records
their positions in its own local frame. Averaging each tag's samples and
fitting local -> global gives each antenna's position and heading. Antennas
are calibrated independently: one antenna lacking data never affects the
result of another.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging

from ace_core.errors import CalibrationError, NoCalibrationData, PersistenceFailure
from ace_core.geometry import Point3D
from ace_core.metrics import get_metrics
from ace_core.proto import AntennaConfig, AntennaPosition, ObservationSession
from .transform_estimator import MIN_TAGS, TransformModel, estimate_antenna_config

logger = logging.getLogger(__name__)


@dataclass
class AntennaCalibrationConfig:
    """
    Configuration for multi-tag calibration.

    Attributes:
        min_observations_per_tag: Samples before a tag counts as usable
        min_tags: Usable tags required per antenna
        model: Transform family to fit
    """

    min_observations_per_tag: int = 5
    min_tags: int = MIN_TAGS
    model: TransformModel = TransformModel.SIMILARITY

    def __post_init__(self):
        """Validate configuration."""
        assert self.min_observations_per_tag >= 1, "need at least one observation per tag"
        assert self.min_tags >= MIN_TAGS, "at least 3 tags are needed to fit a transform"


@dataclass
class AntennaCalibrationOutcome:
    """Per-antenna result of calibrate_all()."""

    antenna_id: str
    config: Optional[AntennaConfig] = None
    error: Optional[CalibrationError] = None

    @property
    def success(self) -> bool:
        return self.config is not None


class AntennaCalibrator:
    """
    Collects per-antenna tag samples and estimates antenna placements.

    Usage:
        calibrator = AntennaCalibrator()
        calibrator.set_true_tag_positions({"T1": p1, "T2": p2, "T3": p3})
        calibrator.add_measurement("A1", "T1", local_point)
        ...
        config = calibrator.calibrate_antenna("A1")
    """

    def __init__(self, config: Optional[AntennaCalibrationConfig] = None):
        """
        Initialize calibrator.

        Args:
            config: Calibration configuration (uses defaults if None)
        """
        self.config = config or AntennaCalibrationConfig()
        self.true_tag_positions: Dict[str, Point3D] = {}
        self.measurements: Dict[str, Dict[str, List[Point3D]]] = {}
        self.metrics = get_metrics()

    def set_true_tag_positions(self, positions: Dict[str, Point3D]):
        """Replace the surveyed tag positions."""
        self.true_tag_positions = dict(positions)

    def add_measurement(self, antenna_id: str, tag_id: str, position: Point3D):
        self.measurements.setdefault(antenna_id, {}).setdefault(tag_id, []).append(position)

    def add_measurements(self, antenna_id: str, tag_id: str, positions: Sequence[Point3D]):
        self.measurements.setdefault(antenna_id, {}).setdefault(tag_id, []).extend(positions)

    def load_measurements(self, measurements: Dict[str, Dict[str, List[Point3D]]]):
        """Merge antenna -> tag -> samples data (e.g. from a CSV loader)."""
        for antenna_id, by_tag in measurements.items():
            for tag_id, positions in by_tag.items():
                self.add_measurements(antenna_id, tag_id, positions)

    def collect_from_session(self, session: ObservationSession, tag_id: str) -> int:
        """
        Record every sample of a session as a measurement of one tag.

        Returns:
            Number of samples added
        """
        positions = [o.position for o in session.observations]
        self.add_measurements(session.antenna_id, tag_id, positions)
        return len(positions)

    def calibrate_antenna(self, antenna_id: str) -> AntennaConfig:
        """
        Estimate one antenna's placement.

        Raises:
            NoCalibrationData: No true positions or no samples for the antenna
            InsufficientTags: Fewer than min_tags usable tags
            DegenerateGeometry: Tags are collinear
        """
        if not self.true_tag_positions:
            raise NoCalibrationData(antenna_id)
        by_tag = self.measurements.get(antenna_id)
        if not by_tag:
            raise NoCalibrationData(antenna_id)

        return estimate_antenna_config(
            antenna_id,
            by_tag,
            self.true_tag_positions,
            min_observations=self.config.min_observations_per_tag,
            model=self.config.model,
            min_tags=self.config.min_tags,
        )

    def calibrate_all(
        self, antenna_ids: Optional[Sequence[str]] = None
    ) -> Dict[str, AntennaCalibrationOutcome]:
        """
        Calibrate several antennas independently.

        Args:
            antenna_ids: Antennas to calibrate (default: all with samples)

        Returns:
            antenna id -> outcome (failures carry their error)
        """
        targets = list(antenna_ids) if antenna_ids is not None else sorted(self.measurements)
        outcomes: Dict[str, AntennaCalibrationOutcome] = {}
        for antenna_id in targets:
            try:
                config = self.calibrate_antenna(antenna_id)
            except CalibrationError as e:
                logger.warning(f"Antenna {antenna_id} not calibrated: {e}")
                self.metrics.increment('calibrations_failed')
                outcomes[antenna_id] = AntennaCalibrationOutcome(antenna_id, error=e)
            else:
                self.metrics.increment('calibrations_succeeded')
                outcomes[antenna_id] = AntennaCalibrationOutcome(antenna_id, config=config)
        return outcomes

    async def save_results(
        self,
        repository,
        floor_map_id: str,
        outcomes: Dict[str, AntennaCalibrationOutcome],
    ) -> List[AntennaPosition]:
        """
        Persist successful placements (best effort per antenna).

        Args:
            repository: CalibrationRepository collaborator
            floor_map_id: Floor map the placements belong to
            outcomes: Result of calibrate_all()

        Returns:
            Placements that were saved
        """
        saved = []
        for outcome in outcomes.values():
            if not outcome.success:
                continue
            position = AntennaPosition(
                antenna_id=outcome.antenna_id,
                antenna_name=outcome.antenna_id,
                position=outcome.config.position,
                rotation_degrees=outcome.config.heading_degrees,
                floor_map_id=floor_map_id,
            )
            try:
                await repository.save_antenna_position(position)
            except Exception as e:
                failure = PersistenceFailure('save_antenna_position', str(e))
                self.metrics.increment_drop('persistence_failed')
                logger.warning(f"{failure} (antenna {outcome.antenna_id})")
                continue
            saved.append(position)
        return saved

    def data_statistics(self) -> dict:
        """Sample counts per antenna and tag."""
        return {
            'true_tag_count': len(self.true_tag_positions),
            'antenna_count': len(self.measurements),
            'samples': {
                antenna_id: {tag_id: len(s) for tag_id, s in by_tag.items()}
                for antenna_id, by_tag in self.measurements.items()
            },
        }

    def clear(self):
        """Forget all samples and true positions."""
        self.true_tag_positions = {}
        self.measurements = {}
