"""
Per-antenna calibration sessions and the manager that owns them.

CalibrationSession is the mutable aggregate over one antenna's
CalibrationData: points are added or removed, a transform is computed from
them, and points are mapped through it. CalibrationManager keeps one session
per antenna and persists results through the repository collaborator on a
best-effort basis (persistence failures never discard in-memory state).
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
import logging
import time

from ace_core.errors import (
    CalibrationError,
    DuplicateReference,
    InsufficientPoints,
    InvalidCalibrationData,
    NoCalibrationData,
    PersistenceFailure,
)
from ace_core.geometry import AffineTransform, Point3D
from ace_core.metrics import get_metrics
from ace_core.proto import CalibrationData, CalibrationPoint, CalibrationResult
from .transform_estimator import MIN_POINTS, fit_similarity

logger = logging.getLogger(__name__)


class CalibrationSession:
    """
    Calibration state of one antenna.

    Usage:
        session = CalibrationSession("antenna-1")
        session.add_point(Point3D(0, 0), Point3D(0.1, -0.2))
        ...
        transform = session.compute_transform()
        global_point = session.apply_transform(local_point)

    Notes:
        - Any point change invalidates the stored transform
        - compute_transform is deterministic for an unchanged point set
    """

    def __init__(self, antenna_id: str, data: Optional[CalibrationData] = None):
        """
        Initialize session.

        Args:
            antenna_id: Antenna this session calibrates
            data: Existing calibration record to resume (optional)
        """
        if data is not None and data.antenna_id != antenna_id:
            raise ValueError(
                f"Calibration data for {data.antenna_id} cannot back session for {antenna_id}"
            )
        self.antenna_id = antenna_id
        self.data = data or CalibrationData(antenna_id=antenna_id)

    @property
    def points(self) -> List[CalibrationPoint]:
        return list(self.data.calibration_points)

    @property
    def transform(self) -> Optional[AffineTransform]:
        return self.data.transform

    def add_point(self, reference: Point3D, measured: Point3D) -> CalibrationPoint:
        """
        Add a correspondence.

        Args:
            reference: Known global position
            measured: Antenna-local measured position

        Returns:
            The stored CalibrationPoint
        """
        point = CalibrationPoint(
            reference_position=reference,
            measured_position=measured,
            antenna_id=self.antenna_id,
        )
        self.data.calibration_points.append(point)
        self._invalidate()
        return point

    def remove_point(self, point_id: str) -> bool:
        """
        Remove a correspondence by id.

        Returns:
            True if a point was removed
        """
        before = len(self.data.calibration_points)
        self.data.calibration_points = [
            p for p in self.data.calibration_points if p.id != point_id
        ]
        removed = len(self.data.calibration_points) != before
        if removed:
            self._invalidate()
        return removed

    def clear(self):
        """Remove all points and the transform."""
        self.data.calibration_points = []
        self._invalidate()

    def _invalidate(self):
        self.data.transform = None
        self.data.updated_at = time.time()

    def validate_points(self):
        """
        Check the point set before fitting.

        Raises:
            NoCalibrationData: No points
            InsufficientPoints: Fewer than 3 points
            InvalidCalibrationData: Non-finite coordinates
            DuplicateReference: Two points share reference coordinates
        """
        points = self.data.calibration_points
        if not points:
            raise NoCalibrationData(self.antenna_id)
        if len(points) < MIN_POINTS:
            raise InsufficientPoints(
                required=MIN_POINTS, provided=len(points), antenna_id=self.antenna_id
            )
        for point in points:
            if not point.is_finite:
                raise InvalidCalibrationData(f"non-finite coordinates in point {point.id}")

        seen = set()
        for point in points:
            key = point.reference_position.to_tuple()
            if key in seen:
                raise DuplicateReference(point.reference_position)
            seen.add(key)

    def compute_transform(self) -> AffineTransform:
        """
        Fit the local -> global transform from the current points.

        Returns:
            The fitted transform (also stored in the session)

        Raises:
            NoCalibrationData, InsufficientPoints, InvalidCalibrationData,
            DegenerateGeometry
        """
        self.validate_points()
        points = self.data.calibration_points
        transform = fit_similarity(
            [p.reference_position for p in points],
            [p.measured_position for p in points],
        )
        self.data.transform = transform
        self.data.updated_at = time.time()
        return transform

    def apply_transform(self, point: Point3D) -> Point3D:
        """
        Map a local point to the global frame.

        Returns the point unchanged when the session has no valid transform.
        """
        if not self.is_valid():
            return point
        return self.data.transform.apply(point)

    def is_valid(self) -> bool:
        """Transform present, valid, and backed by at least 3 points."""
        transform = self.data.transform
        return (
            transform is not None
            and transform.is_valid()
            and len(self.data.calibration_points) >= MIN_POINTS
        )


@dataclass
class CalibrationStatistics:
    """
    Calibration coverage across antennas.

    Attributes:
        total_antennas: Antennas with a session
        calibrated_antennas: Antennas with a valid transform
        average_accuracy: Mean RMSE over calibrated antennas (m)
        completion_percentage: calibrated / total * 100
    """

    total_antennas: int
    calibrated_antennas: int
    average_accuracy: float
    completion_percentage: float


class CalibrationManager:
    """
    Owns one CalibrationSession per antenna and persists results.

    Usage:
        manager = CalibrationManager(repository)
        await manager.load()
        manager.add_calibration_point("A1", reference, measured)
        result = await manager.perform_calibration("A1")
    """

    def __init__(self, repository=None):
        """
        Initialize manager.

        Args:
            repository: CalibrationRepository collaborator (None = in-memory only)
        """
        self.repository = repository
        self.sessions: Dict[str, CalibrationSession] = {}
        self.metrics = get_metrics()

    def session(self, antenna_id: str) -> CalibrationSession:
        """Session for an antenna, created on first use."""
        if antenna_id not in self.sessions:
            self.sessions[antenna_id] = CalibrationSession(antenna_id)
        return self.sessions[antenna_id]

    async def load(self):
        """
        Load stored calibration records.

        Raises:
            PersistenceFailure: If the repository cannot be read
        """
        if self.repository is None:
            return
        try:
            records = await self.repository.load_calibration_data()
        except Exception as e:
            self.metrics.increment_drop('persistence_failed')
            raise PersistenceFailure('load_calibration_data', str(e)) from e

        for record in records:
            self.sessions[record.antenna_id] = CalibrationSession(record.antenna_id, record)
        logger.info(f"Loaded calibration data for {len(records)} antennas")

    def add_calibration_point(
        self, antenna_id: str, reference: Point3D, measured: Point3D
    ) -> CalibrationPoint:
        return self.session(antenna_id).add_point(reference, measured)

    def remove_calibration_point(self, antenna_id: str, point_id: str) -> bool:
        if antenna_id not in self.sessions:
            return False
        return self.sessions[antenna_id].remove_point(point_id)

    def install_points(self, antenna_id: str, points: List[CalibrationPoint]) -> CalibrationSession:
        """
        Replace an antenna's points with a new set.

        Args:
            antenna_id: Antenna to update
            points: Correspondences (antenna ids must match)

        Returns:
            The updated session
        """
        session = self.session(antenna_id)
        session.clear()
        for point in points:
            session.add_point(point.reference_position, point.measured_position)
        return session

    async def perform_calibration(self, antenna_id: str) -> CalibrationResult:
        """
        Compute and persist the transform of one antenna.

        Estimation errors are reported in the result, not raised. A
        persistence failure is logged and the in-memory transform is kept.

        Args:
            antenna_id: Antenna to calibrate

        Returns:
            CalibrationResult
        """
        session = self.sessions.get(antenna_id)
        if session is None:
            error = NoCalibrationData(antenna_id)
            self.metrics.increment('calibrations_failed')
            return CalibrationResult(antenna_id=antenna_id, success=False, error=error)

        try:
            transform = session.compute_transform()
        except CalibrationError as e:
            logger.warning(f"Calibration failed for antenna {antenna_id}: {e}")
            if isinstance(e, InsufficientPoints):
                self.metrics.increment_drop('insufficient_points')
            self.metrics.increment('calibrations_failed')
            return CalibrationResult(
                antenna_id=antenna_id,
                success=False,
                processed_points=len(session.points),
                error=e,
            )

        self.metrics.increment('calibrations_succeeded')
        self.metrics.record_histogram('calibration_rmse_m', transform.accuracy)
        logger.info(
            f"Antenna {antenna_id} calibrated: rmse={transform.accuracy:.4f}m, "
            f"heading={transform.rotation_degrees:.2f}deg, position={transform.translation}"
        )
        await self.persist(antenna_id)
        return CalibrationResult(
            antenna_id=antenna_id,
            success=True,
            transform=transform,
            processed_points=len(session.points),
        )

    async def persist(self, antenna_id: str) -> bool:
        """
        Save an antenna's calibration record (best effort).

        Returns:
            True if saved (or no repository configured), False on failure
        """
        if self.repository is None:
            return True
        data = self.sessions[antenna_id].data
        try:
            await self.repository.save_calibration_data(data)
        except Exception as e:
            failure = PersistenceFailure('save_calibration_data', str(e))
            self.metrics.increment_drop('persistence_failed')
            logger.warning(f"{failure} (antenna {antenna_id}); keeping in-memory result")
            return False
        return True

    def apply_calibrated_transform(self, point: Point3D, antenna_id: str) -> Point3D:
        """
        Map a local point through an antenna's transform.

        Raises:
            NoCalibrationData: If the antenna has no valid transform
        """
        session = self.sessions.get(antenna_id)
        if session is None or not session.is_valid():
            raise NoCalibrationData(antenna_id)
        return session.apply_transform(point)

    def clear(self, antenna_id: Optional[str] = None):
        """Forget one antenna's calibration, or all of them."""
        if antenna_id is None:
            self.sessions.clear()
        else:
            self.sessions.pop(antenna_id, None)

    def statistics(self) -> CalibrationStatistics:
        """Coverage and mean accuracy across antennas."""
        total = len(self.sessions)
        calibrated = [s for s in self.sessions.values() if s.is_valid()]
        accuracies = [s.transform.accuracy for s in calibrated]
        return CalibrationStatistics(
            total_antennas=total,
            calibrated_antennas=len(calibrated),
            average_accuracy=sum(accuracies) / len(accuracies) if accuracies else 0.0,
            completion_percentage=(len(calibrated) / total * 100.0) if total else 0.0,
        )
