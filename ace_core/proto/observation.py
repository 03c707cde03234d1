"""
Observation Message Schemas.

Defines the samples produced by the sensing device while a tag is observed by
an antenna, and the session that groups those samples.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
import math
import time
import uuid

from ace_core.geometry import Point3D, centroid


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class SignalQuality:
    """
    Signal quality attached to one observation.

    Attributes:
        strength: Normalized signal strength (0-1)
        is_line_of_sight: Direct path between tag and antenna
        confidence: Estimator confidence (0-1)
        error_estimate: Expected position error (m, >= 0)

    Notes:
        - Out-of-range inputs are clamped, never rejected
    """

    strength: float
    is_line_of_sight: bool
    confidence: float
    error_estimate: float

    def __post_init__(self):
        """Clamp values into their valid ranges."""
        object.__setattr__(self, 'strength', _clamp(float(self.strength), 0.0, 1.0))
        object.__setattr__(self, 'confidence', _clamp(float(self.confidence), 0.0, 1.0))
        object.__setattr__(self, 'error_estimate', max(0.0, float(self.error_estimate)))

    @property
    def quality_level(self) -> str:
        """Coarse label for display."""
        if self.strength >= 0.8:
            return 'excellent'
        if self.strength >= 0.6:
            return 'good'
        if self.strength >= 0.4:
            return 'fair'
        if self.strength >= 0.2:
            return 'poor'
        return 'bad'

    def to_dict(self) -> dict:
        return {
            'strength': self.strength,
            'is_line_of_sight': self.is_line_of_sight,
            'confidence': self.confidence,
            'error_estimate': self.error_estimate,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SignalQuality":
        return cls(
            strength=data['strength'],
            is_line_of_sight=bool(data['is_line_of_sight']),
            confidence=data['confidence'],
            error_estimate=data['error_estimate'],
        )


@dataclass(frozen=True)
class ObservationPoint:
    """
    One measured position of a tag as seen by one antenna.

    Attributes:
        antenna_id: Observing antenna
        position: Measured position in the antenna-local frame (m)
        quality: Signal quality of the sample
        timestamp: Capture time (Unix seconds)
        distance: Measured range (m)
        rssi: Received signal strength (dBm)
        id: Unique sample identifier
        session_id: Session the sample belongs to (None = unassigned)
        tag_id: Observed tag (optional)
    """

    antenna_id: str
    position: Point3D
    quality: SignalQuality
    timestamp: float = field(default_factory=time.time)
    distance: float = 0.0
    rssi: float = 0.0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    session_id: Optional[str] = None
    tag_id: Optional[str] = None

    def __post_init__(self):
        """Validate observation."""
        if not self.antenna_id:
            raise ValueError("Observation requires an antenna_id")
        if self.distance < 0:
            raise ValueError(f"Distance cannot be negative: {self.distance}")

    @property
    def is_valid(self) -> bool:
        """Position and scalar fields are finite."""
        return (
            self.position.is_finite
            and math.isfinite(self.distance)
            and math.isfinite(self.rssi)
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'id': self.id,
            'antenna_id': self.antenna_id,
            'session_id': self.session_id,
            'tag_id': self.tag_id,
            'timestamp': self.timestamp,
            'position': self.position.to_dict(),
            'quality': self.quality.to_dict(),
            'distance': self.distance,
            'rssi': self.rssi,
        }


class ObservationStatus(Enum):
    """Lifecycle of an observation session."""

    RECORDING = 'recording'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    FAILED = 'failed'


# Allowed status transitions; everything else is rejected
_TRANSITIONS = {
    ObservationStatus.RECORDING: {ObservationStatus.PAUSED, ObservationStatus.COMPLETED,
                                  ObservationStatus.FAILED},
    ObservationStatus.PAUSED: {ObservationStatus.RECORDING, ObservationStatus.COMPLETED,
                               ObservationStatus.FAILED},
    ObservationStatus.COMPLETED: set(),
    ObservationStatus.FAILED: set(),
}


@dataclass
class ObservationSession:
    """
    Time-bounded collection of observations for one antenna.

    Attributes:
        antenna_id: Antenna being observed
        name: Display name
        id: Unique session identifier
        start_time: Session start (Unix seconds)
        end_time: Session end, None while open
        observations: Samples recorded so far
        status: Current lifecycle status
        reference_index: Index of the reference point this session was
            recorded for (None for free-form sessions)

    Notes:
        - Samples are only appended while RECORDING
        - Transitions are one-directional except PAUSED -> RECORDING
    """

    antenna_id: str
    name: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    observations: List[ObservationPoint] = field(default_factory=list)
    status: ObservationStatus = ObservationStatus.RECORDING
    reference_index: Optional[int] = None

    @property
    def is_recording(self) -> bool:
        return self.status == ObservationStatus.RECORDING

    @property
    def is_open(self) -> bool:
        """Recording or paused."""
        return self.status in (ObservationStatus.RECORDING, ObservationStatus.PAUSED)

    @property
    def duration(self) -> float:
        """Elapsed seconds (to now while still open)."""
        end = self.end_time if self.end_time is not None else time.time()
        return max(0.0, end - self.start_time)

    def append(self, observation: ObservationPoint) -> bool:
        """
        Append a sample if the session is recording.

        Args:
            observation: Sample to record

        Returns:
            True if appended, False if discarded
        """
        if not self.is_recording:
            return False
        self.observations.append(observation)
        return True

    def _transition(self, new_status: ObservationStatus):
        if new_status not in _TRANSITIONS[self.status]:
            raise ValueError(
                f"Invalid session transition {self.status.value} -> {new_status.value}"
            )
        self.status = new_status

    def pause(self):
        self._transition(ObservationStatus.PAUSED)

    def resume(self):
        self._transition(ObservationStatus.RECORDING)

    def complete(self, end_time: Optional[float] = None):
        """Close the session normally."""
        self._transition(ObservationStatus.COMPLETED)
        self.end_time = end_time if end_time is not None else time.time()

    def fail(self, end_time: Optional[float] = None):
        """Close the session as failed."""
        self._transition(ObservationStatus.FAILED)
        self.end_time = end_time if end_time is not None else time.time()

    def average_position(self) -> Optional[Point3D]:
        """Centroid of recorded positions, None when empty."""
        if not self.observations:
            return None
        return centroid(o.position for o in self.observations)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'id': self.id,
            'antenna_id': self.antenna_id,
            'name': self.name,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'status': self.status.value,
            'reference_index': self.reference_index,
            'observations': [o.to_dict() for o in self.observations],
        }


@dataclass
class ReferenceObservationMapping:
    """
    Association of one reference point with the observations attributed to it.

    Attributes:
        reference_index: Index of the reference point in the workflow
        reference_point: Known global position (m)
        observations: Qualifying observations (all antennas)
        timestamp: Creation time

    Derived:
        centroid_position: Mean observed position
        position_error: Distance from reference to centroid (m)
        mapping_quality: mean strength * (1 - min(spread / 10, 1))
    """

    reference_index: int
    reference_point: Point3D
    observations: List[ObservationPoint]
    timestamp: float = field(default_factory=time.time)

    @property
    def centroid_position(self) -> Point3D:
        return centroid(o.position for o in self.observations)

    @property
    def position_error(self) -> float:
        if not self.observations:
            return 0.0
        return self.reference_point.distance_to(self.centroid_position)

    @property
    def position_spread(self) -> float:
        """RMS distance of observations from their centroid (m)."""
        if not self.observations:
            return 0.0
        center = self.centroid_position
        squared = [o.position.distance_to(center) ** 2 for o in self.observations]
        return math.sqrt(sum(squared) / len(squared))

    @property
    def mapping_quality(self) -> float:
        if not self.observations:
            return 0.0
        avg_strength = sum(o.quality.strength for o in self.observations) / len(self.observations)
        return avg_strength * (1.0 - min(self.position_spread / 10.0, 1.0))

    def observations_for(self, antenna_id: str) -> List[ObservationPoint]:
        """Subset of the mapping's observations made by one antenna."""
        return [o for o in self.observations if o.antenna_id == antenna_id]

    def to_dict(self) -> dict:
        return {
            'reference_index': self.reference_index,
            'reference_point': self.reference_point.to_dict(),
            'observation_count': len(self.observations),
            'centroid_position': self.centroid_position.to_dict(),
            'position_error': self.position_error,
            'mapping_quality': self.mapping_quality,
        }
