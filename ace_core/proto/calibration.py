"""
Calibration Record Schemas.

Correspondence points, per-antenna calibration data (the persisted shape),
fit results and the resulting antenna placements.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import math
import time
import uuid

from ace_core.geometry import AffineTransform, Point3D


@dataclass(frozen=True)
class CalibrationPoint:
    """
    One correspondence between a known global point and its measured image.

    Attributes:
        reference_position: Known position in the global frame (m)
        measured_position: Position reported in the antenna-local frame (m)
        antenna_id: Antenna that measured the point
        id: Unique point identifier
        timestamp: Creation time
    """

    reference_position: Point3D
    measured_position: Point3D
    antenna_id: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)

    @property
    def is_finite(self) -> bool:
        return self.reference_position.is_finite and self.measured_position.is_finite

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'antenna_id': self.antenna_id,
            'reference_position': self.reference_position.to_dict(),
            'measured_position': self.measured_position.to_dict(),
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalibrationPoint":
        return cls(
            reference_position=Point3D.from_dict(data['reference_position']),
            measured_position=Point3D.from_dict(data['measured_position']),
            antenna_id=data['antenna_id'],
            id=data['id'],
            timestamp=float(data.get('timestamp', time.time())),
        )


@dataclass
class CalibrationData:
    """
    Calibration state of one antenna as stored by the persistence layer.

    Attributes:
        antenna_id: Antenna identifier
        calibration_points: Correspondences collected so far
        transform: Last computed transform (None until computed)
        created_at: Creation time
        updated_at: Last modification time
        is_active: Whether this record is the one in use
    """

    antenna_id: str
    calibration_points: List[CalibrationPoint] = field(default_factory=list)
    transform: Optional[AffineTransform] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    is_active: bool = True

    @property
    def is_calibrated(self) -> bool:
        return self.transform is not None and self.transform.is_valid()

    @property
    def accuracy(self) -> Optional[float]:
        return self.transform.accuracy if self.transform is not None else None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'antenna_id': self.antenna_id,
            'calibration_points': [p.to_dict() for p in self.calibration_points],
            'transform': self.transform.to_dict() if self.transform else None,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'is_active': self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalibrationData":
        transform = data.get('transform')
        return cls(
            antenna_id=data['antenna_id'],
            calibration_points=[CalibrationPoint.from_dict(p)
                                for p in data.get('calibration_points', [])],
            transform=AffineTransform.from_dict(transform) if transform else None,
            created_at=float(data.get('created_at', time.time())),
            updated_at=float(data.get('updated_at', time.time())),
            is_active=bool(data.get('is_active', True)),
        )


@dataclass
class CalibrationResult:
    """
    Outcome of calibrating one antenna.

    Attributes:
        antenna_id: Antenna identifier
        success: Whether a valid transform was produced
        transform: Resulting transform (None on failure)
        processed_points: Number of correspondences used
        error: Failure cause (None on success)
        timestamp: Completion time
    """

    antenna_id: str
    success: bool
    transform: Optional[AffineTransform] = None
    processed_points: int = 0
    error: Optional[Exception] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def accuracy(self) -> Optional[float]:
        return self.transform.accuracy if self.transform is not None else None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def to_dict(self) -> dict:
        return {
            'antenna_id': self.antenna_id,
            'success': self.success,
            'transform': self.transform.to_dict() if self.transform else None,
            'accuracy': self.accuracy,
            'processed_points': self.processed_points,
            'error_message': self.error_message,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class AntennaConfig:
    """
    Estimated placement of an antenna in the global frame.

    Attributes:
        antenna_id: Antenna identifier
        position: Antenna origin in global coordinates (m)
        heading_radians: Rotation of the local X axis (rad)
        rmse: Fit residual RMSE (m)
        tags_used: Tag ids that contributed to the fit
        scale_factors: Principal planar scale factors of the fit
        transform: Full local -> global transform
    """

    antenna_id: str
    position: Point3D
    heading_radians: float
    rmse: float
    tags_used: Tuple[str, ...] = ()
    scale_factors: Tuple[float, float] = (1.0, 1.0)
    transform: Optional[AffineTransform] = None

    @property
    def heading_degrees(self) -> float:
        return math.degrees(self.heading_radians)

    def to_dict(self) -> dict:
        return {
            'antenna_id': self.antenna_id,
            'position': self.position.to_dict(),
            'heading_radians': self.heading_radians,
            'heading_degrees': self.heading_degrees,
            'rmse': self.rmse,
            'tags_used': list(self.tags_used),
            'scale_factors': list(self.scale_factors),
        }


@dataclass
class AntennaPosition:
    """
    Antenna placement on a floor map, as persisted.

    Attributes:
        antenna_id: Antenna identifier
        antenna_name: Display name
        position: Global position (m)
        rotation_degrees: Heading (deg)
        floor_map_id: Floor map the placement belongs to
        id: Record identifier
    """

    antenna_id: str
    antenna_name: str
    position: Point3D
    rotation_degrees: float
    floor_map_id: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'antenna_id': self.antenna_id,
            'antenna_name': self.antenna_name,
            'position': self.position.to_dict(),
            'rotation_degrees': self.rotation_degrees,
            'floor_map_id': self.floor_map_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AntennaPosition":
        return cls(
            antenna_id=data['antenna_id'],
            antenna_name=data.get('antenna_name', data['antenna_id']),
            position=Point3D.from_dict(data['position']),
            rotation_degrees=float(data['rotation_degrees']),
            floor_map_id=data['floor_map_id'],
            id=data['id'],
        )
