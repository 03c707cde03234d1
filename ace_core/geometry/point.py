"""
3D point / vector primitive.

All calibration math works in meters in a right-handed frame where X/Y is the
floor plane and Z is height above the floor.
"""

from dataclasses import dataclass
from typing import Iterable, Sequence
import math

import numpy as np


@dataclass(frozen=True)
class Point3D:
    """
    Immutable 3D point or vector in meters.

    Attributes:
        x: X coordinate (m)
        y: Y coordinate (m)
        z: Z coordinate (m), defaults to floor level
    """

    x: float
    y: float
    z: float = 0.0

    @classmethod
    def zero(cls) -> "Point3D":
        """Origin / zero vector."""
        return cls(0.0, 0.0, 0.0)

    @classmethod
    def from_array(cls, values: Sequence[float]) -> "Point3D":
        """
        Build a point from a 2- or 3-element sequence.

        Args:
            values: (x, y) or (x, y, z)

        Returns:
            Point3D (z defaults to 0 for 2-element input)
        """
        if len(values) == 2:
            return cls(float(values[0]), float(values[1]), 0.0)
        if len(values) == 3:
            return cls(float(values[0]), float(values[1]), float(values[2]))
        raise ValueError(f"Expected 2 or 3 coordinates, got {len(values)}")

    @classmethod
    def from_dict(cls, data: dict) -> "Point3D":
        """Inverse of to_dict()."""
        return cls(float(data['x']), float(data['y']), float(data.get('z', 0.0)))

    def __add__(self, other: "Point3D") -> "Point3D":
        return Point3D(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Point3D") -> "Point3D":
        return Point3D(self.x - other.x, self.y - other.y, self.z - other.z)

    def __neg__(self) -> "Point3D":
        return Point3D(-self.x, -self.y, -self.z)

    def __mul__(self, scalar: float) -> "Point3D":
        return Point3D(self.x * scalar, self.y * scalar, self.z * scalar)

    __rmul__ = __mul__

    def __truediv__(self, scalar: float) -> "Point3D":
        return Point3D(self.x / scalar, self.y / scalar, self.z / scalar)

    @property
    def magnitude(self) -> float:
        """Euclidean length of the vector."""
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    @property
    def is_finite(self) -> bool:
        """True when no coordinate is NaN or infinite."""
        return math.isfinite(self.x) and math.isfinite(self.y) and math.isfinite(self.z)

    def normalized(self) -> "Point3D":
        """
        Unit vector in the same direction.

        Returns:
            Unit vector, or the zero vector when magnitude is 0
        """
        length = self.magnitude
        if length == 0.0:
            return Point3D.zero()
        return self / length

    def distance_to(self, other: "Point3D") -> float:
        """Euclidean 3D distance to another point."""
        return (self - other).magnitude

    def distance_2d(self, other: "Point3D") -> float:
        """Euclidean distance in the X/Y plane."""
        return math.hypot(self.x - other.x, self.y - other.y)

    def dot(self, other: "Point3D") -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross_2d(self, other: "Point3D") -> float:
        """Z component of the planar cross product."""
        return self.x * other.y - self.y * other.x

    def as_array(self) -> np.ndarray:
        """Coordinates as a float64 numpy array (x, y, z)."""
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def to_tuple(self):
        return (self.x, self.y, self.z)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {'x': self.x, 'y': self.y, 'z': self.z}

    def __str__(self) -> str:
        return f"({self.x:.3f}, {self.y:.3f}, {self.z:.3f})"


def distance(a: Point3D, b: Point3D) -> float:
    """Euclidean 3D distance between two points."""
    return a.distance_to(b)


def centroid(points: Iterable[Point3D]) -> Point3D:
    """
    Arithmetic mean of a collection of points.

    Args:
        points: Points to average

    Returns:
        Centroid, or the zero vector for an empty collection
    """
    points = list(points)
    if not points:
        return Point3D.zero()
    coords = np.array([p.to_tuple() for p in points], dtype=np.float64)
    return Point3D.from_array(coords.mean(axis=0))


def points_to_array(points: Iterable[Point3D]) -> np.ndarray:
    """Stack points into an (N, 3) float64 array."""
    return np.array([p.to_tuple() for p in points], dtype=np.float64).reshape(-1, 3)
