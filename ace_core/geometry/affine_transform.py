"""
Planar affine transform with an independent Z mapping.

Maps an antenna-local point into the global floor-map frame:

    x' = a*x + c*y + tx
    y' = b*x + d*y + ty
    z' = scale_z*z + translate_z

The 2x2 block [[a, c], [b, d]] carries rotation, scale and shear. A rigid or
similarity transform is the special case a = d = s*cos(theta),
b = -c = s*sin(theta).
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Tuple
import math
import time

import numpy as np

from ace_core.errors import DegenerateGeometry
from .point import Point3D

# |det| at or below this is treated as singular
DETERMINANT_EPSILON = 1e-10


@dataclass(frozen=True)
class AffineTransform:
    """
    Local -> global transform for one antenna.

    Attributes:
        a, b, c, d: 2x2 linear part (see module docstring for layout)
        tx, ty: Planar translation (m)
        scale_z: Z scale factor
        translate_z: Z offset (m)
        accuracy: RMSE of the fit that produced this transform (m)
        timestamp: Creation time (not part of equality)
    """

    a: float
    b: float
    c: float
    d: float
    tx: float
    ty: float
    scale_z: float = 1.0
    translate_z: float = 0.0
    accuracy: float = 0.0
    timestamp: float = field(default_factory=time.time, compare=False)

    @classmethod
    def identity(cls) -> "AffineTransform":
        """Transform that leaves every point unchanged."""
        return cls(a=1.0, b=0.0, c=0.0, d=1.0, tx=0.0, ty=0.0)

    @classmethod
    def from_similarity(
        cls,
        scale: float,
        rotation_rad: float,
        translation: Point3D,
        accuracy: float = 0.0,
    ) -> "AffineTransform":
        """
        Build a similarity transform (uniform scale, rotation, translation).

        Args:
            scale: Uniform planar scale
            rotation_rad: Counter-clockwise rotation (rad)
            translation: (tx, ty, translate_z)
            accuracy: Fit RMSE (m)
        """
        cos_t = math.cos(rotation_rad)
        sin_t = math.sin(rotation_rad)
        return cls(
            a=scale * cos_t,
            b=scale * sin_t,
            c=-scale * sin_t,
            d=scale * cos_t,
            tx=translation.x,
            ty=translation.y,
            scale_z=1.0,
            translate_z=translation.z,
            accuracy=accuracy,
        )

    @property
    def determinant(self) -> float:
        """Determinant of the 2x2 linear part."""
        return self.a * self.d - self.b * self.c

    def is_valid(self) -> bool:
        """
        Check that the transform is usable.

        Returns:
            True if every parameter is finite and the planar part is invertible
        """
        params = (self.a, self.b, self.c, self.d, self.tx, self.ty,
                  self.scale_z, self.translate_z, self.accuracy)
        if not all(math.isfinite(p) for p in params):
            return False
        return abs(self.determinant) > DETERMINANT_EPSILON

    @property
    def translation(self) -> Point3D:
        """Image of the local origin, i.e. the antenna position in global frame."""
        return Point3D(self.tx, self.ty, self.translate_z)

    @property
    def rotation_radians(self) -> float:
        """Heading of the local X axis in the global frame (rad)."""
        return math.atan2(self.b, self.a)

    @property
    def rotation_degrees(self) -> float:
        return math.degrees(self.rotation_radians)

    @property
    def scale_factors(self) -> Tuple[float, float]:
        """Principal planar scale factors (singular values, largest first)."""
        singular = np.linalg.svd(self.linear_matrix(), compute_uv=False)
        return float(singular[0]), float(singular[1])

    def linear_matrix(self) -> np.ndarray:
        """2x2 linear part as a numpy array acting on column vectors."""
        return np.array([[self.a, self.c], [self.b, self.d]], dtype=np.float64)

    def apply(self, point: Point3D) -> Point3D:
        """
        Map a local point into the global frame.

        Args:
            point: Antenna-local point

        Returns:
            Transformed point
        """
        return Point3D(
            self.a * point.x + self.c * point.y + self.tx,
            self.b * point.x + self.d * point.y + self.ty,
            self.scale_z * point.z + self.translate_z,
        )

    def apply_all(self, points: Iterable[Point3D]) -> List[Point3D]:
        return [self.apply(p) for p in points]

    def inverse(self) -> "AffineTransform":
        """
        Inverse transform (global -> local).

        Returns:
            AffineTransform undoing this one

        Raises:
            DegenerateGeometry: If the planar part or the Z scale is singular
        """
        det = self.determinant
        if abs(det) <= DETERMINANT_EPSILON:
            raise DegenerateGeometry(f"transform is not invertible (det={det:.3e})")
        if abs(self.scale_z) <= DETERMINANT_EPSILON:
            raise DegenerateGeometry("Z scale is zero")

        inv_a = self.d / det
        inv_b = -self.b / det
        inv_c = -self.c / det
        inv_d = self.a / det
        return AffineTransform(
            a=inv_a,
            b=inv_b,
            c=inv_c,
            d=inv_d,
            tx=-(inv_a * self.tx + inv_c * self.ty),
            ty=-(inv_b * self.tx + inv_d * self.ty),
            scale_z=1.0 / self.scale_z,
            translate_z=-self.translate_z / self.scale_z,
            accuracy=self.accuracy,
        )

    def with_accuracy(self, accuracy: float) -> "AffineTransform":
        """Copy of this transform with a new accuracy value."""
        return AffineTransform(
            a=self.a, b=self.b, c=self.c, d=self.d, tx=self.tx, ty=self.ty,
            scale_z=self.scale_z, translate_z=self.translate_z,
            accuracy=accuracy, timestamp=self.timestamp,
        )

    def matrix_description(self) -> str:
        """Human-readable matrix form for logs and CLI output."""
        return (
            f"[{self.a:8.4f} {self.c:8.4f} | {self.tx:8.4f}]\n"
            f"[{self.b:8.4f} {self.d:8.4f} | {self.ty:8.4f}]\n"
            f"z' = {self.scale_z:.4f} * z + {self.translate_z:.4f}"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'a': self.a,
            'b': self.b,
            'c': self.c,
            'd': self.d,
            'tx': self.tx,
            'ty': self.ty,
            'scale_z': self.scale_z,
            'translate_z': self.translate_z,
            'accuracy': self.accuracy,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AffineTransform":
        """Inverse of to_dict()."""
        return cls(
            a=float(data['a']),
            b=float(data['b']),
            c=float(data['c']),
            d=float(data['d']),
            tx=float(data['tx']),
            ty=float(data['ty']),
            scale_z=float(data.get('scale_z', 1.0)),
            translate_z=float(data.get('translate_z', 0.0)),
            accuracy=float(data.get('accuracy', 0.0)),
            timestamp=float(data.get('timestamp', time.time())),
        )
