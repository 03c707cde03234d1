"""
Geometry Module: points and planar affine transforms.
"""

from .point import Point3D, centroid, distance, points_to_array
from .affine_transform import AffineTransform, DETERMINANT_EPSILON

__all__ = [
    'AffineTransform',
    'DETERMINANT_EPSILON',
    'Point3D',
    'centroid',
    'distance',
    'points_to_array',
]
