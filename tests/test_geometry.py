"""
Tests for the geometry primitives: Point3D and AffineTransform.
"""

import math

import numpy as np
import pytest

from ace_core.errors import DegenerateGeometry
from ace_core.geometry import AffineTransform, Point3D, centroid, distance, points_to_array
from tests.conftest import assert_points_close


class TestPoint3D:
    """Tests for Point3D arithmetic and helpers."""

    def test_default_z_is_floor(self):
        assert Point3D(1.0, 2.0).z == 0.0

    def test_arithmetic(self):
        p = Point3D(1.0, 2.0, 3.0)
        q = Point3D(0.5, -1.0, 2.0)

        assert p + q == Point3D(1.5, 1.0, 5.0)
        assert p - q == Point3D(0.5, 3.0, 1.0)
        assert -p == Point3D(-1.0, -2.0, -3.0)
        assert p * 2 == Point3D(2.0, 4.0, 6.0)
        assert 2 * p == Point3D(2.0, 4.0, 6.0)
        assert p / 2 == Point3D(0.5, 1.0, 1.5)

    def test_magnitude_and_distance(self):
        assert Point3D(3.0, 4.0, 0.0).magnitude == pytest.approx(5.0)
        assert distance(Point3D(1.0, 1.0, 1.0), Point3D(1.0, 1.0, 3.0)) == pytest.approx(2.0)
        assert Point3D(0.0, 0.0, 5.0).distance_2d(Point3D(3.0, 4.0, 0.0)) == pytest.approx(5.0)

    def test_normalized(self):
        unit = Point3D(0.0, 3.0, 4.0).normalized()
        assert unit.magnitude == pytest.approx(1.0)
        assert unit.y == pytest.approx(0.6)

    def test_normalized_zero_vector_is_zero(self):
        assert Point3D.zero().normalized() == Point3D.zero()

    def test_dot_and_cross(self):
        x_axis = Point3D(1.0, 0.0)
        y_axis = Point3D(0.0, 1.0)
        assert x_axis.dot(y_axis) == 0.0
        assert x_axis.cross_2d(y_axis) == 1.0
        assert y_axis.cross_2d(x_axis) == -1.0

    def test_is_finite(self):
        assert Point3D(1.0, 2.0, 3.0).is_finite
        assert not Point3D(float('nan'), 0.0).is_finite
        assert not Point3D(0.0, float('inf')).is_finite

    def test_from_array(self):
        assert Point3D.from_array([1, 2]) == Point3D(1.0, 2.0, 0.0)
        assert Point3D.from_array(np.array([1.0, 2.0, 3.0])) == Point3D(1.0, 2.0, 3.0)

    def test_from_array_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            Point3D.from_array([1.0])

    def test_dict_round_trip(self):
        p = Point3D(1.5, -2.0, 0.25)
        assert Point3D.from_dict(p.to_dict()) == p

    def test_centroid(self):
        points = [Point3D(0.0, 0.0), Point3D(2.0, 0.0), Point3D(2.0, 2.0), Point3D(0.0, 2.0)]
        assert_points_close(centroid(points), Point3D(1.0, 1.0, 0.0))

    def test_centroid_empty_is_zero(self):
        assert centroid([]) == Point3D.zero()

    def test_points_to_array_shape(self):
        assert points_to_array([]).shape == (0, 3)
        assert points_to_array([Point3D(1.0, 2.0)]).shape == (1, 3)


class TestAffineTransform:
    """Tests for AffineTransform construction, application and inversion."""

    def test_identity_leaves_points_unchanged(self):
        p = Point3D(3.0, -4.0, 1.5)
        assert AffineTransform.identity().apply(p) == p

    def test_rotation_90_with_translation(self, rotate_90_transform):
        # Local X axis maps to global +Y, then shifted by (1, 1)
        result = rotate_90_transform.apply(Point3D(1.0, 0.0, 0.0))
        assert_points_close(result, Point3D(1.0, 2.0, 0.0))

        result = rotate_90_transform.apply(Point3D(0.0, 1.0, 0.0))
        assert_points_close(result, Point3D(0.0, 1.0, 0.0))

    def test_decomposition(self, similarity_transform):
        assert similarity_transform.rotation_degrees == pytest.approx(30.0)
        assert similarity_transform.translation == Point3D(3.0, -2.0, 0.5)
        sx, sy = similarity_transform.scale_factors
        assert sx == pytest.approx(1.2)
        assert sy == pytest.approx(1.2)
        assert similarity_transform.determinant == pytest.approx(1.44)

    def test_inverse_round_trip(self, similarity_transform):
        inverse = similarity_transform.inverse()
        for p in [Point3D(0.0, 0.0, 0.0), Point3D(4.0, -1.0, 2.0), Point3D(-7.5, 3.3, 0.1)]:
            assert_points_close(inverse.apply(similarity_transform.apply(p)), p)
            assert_points_close(similarity_transform.apply(inverse.apply(p)), p)

    def test_inverse_of_general_affine(self):
        transform = AffineTransform(a=2.0, b=0.5, c=-0.3, d=1.5, tx=1.0, ty=-2.0,
                                    scale_z=2.0, translate_z=0.5)
        p = Point3D(1.0, 2.0, 3.0)
        assert_points_close(transform.inverse().apply(transform.apply(p)), p)

    def test_singular_transform_is_invalid(self):
        singular = AffineTransform(a=1.0, b=2.0, c=2.0, d=4.0, tx=0.0, ty=0.0)
        assert not singular.is_valid()
        with pytest.raises(DegenerateGeometry):
            singular.inverse()

    def test_non_finite_transform_is_invalid(self):
        bad = AffineTransform(a=float('nan'), b=0.0, c=0.0, d=1.0, tx=0.0, ty=0.0)
        assert not bad.is_valid()

    def test_non_finite_accuracy_is_invalid(self):
        unknown_fit = AffineTransform.identity().with_accuracy(float('inf'))
        assert not unknown_fit.is_valid()

    def test_equality_ignores_timestamp(self):
        t1 = AffineTransform(a=1.0, b=0.0, c=0.0, d=1.0, tx=0.0, ty=0.0, timestamp=1.0)
        t2 = AffineTransform(a=1.0, b=0.0, c=0.0, d=1.0, tx=0.0, ty=0.0, timestamp=2.0)
        assert t1 == t2

    def test_with_accuracy(self, rotate_90_transform):
        updated = rotate_90_transform.with_accuracy(0.25)
        assert updated.accuracy == 0.25
        assert updated.a == rotate_90_transform.a
        assert updated.timestamp == rotate_90_transform.timestamp

    def test_dict_round_trip(self, similarity_transform):
        restored = AffineTransform.from_dict(similarity_transform.to_dict())
        assert restored == similarity_transform
        assert restored.timestamp == similarity_transform.timestamp

    def test_apply_all(self, rotate_90_transform):
        points = [Point3D(0.0, 0.0), Point3D(1.0, 0.0)]
        results = rotate_90_transform.apply_all(points)
        assert len(results) == 2
        assert_points_close(results[0], Point3D(1.0, 1.0, 0.0))

    def test_matrix_description_mentions_z(self):
        assert "z'" in AffineTransform.identity().matrix_description()

    def test_heading_is_atan2_b_a(self):
        transform = AffineTransform.from_similarity(1.0, math.radians(-135.0), Point3D.zero())
        assert transform.rotation_degrees == pytest.approx(-135.0)
