"""
Transform estimation from point correspondences.

Fits the local -> global transform of an antenna from pairs of
(reference_position, measured_position):

- fit_exact_affine: exactly 3 pairs, solved directly (no redundancy)
- fit_similarity: N >= 3 pairs, least-squares rotation + uniform scale +
  translation (Umeyama-style closed form on centred points)
- fit_affine: N >= 3 pairs, least-squares general 6-parameter affine
- estimate_antenna_config: multi-tag antenna placement from averaged samples

All functions are pure and raise CalibrationError subclasses on bad input.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence
import logging
import math

import numpy as np

from ace_core.errors import (
    DegenerateGeometry,
    InsufficientPoints,
    InsufficientTags,
    InvalidCalibrationData,
    SingularConfiguration,
)
from ace_core.geometry import AffineTransform, DETERMINANT_EPSILON, Point3D, centroid, points_to_array
from ace_core.metrics import get_metrics
from ace_core.proto import AntennaConfig

logger = logging.getLogger(__name__)

MIN_POINTS = 3
MIN_TAGS = 3

# Sum of squared distances from centroid below this means all points coincide
SPREAD_EPSILON = 1e-12

# Ratio of minor to major principal spread below this means collinear
COLLINEARITY_TOLERANCE = 1e-9


class TransformModel(Enum):
    """Family of transforms to fit."""

    EXACT = 'exact'              # 3 pairs, exact affine
    SIMILARITY = 'similarity'    # rotation + uniform scale + translation
    AFFINE = 'affine'            # general 6-parameter affine


@dataclass
class TransformEstimatorConfig:
    """
    Configuration for transform estimation.

    Attributes:
        model: Transform family used by TransformEstimator.fit
        min_points: Minimum correspondences required
    """

    model: TransformModel = TransformModel.SIMILARITY
    min_points: int = MIN_POINTS

    def __post_init__(self):
        """Validate configuration."""
        assert self.min_points >= MIN_POINTS, "at least 3 points are needed to fit a transform"


def _validate_pairs(
    reference: Sequence[Point3D],
    measured: Sequence[Point3D],
    min_points: int = MIN_POINTS,
):
    if len(reference) != len(measured):
        raise InvalidCalibrationData(
            f"reference and measured counts differ ({len(reference)} vs {len(measured)})"
        )
    if len(reference) < min_points:
        raise InsufficientPoints(required=min_points, provided=len(reference))
    for point in list(reference) + list(measured):
        if not point.is_finite:
            raise InvalidCalibrationData(f"non-finite coordinate {point}")


def _check_planar_spread(xy: np.ndarray, label: str):
    """
    Reject coincident or collinear planar point sets.

    Args:
        xy: (N, 2) array of points
        label: Name used in the error message

    Raises:
        DegenerateGeometry: If the points have no 2D extent
    """
    centred = xy - xy.mean(axis=0)
    if float(np.sum(centred * centred)) <= SPREAD_EPSILON:
        raise DegenerateGeometry(f"{label} points coincide")

    singular = np.linalg.svd(centred, compute_uv=False)
    if singular[1] <= COLLINEARITY_TOLERANCE * singular[0]:
        raise DegenerateGeometry(f"{label} points are collinear")


def _fit_z(reference_z: np.ndarray, measured_z: np.ndarray):
    """
    Linear regression z_ref = scale * z_meas + offset.

    Falls back to a pure offset (scale 1) when the measured heights have no
    variance, which is the usual case for tags on the floor.
    """
    mean_meas = float(measured_z.mean())
    mean_ref = float(reference_z.mean())
    variance = float(np.sum((measured_z - mean_meas) ** 2))
    if variance <= DETERMINANT_EPSILON:
        return 1.0, mean_ref - mean_meas

    covariance = float(np.sum((measured_z - mean_meas) * (reference_z - mean_ref)))
    scale = covariance / variance
    if abs(scale) <= DETERMINANT_EPSILON:
        return 1.0, mean_ref - mean_meas
    return scale, mean_ref - scale * mean_meas


def compute_rmse(
    reference: Sequence[Point3D],
    measured: Sequence[Point3D],
    transform: AffineTransform,
) -> float:
    """
    Root-mean-square 3D residual of a transform over correspondences.

    Args:
        reference: Expected global positions
        measured: Antenna-local positions
        transform: Transform to evaluate

    Returns:
        RMSE in meters (0 for empty input)
    """
    if not reference:
        return 0.0
    squared = [transform.apply(m).distance_to(r) ** 2 for r, m in zip(reference, measured)]
    return math.sqrt(sum(squared) / len(squared))


def fit_exact_affine(
    reference: Sequence[Point3D],
    measured: Sequence[Point3D],
) -> AffineTransform:
    """
    Solve the affine transform that maps exactly 3 measured points onto
    3 reference points.

    Args:
        reference: 3 global positions
        measured: 3 antenna-local positions (same order)

    Returns:
        AffineTransform with accuracy = RMSE (0 up to rounding)

    Raises:
        InsufficientPoints: Fewer than 3 pairs
        InvalidCalibrationData: More than 3 pairs or non-finite input
        SingularConfiguration: Measured points are collinear
    """
    _validate_pairs(reference, measured)
    if len(reference) != MIN_POINTS:
        raise InvalidCalibrationData(
            f"exact fit needs exactly 3 pairs, got {len(reference)}"
        )

    ref = points_to_array(reference)
    meas = points_to_array(measured)

    system = np.column_stack([meas[:, 0], meas[:, 1], np.ones(3)])
    det = float(np.linalg.det(system))
    if abs(det) <= DETERMINANT_EPSILON:
        raise SingularConfiguration(f"measured points are collinear (det={det:.3e})")

    a, c, tx = np.linalg.solve(system, ref[:, 0])
    b, d, ty = np.linalg.solve(system, ref[:, 1])
    scale_z, translate_z = _fit_z(ref[:, 2], meas[:, 2])

    transform = AffineTransform(
        a=float(a), b=float(b), c=float(c), d=float(d),
        tx=float(tx), ty=float(ty),
        scale_z=scale_z, translate_z=translate_z,
    )
    return transform.with_accuracy(compute_rmse(reference, measured, transform))


def fit_similarity(
    reference: Sequence[Point3D],
    measured: Sequence[Point3D],
) -> AffineTransform:
    """
    Least-squares similarity transform (rotation, uniform scale, translation)
    from measured to reference points, with an independent Z offset.

    Rotation comes from the summed dot and cross products of the centred
    measured -> reference vectors; scale is the ratio of RMS distances from
    the centroids; translation maps the measured centroid onto the reference
    centroid.

    Args:
        reference: N >= 3 global positions
        measured: N antenna-local positions (same order)

    Returns:
        AffineTransform with accuracy = RMSE of 3D residuals

    Raises:
        InsufficientPoints: Fewer than 3 pairs
        InvalidCalibrationData: Mismatched counts or non-finite input
        DegenerateGeometry: Coincident or collinear points
    """
    _validate_pairs(reference, measured)

    ref = points_to_array(reference)
    meas = points_to_array(measured)
    ref_centroid = ref.mean(axis=0)
    meas_centroid = meas.mean(axis=0)

    r = ref[:, :2] - ref_centroid[:2]
    m = meas[:, :2] - meas_centroid[:2]

    _check_planar_spread(meas[:, :2], "measured")
    ref_spread = float(np.sum(r * r))
    if ref_spread <= SPREAD_EPSILON:
        raise DegenerateGeometry("reference points coincide")
    meas_spread = float(np.sum(m * m))

    dot = float(np.sum(m[:, 0] * r[:, 0] + m[:, 1] * r[:, 1]))
    cross = float(np.sum(m[:, 0] * r[:, 1] - m[:, 1] * r[:, 0]))
    theta = math.atan2(cross, dot)
    scale = math.sqrt(ref_spread / meas_spread)

    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    rotated_x = cos_t * meas_centroid[0] - sin_t * meas_centroid[1]
    rotated_y = sin_t * meas_centroid[0] + cos_t * meas_centroid[1]
    translation = Point3D(
        float(ref_centroid[0] - scale * rotated_x),
        float(ref_centroid[1] - scale * rotated_y),
        float(ref_centroid[2] - meas_centroid[2]),
    )

    transform = AffineTransform.from_similarity(scale, theta, translation)
    rmse = compute_rmse(reference, measured, transform)
    logger.debug(
        f"Similarity fit: n={len(reference)}, theta={math.degrees(theta):.2f}deg, "
        f"scale={scale:.4f}, rmse={rmse:.4f}m"
    )
    return transform.with_accuracy(rmse)


def fit_affine(
    reference: Sequence[Point3D],
    measured: Sequence[Point3D],
) -> AffineTransform:
    """
    Least-squares general affine transform (6 planar parameters) with a
    regressed Z mapping.

    Args:
        reference: N >= 3 global positions
        measured: N antenna-local positions (same order)

    Returns:
        AffineTransform with accuracy = RMSE of 3D residuals

    Raises:
        InsufficientPoints: Fewer than 3 pairs
        InvalidCalibrationData: Mismatched counts or non-finite input
        DegenerateGeometry: Collinear input or singular result
    """
    _validate_pairs(reference, measured)

    ref = points_to_array(reference)
    meas = points_to_array(measured)
    _check_planar_spread(meas[:, :2], "measured")

    design = np.column_stack([meas[:, 0], meas[:, 1], np.ones(len(meas))])
    (a, c, tx), _, _, _ = np.linalg.lstsq(design, ref[:, 0], rcond=None)
    (b, d, ty), _, _, _ = np.linalg.lstsq(design, ref[:, 1], rcond=None)
    scale_z, translate_z = _fit_z(ref[:, 2], meas[:, 2])

    transform = AffineTransform(
        a=float(a), b=float(b), c=float(c), d=float(d),
        tx=float(tx), ty=float(ty),
        scale_z=scale_z, translate_z=translate_z,
    )
    if not transform.is_valid():
        raise DegenerateGeometry(f"fitted transform is singular (det={transform.determinant:.3e})")
    return transform.with_accuracy(compute_rmse(reference, measured, transform))


def fit_transform(
    reference: Sequence[Point3D],
    measured: Sequence[Point3D],
    model: TransformModel = TransformModel.SIMILARITY,
) -> AffineTransform:
    """Fit with the estimator for the given model."""
    if model == TransformModel.EXACT:
        return fit_exact_affine(reference, measured)
    if model == TransformModel.AFFINE:
        return fit_affine(reference, measured)
    return fit_similarity(reference, measured)


def estimate_antenna_config(
    antenna_id: str,
    measured_by_tag: Dict[str, Sequence[Point3D]],
    true_positions: Dict[str, Point3D],
    min_observations: int = 1,
    model: TransformModel = TransformModel.SIMILARITY,
    min_tags: int = MIN_TAGS,
) -> AntennaConfig:
    """
    Estimate an antenna's global position and heading from several tags.

    Each tag's samples are averaged to one measured point; tags need at least
    min_observations samples and a known true position to be usable.

    Args:
        antenna_id: Antenna being calibrated
        measured_by_tag: Antenna-local samples per tag id
        true_positions: Surveyed global position per tag id
        min_observations: Samples required before a tag is usable
        model: Transform family to fit
        min_tags: Usable tags required

    Returns:
        AntennaConfig with position = transform translation,
        heading = atan2(b, a), rmse = fit RMSE

    Raises:
        InsufficientTags: Fewer than min_tags usable tags
        DegenerateGeometry: Tag layout is collinear
    """
    usable = sorted(
        tag_id for tag_id, samples in measured_by_tag.items()
        if tag_id in true_positions and len(samples) >= min_observations
    )
    if len(usable) < min_tags:
        get_metrics().increment_drop('insufficient_tags')
        raise InsufficientTags(antenna_id=antenna_id, required=min_tags, found=len(usable))

    measured = [centroid(measured_by_tag[tag_id]) for tag_id in usable]
    reference = [true_positions[tag_id] for tag_id in usable]
    transform = fit_transform(reference, measured, model)

    get_metrics().record_histogram('calibration_rmse_m', transform.accuracy)
    logger.info(
        f"Antenna {antenna_id}: position={transform.translation}, "
        f"heading={transform.rotation_degrees:.2f}deg, rmse={transform.accuracy:.4f}m "
        f"({len(usable)} tags)"
    )
    return AntennaConfig(
        antenna_id=antenna_id,
        position=transform.translation,
        heading_radians=transform.rotation_radians,
        rmse=transform.accuracy,
        tags_used=tuple(usable),
        scale_factors=transform.scale_factors,
        transform=transform,
    )


class TransformEstimator:
    """
    Configured front end over the fitting functions.

    Usage:
        estimator = TransformEstimator()
        transform = estimator.fit(reference_points, measured_points)
    """

    def __init__(self, config: Optional[TransformEstimatorConfig] = None):
        """
        Initialize estimator.

        Args:
            config: Estimator configuration (uses defaults if None)
        """
        self.config = config or TransformEstimatorConfig()

    def fit(self, reference: Sequence[Point3D], measured: Sequence[Point3D]) -> AffineTransform:
        """
        Fit a transform with the configured model.

        Raises:
            InsufficientPoints: Fewer than config.min_points pairs
        """
        if len(reference) < self.config.min_points:
            raise InsufficientPoints(required=self.config.min_points, provided=len(reference))
        return fit_transform(reference, measured, self.config.model)

    def residuals(
        self,
        reference: Sequence[Point3D],
        measured: Sequence[Point3D],
        transform: AffineTransform,
    ) -> List[float]:
        """Per-pair 3D residual distances (m)."""
        return [transform.apply(m).distance_to(r) for r, m in zip(reference, measured)]
