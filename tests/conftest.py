"""
Pytest configuration and shared fixtures for the calibration engine tests.

Provides reference layouts, known transforms, synthetic observation factories
and collaborator fakes used across test modules.
"""

import asyncio
import sys
import math
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ace_core.geometry import AffineTransform, Point3D
from ace_core.io import InMemoryCalibrationRepository, SimulatedSensingDevice
from ace_core.metrics import get_metrics, reset_metrics
from ace_core.proto import ObservationPoint, SignalQuality


# =============================================================================
# Metrics
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_metrics():
    """Reset the global metrics singleton around every test."""
    reset_metrics()
    yield get_metrics()
    reset_metrics()


# =============================================================================
# Geometry Fixtures
# =============================================================================


@pytest.fixture
def triangle_references() -> List[Point3D]:
    """
    Three non-collinear reference points on the floor.

    Returns:
        (0,0,0), (5,0,0), (0,5,0)
    """
    return [Point3D(0.0, 0.0, 0.0), Point3D(5.0, 0.0, 0.0), Point3D(0.0, 5.0, 0.0)]


@pytest.fixture
def grid_references() -> List[Point3D]:
    """
    Eight reference points spread over a 10 m x 6 m floor.

    Returns:
        List of Point3D in meters
    """
    return [
        Point3D(0.0, 0.0, 0.0),
        Point3D(10.0, 0.0, 0.0),
        Point3D(10.0, 6.0, 0.0),
        Point3D(0.0, 6.0, 0.0),
        Point3D(5.0, 3.0, 0.0),
        Point3D(2.5, 1.0, 0.0),
        Point3D(7.5, 4.5, 0.0),
        Point3D(3.0, 5.0, 0.0),
    ]


@pytest.fixture
def rotate_90_transform() -> AffineTransform:
    """90 degree rotation followed by translation (1, 1, 0)."""
    return AffineTransform.from_similarity(1.0, math.pi / 2, Point3D(1.0, 1.0, 0.0))


@pytest.fixture
def similarity_transform() -> AffineTransform:
    """Rotation 30 deg, scale 1.2, translation (3, -2, 0.5)."""
    return AffineTransform.from_similarity(1.2, math.radians(30.0), Point3D(3.0, -2.0, 0.5))


@pytest.fixture
def anchor_triangle() -> List[Point3D]:
    """
    Anchors at one mounting height forming a wide triangle.

    Returns:
        List of 3 Point3D
    """
    return [Point3D(0.0, 0.0, 2.5), Point3D(12.0, 0.0, 2.5), Point3D(6.0, 9.0, 2.5)]


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def repository() -> InMemoryCalibrationRepository:
    return InMemoryCalibrationRepository()


@pytest.fixture
def failing_repository() -> "FailingRepository":
    return FailingRepository()


@pytest.fixture
def sensing_device() -> SimulatedSensingDevice:
    """Noise-free simulated device emitting 10 good samples per collection."""
    return SimulatedSensingDevice(samples_per_collection=10, noise_std_m=0.0, seed=1)


class FailingRepository(InMemoryCalibrationRepository):
    """Repository whose writes always fail."""

    async def save_calibration_data(self, data) -> None:
        raise IOError("disk full")

    async def save_antenna_position(self, position) -> None:
        raise IOError("disk full")


@pytest.fixture
def slow_repository() -> "SlowRepository":
    return SlowRepository()


class SlowRepository(InMemoryCalibrationRepository):
    """
    Repository whose calibration saves block until released.

    Call arm() inside the running event loop before starting the run.
    """

    def __init__(self):
        super().__init__()
        self.entered: Optional[asyncio.Event] = None
        self.release: Optional[asyncio.Event] = None

    def arm(self):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def save_calibration_data(self, data) -> None:
        self.entered.set()
        await self.release.wait()
        await super().save_calibration_data(data)


# =============================================================================
# Helper Functions
# =============================================================================


def make_quality(
    strength: float = 0.9,
    los: bool = True,
    confidence: float = 0.9,
    error_estimate: float = 0.1,
) -> SignalQuality:
    """Build a SignalQuality with good defaults."""
    return SignalQuality(
        strength=strength,
        is_line_of_sight=los,
        confidence=confidence,
        error_estimate=error_estimate,
    )


def make_observation(
    position: Point3D = Point3D(0.0, 0.0, 0.0),
    antenna_id: str = "A1",
    session_id: Optional[str] = None,
    timestamp: float = 1000.0,
    rssi: float = -50.0,
    **quality_kwargs,
) -> ObservationPoint:
    """Build an ObservationPoint; extra kwargs go to make_quality()."""
    return ObservationPoint(
        antenna_id=antenna_id,
        position=position,
        quality=make_quality(**quality_kwargs),
        timestamp=timestamp,
        distance=position.magnitude,
        rssi=rssi,
        session_id=session_id,
    )


def measured_from(
    references: Sequence[Point3D],
    transform: AffineTransform,
    noise_std_m: float = 0.0,
    seed: int = 0,
) -> List[Point3D]:
    """
    Antenna-local points that `transform` maps onto `references`, with
    optional planar Gaussian noise.
    """
    inverse = transform.inverse()
    rng = np.random.default_rng(seed)
    measured = []
    for reference in references:
        local = inverse.apply(reference)
        if noise_std_m > 0:
            dx, dy = rng.normal(0.0, noise_std_m, 2)
            local = Point3D(local.x + float(dx), local.y + float(dy), local.z)
        measured.append(local)
    return measured


def assert_points_close(actual: Point3D, expected: Point3D, tol: float = 1e-9):
    """Assert two points agree within tol on every axis."""
    assert abs(actual.x - expected.x) <= tol, f"x: {actual.x} != {expected.x}"
    assert abs(actual.y - expected.y) <= tol, f"y: {actual.y} != {expected.y}"
    assert abs(actual.z - expected.z) <= tol, f"z: {actual.z} != {expected.z}"


def ranges_to(tag: Point3D, anchors: Sequence[Point3D]) -> List[float]:
    """Exact 3D distances from a tag to each anchor."""
    return [tag.distance_to(a) for a in anchors]


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def transforms_by_antenna(**transforms: AffineTransform) -> Dict[str, AffineTransform]:
    return dict(transforms)
