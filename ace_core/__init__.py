"""
Anchor Calibration Engine (ACE) Core Package.

Calibrates the local coordinate frame of each UWB antenna against a global
floor-map frame from tag observations taken at surveyed reference points.

Package structure:
- geometry: Point3D and AffineTransform primitives
- proto: Message schemas (observations, sessions, calibration records)
- calibration: Transform estimation, per-antenna sessions, guided workflow
- quality: Observation quality evaluation, NLoS detection, preprocessing
- localization: Tag position estimation from anchor ranges
- io: Sensing / persistence collaborator contracts, CSV loaders, simulator
- metrics: Diagnostics, counters, histograms
"""

__version__ = "0.1.0"
__author__ = "ACE Calibration Team"

from .errors import CalibrationError
from .geometry import AffineTransform, Point3D
from .metrics import get_metrics

__all__ = ['AffineTransform', 'CalibrationError', 'Point3D', 'get_metrics']
