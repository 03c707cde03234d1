"""
Quality Module: observation quality evaluation and preprocessing.

Key classes:
- ObservationQualityEvaluator: per-sample verdicts, NLoS detection, filtering, statistics
- ObservationPreprocessor: trimming, NLoS filtering, moving-average smoothing
"""

from .observation_quality import (
    NLoSDetectionResult,
    ObservationQualityConfig,
    ObservationQualityEvaluator,
    ObservationQualityStatistics,
    QualityEvaluation,
    create_default_evaluator,
)
from .preprocessing import (
    ObservationPreprocessor,
    PreprocessingConfig,
    ProcessingStatistics,
)

__all__ = [
    'NLoSDetectionResult',
    'ObservationQualityConfig',
    'ObservationQualityEvaluator',
    'ObservationQualityStatistics',
    'QualityEvaluation',
    'create_default_evaluator',
    'ObservationPreprocessor',
    'PreprocessingConfig',
    'ProcessingStatistics',
]
