"""Database models."""
from flaglab.models.feature_flag import FeatureFlag, FeatureSegment, SegmentType
from flaglab.models.experiment import Experiment, ExperimentStatus
from flaglab.models.usage import FeatureUsage

__all__ = [
    "FeatureFlag",
    "FeatureSegment",
    "SegmentType",
    "Experiment",
    "ExperimentStatus",
    "FeatureUsage",
]
