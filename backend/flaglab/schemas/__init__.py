"""Pydantic schemas for snapshots, requests and responses."""
from flaglab.schemas.flags import (
    Decision,
    EvaluationContext,
    ExperimentSnapshot,
    FlagSnapshot,
    MatchRef,
    SegmentSnapshot,
    Variant,
)
from flaglab.schemas.usage import (
    DateRange,
    ExperimentAnalytics,
    FlagAnalytics,
    UsageAck,
    UsageRecord,
    UsageRequest,
)
from flaglab.schemas.admin import (
    ExperimentCreate,
    FeatureFlagCreate,
    FeatureFlagUpdate,
    SegmentCreate,
    SegmentUpdate,
    VariantCreate,
)

__all__ = [
    "Decision",
    "EvaluationContext",
    "ExperimentSnapshot",
    "FlagSnapshot",
    "MatchRef",
    "SegmentSnapshot",
    "Variant",
    "DateRange",
    "ExperimentAnalytics",
    "FlagAnalytics",
    "UsageAck",
    "UsageRecord",
    "UsageRequest",
    "ExperimentCreate",
    "FeatureFlagCreate",
    "FeatureFlagUpdate",
    "SegmentCreate",
    "SegmentUpdate",
    "VariantCreate",
]
