"""Evaluation snapshots and decisions.

A FlagSnapshot is the fully-resolved, read-only view of one flag that the
evaluation engine works on. It holds no reference back into storage: stores
build it, the engine reads it, nothing writes it.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime

from flaglab.enums import ExperimentStatus, SegmentType
from flaglab.timeutils import to_naive_utc


class Variant(BaseModel):
    """One named payload of an experiment with its assignment weight."""

    name: str
    value: Any = None
    percentage: float = 0

    class Config:
        frozen = True


class SegmentSnapshot(BaseModel):
    """Targeting rule as seen by the engine."""

    id: str
    name: str
    type: SegmentType = SegmentType.CUSTOM
    conditions: Any = None  # Raw JSON predicate, parsed lazily by the segment evaluator
    priority: int = 0
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        frozen = True


class ExperimentSnapshot(BaseModel):
    """Experiment as seen by the engine."""

    id: str
    feature_flag_id: Optional[str] = None
    name: str
    status: ExperimentStatus = ExperimentStatus.DRAFT
    variants: List[Variant] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("start_date", "end_date", "created_at")
    @classmethod
    def normalize_dates(cls, v):
        return to_naive_utc(v)

    class Config:
        frozen = True


class FlagSnapshot(BaseModel):
    """A flag together with its segments and experiments."""

    id: str
    key: str
    name: str = ""
    value: Any = True
    default_value: Any = False
    is_active: bool = True
    is_archived: bool = False
    rollout_percentage: float = 0
    user_ids: List[str] = Field(default_factory=list)
    segments: List[SegmentSnapshot] = Field(default_factory=list)
    experiments: List[ExperimentSnapshot] = Field(default_factory=list)

    class Config:
        frozen = True


class EvaluationContext(BaseModel):
    """Request context available to segment conditions."""

    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)",
                "ip_address": "10.1.2.3",
                "attributes": {"plan": "premium", "country": "DE"}
            }
        }


class MatchRef(BaseModel):
    """Identifies the segment or experiment that produced a decision."""

    id: str
    name: str


class Decision(BaseModel):
    """Outcome of evaluating one flag for one user."""

    enabled: bool
    value: Any = None
    reason: str
    matched_segment: Optional[MatchRef] = None
    matched_experiment: Optional[MatchRef] = None
    variant: Optional[Variant] = None

    class Config:
        json_schema_extra = {
            "example": {
                "enabled": True,
                "value": {"layout": "grid"},
                "reason": "experiment:dashboard-layout",
                "matched_segment": None,
                "matched_experiment": {"id": "9b2f0c1e-...", "name": "dashboard-layout"},
                "variant": {"name": "grid", "value": {"layout": "grid"}, "percentage": 50}
            }
        }
