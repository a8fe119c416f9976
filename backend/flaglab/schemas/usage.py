"""Usage recording and analytics schemas."""
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime

from flaglab.timeutils import to_naive_utc


class UsageRecord(BaseModel):
    """Immutable usage event handed to a usage sink."""

    id: Optional[str] = None
    feature_flag_id: str
    user_id: str
    experiment_id: Optional[str] = None
    variant: Optional[str] = None
    action: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime

    class Config:
        frozen = True


class UsageRequest(BaseModel):
    """Request to record that a user observed a flag decision.

    Required fields are checked by the usage recorder, not here, so that
    missing values produce the same error for HTTP and in-process callers.
    """

    key: Optional[str] = None
    user_id: Optional[str] = None
    variant: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "key": "new-dashboard",
                "user_id": "user-42",
                "variant": "grid",
                "metadata": {"action": "view", "session_id": "s-123"}
            }
        }


class UsageAck(BaseModel):
    """Response after recording usage."""

    success: bool = True
    usage_id: Optional[str] = None
    experiment_id: Optional[str] = None


class DateRange(BaseModel):
    """Inclusive time window for analytics scans."""

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def normalize(cls, v):
        return to_naive_utc(v)


class DailyCount(BaseModel):
    date: str
    count: int


class VariantPerformance(BaseModel):
    """Usage of one experiment variant.

    conversion_rate stays None until a conversion-event source exists.
    """

    experiment_id: str
    experiment_name: str
    variant: str
    usages: int
    conversion_rate: Optional[float] = None


class FlagAnalytics(BaseModel):
    """Usage report for one flag."""

    total_usages: int
    unique_users: int
    conversion_rate: Optional[float] = None  # Placeholder, see VariantPerformance
    variant_performance: List[VariantPerformance] = Field(default_factory=list)
    usage_over_time: List[DailyCount] = Field(default_factory=list)


class VariantShare(BaseModel):
    variant: str
    count: int
    percentage: float


class ExperimentAnalytics(BaseModel):
    """Participation report for one experiment."""

    experiment_id: str
    total_participants: int
    variant_distribution: List[VariantShare] = Field(default_factory=list)
    metrics: List[Dict[str, Any]] = Field(default_factory=list)  # Placeholder until metrics are collected
