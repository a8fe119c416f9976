"""Administrative mutation payloads.

Shape checks live here; business rules (key format, percentage totals,
uniqueness, state transitions) are enforced by FlagAdminService so they raise
the same typed errors whatever the caller.
"""
from pydantic import BaseModel, Field
from typing import Any, List, Optional
from datetime import datetime

from flaglab.enums import SegmentType


class SegmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: SegmentType = SegmentType.CUSTOM
    conditions: Any
    priority: int = 0


class SegmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[SegmentType] = None
    conditions: Optional[Any] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class FeatureFlagCreate(BaseModel):
    """Request to create a feature flag."""

    name: str = Field(..., min_length=1, max_length=100)
    key: str
    description: Optional[str] = Field(None, max_length=500)
    value: Any
    default_value: Any
    rollout_percentage: Optional[float] = None  # Defaults to 100
    user_ids: List[str] = Field(default_factory=list)
    segments: List[SegmentCreate] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "New dashboard",
                "key": "new-dashboard",
                "value": True,
                "default_value": False,
                "rollout_percentage": 25,
                "user_ids": ["user-1"],
                "segments": [
                    {
                        "name": "beta-testers",
                        "type": "ATTRIBUTE_BASED",
                        "conditions": {"rule": "attribute_in", "attribute": "cohort", "values": ["beta"]},
                        "priority": 10
                    }
                ]
            }
        }


class FeatureFlagUpdate(BaseModel):
    """Partial update; the key is immutable and deliberately absent."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    value: Optional[Any] = None
    default_value: Optional[Any] = None
    is_active: Optional[bool] = None
    rollout_percentage: Optional[float] = None
    user_ids: Optional[List[str]] = None


class VariantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    value: Any = None
    percentage: float


class ExperimentCreate(BaseModel):
    """Request to create an experiment on a flag."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    feature_flag_id: str
    variants: List[VariantCreate]
    target_audience: Optional[str] = Field(None, max_length=500)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "name": "dashboard-layout",
                "feature_flag_id": "9b2f0c1e-...",
                "variants": [
                    {"name": "list", "value": {"layout": "list"}, "percentage": 50},
                    {"name": "grid", "value": {"layout": "grid"}, "percentage": 50}
                ]
            }
        }
