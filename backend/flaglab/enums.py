"""Enumerations shared by the ORM models and the evaluation snapshots."""
import enum


class ExperimentStatus(str, enum.Enum):
    """Experiment lifecycle state."""
    DRAFT = "DRAFT"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SegmentType(str, enum.Enum):
    """How a segment selects its users."""
    USER_BASED = "USER_BASED"
    ATTRIBUTE_BASED = "ATTRIBUTE_BASED"
    BEHAVIOR_BASED = "BEHAVIOR_BASED"
    CUSTOM = "CUSTOM"
