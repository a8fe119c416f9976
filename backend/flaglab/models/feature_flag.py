"""Feature flag and segment models."""
from sqlalchemy import Column, String, Integer, Float, Text, Boolean, DateTime, ForeignKey, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid

from flaglab.database import Base
from flaglab.enums import SegmentType
from flaglab.timeutils import utcnow


class FeatureFlag(Base):
    """A named switch with an enabled payload and a fallback payload."""

    __tablename__ = "feature_flags"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    key = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)

    value = Column(JSON, nullable=False)
    default_value = Column(JSON, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    rollout_percentage = Column(Float, default=100, nullable=False)
    user_ids = Column(JSON, default=list, nullable=False)  # Direct targeting

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    archived_at = Column(DateTime)

    # Relationships
    segments = relationship(
        "FeatureSegment",
        back_populates="feature_flag",
        cascade="all, delete-orphan",
        order_by="FeatureSegment.created_at"
    )
    experiments = relationship(
        "Experiment",
        back_populates="feature_flag",
        cascade="all, delete-orphan",
        order_by="Experiment.created_at"
    )

    def __repr__(self):
        return f"<FeatureFlag {self.key} active={self.is_active}>"


class FeatureSegment(Base):
    """Prioritized targeting rule attached to a flag."""

    __tablename__ = "feature_segments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    feature_flag_id = Column(String(36), ForeignKey("feature_flags.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(SQLEnum(SegmentType), nullable=False)
    conditions = Column(JSON, nullable=False)  # {"rule": "user_in", "values": [...]}
    priority = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    feature_flag = relationship("FeatureFlag", back_populates="segments")

    def __repr__(self):
        return f"<FeatureSegment {self.name} priority={self.priority}>"
