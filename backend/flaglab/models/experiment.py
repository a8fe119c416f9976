"""Experiment model."""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid

from flaglab.database import Base
from flaglab.enums import ExperimentStatus
from flaglab.timeutils import utcnow


class Experiment(Base):
    """A/B(/n) experiment attached to a feature flag."""

    __tablename__ = "experiments"
    __table_args__ = (
        UniqueConstraint("feature_flag_id", "name", name="uq_experiments_flag_name"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    feature_flag_id = Column(String(36), ForeignKey("feature_flags.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    status = Column(SQLEnum(ExperimentStatus), default=ExperimentStatus.DRAFT, nullable=False)
    # Ordered list: [{"name": "control", "value": ..., "percentage": 50}, ...]
    variants = Column(JSON, nullable=False)
    target_audience = Column(Text)
    start_date = Column(DateTime)
    end_date = Column(DateTime)
    winner_variant = Column(String(50))
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    feature_flag = relationship("FeatureFlag", back_populates="experiments")

    def __repr__(self):
        return f"<Experiment {self.name} status={self.status.value}>"
