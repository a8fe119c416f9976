"""Feature usage model."""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON
import uuid

from flaglab.database import Base
from flaglab.timeutils import utcnow


class FeatureUsage(Base):
    """Append-only record of a user observing a flag decision."""

    __tablename__ = "feature_usage"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    feature_flag_id = Column(String(36), ForeignKey("feature_flags.id", ondelete="SET NULL"), index=True)
    experiment_id = Column(String(36), ForeignKey("experiments.id", ondelete="SET NULL"), index=True)
    variant = Column(String(50))
    action = Column(String(100), nullable=False)
    # "metadata" is reserved on declarative classes
    extra_data = Column("metadata", JSON, default=dict)
    session_id = Column(String(255))
    user_agent = Column(Text)
    ip_address = Column(String(45))
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<FeatureUsage {self.id} action={self.action}>"
