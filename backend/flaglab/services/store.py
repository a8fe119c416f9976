"""SQLAlchemy-backed FlagStore and UsageSink."""
import structlog
from datetime import datetime
from pydantic import ValidationError
from typing import Any, List, Optional
from sqlalchemy.orm import Session

from flaglab.models.experiment import Experiment
from flaglab.models.feature_flag import FeatureFlag, FeatureSegment
from flaglab.models.usage import FeatureUsage
from flaglab.schemas.flags import ExperimentSnapshot, FlagSnapshot, SegmentSnapshot, Variant
from flaglab.schemas.usage import UsageRecord

logger = structlog.get_logger()


def variants_from_json(raw: Any, experiment_id: Optional[str] = None) -> List[Variant]:
    """Parse stored variant JSON, dropping entries that do not fit the shape."""
    if not isinstance(raw, list):
        return []

    variants = []
    for entry in raw:
        try:
            variants.append(Variant.model_validate(entry))
        except ValidationError:
            logger.warning("experiment_variant_invalid", experiment_id=experiment_id)
    return variants


def experiment_snapshot(experiment: Experiment) -> ExperimentSnapshot:
    return ExperimentSnapshot(
        id=experiment.id,
        feature_flag_id=experiment.feature_flag_id,
        name=experiment.name,
        status=experiment.status,
        variants=variants_from_json(experiment.variants, experiment.id),
        start_date=experiment.start_date,
        end_date=experiment.end_date,
        created_at=experiment.created_at
    )


def segment_snapshot(segment: FeatureSegment) -> SegmentSnapshot:
    return SegmentSnapshot(
        id=segment.id,
        name=segment.name,
        type=segment.type,
        conditions=segment.conditions,
        priority=segment.priority,
        is_active=segment.is_active,
        created_at=segment.created_at
    )


def flag_snapshot(flag: FeatureFlag) -> FlagSnapshot:
    return FlagSnapshot(
        id=flag.id,
        key=flag.key,
        name=flag.name,
        value=flag.value,
        default_value=flag.default_value,
        is_active=flag.is_active,
        is_archived=flag.is_archived,
        rollout_percentage=flag.rollout_percentage or 0,
        user_ids=[str(u) for u in (flag.user_ids or [])],
        segments=[segment_snapshot(s) for s in flag.segments if s.is_active],
        experiments=[experiment_snapshot(e) for e in flag.experiments]
    )


def usage_record(usage: FeatureUsage) -> UsageRecord:
    return UsageRecord(
        id=usage.id,
        feature_flag_id=usage.feature_flag_id,
        user_id=usage.user_id,
        experiment_id=usage.experiment_id,
        variant=usage.variant,
        action=usage.action,
        metadata=usage.extra_data or {},
        session_id=usage.session_id,
        user_agent=usage.user_agent,
        ip_address=usage.ip_address,
        timestamp=usage.timestamp
    )


class SqlAlchemyFlagStore:
    """Reads snapshots from and appends usage to the relational database."""

    def __init__(self, db: Session):
        self.db = db

    def get_flag_snapshot(self, key: str) -> Optional[FlagSnapshot]:
        flag = self.db.query(FeatureFlag).filter(FeatureFlag.key == key).first()
        if not flag:
            return None
        return flag_snapshot(flag)

    def get_experiment(self, experiment_id: str) -> Optional[ExperimentSnapshot]:
        experiment = self.db.query(Experiment).filter(Experiment.id == experiment_id).first()
        if not experiment:
            return None
        return experiment_snapshot(experiment)

    def append_usage(self, record: UsageRecord) -> UsageRecord:
        usage = FeatureUsage(
            user_id=record.user_id,
            feature_flag_id=record.feature_flag_id,
            experiment_id=record.experiment_id,
            variant=record.variant,
            action=record.action,
            extra_data=record.metadata,
            session_id=record.session_id,
            user_agent=record.user_agent,
            ip_address=record.ip_address,
            timestamp=record.timestamp
        )
        self.db.add(usage)
        self.db.commit()
        self.db.refresh(usage)
        return usage_record(usage)

    def list_flag_usages(
        self,
        flag_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[UsageRecord]:
        query = self.db.query(FeatureUsage).filter(FeatureUsage.feature_flag_id == flag_id)
        if start is not None:
            query = query.filter(FeatureUsage.timestamp >= start)
        if end is not None:
            query = query.filter(FeatureUsage.timestamp <= end)
        return [usage_record(u) for u in query.order_by(FeatureUsage.timestamp.asc()).all()]

    def list_experiment_usages(self, experiment_id: str) -> List[UsageRecord]:
        usages = self.db.query(FeatureUsage).filter(
            FeatureUsage.experiment_id == experiment_id
        ).order_by(FeatureUsage.timestamp.asc()).all()
        return [usage_record(u) for u in usages]
