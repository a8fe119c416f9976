"""Administrative mutations for flags, segments and experiments.

Every operation validates synchronously and raises a typed error; nothing is
retried here.
"""
import math
import re
import structlog
from pydantic import ValidationError
from typing import Any, Optional
from sqlalchemy.orm import Session

from flaglab.enums import ExperimentStatus
from flaglab.models.experiment import Experiment
from flaglab.models.feature_flag import FeatureFlag, FeatureSegment
from flaglab.schemas.admin import (
    ExperimentCreate,
    FeatureFlagCreate,
    FeatureFlagUpdate,
    SegmentCreate,
    SegmentUpdate,
)
from flaglab.schemas.flags import Variant
from flaglab.services.errors import ConflictError, FlagValidationError, NotFoundError
from flaglab.services.experiments import check_transition, validate_variants
from flaglab.services.segments import InvalidCondition, SegmentEvaluator
from flaglab.timeutils import to_naive_utc, utcnow

logger = structlog.get_logger()

KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,50}$")


def validate_key(key: str) -> None:
    if not key or not KEY_PATTERN.match(key):
        raise FlagValidationError(
            "Feature flag key must be 1-50 characters: letters, numbers, hyphens, and underscores"
        )


def validate_rollout(rollout_percentage: float) -> None:
    if not math.isfinite(rollout_percentage) or rollout_percentage < 0 or rollout_percentage > 100:
        raise FlagValidationError("Rollout percentage must be 0-100")


class FlagAdminService:
    """Service for administering feature flags and experiments."""

    def __init__(self, db: Session, segment_evaluator: Optional[SegmentEvaluator] = None):
        self.db = db
        self.segment_evaluator = segment_evaluator or SegmentEvaluator()

    # Feature flags

    def get_feature_flag(self, flag_id: str) -> FeatureFlag:
        flag = self.db.query(FeatureFlag).filter(FeatureFlag.id == flag_id).first()
        if not flag:
            raise NotFoundError("Feature flag not found")
        return flag

    def get_feature_flag_by_key(self, key: str) -> FeatureFlag:
        flag = self.db.query(FeatureFlag).filter(FeatureFlag.key == key).first()
        if not flag:
            raise NotFoundError("Feature flag not found")
        return flag

    def create_feature_flag(self, data: FeatureFlagCreate) -> FeatureFlag:
        """
        Create a new feature flag, optionally with segments.

        Raises:
            FlagValidationError: If the key or rollout percentage is invalid,
                or a segment has malformed conditions
            ConflictError: If the key is taken, or an unarchived flag has the
                same name
        """
        validate_key(data.key)
        rollout = 100 if data.rollout_percentage is None else data.rollout_percentage
        validate_rollout(rollout)
        for segment in data.segments:
            self._validate_conditions(segment.conditions)

        if self.db.query(FeatureFlag).filter(FeatureFlag.key == data.key).first():
            raise ConflictError("Feature flag with this key already exists")

        duplicate_name = self.db.query(FeatureFlag).filter(
            FeatureFlag.name == data.name,
            FeatureFlag.is_archived == False  # noqa: E712
        ).first()
        if duplicate_name:
            raise ConflictError("Feature flag with this name already exists")

        flag = FeatureFlag(
            key=data.key,
            name=data.name,
            description=data.description,
            value=data.value,
            default_value=data.default_value,
            rollout_percentage=rollout,
            user_ids=list(data.user_ids)
        )
        for segment in data.segments:
            flag.segments.append(self._new_segment(segment))

        self.db.add(flag)
        self.db.commit()
        self.db.refresh(flag)

        logger.info("feature_flag_created", flag_id=flag.id, key=flag.key, segments=len(data.segments))
        return flag

    def update_feature_flag(self, flag_id: str, data: FeatureFlagUpdate) -> FeatureFlag:
        """
        Apply a partial update. The key cannot change.

        Raises:
            NotFoundError: If the flag does not exist
            FlagValidationError: If the rollout percentage is out of range
            ConflictError: If the new name clashes with another unarchived flag
        """
        flag = self.get_feature_flag(flag_id)
        updates = data.model_dump(exclude_unset=True)

        if updates.get("rollout_percentage") is not None:
            validate_rollout(updates["rollout_percentage"])

        if updates.get("name") and updates["name"] != flag.name:
            clash = self.db.query(FeatureFlag).filter(
                FeatureFlag.name == updates["name"],
                FeatureFlag.is_archived == False,  # noqa: E712
                FeatureFlag.id != flag.id
            ).first()
            if clash:
                raise ConflictError("Feature flag with this name already exists")

        for field, value in updates.items():
            if value is None and field != "description":
                continue
            setattr(flag, field, value)

        self.db.commit()
        self.db.refresh(flag)

        logger.info("feature_flag_updated", flag_id=flag.id, key=flag.key, fields=sorted(updates))
        return flag

    def toggle_feature_flag(self, flag_id: str, is_active: bool) -> FeatureFlag:
        flag = self.get_feature_flag(flag_id)
        flag.is_active = is_active
        self.db.commit()
        self.db.refresh(flag)

        logger.info("feature_flag_toggled", flag_id=flag.id, key=flag.key, is_active=is_active)
        return flag

    def archive_feature_flag(self, flag_id: str) -> FeatureFlag:
        """Soft delete: archived flags always evaluate to disabled."""
        flag = self.get_feature_flag(flag_id)
        flag.is_archived = True
        flag.archived_at = utcnow()
        self.db.commit()
        self.db.refresh(flag)

        logger.info("feature_flag_archived", flag_id=flag.id, key=flag.key)
        return flag

    # Segments

    def add_segment(self, flag_id: str, data: SegmentCreate) -> FeatureSegment:
        flag = self.get_feature_flag(flag_id)
        self._validate_conditions(data.conditions)

        segment = self._new_segment(data)
        segment.feature_flag_id = flag.id
        self.db.add(segment)
        self.db.commit()
        self.db.refresh(segment)

        logger.info("segment_created", segment_id=segment.id, flag_id=flag.id, name=segment.name)
        return segment

    def update_segment(self, segment_id: str, data: SegmentUpdate) -> FeatureSegment:
        segment = self._get_segment(segment_id)
        updates = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

        if "conditions" in updates:
            self._validate_conditions(updates["conditions"])

        for field, value in updates.items():
            setattr(segment, field, value)

        self.db.commit()
        self.db.refresh(segment)

        logger.info("segment_updated", segment_id=segment.id, fields=sorted(updates))
        return segment

    def delete_segment(self, segment_id: str) -> None:
        segment = self._get_segment(segment_id)
        self.db.delete(segment)
        self.db.commit()

        logger.info("segment_deleted", segment_id=segment_id)

    def _get_segment(self, segment_id: str) -> FeatureSegment:
        segment = self.db.query(FeatureSegment).filter(FeatureSegment.id == segment_id).first()
        if not segment:
            raise NotFoundError("Segment not found")
        return segment

    def _new_segment(self, data: SegmentCreate) -> FeatureSegment:
        return FeatureSegment(
            name=data.name,
            type=data.type,
            conditions=data.conditions,
            priority=data.priority
        )

    def _validate_conditions(self, conditions: Any) -> None:
        try:
            self.segment_evaluator.parse(conditions)
        except (ValidationError, InvalidCondition) as e:
            raise FlagValidationError(f"Invalid segment conditions: {e}") from e

    # Experiments

    def get_experiment(self, experiment_id: str) -> Experiment:
        experiment = self.db.query(Experiment).filter(Experiment.id == experiment_id).first()
        if not experiment:
            raise NotFoundError("Experiment not found")
        return experiment

    def create_experiment(self, data: ExperimentCreate) -> Experiment:
        """
        Create a new experiment in DRAFT state.

        Raises:
            NotFoundError: If the flag does not exist
            FlagValidationError: If the flag is archived, the variants are
                invalid, or the date bounds are reversed
            ConflictError: If the flag already has an experiment with this name
        """
        flag = self.get_feature_flag(data.feature_flag_id)
        if flag.is_archived:
            raise FlagValidationError("Cannot create experiment for archived feature flag")

        variants = [Variant(name=v.name, value=v.value, percentage=v.percentage) for v in data.variants]
        validate_variants(variants)

        start_date = to_naive_utc(data.start_date)
        end_date = to_naive_utc(data.end_date)
        if start_date and end_date and start_date > end_date:
            raise FlagValidationError("Experiment start date must be before end date")

        duplicate = self.db.query(Experiment).filter(
            Experiment.feature_flag_id == flag.id,
            Experiment.name == data.name
        ).first()
        if duplicate:
            raise ConflictError("Experiment with this name already exists for this flag")

        experiment = Experiment(
            feature_flag_id=flag.id,
            name=data.name,
            description=data.description,
            status=ExperimentStatus.DRAFT,
            variants=[v.model_dump() for v in variants],
            target_audience=data.target_audience,
            start_date=start_date,
            end_date=end_date
        )
        self.db.add(experiment)
        self.db.commit()
        self.db.refresh(experiment)

        logger.info("experiment_created", experiment_id=experiment.id, flag_key=flag.key, name=experiment.name)
        return experiment

    def update_experiment_status(self, experiment_id: str, status: ExperimentStatus) -> Experiment:
        """
        Move an experiment through its lifecycle.

        RUNNING stamps start_date and COMPLETED stamps end_date when unset.

        Raises:
            NotFoundError: If the experiment does not exist
            FlagValidationError: If the transition is not allowed
        """
        status = ExperimentStatus(status)
        experiment = self.get_experiment(experiment_id)
        previous = experiment.status
        check_transition(previous, status)

        experiment.status = status
        if status == ExperimentStatus.RUNNING and not experiment.start_date:
            experiment.start_date = utcnow()
        if status == ExperimentStatus.COMPLETED and not experiment.end_date:
            experiment.end_date = utcnow()

        self.db.commit()
        self.db.refresh(experiment)

        logger.info(
            "experiment_status_changed",
            experiment_id=experiment.id,
            previous=previous.value,
            status=status.value
        )
        return experiment
