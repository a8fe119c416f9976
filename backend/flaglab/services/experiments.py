"""Experimentation service for A/B testing."""
import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from flaglab.enums import ExperimentStatus
from flaglab.schemas.flags import ExperimentSnapshot, Variant
from flaglab.services.bucketing import bucket_position, weighted_index
from flaglab.services.errors import FlagValidationError
from flaglab.timeutils import utcnow

# Tolerance for float percentages such as 33.33 / 33.33 / 33.34
PERCENTAGE_TOLERANCE = 0.01

ALLOWED_TRANSITIONS: Dict[ExperimentStatus, Set[ExperimentStatus]] = {
    ExperimentStatus.DRAFT: {ExperimentStatus.RUNNING, ExperimentStatus.CANCELLED},
    ExperimentStatus.RUNNING: {ExperimentStatus.PAUSED, ExperimentStatus.COMPLETED, ExperimentStatus.CANCELLED},
    ExperimentStatus.PAUSED: {ExperimentStatus.RUNNING, ExperimentStatus.COMPLETED, ExperimentStatus.CANCELLED},
    ExperimentStatus.COMPLETED: set(),
    ExperimentStatus.CANCELLED: set(),
}


class ExperimentAssigner:
    """Deterministic weighted variant assignment."""

    def is_live(self, experiment: ExperimentSnapshot, now: Optional[datetime] = None) -> bool:
        """RUNNING and, when bounds are set, inside [start_date, end_date]."""
        if experiment.status != ExperimentStatus.RUNNING:
            return False

        now = now or utcnow()
        if experiment.start_date and now < experiment.start_date:
            return False
        if experiment.end_date and now > experiment.end_date:
            return False
        return True

    def assign(
        self,
        experiment: ExperimentSnapshot,
        user_id: str,
        now: Optional[datetime] = None
    ) -> Optional[Variant]:
        """
        Deterministically assign a variant to a user for a given experiment.

        Uses the pinned bucket hash over user_id + experiment id, then walks
        the variants in their defined order accumulating percentages until
        the running total reaches the user's bucket.

        The assignment is stable for as long as the variant list is unchanged.
        Adding, removing, reordering or re-weighting variants of a running
        experiment can move any user to a different variant.

        Args:
            experiment: Experiment snapshot
            user_id: Unique user identifier
            now: Evaluation time (defaults to current UTC time)

        Returns:
            The assigned Variant, or None when the experiment is not live,
            has no variants, or has zero total weight

        Example:
            >>> assigner = ExperimentAssigner()
            >>> variant = assigner.assign(experiment, "user_123")
            >>> print(variant.name)  # "control" or "treatment" deterministically
        """
        if not self.is_live(experiment, now):
            return None

        variants = experiment.variants
        if not variants:
            return None

        position = bucket_position(user_id, experiment.id)
        index = weighted_index(position, [v.percentage for v in variants])
        if index is None:
            return None
        return variants[index]

    def first_assignment(
        self,
        experiments: Iterable[ExperimentSnapshot],
        user_id: str,
        now: Optional[datetime] = None
    ) -> Optional[tuple]:
        """
        Walk experiments in creation order and return the first
        (experiment, variant) pair that assigns the user.
        """
        for experiment in order_experiments(experiments):
            variant = self.assign(experiment, user_id, now)
            if variant is not None:
                return experiment, variant
        return None


def order_experiments(experiments: Iterable[ExperimentSnapshot]) -> List[ExperimentSnapshot]:
    """Experiments by creation time, undated ones last, ties in supplied order."""
    def sort_key(item):
        position, experiment = item
        created = experiment.created_at
        return (created is None, created or datetime.min, position)

    return [experiment for _, experiment in sorted(enumerate(experiments), key=sort_key)]


def validate_variants(variants: List[Variant]) -> None:
    """
    Check an experiment's variant list before it is stored.

    Raises:
        FlagValidationError: If the list is empty, names repeat, a percentage
            is outside [0, 100], or percentages do not sum to 100
    """
    if not variants:
        raise FlagValidationError("At least one variant is required")

    names = [v.name for v in variants]
    if len(set(names)) != len(names):
        raise FlagValidationError("Variant names must be unique")

    for variant in variants:
        if not math.isfinite(variant.percentage) or variant.percentage < 0 or variant.percentage > 100:
            raise FlagValidationError("Variant percentage must be 0-100")

    total = sum(v.percentage for v in variants)
    if abs(total - 100) > PERCENTAGE_TOLERANCE:
        raise FlagValidationError("Variant percentages must sum to 100")


def check_transition(current: ExperimentStatus, target: ExperimentStatus) -> None:
    """
    Raises:
        FlagValidationError: If the state machine does not allow the move
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise FlagValidationError(
            f"Cannot move experiment from {current.value} to {target.value}"
        )
