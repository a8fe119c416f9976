"""Feature flag evaluation.

Decisions follow a fixed precedence chain; the first step that applies wins:

1. flag missing or archived   -> disabled, reason "not found or archived"
2. flag inactive              -> disabled, default value, reason "disabled"
3. user in direct targeting   -> enabled, reason "direct targeting"
4. matching segment           -> enabled, reason "segment:<name>"
5. user inside rollout bucket -> enabled, reason "rollout"
6. user assigned a variant    -> enabled, variant value, reason "experiment:<name>"
7. otherwise                  -> disabled, default value, reason "default"

Evaluation is a pure function of the snapshot, user id, context and clock.
It keeps no state between calls, so any number of evaluations can run in
parallel, and it never raises for bad targeting data.
"""
import structlog
from datetime import datetime
from typing import Optional

from flaglab.config import get_settings
from flaglab.enums import ExperimentStatus
from flaglab.schemas.flags import Decision, EvaluationContext, FlagSnapshot, MatchRef
from flaglab.services.bucketing import RolloutBucketer
from flaglab.services.experiments import ExperimentAssigner
from flaglab.services.ports import FlagStore
from flaglab.services.segments import SegmentEvaluator

logger = structlog.get_logger()

REASON_NOT_FOUND = "not found or archived"
REASON_DISABLED = "disabled"
REASON_DIRECT = "direct targeting"
REASON_ROLLOUT = "rollout"
REASON_DEFAULT = "default"


class EvaluationEngine:
    """Runs the precedence chain over a flag snapshot."""

    def __init__(
        self,
        bucketer: Optional[RolloutBucketer] = None,
        segment_evaluator: Optional[SegmentEvaluator] = None,
        assigner: Optional[ExperimentAssigner] = None
    ):
        self.bucketer = bucketer or RolloutBucketer()
        self.segment_evaluator = segment_evaluator or SegmentEvaluator()
        self.assigner = assigner or ExperimentAssigner()

    def evaluate(
        self,
        flag: Optional[FlagSnapshot],
        user_id: Optional[str] = None,
        context: Optional[EvaluationContext] = None,
        now: Optional[datetime] = None
    ) -> Decision:
        """
        Decide whether a flag is on for a user.

        Args:
            flag: Resolved flag snapshot, or None when the key is unknown
            user_id: Optional user identifier
            context: Optional request context for segment conditions
            now: Evaluation time for experiment date bounds

        Returns:
            Decision with enabled, value and reason
        """
        if flag is None or flag.is_archived:
            return Decision(enabled=False, value=None, reason=REASON_NOT_FOUND)

        if not flag.is_active:
            return Decision(enabled=False, value=flag.default_value, reason=REASON_DISABLED)

        if user_id and user_id in flag.user_ids:
            return Decision(enabled=True, value=flag.value, reason=REASON_DIRECT)

        segment = self.segment_evaluator.first_match(flag.segments, user_id, context)
        if segment is not None:
            return Decision(
                enabled=True,
                value=flag.value,
                reason=f"segment:{segment.name}",
                matched_segment=MatchRef(id=segment.id, name=segment.name)
            )

        if user_id and self.bucketer.in_rollout(user_id, flag.id, flag.rollout_percentage):
            return Decision(enabled=True, value=flag.value, reason=REASON_ROLLOUT)

        if user_id:
            running = [e for e in flag.experiments if e.status == ExperimentStatus.RUNNING]
            assignment = self.assigner.first_assignment(running, user_id, now)
            if assignment is not None:
                experiment, variant = assignment
                return Decision(
                    enabled=True,
                    value=variant.value,
                    reason=f"experiment:{experiment.name}",
                    matched_experiment=MatchRef(id=experiment.id, name=experiment.name),
                    variant=variant
                )

        return Decision(enabled=False, value=flag.default_value, reason=REASON_DEFAULT)


class EvaluationService:
    """Looks a flag up in a FlagStore and evaluates it."""

    def __init__(self, store: FlagStore, engine: Optional[EvaluationEngine] = None):
        self.store = store
        self.engine = engine or EvaluationEngine()

    def evaluate(
        self,
        key: str,
        user_id: Optional[str] = None,
        context: Optional[EvaluationContext] = None
    ) -> Decision:
        """
        Evaluate a flag by key.

        Example:
            >>> service = EvaluationService(SqlAlchemyFlagStore(db))
            >>> decision = service.evaluate("new-dashboard", "user-42")
            >>> decision.reason
            'rollout'
        """
        flag = self.store.get_flag_snapshot(key) if key else None
        decision = self.engine.evaluate(flag, user_id, context)

        if get_settings().log_evaluations:
            logger.info(
                "feature_flag_evaluated",
                key=key,
                user_id=user_id,
                enabled=decision.enabled,
                reason=decision.reason,
                variant=decision.variant.name if decision.variant else None
            )

        return decision
