"""Usage recording."""
import structlog
from typing import Any, Dict, Optional

from flaglab.enums import ExperimentStatus
from flaglab.schemas.flags import EvaluationContext, FlagSnapshot
from flaglab.schemas.usage import UsageAck, UsageRecord
from flaglab.services.errors import FlagValidationError, NotFoundError
from flaglab.services.experiments import order_experiments
from flaglab.services.ports import FlagStore, UsageSink
from flaglab.timeutils import utcnow

logger = structlog.get_logger()

MISSING_FIELDS_MESSAGE = "Key, userId, and metadata with action are required"


def _session_id(metadata: Dict[str, Any]) -> Optional[str]:
    value = metadata.get("session_id", metadata.get("sessionId"))
    return str(value) if value is not None else None


def experiment_for_variant(flag: FlagSnapshot, variant: Optional[str]) -> Optional[str]:
    """Id of the first running experiment that defines a variant with this name."""
    if not variant:
        return None
    running = [e for e in flag.experiments if e.status == ExperimentStatus.RUNNING]
    for experiment in order_experiments(running):
        if any(v.name == variant for v in experiment.variants):
            return experiment.id
    return None


class UsageRecorder:
    """Validates usage events and appends them to a usage sink."""

    def __init__(self, store: FlagStore, sink: UsageSink):
        self.store = store
        self.sink = sink

    def record_usage(
        self,
        key: Optional[str],
        user_id: Optional[str],
        variant: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        context: Optional[EvaluationContext] = None
    ) -> UsageAck:
        """
        Record that a user observed a flag decision.

        Args:
            key: Flag key
            user_id: User identifier
            variant: Variant name the user saw, if any
            metadata: Free-form event data; must contain "action"
            context: Request context (user agent, IP)

        Returns:
            UsageAck with the stored record id

        Raises:
            FlagValidationError: If key, user_id or metadata["action"] is missing
            NotFoundError: If the flag does not exist
        """
        if not key or not user_id or not metadata or not metadata.get("action"):
            raise FlagValidationError(MISSING_FIELDS_MESSAGE)

        flag = self.store.get_flag_snapshot(key)
        if flag is None:
            raise NotFoundError("Feature flag not found")

        context = context or EvaluationContext()
        record = UsageRecord(
            feature_flag_id=flag.id,
            user_id=user_id,
            experiment_id=experiment_for_variant(flag, variant),
            variant=variant,
            action=str(metadata["action"]),
            metadata=dict(metadata),
            session_id=_session_id(metadata),
            user_agent=context.user_agent,
            ip_address=context.ip_address,
            timestamp=utcnow()
        )
        stored = self.sink.append_usage(record)

        logger.info(
            "feature_usage_recorded",
            key=key,
            user_id=user_id,
            action=stored.action,
            variant=variant,
            experiment_id=stored.experiment_id
        )

        return UsageAck(success=True, usage_id=stored.id, experiment_id=stored.experiment_id)
