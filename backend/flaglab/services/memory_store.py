"""In-memory FlagStore and UsageSink for fixtures and local experiments."""
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from flaglab.schemas.flags import ExperimentSnapshot, FlagSnapshot
from flaglab.schemas.usage import UsageRecord


class InMemoryFlagStore:
    """Holds snapshots and usage records in dictionaries."""

    def __init__(self, flags: Optional[List[FlagSnapshot]] = None):
        self._flags: Dict[str, FlagSnapshot] = {}
        self._usages: List[UsageRecord] = []
        for flag in flags or []:
            self.set_flag(flag)

    def set_flag(self, flag: FlagSnapshot) -> None:
        """Add or replace a flag snapshot."""
        self._flags[flag.key] = flag

    def get_flag_snapshot(self, key: str) -> Optional[FlagSnapshot]:
        flag = self._flags.get(key)
        if flag is None:
            return None
        # Same contract as the database store: inactive segments are filtered out
        active = [s for s in flag.segments if s.is_active]
        if len(active) == len(flag.segments):
            return flag
        return flag.model_copy(update={"segments": active})

    def get_experiment(self, experiment_id: str) -> Optional[ExperimentSnapshot]:
        for flag in self._flags.values():
            for experiment in flag.experiments:
                if experiment.id == experiment_id:
                    return experiment
        return None

    def append_usage(self, record: UsageRecord) -> UsageRecord:
        stored = record.model_copy(update={"id": record.id or str(uuid.uuid4())})
        self._usages.append(stored)
        return stored

    def list_flag_usages(
        self,
        flag_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[UsageRecord]:
        return [
            u for u in self._usages
            if u.feature_flag_id == flag_id
            and (start is None or u.timestamp >= start)
            and (end is None or u.timestamp <= end)
        ]

    def list_experiment_usages(self, experiment_id: str) -> List[UsageRecord]:
        return [u for u in self._usages if u.experiment_id == experiment_id]
