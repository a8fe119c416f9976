"""Collaborator interfaces for the evaluation core.

The core reads fully-resolved snapshots from a FlagStore and writes usage
events to a UsageSink. SqlAlchemyFlagStore and InMemoryFlagStore implement
both.
"""
from datetime import datetime
from typing import List, Optional, Protocol

from flaglab.schemas.flags import ExperimentSnapshot, FlagSnapshot
from flaglab.schemas.usage import UsageRecord


class FlagStore(Protocol):
    """Read port for flags, segments and experiments."""

    def get_flag_snapshot(self, key: str) -> Optional[FlagSnapshot]:
        """Flag by key with its active segments and all experiments, or None."""
        ...

    def get_experiment(self, experiment_id: str) -> Optional[ExperimentSnapshot]:
        ...


class UsageSink(Protocol):
    """Append-only write port plus read-only scans for analytics."""

    def append_usage(self, record: UsageRecord) -> UsageRecord:
        """Persist one record and return it with its id filled in."""
        ...

    def list_flag_usages(
        self,
        flag_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[UsageRecord]:
        ...

    def list_experiment_usages(self, experiment_id: str) -> List[UsageRecord]:
        ...
