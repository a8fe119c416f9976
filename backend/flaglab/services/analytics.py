"""Usage analytics.

Reports are built by scanning usage records. They run alongside ongoing
recording and reflect whatever the sink returns at scan time.

Conversion rates are placeholders (None) until a conversion-event source
exists; experiment metrics are likewise an empty list.
"""
from collections import Counter
from typing import Dict, List, Optional

from flaglab.schemas.usage import (
    DailyCount,
    DateRange,
    ExperimentAnalytics,
    FlagAnalytics,
    VariantPerformance,
    VariantShare,
)
from flaglab.services.errors import NotFoundError
from flaglab.services.experiments import order_experiments
from flaglab.services.ports import FlagStore, UsageSink


class AnalyticsAggregator:
    """Builds per-flag and per-experiment usage reports."""

    def __init__(self, store: FlagStore, sink: UsageSink):
        self.store = store
        self.sink = sink

    def get_feature_flag_analytics(self, key: str, date_range: Optional[DateRange] = None) -> FlagAnalytics:
        """
        Summarize usage of a flag.

        Args:
            key: Flag key
            date_range: Optional inclusive window on record timestamps

        Returns:
            FlagAnalytics with totals, unique users, per-day counts in
            ascending date order, and per-variant usage for every experiment
            of the flag

        Raises:
            NotFoundError: If the flag does not exist
        """
        flag = self.store.get_flag_snapshot(key)
        if flag is None:
            raise NotFoundError("Feature flag not found")

        start = date_range.start if date_range else None
        end = date_range.end if date_range else None
        usages = self.sink.list_flag_usages(flag.id, start, end)

        daily = Counter(u.timestamp.date().isoformat() for u in usages)
        usage_over_time = [
            DailyCount(date=date, count=count)
            for date, count in sorted(daily.items())
        ]

        per_variant = Counter((u.experiment_id, u.variant) for u in usages if u.experiment_id)
        variant_performance: List[VariantPerformance] = []
        for experiment in order_experiments(flag.experiments):
            for variant in experiment.variants:
                variant_performance.append(VariantPerformance(
                    experiment_id=experiment.id,
                    experiment_name=experiment.name,
                    variant=variant.name,
                    usages=per_variant.get((experiment.id, variant.name), 0),
                    conversion_rate=None
                ))

        return FlagAnalytics(
            total_usages=len(usages),
            unique_users=len({u.user_id for u in usages}),
            conversion_rate=None,
            variant_performance=variant_performance,
            usage_over_time=usage_over_time
        )

    def get_experiment_analytics(self, experiment_id: str) -> ExperimentAnalytics:
        """
        Summarize participation in an experiment.

        Percentages are of total participants (every usage tagged with the
        experiment) and rounded to two decimals. Variants appear in the
        experiment's own order, followed by any recorded names it no longer
        defines.

        Raises:
            NotFoundError: If the experiment does not exist
        """
        experiment = self.store.get_experiment(experiment_id)
        if experiment is None:
            raise NotFoundError("Experiment not found")

        usages = self.sink.list_experiment_usages(experiment_id)
        total = len(usages)
        counts: Dict[str, int] = Counter(u.variant for u in usages if u.variant)

        names = [v.name for v in experiment.variants if v.name in counts]
        names += sorted(name for name in counts if name not in names)

        distribution = [
            VariantShare(
                variant=name,
                count=counts[name],
                percentage=round(counts[name] / total * 100, 2) if total > 0 else 0.0
            )
            for name in names
        ]

        return ExperimentAnalytics(
            experiment_id=experiment.id,
            total_participants=total,
            variant_distribution=distribution,
            metrics=[]
        )
