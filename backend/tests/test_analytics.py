"""Tests for usage analytics."""
from datetime import datetime

import pytest

from flaglab.enums import ExperimentStatus
from flaglab.schemas.flags import ExperimentSnapshot, FlagSnapshot, Variant
from flaglab.schemas.usage import DateRange, UsageRecord
from flaglab.services.analytics import AnalyticsAggregator
from flaglab.services.errors import NotFoundError
from flaglab.services.memory_store import InMemoryFlagStore

LAYOUT = ExperimentSnapshot(
    id="exp-layout",
    feature_flag_id="flag-dashboard",
    name="dashboard-layout",
    status=ExperimentStatus.RUNNING,
    variants=[Variant(name="list", percentage=50), Variant(name="grid", percentage=50)],
    created_at=datetime(2025, 1, 1)
)


def usage(user_id, timestamp, variant=None, experiment_id=None, flag_id="flag-dashboard"):
    return UsageRecord(
        feature_flag_id=flag_id,
        user_id=user_id,
        experiment_id=experiment_id,
        variant=variant,
        action="view",
        timestamp=timestamp
    )


@pytest.fixture
def store():
    store = InMemoryFlagStore([
        FlagSnapshot(id="flag-dashboard", key="new-dashboard", experiments=[LAYOUT]),
        FlagSnapshot(id="flag-other", key="other"),
    ])
    store.append_usage(usage("u1", datetime(2025, 3, 2, 9), "grid", "exp-layout"))
    store.append_usage(usage("u2", datetime(2025, 3, 1, 10), "list", "exp-layout"))
    store.append_usage(usage("u1", datetime(2025, 3, 1, 23, 59), "grid", "exp-layout"))
    store.append_usage(usage("u3", datetime(2025, 3, 3, 8)))
    store.append_usage(usage("u9", datetime(2025, 3, 1, 8), flag_id="flag-other"))
    return store


@pytest.fixture
def aggregator(store):
    return AnalyticsAggregator(store, store)


def test_flag_analytics_totals(aggregator):
    report = aggregator.get_feature_flag_analytics("new-dashboard")

    assert report.total_usages == 4
    assert report.unique_users == 3
    assert report.conversion_rate is None


def test_usage_over_time_sorted_by_day(aggregator):
    report = aggregator.get_feature_flag_analytics("new-dashboard")

    assert [(d.date, d.count) for d in report.usage_over_time] == [
        ("2025-03-01", 2),
        ("2025-03-02", 1),
        ("2025-03-03", 1),
    ]


def test_variant_performance(aggregator):
    report = aggregator.get_feature_flag_analytics("new-dashboard")

    assert [(v.variant, v.usages) for v in report.variant_performance] == [("list", 1), ("grid", 2)]
    assert all(v.experiment_name == "dashboard-layout" for v in report.variant_performance)
    assert all(v.conversion_rate is None for v in report.variant_performance)


def test_date_range_is_inclusive(aggregator):
    date_range = DateRange(start=datetime(2025, 3, 1, 10), end=datetime(2025, 3, 2, 9))
    report = aggregator.get_feature_flag_analytics("new-dashboard", date_range)

    assert report.total_usages == 3
    assert report.unique_users == 2


def test_flag_analytics_unknown_flag(aggregator):
    with pytest.raises(NotFoundError, match="Feature flag not found"):
        aggregator.get_feature_flag_analytics("missing")


def test_flag_without_usage(aggregator):
    report = aggregator.get_feature_flag_analytics("other", DateRange(
        start=datetime(2025, 4, 1), end=datetime(2025, 4, 2)
    ))

    assert report.total_usages == 0
    assert report.unique_users == 0
    assert report.usage_over_time == []


def test_experiment_analytics(aggregator):
    report = aggregator.get_experiment_analytics("exp-layout")

    assert report.experiment_id == "exp-layout"
    assert report.total_participants == 3
    assert [(v.variant, v.count, v.percentage) for v in report.variant_distribution] == [
        ("list", 1, 33.33),
        ("grid", 2, 66.67),
    ]
    assert report.metrics == []


def test_experiment_analytics_keeps_retired_variants(store, aggregator):
    store.append_usage(usage("u4", datetime(2025, 3, 4), "sidebar", "exp-layout"))
    report = aggregator.get_experiment_analytics("exp-layout")

    assert [v.variant for v in report.variant_distribution] == ["list", "grid", "sidebar"]
    assert report.variant_distribution[-1].percentage == 25.0


def test_experiment_analytics_without_usage():
    store = InMemoryFlagStore([FlagSnapshot(id="flag-dashboard", key="new-dashboard", experiments=[LAYOUT])])
    report = AnalyticsAggregator(store, store).get_experiment_analytics("exp-layout")

    assert report.total_participants == 0
    assert report.variant_distribution == []


def test_experiment_analytics_unknown(aggregator):
    with pytest.raises(NotFoundError, match="Experiment not found"):
        aggregator.get_experiment_analytics("missing")
