"""Tests for experiment variant assignment and lifecycle rules."""
from datetime import datetime, timedelta

import pytest

from flaglab.enums import ExperimentStatus
from flaglab.schemas.flags import ExperimentSnapshot, Variant
from flaglab.services.errors import FlagValidationError
from flaglab.services.experiments import (
    ExperimentAssigner,
    check_transition,
    order_experiments,
    validate_variants,
)

NOW = datetime(2025, 3, 1, 12, 0, 0)


def make_experiment(
    experiment_id="exp-1",
    name="layout",
    status=ExperimentStatus.RUNNING,
    variants=None,
    start_date=None,
    end_date=None,
    created_at=None
):
    if variants is None:
        variants = [
            Variant(name="control", value="list", percentage=50),
            Variant(name="treatment", value="grid", percentage=50),
        ]
    return ExperimentSnapshot(
        id=experiment_id,
        name=name,
        status=status,
        variants=variants,
        start_date=start_date,
        end_date=end_date,
        created_at=created_at
    )


def test_deterministic_variant_assignment():
    """Test that variant assignment is deterministic."""
    experiment = make_experiment()

    # Same user should always get same variant, even from separate assigners
    variant1 = ExperimentAssigner().assign(experiment, "user_123", NOW)
    variant2 = ExperimentAssigner().assign(experiment, "user_123", NOW)
    variant3 = ExperimentAssigner().assign(experiment, "user_123", NOW)

    assert variant1 is not None
    assert variant1 == variant2 == variant3, "Variant assignment should be deterministic"


def test_variant_distribution():
    """Test that variants are distributed according to weights."""
    assigner = ExperimentAssigner()
    experiment = make_experiment()

    # Assign variants to many users
    assignments = {}
    for i in range(10000):
        variant = assigner.assign(experiment, f"user_{i}", NOW)
        assignments[variant.name] = assignments.get(variant.name, 0) + 1

    # Check that distribution is roughly 50/50 (allow 3% margin)
    control_pct = assignments.get("control", 0) / 10000 * 100
    assert 47 <= control_pct <= 53, f"Control should be ~50%, got {control_pct}%"


@pytest.mark.parametrize("status", [
    ExperimentStatus.DRAFT,
    ExperimentStatus.PAUSED,
    ExperimentStatus.COMPLETED,
    ExperimentStatus.CANCELLED,
])
def test_non_running_experiment_assigns_nothing(status):
    """Test that only running experiments assign variants."""
    experiment = make_experiment(status=status)
    assert ExperimentAssigner().assign(experiment, "user_123", NOW) is None


def test_date_bounds():
    assigner = ExperimentAssigner()
    future = make_experiment(start_date=NOW + timedelta(days=1))
    ended = make_experiment(end_date=NOW - timedelta(seconds=1))
    inside = make_experiment(start_date=NOW - timedelta(days=1), end_date=NOW + timedelta(days=1))

    assert assigner.assign(future, "user_123", NOW) is None
    assert assigner.assign(ended, "user_123", NOW) is None
    assert assigner.assign(inside, "user_123", NOW) is not None


def test_timezone_aware_bounds_are_normalized():
    """Aware dates are compared as naive UTC."""
    from datetime import timezone

    experiment = make_experiment(end_date=datetime(2025, 3, 1, 13, 0, tzinfo=timezone(timedelta(hours=2))))
    # 13:00+02:00 is 11:00 UTC, before NOW
    assert ExperimentAssigner().assign(experiment, "user_123", NOW) is None


def test_empty_or_zero_weight_variants():
    assigner = ExperimentAssigner()
    empty = make_experiment(variants=[])
    zero = make_experiment(variants=[Variant(name="a", percentage=0), Variant(name="b", percentage=0)])

    assert assigner.assign(empty, "user_123", NOW) is None
    assert assigner.assign(zero, "user_123", NOW) is None


def test_zero_weight_variant_never_assigned():
    assigner = ExperimentAssigner()
    experiment = make_experiment(variants=[
        Variant(name="off", percentage=0),
        Variant(name="on", percentage=100),
    ])

    names = {assigner.assign(experiment, f"user_{i}", NOW).name for i in range(500)}
    assert names == {"on"}


def test_assignment_independent_of_other_experiments():
    """A user's bucket depends on the experiment id, not its name or neighbours."""
    assigner = ExperimentAssigner()
    first = make_experiment(experiment_id="exp-a", name="same-name")
    renamed = make_experiment(experiment_id="exp-a", name="renamed")

    for i in range(100):
        user_id = f"user_{i}"
        assert assigner.assign(first, user_id, NOW) == assigner.assign(renamed, user_id, NOW)


def test_first_assignment_uses_creation_order():
    assigner = ExperimentAssigner()
    older = make_experiment(experiment_id="exp-old", name="old", created_at=datetime(2024, 1, 1))
    newer = make_experiment(experiment_id="exp-new", name="new", created_at=datetime(2024, 6, 1))

    experiment, variant = assigner.first_assignment([newer, older], "user_123", NOW)
    assert experiment.name == "old"
    assert variant.name in {"control", "treatment"}


def test_first_assignment_skips_experiments_that_do_not_assign():
    assigner = ExperimentAssigner()
    paused = make_experiment(experiment_id="exp-paused", name="paused",
                             status=ExperimentStatus.PAUSED, created_at=datetime(2024, 1, 1))
    running = make_experiment(experiment_id="exp-running", name="running", created_at=datetime(2024, 6, 1))

    experiment, _ = assigner.first_assignment([paused, running], "user_123", NOW)
    assert experiment.name == "running"
    assert assigner.first_assignment([paused], "user_123", NOW) is None


def test_order_experiments_undated_last():
    dated = make_experiment(experiment_id="b", created_at=datetime(2024, 1, 1))
    undated = make_experiment(experiment_id="a")

    assert [e.id for e in order_experiments([undated, dated])] == ["b", "a"]


def test_validate_variants_sum():
    with pytest.raises(FlagValidationError, match="Variant percentages must sum to 100"):
        validate_variants([Variant(name="A", percentage=30), Variant(name="B", percentage=30)])

    # Thirds within tolerance are accepted
    validate_variants([
        Variant(name="A", percentage=33.33),
        Variant(name="B", percentage=33.33),
        Variant(name="C", percentage=33.34),
    ])


@pytest.mark.parametrize("variants,message", [
    ([], "At least one variant is required"),
    ([Variant(name="A", percentage=50), Variant(name="A", percentage=50)], "Variant names must be unique"),
    ([Variant(name="A", percentage=150), Variant(name="B", percentage=-50)], "Variant percentage must be 0-100"),
    ([Variant(name="A", percentage=float("nan"))], "Variant percentage must be 0-100"),
    ([Variant(name="A", percentage=float("inf")), Variant(name="B", percentage=50)], "Variant percentage must be 0-100"),
])
def test_validate_variants_rejects(variants, message):
    with pytest.raises(FlagValidationError, match=message):
        validate_variants(variants)


@pytest.mark.parametrize("current,target", [
    (ExperimentStatus.DRAFT, ExperimentStatus.RUNNING),
    (ExperimentStatus.DRAFT, ExperimentStatus.CANCELLED),
    (ExperimentStatus.RUNNING, ExperimentStatus.PAUSED),
    (ExperimentStatus.RUNNING, ExperimentStatus.COMPLETED),
    (ExperimentStatus.PAUSED, ExperimentStatus.RUNNING),
    (ExperimentStatus.PAUSED, ExperimentStatus.CANCELLED),
])
def test_allowed_transitions(current, target):
    check_transition(current, target)


@pytest.mark.parametrize("current,target", [
    (ExperimentStatus.DRAFT, ExperimentStatus.PAUSED),
    (ExperimentStatus.DRAFT, ExperimentStatus.COMPLETED),
    (ExperimentStatus.COMPLETED, ExperimentStatus.RUNNING),
    (ExperimentStatus.CANCELLED, ExperimentStatus.DRAFT),
    (ExperimentStatus.RUNNING, ExperimentStatus.DRAFT),
])
def test_rejected_transitions(current, target):
    with pytest.raises(FlagValidationError, match="Cannot move experiment"):
        check_transition(current, target)
