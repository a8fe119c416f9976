"""Tests for the HTTP surface."""
import pytest
from fastapi.testclient import TestClient

from flaglab.database import SessionLocal, engine, Base
from flaglab.enums import ExperimentStatus
from flaglab.main import app
from flaglab.schemas.admin import ExperimentCreate, FeatureFlagCreate, SegmentCreate, VariantCreate
from flaglab.services.admin import FlagAdminService


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "flaglab"}


def test_detailed_health(client):
    response = client.get("/health/detailed")

    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "healthy"


def test_evaluate_unknown_flag_is_not_an_error(client):
    response = client.get("/flags/missing/evaluate", params={"user_id": "user-42"})

    assert response.status_code == 200
    body = response.json()
    assert body["enabled"] is False
    assert body["reason"] == "not found or archived"


def test_evaluate_segment_from_query_attributes(client, seeded):
    response = client.get(
        "/flags/new-dashboard/evaluate",
        params={"user_id": "user-7", "attr.cohort": "beta"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["enabled"] is True
    assert body["reason"] == "segment:beta-testers"
    assert body["matched_segment"]["name"] == "beta-testers"


def test_evaluate_is_deterministic(client, seeded):
    first = client.get("/flags/new-dashboard/evaluate", params={"user_id": "user-42"}).json()
    for _ in range(10):
        assert client.get("/flags/new-dashboard/evaluate", params={"user_id": "user-42"}).json() == first


def test_evaluate_direct_targeting(client, seeded):
    body = client.get("/flags/new-dashboard/evaluate", params={"user_id": "vip"}).json()
    assert body["reason"] == "direct targeting"


def test_record_usage_missing_action(client, seeded):
    response = client.post("/flags/usage", json={"key": "new-dashboard", "user_id": "user-42", "metadata": {}})

    assert response.status_code == 400
    assert response.headers["X-Error-Code"] == "validation_error"
    assert response.json() == {
        "code": "validation_error",
        "message": "Key, userId, and metadata with action are required"
    }


def test_record_usage_unknown_flag(client):
    response = client.post("/flags/usage", json={
        "key": "missing", "user_id": "user-42", "metadata": {"action": "view"}
    })

    assert response.status_code == 404
    assert response.json()["message"] == "Feature flag not found"


def test_usage_feeds_analytics(client, seeded):
    response = client.post(
        "/flags/usage",
        json={"key": "new-dashboard", "user_id": "user-42", "variant": "grid", "metadata": {"action": "view"}},
        headers={"User-Agent": "pytest-agent"}
    )
    assert response.status_code == 200
    ack = response.json()
    assert ack["success"] is True
    assert ack["experiment_id"] == seeded

    flag_report = client.get("/flags/new-dashboard/analytics").json()
    assert flag_report["total_usages"] == 1
    assert flag_report["unique_users"] == 1
    assert len(flag_report["usage_over_time"]) == 1

    experiment_report = client.get(f"/experiments/{seeded}/analytics").json()
    assert experiment_report["total_participants"] == 1
    assert experiment_report["variant_distribution"] == [{"variant": "grid", "count": 1, "percentage": 100.0}]


def test_analytics_date_range(client, seeded):
    response = client.get("/flags/new-dashboard/analytics", params={
        "start": "2020-01-01T00:00:00Z", "end": "2020-01-02T00:00:00Z"
    })

    assert response.status_code == 200
    assert response.json()["total_usages"] == 0


def test_analytics_half_open_range_rejected(client, seeded):
    response = client.get("/flags/new-dashboard/analytics", params={"start": "2020-01-01T00:00:00"})
    assert response.status_code == 400


def test_analytics_not_found(client):
    assert client.get("/flags/missing/analytics").status_code == 404
    assert client.get("/experiments/missing/analytics").status_code == 404


@pytest.fixture
def client():
    """Test client with fresh tables."""
    with TestClient(app) as test_client:
        yield test_client
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded(client):
    """Create a flag with a segment and a running experiment; return the experiment id."""
    db = SessionLocal()
    try:
        admin = FlagAdminService(db)
        flag = admin.create_feature_flag(FeatureFlagCreate(
            name="New dashboard",
            key="new-dashboard",
            value=True,
            default_value=False,
            rollout_percentage=0,
            user_ids=["vip"],
            segments=[SegmentCreate(
                name="beta-testers",
                conditions={"rule": "attribute_in", "attribute": "cohort", "values": ["beta"]},
                priority=10
            )]
        ))
        experiment = admin.create_experiment(ExperimentCreate(
            name="dashboard-layout",
            feature_flag_id=flag.id,
            variants=[
                VariantCreate(name="list", value={"layout": "list"}, percentage=50),
                VariantCreate(name="grid", value={"layout": "grid"}, percentage=50),
            ]
        ))
        admin.update_experiment_status(experiment.id, ExperimentStatus.RUNNING)
        return experiment.id
    finally:
        db.close()
