"""Feature flag evaluation, usage and analytics endpoints."""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional

from flaglab.database import get_db
from flaglab.middleware.logging import get_logger
from flaglab.schemas.flags import Decision, EvaluationContext
from flaglab.schemas.usage import DateRange, ExperimentAnalytics, FlagAnalytics, UsageAck, UsageRequest
from flaglab.services.analytics import AnalyticsAggregator
from flaglab.services.errors import FlagValidationError
from flaglab.services.evaluation import EvaluationService
from flaglab.services.store import SqlAlchemyFlagStore
from flaglab.services.usage import UsageRecorder

router = APIRouter()
logger = get_logger()

ATTRIBUTE_PREFIX = "attr."


def get_store(db: Session = Depends(get_db)) -> SqlAlchemyFlagStore:
    """Dependency providing the database-backed flag store."""
    return SqlAlchemyFlagStore(db)


def context_from_request(request: Request) -> EvaluationContext:
    """
    Build an evaluation context from the request.

    Custom attributes come from query parameters prefixed with "attr.",
    e.g. ?attr.plan=premium&attr.country=DE
    """
    attributes = {
        name[len(ATTRIBUTE_PREFIX):]: value
        for name, value in request.query_params.items()
        if name.startswith(ATTRIBUTE_PREFIX) and len(name) > len(ATTRIBUTE_PREFIX)
    }
    return EvaluationContext(
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
        attributes=attributes
    )


@router.get("/flags/{key}/evaluate", response_model=Decision)
async def evaluate_flag(
    key: str,
    request: Request,
    user_id: Optional[str] = Query(None, description="User to evaluate for"),
    store: SqlAlchemyFlagStore = Depends(get_store)
):
    """
    Evaluate a feature flag for an optional user.

    Always answers 200: unknown or archived flags come back disabled with
    reason "not found or archived".
    """
    service = EvaluationService(store)
    return service.evaluate(key, user_id, context_from_request(request))


@router.post("/flags/usage", response_model=UsageAck)
async def record_usage(
    request: Request,
    usage_request: UsageRequest,
    store: SqlAlchemyFlagStore = Depends(get_store)
):
    """
    Record that a user observed a flag decision.

    - 400 when key, user_id or metadata.action is missing
    - 404 when the flag does not exist
    """
    recorder = UsageRecorder(store, store)
    context = EvaluationContext(
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None
    )
    return recorder.record_usage(
        usage_request.key,
        usage_request.user_id,
        usage_request.variant,
        usage_request.metadata,
        context
    )


@router.get("/flags/{key}/analytics", response_model=FlagAnalytics)
async def get_flag_analytics(
    key: str,
    start: Optional[datetime] = Query(None, description="Inclusive lower bound (ISO 8601)"),
    end: Optional[datetime] = Query(None, description="Inclusive upper bound (ISO 8601)"),
    store: SqlAlchemyFlagStore = Depends(get_store)
):
    """Usage totals, unique users, daily counts and per-variant usage for a flag."""
    if (start is None) != (end is None):
        raise FlagValidationError("Both start and end are required for a date range")

    date_range = DateRange(start=start, end=end) if start is not None else None
    if date_range and date_range.start > date_range.end:
        raise FlagValidationError("start must not be after end")

    aggregator = AnalyticsAggregator(store, store)
    return aggregator.get_feature_flag_analytics(key, date_range)


@router.get("/experiments/{experiment_id}/analytics", response_model=ExperimentAnalytics)
async def get_experiment_analytics(
    experiment_id: str,
    store: SqlAlchemyFlagStore = Depends(get_store)
):
    """Participants and per-variant distribution for an experiment."""
    aggregator = AnalyticsAggregator(store, store)
    return aggregator.get_experiment_analytics(experiment_id)
