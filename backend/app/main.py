from typing import Annotated

import nats
from fastapi import FastAPI, Depends, Query

from backend.app import crud, schemas
from backend.app.aggregations import parse_dimension
from backend.app.auth import verify_api_key
from backend.app.errors import register_error_handlers
from backend.app.metrics import MetricsMiddleware
from backend.app.service import AnalyticsService
from backend.app.store import get_store
from shared.config import settings
from shared.database import engine, Base
from shared.enums import ScopeKind

app = FastAPI(
    title="Discount Analytics API",
    description="API for recording discount interactions and reporting engagement analytics",
    version="1.0.0",
)

app.add_middleware(MetricsMiddleware)
register_error_handlers(app)

nats_client = None


@app.on_event("startup")
async def startup_event():
    global nats_client
    Base.metadata.create_all(bind=engine)
    nats_client = await nats.connect(settings.NATS_URL)


@app.on_event("shutdown")
async def shutdown_event():
    if nats_client:
        await nats_client.close()


def get_analytics_service(store=Depends(get_store)) -> AnalyticsService:
    return AnalyticsService(store, top_limit_max=settings.TOP_LIMIT_MAX)


@app.post("/actions", response_model=schemas.ActionsIngestResponse)
async def ingest_actions(
        request: schemas.ActionsIngestRequest,
        api_key: str = Depends(verify_api_key)
):
    """
    Record discount interactions.

    Accepts a batch of actions and queues them for the recording worker via NATS.
    Returns immediately with acceptance status.
    Requires valid API key authentication.
    """
    return await crud.ingest_actions(request, nats_client)


@app.get("/analytics/top", response_model=schemas.TopResponse)
def get_top_discounts(
        params: Annotated[schemas.TopQueryParams, Query()],
        service: AnalyticsService = Depends(get_analytics_service),
        api_key: str = Depends(verify_api_key)
):
    """
    Rank discounts by how often one action was recorded on them.

    Optionally restricted to the discounts of a single company.
    """
    data = service.top_by_action(params.action, params.limit, params.to_filters(), params.company_id)
    return schemas.TopResponse(data=[schemas.TopItem(**row) for row in data], action=params.action.value)


@app.get("/analytics/{scope}/{target_id}/summary", response_model=schemas.SummaryResponse)
def get_summary(
        scope: ScopeKind,
        target_id: int,
        params: Annotated[schemas.AnalyticsQueryParams, Query()],
        service: AnalyticsService = Depends(get_analytics_service),
        api_key: str = Depends(verify_api_key)
):
    """
    Action counts and click-through rate.

    ``scope`` is ``discounts`` for one discount or ``companies`` for every
    discount a company owns.
    """
    return schemas.SummaryResponse(**service.summary(scope, target_id, params.to_filters()))


@app.get("/analytics/{scope}/{target_id}/demographics", response_model=schemas.DemographicsResponse)
def get_demographics(
        scope: ScopeKind,
        target_id: int,
        params: Annotated[schemas.AnalyticsQueryParams, Query()],
        service: AnalyticsService = Depends(get_analytics_service),
        api_key: str = Depends(verify_api_key)
):
    """Breakdown by age group, gender, city, region and device."""
    return schemas.DemographicsResponse(**service.demographics(scope, target_id, params.to_filters()))


@app.get("/analytics/{scope}/{target_id}/dimensions/{dimension}", response_model=schemas.DimensionResponse)
def get_dimension(
        scope: ScopeKind,
        target_id: int,
        dimension: str,
        params: Annotated[schemas.AnalyticsQueryParams, Query()],
        service: AnalyticsService = Depends(get_analytics_service),
        api_key: str = Depends(verify_api_key)
):
    """Breakdown by a single dimension; events without a value are grouped as ``unknown``."""
    data = service.dimension_breakdown(scope, target_id, dimension, params.to_filters())
    return schemas.DimensionResponse(data=data, dimension=parse_dimension(dimension).value)


@app.get("/analytics/{scope}/{target_id}/timeseries", response_model=schemas.TimeSeriesResponse)
def get_time_series(
        scope: ScopeKind,
        target_id: int,
        params: Annotated[schemas.TimeSeriesQueryParams, Query()],
        service: AnalyticsService = Depends(get_analytics_service),
        api_key: str = Depends(verify_api_key)
):
    """
    Action counts per day, ISO week or month.

    Buckets without actions are omitted.
    """
    data = service.time_series(scope, target_id, params.to_filters(), params.granularity)
    return schemas.TimeSeriesResponse(data=data, granularity=params.granularity.value)


@app.get("/analytics/{scope}/{target_id}/timeseries-by-action", response_model=schemas.TimeSeriesByActionResponse)
def get_time_series_by_action(
        scope: ScopeKind,
        target_id: int,
        params: Annotated[schemas.TimeSeriesQueryParams, Query()],
        service: AnalyticsService = Depends(get_analytics_service),
        api_key: str = Depends(verify_api_key)
):
    data = service.time_series_by_action(scope, target_id, params.to_filters(), params.granularity)
    return schemas.TimeSeriesByActionResponse(data=data, granularity=params.granularity.value)


@app.get("/analytics/{scope}/{target_id}/active-time", response_model=schemas.ActiveTimeResponse)
def get_active_time(
        scope: ScopeKind,
        target_id: int,
        params: Annotated[schemas.AnalyticsQueryParams, Query()],
        service: AnalyticsService = Depends(get_analytics_service),
        api_key: str = Depends(verify_api_key)
):
    """Actions per hour of day (0-23) and per ISO day of week (1 = Monday)."""
    return schemas.ActiveTimeResponse(**service.active_time(scope, target_id, params.to_filters()))


@app.get("/analytics/{scope}/{target_id}/retention", response_model=schemas.RetentionResponse)
def get_retention(
        scope: ScopeKind,
        target_id: int,
        params: Annotated[schemas.AnalyticsQueryParams, Query()],
        service: AnalyticsService = Depends(get_analytics_service),
        api_key: str = Depends(verify_api_key)
):
    """
    Share of signed-in users who interacted more than once in the window.

    Anonymous actions are not counted.
    """
    return schemas.RetentionResponse(**service.retention(scope, target_id, params.to_filters()))


@app.get("/analytics/{scope}/{target_id}/totals", response_model=schemas.TotalsResponse)
def get_totals(
        scope: ScopeKind,
        target_id: int,
        params: Annotated[schemas.AnalyticsQueryParams, Query()],
        service: AnalyticsService = Depends(get_analytics_service),
        api_key: str = Depends(verify_api_key)
):
    """Fixed set of action totals plus CTR; missing actions report 0."""
    return schemas.TotalsResponse(**service.totals(scope, target_id, params.to_filters()))


@app.get("/analytics/{scope}/{target_id}/report", response_model=schemas.ReportResponse)
def get_report(
        scope: ScopeKind,
        target_id: int,
        params: Annotated[schemas.TimeSeriesQueryParams, Query()],
        service: AnalyticsService = Depends(get_analytics_service),
        api_key: str = Depends(verify_api_key)
):
    """Everything the analytics dashboard shows for a discount or company, in one call."""
    return schemas.ReportResponse(
        **service.report(scope, target_id, params.to_filters(), params.granularity)
    )


@app.get("/")
def root():
    return {
        "message": "Discount Analytics API",
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}
