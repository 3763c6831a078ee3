from fastapi import APIRouter
from fastapi import HTTPException, Query
from ..database.session import RepositoryDep
from ..database.repository import Table
from typing import Annotated, Dict, Any, List, Optional
from datetime import datetime
import time
import pandas as pd
from .schemas.reports import (
    AggregationResponse, CumulativeRequest, ReportResponse, RollingMetric, RollingRequest,
)
from ..analytics import reports
from ..analytics.errors import InvalidArgumentError
from ..analytics.rolling import aggregate, cumulative_sum, rolling_window_sum
from ..config import settings
from ..utils.services import frame_to_records, query_timer
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

LocationLike = Annotated[
    Optional[str], Query(min_length=1, description="Case-insensitive substring of location")
]


def _report_response(title: str, frame: pd.DataFrame, **metadata: Any) -> ReportResponse:
    data = frame_to_records(frame)
    return ReportResponse(
        title=title,
        data=data,
        columns=[str(c) for c in frame.columns],
        metadata={"rows": len(data), **metadata},
        query_performance={"generated_at": datetime.now().isoformat()},
    )


def _window(window_size: Optional[int]) -> int:
    return settings.ROLLING_WINDOW_DAYS if window_size is None else window_size


@router.get("/")
def root():
    return {"ok": True}


# =============================================================================
# AGGREGATION ENGINE
# =============================================================================


@router.post("/aggregate/rolling")
@query_timer
async def post_rolling_aggregation(request: RollingRequest) -> AggregationResponse:
    """Trailing window sums and averages per partition for arbitrary observations"""
    try:
        if request.include_cumulative:
            results = aggregate(
                request.observations,
                request.window_size,
                divide_by_observed=request.divide_by_observed,
                true_division=request.true_division,
            )
        else:
            results = rolling_window_sum(
                request.observations,
                request.window_size,
                divide_by_observed=request.divide_by_observed,
                true_division=request.true_division,
            )
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Rolling aggregation error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Aggregation error: {str(e)}")

    return AggregationResponse(
        results=results,
        metadata={
            "window_size": request.window_size,
            "partitions": len({r.partition_key for r in results}),
            "divisor": "observed_rows" if request.divide_by_observed else "window_size",
            "division": "true" if request.true_division else "truncating",
        },
    )


@router.post("/aggregate/cumulative")
@query_timer
async def post_cumulative_aggregation(request: CumulativeRequest) -> AggregationResponse:
    """Running totals per partition for arbitrary observations"""
    try:
        results = cumulative_sum(request.observations)
    except Exception as e:
        logger.error(f"Cumulative aggregation error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Aggregation error: {str(e)}")

    return AggregationResponse(
        results=results,
        metadata={"partitions": len({r.partition_key for r in results})},
    )


# =============================================================================
# TABLE PREVIEWS AND DATA QUALITY
# =============================================================================


@router.get("/reports/preview/{table}")
@query_timer
async def get_table_preview(
    repository: RepositoryDep,
    table: Table,
    limit: int = Query(10, ge=1, le=1000),
    location_like: Optional[str] = Query(None, min_length=1),
) -> ReportResponse:
    """First rows of a table"""
    try:
        frame = reports.table_preview(repository, table, limit, location_like)
        return _report_response(f"Preview of {table.value}", frame, table=table.value)
    except Exception as e:
        logger.error(f"Table preview error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Preview error: {str(e)}")


@router.get("/reports/null-audit/{table}")
@query_timer
async def get_null_audit(
    repository: RepositoryDep,
    table: Table,
    columns: Optional[List[str]] = Query(None, description="Columns to audit"),
    location_like: LocationLike = "states",
) -> ReportResponse:
    """Count of missing values per column"""
    try:
        frame = reports.null_audit(repository, table, columns, location_like)
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Null audit error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Null audit error: {str(e)}")

    return _report_response(
        f"Null values in {table.value}", frame, table=table.value, location_like=location_like
    )


@router.get("/reports/vaccination-snapshot")
@query_timer
async def get_vaccination_snapshot(
    repository: RepositoryDep,
    location_like: LocationLike = "states",
    year: int = Query(2020, description="Only rows dated after this year"),
    limit: int = Query(15, ge=1, le=1000),
) -> ReportResponse:
    """Early vaccination rows comparing the four dose counters"""
    try:
        frame = reports.vaccination_snapshot(repository, location_like, year, limit)
        return _report_response("Vaccination counters snapshot", frame, after_year=year)
    except Exception as e:
        logger.error(f"Vaccination snapshot error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Snapshot error: {str(e)}")


# =============================================================================
# CASES AND DEATHS
# =============================================================================


@router.get("/reports/death-rate")
@query_timer
async def get_death_rate(
    repository: RepositoryDep,
    location_like: LocationLike = "states",
) -> ReportResponse:
    """Percent of positive cases that died, over time"""
    try:
        frame = reports.death_rate_over_time(repository, location_like)
        return _report_response(
            "Total Cases vs Total Deaths", frame, location_like=location_like
        )
    except Exception as e:
        logger.error(f"Death rate error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Death rate error: {str(e)}")


@router.get("/reports/infection-rate")
@query_timer
async def get_infection_rate(repository: RepositoryDep) -> ReportResponse:
    """Percent of population that tested positive, per country"""
    try:
        frame = reports.infection_rate_by_country(repository)
        return _report_response("Percent of Population Infected by Country", frame)
    except Exception as e:
        logger.error(f"Infection rate error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Infection rate error: {str(e)}")


@router.get("/reports/continent-deaths")
@query_timer
async def get_continent_deaths(repository: RepositoryDep) -> ReportResponse:
    """Highest death count per continent-level aggregate row"""
    try:
        frame = reports.continent_death_totals(repository)
        return _report_response("Total Deaths per Continent", frame)
    except Exception as e:
        logger.error(f"Continent deaths error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Continent deaths error: {str(e)}")


@router.get("/reports/rolling-average/{metric}")
@query_timer
async def get_rolling_average(
    repository: RepositoryDep,
    metric: RollingMetric,
    location_like: LocationLike = "states",
    window_size: Optional[int] = Query(None, description="Defaults to ROLLING_WINDOW_DAYS"),
    divide_by_observed: bool = False,
) -> ReportResponse:
    """Daily cases or deaths with a trailing window average"""
    window = _window(window_size)
    try:
        frame = reports.rolling_average(
            repository, metric.value, location_like, window, divide_by_observed
        )
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Rolling average error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Rolling average error: {str(e)}")

    return _report_response(
        f"{metric.value} with {window}-day average",
        frame,
        metric=metric.value,
        window_size=window,
        location_like=location_like,
    )


# =============================================================================
# VACCINATIONS
# =============================================================================


@router.get("/reports/infection-vs-vaccination")
@query_timer
async def get_infection_vs_vaccination(repository: RepositoryDep) -> ReportResponse:
    """Infection share next to fully vaccinated share, per country"""
    try:
        frame = reports.infection_vs_vaccination(repository)
        return _report_response("Infections vs Vaccinations by Country", frame)
    except Exception as e:
        logger.error(f"Infection vs vaccination error: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"Infection vs vaccination error: {str(e)}"
        )


@router.get("/reports/vaccination-measures")
@query_timer
async def get_vaccination_measures(repository: RepositoryDep) -> ReportResponse:
    """The four vaccination counters side by side, per location"""
    try:
        frame = reports.vaccination_measures(repository)
        return _report_response("Vaccination Measures by Location", frame)
    except Exception as e:
        logger.error(f"Vaccination measures error: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"Vaccination measures error: {str(e)}"
        )


@router.get("/reports/continent-cumulative-shots")
@query_timer
async def get_continent_cumulative_shots(repository: RepositoryDep) -> ReportResponse:
    """Daily and cumulative shots per continent"""
    try:
        frame = reports.continent_cumulative_shots(repository)
        return _report_response("Cumulative Shots per Continent", frame)
    except Exception as e:
        logger.error(f"Continent cumulative shots error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Cumulative shots error: {str(e)}")


@router.get("/reports/vaccination-progress")
@query_timer
async def get_vaccination_progress(
    repository: RepositoryDep,
    location_like: LocationLike = "states",
) -> ReportResponse:
    """One dose and fully vaccinated people over time"""
    try:
        frame = reports.vaccination_progress(repository, location_like)
        return _report_response(
            "Vaccination Progress", frame, location_like=location_like
        )
    except Exception as e:
        logger.error(f"Vaccination progress error: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"Vaccination progress error: {str(e)}"
        )


@router.get("/reports/global-vaccine-rollout")
@query_timer
async def get_global_vaccine_rollout(repository: RepositoryDep) -> ReportResponse:
    """Vaccines and fully vaccinated people per hundred, per country"""
    try:
        frame = reports.global_vaccine_rollout(repository)
        return _report_response("Global Vaccine Rollout", frame)
    except Exception as e:
        logger.error(f"Global vaccine rollout error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Vaccine rollout error: {str(e)}")


# =============================================================================
# TESTING
# =============================================================================


@router.get("/reports/testing-positivity")
@query_timer
async def get_testing_positivity(
    repository: RepositoryDep,
    location_like: LocationLike = "states",
    window_size: Optional[int] = Query(None, description="Defaults to ROLLING_WINDOW_DAYS"),
    divide_by_observed: bool = False,
) -> ReportResponse:
    """Tests taken, positive tests and percent positivity"""
    window = _window(window_size)
    try:
        frame = reports.testing_positivity(
            repository, location_like, window, divide_by_observed
        )
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Testing positivity error: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Testing positivity error: {str(e)}")

    return _report_response(
        "Tests Taken, Positive Tests and Percent Positivity",
        frame,
        window_size=window,
        location_like=location_like,
    )


# =============================================================================
# HEALTH CHECK
# =============================================================================


@router.get("/health")
async def health_check(repository: RepositoryDep) -> Dict[str, Any]:
    """Data source health check"""
    try:
        start_time = time.time()
        stats = repository.ping()
        response_time = (time.time() - start_time) * 1000

        return {
            "timestamp": datetime.now().isoformat(),
            "api_version": "1.0.0",
            "status": "healthy",
            "data_source": {
                "kind": repository.kind,
                "status": "connected",
                "response_time_ms": round(response_time, 2),
                **stats,
            },
        }

    except Exception as e:
        return {
            "timestamp": datetime.now().isoformat(),
            "status": "unhealthy",
            "error": str(e),
        }
