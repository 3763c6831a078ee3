from typing import List, Dict, Any
from enum import Enum
from pydantic import BaseModel

from ...analytics.rolling import AggregationResult, Observation


class RollingMetric(str, Enum):
    new_cases = "new_cases"
    new_deaths = "new_deaths"


class RollingRequest(BaseModel):
    """Observations to smooth with a trailing window per partition"""

    observations: List[Observation]
    # validated by the aggregator so a bad size maps to 400, not 422
    window_size: int = 7
    divide_by_observed: bool = False
    true_division: bool = False
    include_cumulative: bool = False


class CumulativeRequest(BaseModel):
    observations: List[Observation]


class AggregationResponse(BaseModel):
    results: List[AggregationResult]
    metadata: Dict[str, Any] = {}
    query_performance: Dict[str, Any] = {}


class ReportResponse(BaseModel):
    title: str
    data: List[Dict[str, Any]]
    columns: List[str] = []
    metadata: Dict[str, Any] = {}
    query_performance: Dict[str, Any] = {}
