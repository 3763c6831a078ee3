from datetime import date, datetime
from functools import wraps
import time
from typing import Any, Dict, List

import numpy as np
import pandas as pd


def query_timer(func):
    """Decorator to measure report execution time"""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        start_time = time.time()
        result = await func(*args, **kwargs)
        execution_time_ms = round((time.time() - start_time) * 1000, 2)

        # Add timing to dict responses and to models carrying query_performance
        if isinstance(result, dict):
            result.setdefault("query_performance", {})["execution_time_ms"] = execution_time_ms
        elif isinstance(getattr(result, "query_performance", None), dict):
            result.query_performance["execution_time_ms"] = execution_time_ms

        return result

    return wrapper


def _jsonable(value: Any) -> Any:
    """Convert pandas/numpy scalars to plain JSON values"""
    if value is None or value is pd.NA or value is pd.NaT:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and np.isnan(value):
        return None
    return value


def frame_to_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Serialize a report frame to JSON rows; NaN becomes null, dates ISO strings"""
    return [
        {str(column): _jsonable(value) for column, value in row.items()}
        for row in frame.to_dict(orient="records")
    ]
