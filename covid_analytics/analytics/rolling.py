"""Partitioned rolling aggregation over daily location metrics.

Observations are grouped by ``partition_key`` (a location or continent),
ordered by ``timestamp`` within each partition, and reduced with a trailing
fixed-size window and/or a running total. Windows never cross partitions.

Averages follow the ``SUM(...) OVER (ROWS BETWEEN n PRECEDING AND CURRENT
ROW) / n`` reporting convention: the window sum is divided by the full window
size with truncating integer division, even while fewer than
``window_size`` rows have accumulated. The first
``window_size - 1`` averages of each partition are therefore understated.
Pass ``divide_by_observed=True`` to divide by the rows actually present
instead, and ``true_division=True`` for a float average.
"""

import math
import numbers
from collections import deque
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from itertools import groupby
from operator import attrgetter
from typing import Any, Iterable, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import InvalidArgumentError


_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _bounded(value: int) -> Optional[int]:
    return value if _INT64_MIN <= value <= _INT64_MAX else None


def _decimal_to_int(number: Decimal, truncate: bool) -> Optional[int]:
    # adjusted() is the exponent of the leading digit; past 18 it cannot fit in
    # a signed 64-bit integer, and int() on a huge exponent never returns
    if not number.is_finite() or number.adjusted() > 18:
        return None
    if not truncate and number != number.to_integral_value():
        return None
    return _bounded(int(number))


def coerce_value(raw: Any) -> Optional[int]:
    """Permissive integer cast: anything that cannot be read as a number is None.

    Floats and decimals are truncated toward zero, numeric strings are parsed,
    booleans, NaN and infinities are treated as missing. Values outside the
    signed 64-bit range, and bytes that are not valid UTF-8, are missing too.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, numbers.Integral):
        return _bounded(int(raw))
    if isinstance(raw, Decimal):
        return _decimal_to_int(raw, truncate=True)
    if isinstance(raw, numbers.Real):
        try:
            if not math.isfinite(raw):
                return None
            return _bounded(int(raw))
        except (TypeError, ValueError, OverflowError):
            return None
    if isinstance(raw, (str, bytes)):
        try:
            text = raw.decode() if isinstance(raw, bytes) else raw
        except UnicodeDecodeError:
            return None
        text = text.strip()
        try:
            return _bounded(int(text))
        except ValueError:
            pass
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
        return _decimal_to_int(number, truncate=False)
    return None


class Observation(BaseModel):
    """One daily metric value for one location."""

    model_config = ConfigDict(frozen=True)

    partition_key: str
    timestamp: date
    value: Optional[int] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def drop_time_component(cls, v):
        if isinstance(v, datetime):
            return v.date()
        return v

    @field_validator("value", mode="before")
    @classmethod
    def cast_value(cls, v):
        return coerce_value(v)


class AggregationResult(BaseModel):
    partition_key: str
    timestamp: date
    value: Optional[int] = None
    windowed_value: Optional[int] = None
    windowed_average: Optional[Union[int, float]] = None
    cumulative_value: Optional[int] = None


def _validate_window_size(window_size: Any) -> int:
    if isinstance(window_size, bool) or not isinstance(window_size, numbers.Integral):
        raise InvalidArgumentError(f"window_size must be an integer, got {window_size!r}")
    if window_size <= 0:
        raise InvalidArgumentError(f"window_size must be positive, got {window_size}")
    return int(window_size)


def _truncating_div(numerator: int, denominator: int) -> int:
    # toward zero, as SQL integer division; `//` would floor negative corrections
    quotient = abs(numerator) // denominator
    return quotient if numerator >= 0 else -quotient


def partition(observations: Iterable[Observation]) -> Iterator[Tuple[str, List[Observation]]]:
    """Yield ``(partition_key, rows)`` in key order, rows sorted by timestamp.

    ``sorted`` is stable, so rows sharing a timestamp keep their input order.
    """
    ordered = sorted(observations, key=lambda o: (o.partition_key, o.timestamp))
    for key, rows in groupby(ordered, key=attrgetter("partition_key")):
        yield key, list(rows)


def _window_sums(
    rows: List[Observation], window_size: int
) -> Iterator[Tuple[Optional[int], int]]:
    """Yield (sum of non-null values, rows in window) for each position."""
    window = deque()
    total = 0
    present = 0
    for row in rows:
        window.append(row.value)
        if row.value is not None:
            total += row.value
            present += 1
        if len(window) > window_size:
            dropped = window.popleft()
            if dropped is not None:
                total -= dropped
                present -= 1
        yield (total if present else None), len(window)


def _average(
    total: Optional[int],
    rows_in_window: int,
    window_size: int,
    divide_by_observed: bool,
    true_division: bool,
) -> Optional[Union[int, float]]:
    if total is None:
        return None
    divisor = rows_in_window if divide_by_observed else window_size
    if true_division:
        return total / divisor
    return _truncating_div(total, divisor)


def aggregate(
    observations: Iterable[Observation],
    window_size: int,
    divide_by_observed: bool = False,
    true_division: bool = False,
    windowed: bool = True,
    cumulative: bool = True,
) -> List[AggregationResult]:
    """Compute trailing window sums/averages and running totals per partition.

    Returns one result per observation, ordered by (partition_key, timestamp).
    """
    if windowed:
        window_size = _validate_window_size(window_size)

    results = []
    for key, rows in partition(observations):
        sums = _window_sums(rows, window_size) if windowed else None
        running = 0
        for row in rows:
            result = AggregationResult(
                partition_key=key, timestamp=row.timestamp, value=row.value
            )
            if sums is not None:
                total, rows_in_window = next(sums)
                result.windowed_value = total
                result.windowed_average = _average(
                    total, rows_in_window, window_size, divide_by_observed, true_division
                )
            if cumulative:
                running += row.value or 0
                result.cumulative_value = running
            results.append(result)

    return results


def rolling_window_sum(
    observations: Iterable[Observation],
    window_size: int,
    divide_by_observed: bool = False,
    true_division: bool = False,
) -> List[AggregationResult]:
    """Trailing window sum and average, ``cumulative_value`` left as None."""
    return aggregate(
        observations,
        window_size,
        divide_by_observed=divide_by_observed,
        true_division=true_division,
        cumulative=False,
    )


def cumulative_sum(observations: Iterable[Observation]) -> List[AggregationResult]:
    """Running total per partition; missing values contribute nothing."""
    return aggregate(observations, window_size=1, windowed=False)
