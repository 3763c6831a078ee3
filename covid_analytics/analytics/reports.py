"""Report catalogue over the deaths and vaccinations tables.

Each report reads through a ``CovidRepository`` and returns a DataFrame of
key columns plus computed metrics. Numeric columns are cast permissively
(unparsable values become NaN and drop out of aggregates). Ratios with a
zero or missing denominator are reported as null and percentages are not
clamped at 100, since reporting lag can push them slightly over.
"""

import logging
from collections import defaultdict, deque
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..database.repository import CovidRepository, Table, resolve_columns
from .errors import DivisionByZeroError, InvalidArgumentError
from .filters import (
    after_year,
    has_continent,
    is_continent_aggregate,
    location_is_not_continent,
)
from .rolling import Observation, cumulative_sum, rolling_window_sum

logger = logging.getLogger(__name__)

ROLLING_METRICS = ("new_cases", "new_deaths")

VACCINATION_AUDIT_COLUMNS = (
    "total_vaccinations",
    "new_vaccinations",
    "people_fully_vaccinated",
    "people_vaccinated",
)

AUDIT_COLUMNS = {
    Table.deaths: ("total_cases", "new_cases", "total_deaths", "new_deaths"),
    Table.vaccinations: VACCINATION_AUDIT_COLUMNS,
}


# =============================================================================
# HELPERS
# =============================================================================


def to_numeric(frame: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    """Cast columns in place with ``errors="coerce"``, infinities as NaN; returns the frame."""
    for column in columns:
        frame[column] = pd.to_numeric(frame[column], errors="coerce").replace(
            [np.inf, -np.inf], np.nan
        )
    return frame


def normalize_dates(frame: pd.DataFrame, column: str = "date") -> pd.DataFrame:
    frame[column] = pd.to_datetime(frame[column]).dt.date
    return frame


def percent_of(
    numerator: pd.Series,
    denominator: pd.Series,
    digits: int,
    strict: bool = False,
) -> pd.Series:
    """``ROUND(numerator / denominator * 100, digits)`` element-wise.

    A zero or missing denominator yields NaN, or raises
    ``DivisionByZeroError`` when ``strict`` is set.
    """
    invalid = denominator.isna() | (denominator == 0)
    if strict and invalid.any():
        raise DivisionByZeroError(
            f"{int(invalid.sum())} row(s) have a zero or missing denominator"
        )
    ratio = numerator / denominator.where(~invalid)
    return (ratio * 100).round(digits)


def round_half_away(series: pd.Series) -> pd.Series:
    """SQL ``CONVERT(numeric, x)``: round to an integer, halves away from zero."""
    return np.sign(series) * np.floor(np.abs(series) + 0.5)


def observations_from_frame(
    frame: pd.DataFrame,
    key_column: str,
    value_column: str,
    date_column: str = "date",
) -> List[Observation]:
    return [
        Observation(partition_key=str(key), timestamp=day, value=value)
        for key, day, value in zip(
            frame[key_column], frame[date_column], frame[value_column]
        )
    ]


def _sort(frame: pd.DataFrame, by: List[str], ascending=True) -> pd.DataFrame:
    return frame.sort_values(
        by, ascending=ascending, kind="stable", na_position="last"
    ).reset_index(drop=True)


# =============================================================================
# TABLE PREVIEW AND AUDITS
# =============================================================================


def table_preview(
    repository: CovidRepository,
    table: Table,
    limit: int = 10,
    location_like: Optional[str] = None,
) -> pd.DataFrame:
    """First ``limit`` rows of a table, optionally filtered by location."""
    if limit < 1:
        raise InvalidArgumentError(f"limit must be positive, got {limit}")
    frame = repository.load(table, location_like=location_like)
    return frame.head(limit).reset_index(drop=True)


def null_audit(
    repository: CovidRepository,
    table: Table = Table.vaccinations,
    columns: Optional[Sequence[str]] = None,
    location_like: Optional[str] = "states",
) -> pd.DataFrame:
    """``COUNT(*) - COUNT(column)`` for each audited column, as a single row."""
    table = Table(table)
    columns = resolve_columns(table, columns or AUDIT_COLUMNS[table])
    frame = repository.load(table, columns, location_like=location_like)

    row = {"total_rows": len(frame)}
    for column in columns:
        row[f"null_{column}"] = int(frame[column].isna().sum())

    return pd.DataFrame([row])


def vaccination_snapshot(
    repository: CovidRepository,
    location_like: Optional[str] = "states",
    year: int = 2020,
    limit: int = 15,
) -> pd.DataFrame:
    """Early vaccination rows after ``year``, to compare the four dose counters."""
    columns = ["location", "date", *VACCINATION_AUDIT_COLUMNS]
    frame = repository.load(Table.vaccinations, columns, location_like=location_like)
    frame = normalize_dates(frame)
    frame = frame[after_year(frame, year)]
    frame = to_numeric(frame.copy(), VACCINATION_AUDIT_COLUMNS)

    return _sort(frame, ["date", "location"]).head(limit)


# =============================================================================
# CASES AND DEATHS
# =============================================================================


def death_rate_over_time(
    repository: CovidRepository,
    location_like: Optional[str] = "states",
) -> pd.DataFrame:
    """Share of positive cases that died, per location and day."""
    frame = repository.load(
        Table.deaths,
        ["location", "date", "total_cases", "total_deaths"],
        location_like=location_like,
    )
    frame = to_numeric(normalize_dates(frame), ["total_cases", "total_deaths"])
    frame = _sort(frame, ["location", "date"])

    return pd.DataFrame(
        {
            "location": frame["location"],
            "date": frame["date"],
            "total_positive_cases": frame["total_cases"],
            "total_covid_deaths": frame["total_deaths"],
            "percent_deaths_of_cases": percent_of(
                frame["total_deaths"], frame["total_cases"], 3
            ),
        }
    )


def infection_rate_by_country(repository: CovidRepository) -> pd.DataFrame:
    """Highest case and death counts per country, with the share of population infected."""
    frame = repository.load(
        Table.deaths,
        ["location", "continent", "population", "total_cases", "total_deaths"],
    )
    frame = to_numeric(frame, ["population", "total_cases", "total_deaths"])
    frame = frame[location_is_not_continent(frame)]

    grouped = (
        frame.groupby(["location", "population"], dropna=False, sort=True)
        .agg(
            total_covid_cases=("total_cases", "max"),
            total_covid_deaths=("total_deaths", "max"),
        )
        .reset_index()
    )
    grouped["percent_population_infected"] = percent_of(
        grouped["total_covid_cases"], grouped["population"], 3
    )

    return _sort(
        grouped, ["percent_population_infected", "location"], ascending=[False, True]
    )


def continent_death_totals(repository: CovidRepository) -> pd.DataFrame:
    """Highest death count for each aggregate row (continents, world, income groups)."""
    frame = repository.load(Table.deaths, ["location", "continent", "total_deaths"])
    frame = to_numeric(frame, ["total_deaths"])
    frame = frame[is_continent_aggregate(frame)]

    grouped = (
        frame.groupby("location", sort=True)
        .agg(total_deaths=("total_deaths", "max"))
        .reset_index()
    )
    return _sort(grouped, ["total_deaths", "location"], ascending=[False, True])


def rolling_average(
    repository: CovidRepository,
    metric: str,
    location_like: Optional[str] = "states",
    window_size: int = 7,
    divide_by_observed: bool = False,
) -> pd.DataFrame:
    """Daily ``new_cases`` or ``new_deaths`` with a trailing window average per location."""
    if metric not in ROLLING_METRICS:
        raise InvalidArgumentError(
            f"Unsupported metric {metric!r}, expected one of {', '.join(ROLLING_METRICS)}"
        )

    frame = repository.load(
        Table.deaths, ["location", "date", metric], location_like=location_like
    )
    logger.debug(f"Rolling {metric} over {len(frame)} rows, window {window_size}")
    frame = normalize_dates(frame)
    results = rolling_window_sum(
        observations_from_frame(frame, "location", metric),
        window_size,
        divide_by_observed=divide_by_observed,
    )

    return pd.DataFrame(
        [
            {
                "location": r.partition_key,
                "date": r.timestamp,
                metric: r.value,
                "rolling_sum": r.windowed_value,
                "rolling_avg": r.windowed_average,
            }
            for r in results
        ],
        columns=["location", "date", metric, "rolling_sum", "rolling_avg"],
        dtype=object,
    )


# =============================================================================
# VACCINATIONS
# =============================================================================


def infection_vs_vaccination(repository: CovidRepository) -> pd.DataFrame:
    """Country infection figures next to the share of population fully vaccinated."""
    deaths = repository.load(
        Table.deaths,
        ["location", "continent", "population", "total_cases", "total_deaths"],
    )
    deaths = to_numeric(deaths, ["population", "total_cases", "total_deaths"])
    deaths = deaths[has_continent(deaths)]

    vaccinations = repository.load(
        Table.vaccinations, ["location", "people_fully_vaccinated"]
    )
    vaccinations = to_numeric(vaccinations, ["people_fully_vaccinated"])

    cases = (
        deaths.groupby(["location", "population"], dropna=False, sort=True)
        .agg(
            total_covid_cases=("total_cases", "max"),
            total_covid_deaths=("total_deaths", "max"),
        )
        .reset_index()
    )
    vaccinated = (
        vaccinations.groupby("location", sort=True)
        .agg(total_vaccinated=("people_fully_vaccinated", "max"))
        .reset_index()
    )

    joined = cases.merge(vaccinated, on="location", how="inner")
    joined["percent_population_infected"] = percent_of(
        joined["total_covid_cases"], joined["population"], 3
    )
    joined["percent_vaccinated"] = percent_of(
        joined["total_vaccinated"], joined["population"], 3
    )

    return _sort(
        joined[
            [
                "location",
                "population",
                "total_covid_cases",
                "total_covid_deaths",
                "percent_population_infected",
                "total_vaccinated",
                "percent_vaccinated",
            ]
        ],
        ["percent_population_infected", "location"],
        ascending=[False, True],
    )


def vaccination_measures(repository: CovidRepository) -> pd.DataFrame:
    """Compare the four vaccination counters per location.

    ``sum_new_vaccinations`` falls short of ``max_total_vaccinations`` wherever
    daily reports are missing, which is what the null audit surfaces.
    """
    frame = repository.load(
        Table.vaccinations, ["location", *VACCINATION_AUDIT_COLUMNS]
    )
    frame = to_numeric(frame, VACCINATION_AUDIT_COLUMNS)

    grouped = frame.groupby("location", sort=True).agg(
        max_total_vaccinations=("total_vaccinations", "max"),
        sum_new_vaccinations=("new_vaccinations", lambda s: s.sum(min_count=1)),
        max_people_fully_vaccinated=("people_fully_vaccinated", "max"),
        max_people_vaccinated=("people_vaccinated", "max"),
    )
    return grouped.reset_index()


def continent_cumulative_shots(repository: CovidRepository) -> pd.DataFrame:
    """Shots given per continent and day, with the running total per continent."""
    frame = repository.load(
        Table.vaccinations, ["continent", "date", "new_vaccinations"]
    )
    frame = to_numeric(normalize_dates(frame), ["new_vaccinations"])
    frame = frame[has_continent(frame)]

    daily = (
        frame.groupby(["continent", "date"], sort=True)
        .agg(number_of_shots=("new_vaccinations", lambda s: s.sum(min_count=1)))
        .reset_index()
    )
    logger.debug(f"Cumulative shots over {len(daily)} continent-days")
    results = cumulative_sum(
        observations_from_frame(daily, "continent", "number_of_shots")
    )

    return pd.DataFrame(
        [
            {
                "continent": r.partition_key,
                "date": r.timestamp,
                "number_of_shots": r.value,
                "cumulative_shots": r.cumulative_value,
            }
            for r in results
        ],
        columns=["continent", "date", "number_of_shots", "cumulative_shots"],
        dtype=object,
    )


def vaccination_progress(
    repository: CovidRepository,
    location_like: Optional[str] = "states",
) -> pd.DataFrame:
    """People with one dose and fully vaccinated, as counts and per hundred."""
    frame = repository.load(
        Table.vaccinations,
        [
            "location",
            "date",
            "people_vaccinated",
            "people_vaccinated_per_hundred",
            "people_fully_vaccinated",
            "people_fully_vaccinated_per_hundred",
        ],
        location_like=location_like,
    )
    frame = to_numeric(
        normalize_dates(frame),
        [
            "people_vaccinated",
            "people_vaccinated_per_hundred",
            "people_fully_vaccinated",
            "people_fully_vaccinated_per_hundred",
        ],
    )
    frame = frame.rename(
        columns={
            "people_vaccinated_per_hundred": "percent_one_dose",
            "people_fully_vaccinated_per_hundred": "percent_fully_vaccinated",
        }
    )
    return _sort(frame, ["date", "location"])


def global_vaccine_rollout(repository: CovidRepository) -> pd.DataFrame:
    """Vaccines and fully vaccinated people per hundred, for every country."""
    frame = repository.load(
        Table.vaccinations,
        [
            "location",
            "continent",
            "total_vaccinations_per_hundred",
            "people_fully_vaccinated_per_hundred",
        ],
    )
    frame = to_numeric(
        frame, ["total_vaccinations_per_hundred", "people_fully_vaccinated_per_hundred"]
    )
    frame = frame[has_continent(frame)]

    grouped = (
        frame.groupby("location", sort=True)
        .agg(
            total_vaccines_per_hundred=("total_vaccinations_per_hundred", "max"),
            people_fully_vaccinated_per_hundred=(
                "people_fully_vaccinated_per_hundred",
                "max",
            ),
        )
        .reset_index()
    )
    for column in ("total_vaccines_per_hundred", "people_fully_vaccinated_per_hundred"):
        grouped[column] = round_half_away(grouped[column])

    return _sort(
        grouped, ["total_vaccines_per_hundred", "location"], ascending=[False, True]
    )


# =============================================================================
# TESTING
# =============================================================================


def _rate_to_decimal(rate) -> Optional[Decimal]:
    # CONVERT(decimal(4,3), positive_rate)
    if pd.isna(rate):
        return None
    return Decimal(repr(float(rate))).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)


def _positive_tests(tests, rate: Optional[Decimal]) -> Optional[int]:
    if pd.isna(tests) or rate is None:
        return None
    return int(Decimal(int(tests)) * rate)


def testing_positivity(
    repository: CovidRepository,
    location_like: Optional[str] = "states",
    window_size: int = 7,
    divide_by_observed: bool = False,
) -> pd.DataFrame:
    """Trailing averages of tests taken and positive tests, with the daily positivity rate."""
    frame = repository.load(
        Table.vaccinations,
        ["location", "date", "new_tests", "positive_rate"],
        location_like=location_like,
    )
    frame = to_numeric(normalize_dates(frame), ["new_tests", "positive_rate"])

    rates = [_rate_to_decimal(rate) for rate in frame["positive_rate"]]
    frame["tests_taken"] = [
        None if pd.isna(tests) else int(tests) for tests in frame["new_tests"]
    ]
    frame["positive_tests"] = [
        _positive_tests(tests, rate) for tests, rate in zip(frame["new_tests"], rates)
    ]

    tests = rolling_window_sum(
        observations_from_frame(frame, "location", "tests_taken"),
        window_size,
        divide_by_observed=divide_by_observed,
    )
    positives = rolling_window_sum(
        observations_from_frame(frame, "location", "positive_tests"),
        window_size,
        divide_by_observed=divide_by_observed,
    )

    # keyed like the aggregator's partitions; rows sharing (location, date)
    # come back in input order, so each key holds a queue
    rates_by_row = defaultdict(deque)
    for location, day, rate in zip(frame["location"], frame["date"], rates):
        percent = None if rate is None else float((rate * 100).quantize(Decimal("0.01")))
        rates_by_row[(str(location), day)].append(percent)
    positives_by_row = defaultdict(deque)
    for r in positives:
        positives_by_row[(r.partition_key, r.timestamp)].append(r.windowed_average)

    keys = [(r.partition_key, r.timestamp) for r in tests]
    return pd.DataFrame(
        {
            "location": [location for location, _ in keys],
            "date": [day for _, day in keys],
            "tests_taken_rolling_avg": [r.windowed_average for r in tests],
            "positive_tests_rolling_avg": [positives_by_row[key].popleft() for key in keys],
            "positivity_rate": [rates_by_row[key].popleft() for key in keys],
        },
        dtype=object,
    )
