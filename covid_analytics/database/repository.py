"""Read-only access to the two OWID tables.

Reports receive a repository instead of a connection; every implementation
returns a pandas DataFrame projected to the requested columns.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

import pandas as pd
from clickhouse_connect.driver.client import Client

from ..analytics.errors import InvalidArgumentError
from ..analytics.filters import location_matches

logger = logging.getLogger(__name__)


class Table(str, Enum):
    deaths = "deaths"
    vaccinations = "vaccinations"


TABLE_COLUMNS: Dict[Table, tuple] = {
    Table.deaths: (
        "iso_code",
        "continent",
        "location",
        "date",
        "population",
        "total_cases",
        "new_cases",
        "new_cases_smoothed",
        "total_deaths",
        "new_deaths",
        "new_deaths_smoothed",
        "total_cases_per_million",
        "new_cases_per_million",
        "total_deaths_per_million",
        "new_deaths_per_million",
        "reproduction_rate",
        "icu_patients",
        "hosp_patients",
    ),
    Table.vaccinations: (
        "iso_code",
        "continent",
        "location",
        "date",
        "new_tests",
        "total_tests",
        "total_tests_per_thousand",
        "new_tests_per_thousand",
        "positive_rate",
        "tests_per_case",
        "tests_units",
        "total_vaccinations",
        "people_vaccinated",
        "people_fully_vaccinated",
        "new_vaccinations",
        "new_vaccinations_smoothed",
        "total_vaccinations_per_hundred",
        "people_vaccinated_per_hundred",
        "people_fully_vaccinated_per_hundred",
    ),
}


def resolve_columns(table: Table, columns: Optional[Sequence[str]]) -> Optional[List[str]]:
    """Validate a projection against the known columns; None means all."""
    table = Table(table)
    if columns is None:
        return None
    unknown = [c for c in columns if c not in TABLE_COLUMNS[table]]
    if unknown:
        raise InvalidArgumentError(
            f"Unknown column(s) for {table.value}: {', '.join(unknown)}"
        )
    return list(dict.fromkeys(columns))


class CovidRepository(Protocol):
    kind: str

    def load(
        self,
        table: Table,
        columns: Optional[Sequence[str]] = None,
        location_like: Optional[str] = None,
    ) -> pd.DataFrame: ...

    def ping(self) -> Dict[str, Any]: ...

    def close(self) -> None: ...


class ClickHouseRepository:
    """Repository backed by a clickhouse_connect client."""

    kind = "clickhouse"

    def __init__(
        self,
        client: Client,
        deaths_table: str = "global_covid_death",
        vaccinations_table: str = "global_covid_vaccination",
    ):
        self.client = client
        self.tables = {
            Table.deaths: deaths_table,
            Table.vaccinations: vaccinations_table,
        }

    def build_query(
        self,
        table: Table,
        columns: Optional[Sequence[str]] = None,
        location_like: Optional[str] = None,
    ) -> tuple[str, Dict[str, Any]]:
        table = Table(table)
        selected = resolve_columns(table, columns)
        conditions = []
        params = {}

        if location_like:
            conditions.append("positionCaseInsensitive(location, %(location_like)s) > 0")
            params["location_like"] = location_like

        where_clause = "WHERE " + " AND ".join(conditions) if conditions else ""
        select_list = ", ".join(selected) if selected else "*"

        query = f"""
        SELECT {select_list}
        FROM {self.tables[table]}
        {where_clause}
        """
        return query, params

    def load(
        self,
        table: Table,
        columns: Optional[Sequence[str]] = None,
        location_like: Optional[str] = None,
    ) -> pd.DataFrame:
        query, params = self.build_query(table, columns, location_like)
        logger.debug(f"ClickHouse query: {query.strip()} params={params}")
        return self.client.query_df(query, params)

    def ping(self) -> Dict[str, Any]:
        result = self.client.query(f"SELECT count(*) FROM {self.tables[Table.deaths]}")
        total_records = result.result_rows[0][0] if result.result_rows else 0
        return {"total_records": total_records}

    def close(self) -> None:
        self.client.close()


class FrameRepository:
    """Repository over in-memory DataFrames, e.g. the OWID CSV exports."""

    kind = "frame"

    def __init__(self, deaths: pd.DataFrame, vaccinations: pd.DataFrame):
        self.frames = {
            Table.deaths: deaths,
            Table.vaccinations: vaccinations,
        }

    @classmethod
    def from_csv(
        cls,
        deaths_path: Union[str, Path],
        vaccinations_path: Union[str, Path],
    ) -> "FrameRepository":
        logger.info(f"Loading CSV data from {deaths_path} and {vaccinations_path}")
        return cls(
            deaths=pd.read_csv(deaths_path, parse_dates=["date"]),
            vaccinations=pd.read_csv(vaccinations_path, parse_dates=["date"]),
        )

    def load(
        self,
        table: Table,
        columns: Optional[Sequence[str]] = None,
        location_like: Optional[str] = None,
    ) -> pd.DataFrame:
        table = Table(table)
        selected = resolve_columns(table, columns)
        frame = self.frames[table]

        if location_like:
            frame = frame[location_matches(frame, location_like)]

        # columns absent from the export read as all-null
        if selected is not None:
            frame = frame.reindex(columns=selected)

        return frame.reset_index(drop=True).copy()

    def ping(self) -> Dict[str, Any]:
        return {"total_records": len(self.frames[Table.deaths])}

    def close(self) -> None:
        pass
