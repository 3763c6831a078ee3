from types import SimpleNamespace

import pandas as pd
import pytest

from covid_analytics.analytics.errors import InvalidArgumentError
from covid_analytics.database.repository import (
    ClickHouseRepository,
    FrameRepository,
    Table,
    resolve_columns,
)


class FakeClickHouseClient:
    """Records issued queries instead of talking to a server."""

    def __init__(self, frame=None, count=0):
        self.frame = frame if frame is not None else pd.DataFrame()
        self.count = count
        self.queries = []
        self.closed = False

    def query_df(self, query, parameters=None):
        self.queries.append((query, parameters))
        return self.frame

    def query(self, query, parameters=None):
        self.queries.append((query, parameters))
        return SimpleNamespace(result_rows=[(self.count,)], column_names=["count()"])

    def close(self):
        self.closed = True


class TestResolveColumns:
    def test_none_means_all(self):
        assert resolve_columns(Table.deaths, None) is None

    def test_duplicates_are_dropped_in_order(self):
        assert resolve_columns(Table.deaths, ["location", "date", "location"]) == [
            "location",
            "date",
        ]

    def test_unknown_column(self):
        with pytest.raises(InvalidArgumentError, match="people_vaccinated"):
            resolve_columns(Table.deaths, ["location", "people_vaccinated"])

    def test_unknown_table(self):
        with pytest.raises(ValueError):
            resolve_columns("hospitals", ["location"])


class TestFrameRepository:
    def test_projection_and_location_filter(self, repository):
        frame = repository.load(Table.deaths, ["location", "total_cases"], location_like="STATES")

        assert list(frame.columns) == ["location", "total_cases"]
        assert frame["location"].unique().tolist() == ["United States"]
        assert frame.index.tolist() == [0, 1, 2]

    def test_missing_columns_read_as_null(self, repository):
        frame = repository.load(Table.deaths, ["location", "icu_patients"])

        assert frame["icu_patients"].isna().all()

    def test_all_columns_when_unprojected(self, repository, deaths_frame):
        frame = repository.load(Table.deaths)

        assert list(frame.columns) == list(deaths_frame.columns)

    def test_returns_a_copy(self, repository, deaths_frame):
        frame = repository.load(Table.deaths, ["location"])
        frame.loc[0, "location"] = "changed"

        assert deaths_frame.loc[0, "location"] == "United States"

    def test_from_csv(self, tmp_path, deaths_frame, vaccinations_frame):
        deaths_path = tmp_path / "deaths.csv"
        vaccinations_path = tmp_path / "vaccinations.csv"
        deaths_frame.to_csv(deaths_path, index=False)
        vaccinations_frame.to_csv(vaccinations_path, index=False)

        repo = FrameRepository.from_csv(deaths_path, vaccinations_path)

        frame = repo.load(Table.deaths, ["location", "date"])
        assert len(frame) == len(deaths_frame)
        assert pd.api.types.is_datetime64_any_dtype(frame["date"])
        assert repo.ping() == {"total_records": len(deaths_frame)}


class TestClickHouseRepository:
    def test_builds_parameterized_query(self):
        client = FakeClickHouseClient()
        repo = ClickHouseRepository(client, deaths_table="covid.deaths")

        repo.load(Table.deaths, ["location", "new_cases"], location_like="states")

        query, params = client.queries[0]
        assert "SELECT location, new_cases" in query
        assert "FROM covid.deaths" in query
        assert "positionCaseInsensitive(location, %(location_like)s) > 0" in query
        assert params == {"location_like": "states"}

    def test_no_where_clause_without_filter(self):
        client = FakeClickHouseClient()
        repo = ClickHouseRepository(client)

        query, params = repo.build_query(Table.vaccinations)

        assert "SELECT *" in query
        assert "FROM global_covid_vaccination" in query
        assert "WHERE" not in query
        assert params == {}

    def test_rejects_unknown_columns_before_querying(self):
        client = FakeClickHouseClient()
        repo = ClickHouseRepository(client)

        with pytest.raises(InvalidArgumentError):
            repo.load(Table.deaths, ["location; DROP TABLE x"])
        assert client.queries == []

    def test_ping_and_close(self):
        client = FakeClickHouseClient(count=42)
        repo = ClickHouseRepository(client)

        assert repo.ping() == {"total_records": 42}
        repo.close()
        assert client.closed
