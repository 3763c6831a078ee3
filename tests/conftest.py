from datetime import date

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from covid_analytics.database.repository import FrameRepository
from covid_analytics.database.session import get_repository
from covid_analytics.main import app

DEATH_COLUMNS = [
    "location", "continent", "date", "population",
    "total_cases", "new_cases", "total_deaths", "new_deaths",
]

VACCINATION_COLUMNS = [
    "location", "continent", "date", "new_tests", "positive_rate",
    "total_vaccinations", "new_vaccinations", "people_vaccinated",
    "people_fully_vaccinated", "total_vaccinations_per_hundred",
    "people_vaccinated_per_hundred", "people_fully_vaccinated_per_hundred",
]


@pytest.fixture
def deaths_frame() -> pd.DataFrame:
    rows = [
        ("United States", "North America", date(2021, 1, 1), 1000, 100, 10, 1, 1),
        ("United States", "North America", date(2021, 1, 2), 1000, 120, "20", 3, 2),
        ("United States", "North America", date(2021, 1, 3), 1000, 150, 30, 6, 3),
        ("Canada", "North America", date(2021, 1, 1), 500, 40, 4, 0, 0),
        ("Canada", "North America", date(2021, 1, 2), 500, 50, 10, 2, 2),
        # continent aggregate rows carry a null continent
        ("North America", None, date(2021, 1, 1), 1500, 140, 14, 1, 1),
        ("North America", None, date(2021, 1, 2), 1500, 170, 30, 5, 4),
        ("Atlantis", "Atlantis", date(2021, 1, 1), 10, 9, 9, 0, 0),
        ("Nowhere", "Oceania", date(2021, 1, 1), 0, 5, 5, 1, 1),
    ]
    return pd.DataFrame(rows, columns=DEATH_COLUMNS)


@pytest.fixture
def vaccinations_frame() -> pd.DataFrame:
    rows = [
        ("United States", "North America", date(2020, 12, 31), None, None,
         None, None, None, None, None, None, None),
        ("United States", "North America", date(2021, 1, 1), 1000, 0.1,
         10, None, 10, None, 1.0, 1.0, None),
        ("United States", "North America", date(2021, 1, 2), 2000, 0.029,
         30, 20, 25, 5, 3.0, 2.5, 0.5),
        ("United States", "North America", date(2021, 1, 3), "n/a", 0.05,
         60, 30, 40, 20, 6.4, 4.0, 2.0),
        ("Canada", "North America", date(2021, 1, 1), 100, 0.2,
         5, 5, 5, 1, 1.5, 1.0, 0.2),
        ("Canada", "North America", date(2021, 1, 2), 300, None,
         15, 10, 12, 3, 2.5, 2.4, 0.6),
        ("North America", None, date(2021, 1, 2), 2300, 0.05,
         75, 40, 60, None, 4.0, 3.0, None),
    ]
    return pd.DataFrame(rows, columns=VACCINATION_COLUMNS)


@pytest.fixture
def repository(deaths_frame, vaccinations_frame) -> FrameRepository:
    return FrameRepository(deaths=deaths_frame, vaccinations=vaccinations_frame)


@pytest.fixture
def client(repository):
    app.dependency_overrides[get_repository] = lambda: repository
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
