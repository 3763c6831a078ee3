"""Report catalogue over the fixture dataset in conftest.py."""

from datetime import date

import pandas as pd
import pytest

from covid_analytics.analytics import reports
from covid_analytics.analytics.errors import DivisionByZeroError, InvalidArgumentError
from covid_analytics.database.repository import FrameRepository, Table


class TestHelpers:
    def test_percent_of_is_null_for_zero_or_missing_denominator(self):
        result = reports.percent_of(
            pd.Series([1.0, 1.0, 1.0]), pd.Series([3.0, 0.0, None]), 3
        )

        assert result.iloc[0] == 33.333
        assert result.iloc[1:].isna().all()

    def test_percent_of_strict(self):
        with pytest.raises(DivisionByZeroError):
            reports.percent_of(pd.Series([1.0]), pd.Series([0.0]), 3, strict=True)

    def test_percent_is_not_clamped(self):
        result = reports.percent_of(pd.Series([105.0]), pd.Series([100.0]), 3)

        assert result.iloc[0] == 105.0

    def test_round_half_away(self):
        result = reports.round_half_away(pd.Series([2.5, -2.5, 2.4, None]))

        assert result.iloc[:3].tolist() == [3.0, -3.0, 2.0]
        assert pd.isna(result.iloc[3])

    def test_to_numeric_treats_infinity_as_missing(self):
        frame = pd.DataFrame({"value": ["1", "inf", "-inf", float("inf"), "x"]})

        result = reports.to_numeric(frame, ["value"])["value"]

        assert result.iloc[0] == 1.0
        assert result.iloc[1:].isna().all()


def test_table_preview(repository):
    frame = reports.table_preview(repository, Table.vaccinations, limit=2)

    assert len(frame) == 2
    assert "positive_rate" in frame.columns


def test_table_preview_rejects_non_positive_limit(repository):
    with pytest.raises(InvalidArgumentError):
        reports.table_preview(repository, Table.deaths, limit=0)


def test_death_rate_over_time(repository):
    frame = reports.death_rate_over_time(repository)

    assert frame["location"].unique().tolist() == ["United States"]
    assert frame["percent_deaths_of_cases"].tolist() == [1.0, 2.5, 4.0]
    assert frame["total_positive_cases"].tolist() == [100, 120, 150]


def test_death_rate_infinite_cases_are_missing(deaths_frame, vaccinations_frame):
    deaths_frame["total_cases"] = ["inf"] + deaths_frame["total_cases"].tolist()[1:]
    repository = FrameRepository(deaths=deaths_frame, vaccinations=vaccinations_frame)

    frame = reports.death_rate_over_time(repository)

    assert pd.isna(frame["total_positive_cases"].iloc[0])
    assert pd.isna(frame["percent_deaths_of_cases"].iloc[0])
    assert frame["percent_deaths_of_cases"].iloc[1:].tolist() == [2.5, 4.0]


def test_infection_rate_by_country(repository):
    frame = reports.infection_rate_by_country(repository)

    # continent rows are excluded; a zero population sorts last as null
    assert frame["location"].tolist() == ["United States", "Canada", "Nowhere"]
    assert frame["percent_population_infected"].iloc[:2].tolist() == [15.0, 10.0]
    assert pd.isna(frame["percent_population_infected"].iloc[2])
    assert frame["total_covid_deaths"].tolist() == [6, 2, 1]


def test_infection_vs_vaccination(repository):
    frame = reports.infection_vs_vaccination(repository)

    assert frame["location"].tolist() == ["United States", "Canada"]
    assert frame["total_vaccinated"].tolist() == [20, 3]
    assert frame["percent_vaccinated"].tolist() == [2.0, 0.6]
    assert frame["percent_population_infected"].tolist() == [15.0, 10.0]


def test_vaccination_measures(repository):
    frame = reports.vaccination_measures(repository).set_index("location")

    assert frame.loc["United States", "max_total_vaccinations"] == 60
    assert frame.loc["United States", "sum_new_vaccinations"] == 50
    assert frame.loc["United States", "max_people_fully_vaccinated"] == 20
    assert frame.loc["United States", "max_people_vaccinated"] == 40
    assert frame.loc["Canada", "sum_new_vaccinations"] == 15
    assert pd.isna(frame.loc["North America", "max_people_fully_vaccinated"])
    assert frame.index.tolist() == ["Canada", "North America", "United States"]


def test_null_audit(repository):
    frame = reports.null_audit(repository)

    assert frame.iloc[0].to_dict() == {
        "total_rows": 4,
        "null_total_vaccinations": 1,
        "null_new_vaccinations": 2,
        "null_people_fully_vaccinated": 2,
        "null_people_vaccinated": 1,
    }


def test_null_audit_rejects_unknown_columns(repository):
    with pytest.raises(InvalidArgumentError):
        reports.null_audit(repository, Table.deaths, ["people_vaccinated"])


def test_vaccination_snapshot(repository):
    frame = reports.vaccination_snapshot(repository, limit=2)

    assert frame["date"].tolist() == [date(2021, 1, 1), date(2021, 1, 2)]
    assert pd.isna(frame["new_vaccinations"].iloc[0])


def test_continent_cumulative_shots(repository):
    frame = reports.continent_cumulative_shots(repository)

    assert frame["continent"].unique().tolist() == ["North America"]
    assert frame["date"].tolist() == [
        date(2020, 12, 31),
        date(2021, 1, 1),
        date(2021, 1, 2),
        date(2021, 1, 3),
    ]
    assert frame["number_of_shots"].tolist() == [None, 5, 30, 30]
    assert frame["cumulative_shots"].tolist() == [0, 5, 35, 65]


def test_continent_death_totals(repository):
    frame = reports.continent_death_totals(repository)

    assert frame.to_dict(orient="records") == [
        {"location": "North America", "total_deaths": 5}
    ]


def test_rolling_average_new_cases(repository):
    frame = reports.rolling_average(repository, "new_cases", window_size=2)

    assert frame["new_cases"].tolist() == [10, 20, 30]
    assert frame["rolling_sum"].tolist() == [10, 30, 50]
    assert frame["rolling_avg"].tolist() == [5, 15, 25]


def test_rolling_average_seven_days_understates_early_rows(repository):
    frame = reports.rolling_average(repository, "new_deaths", location_like=None)
    canada = frame[frame["location"] == "Canada"]

    assert canada["rolling_avg"].tolist() == [0, 0]


def test_rolling_average_unknown_metric(repository):
    with pytest.raises(InvalidArgumentError):
        reports.rolling_average(repository, "total_cases")


def test_rolling_average_invalid_window(repository):
    with pytest.raises(InvalidArgumentError):
        reports.rolling_average(repository, "new_cases", window_size=0)


def test_vaccination_progress(repository):
    frame = reports.vaccination_progress(repository)

    assert "percent_one_dose" in frame.columns
    assert "percent_fully_vaccinated" in frame.columns
    assert frame["date"].tolist() == sorted(frame["date"].tolist())
    assert frame["percent_one_dose"].iloc[-1] == 4.0


def test_global_vaccine_rollout(repository):
    frame = reports.global_vaccine_rollout(repository)

    assert frame["location"].tolist() == ["United States", "Canada"]
    assert frame["total_vaccines_per_hundred"].tolist() == [6.0, 3.0]
    assert frame["people_fully_vaccinated_per_hundred"].tolist() == [2.0, 1.0]


def test_testing_positivity(repository):
    frame = reports.testing_positivity(repository, window_size=2)

    assert frame["date"].tolist() == [
        date(2020, 12, 31),
        date(2021, 1, 1),
        date(2021, 1, 2),
        date(2021, 1, 3),
    ]
    assert frame["tests_taken_rolling_avg"].tolist() == [None, 500, 1500, 1000]
    # 2000 * 0.029 must not become 57 through float error
    assert frame["positive_tests_rolling_avg"].tolist() == [None, 50, 79, 29]
    rates = frame["positivity_rate"].tolist()
    assert pd.isna(rates[0])
    assert rates[1:] == [10.0, 2.9, 5.0]


def test_testing_positivity_rates_follow_their_rows(deaths_frame):
    # unsorted input with a null location, which partitions as "None"
    vaccinations = pd.DataFrame(
        [
            ("United States", date(2021, 1, 2), 2000, 0.029),
            (None, date(2021, 1, 1), 100, 0.5),
            ("Canada", date(2021, 1, 1), 100, 0.2),
            ("United States", date(2021, 1, 1), 1000, 0.1),
        ],
        columns=["location", "date", "new_tests", "positive_rate"],
    )
    repository = FrameRepository(deaths=deaths_frame, vaccinations=vaccinations)

    frame = reports.testing_positivity(repository, location_like=None, window_size=2)

    assert frame["location"].tolist() == ["Canada", "None", "United States", "United States"]
    assert frame["tests_taken_rolling_avg"].tolist() == [50, 50, 500, 1500]
    assert frame["positive_tests_rolling_avg"].tolist() == [10, 25, 50, 79]
    assert frame["positivity_rate"].tolist() == [20.0, 50.0, 10.0, 2.9]
