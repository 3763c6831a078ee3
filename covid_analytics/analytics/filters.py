"""Row predicates over the OWID tables.

The dataset mixes country rows with aggregate rows. Continent aggregates
carry the continent name in ``location`` and a null ``continent``. Reports
use two different conventions to keep only countries, and the two are not
interchangeable, so each has its own predicate here.
"""

import pandas as pd


def location_is_not_continent(frame: pd.DataFrame) -> pd.Series:
    """SQL ``location <> continent``.

    A null continent makes the comparison unknown, so those rows are
    dropped as well.
    """
    return frame["continent"].notna() & (frame["location"] != frame["continent"])


def has_continent(frame: pd.DataFrame) -> pd.Series:
    """SQL ``continent IS NOT NULL``."""
    return frame["continent"].notna()


def is_continent_aggregate(frame: pd.DataFrame) -> pd.Series:
    """SQL ``continent IS NULL``: continent, world and income-group totals."""
    return frame["continent"].isna()


def location_matches(frame: pd.DataFrame, pattern: str) -> pd.Series:
    """Case-insensitive substring match, SQL ``location LIKE '%pattern%'``."""
    return (
        frame["location"]
        .fillna("")
        .astype(str)
        .str.contains(pattern, case=False, regex=False)
    )


def after_year(frame: pd.DataFrame, year: int) -> pd.Series:
    """SQL ``year(date) > year``."""
    return pd.to_datetime(frame["date"]).dt.year > year
