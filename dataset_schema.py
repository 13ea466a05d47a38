"""Shared schema definitions for the score CSV and the coordinate table."""

from __future__ import annotations

from typing import Set

import pandas as pd

SCORE_COLUMNS = ("rank", "city_state", "score")

COORDINATE_REQUIRED_COLUMNS: Set[str] = {
    "city_state",
    "lat",
    "lon",
}


def missing_score_columns(data: pd.DataFrame) -> Set[str]:
    return set(SCORE_COLUMNS) - set(data.columns)


def validate_coordinate_table(data: pd.DataFrame) -> None:
    """Raise a ValueError when required columns are missing."""
    missing = COORDINATE_REQUIRED_COLUMNS - set(data.columns)
    if missing:
        raise ValueError(
            f"Coordinate table missing columns: {', '.join(sorted(missing))}"
        )
