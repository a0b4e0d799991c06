"""
Shared synthetic incident data for the test suite.
"""

import numpy as np
import pandas as pd
import pytest

from data_cleaning import AuditTrail, prepare_incidents
from modeling import fit_gbm, save_model

NEIGHBOURHOODS = [
    "Glenfield-Jane Heights (25)",
    "Black Creek (24)",
    "Mount Olive-Silverstone-Jamestown (2)",
    "Moss Park (73)",
    "Regent Park (72)",
    "West Hill (136)",
]
TEST_DIVISIONS = ["D31", "D23", "D42", "D51", "D14", "D43"]


def _time_range(hour: int) -> str:
    if 6 <= hour < 12:
        return "Morning"
    if 12 <= hour < 18:
        return "Afternoon"
    if 18 <= hour < 24:
        return "Evening"
    return "Night"


def make_incidents(n: int = 240, seed: int = 7) -> pd.DataFrame:
    """Raw incident rows shaped like the cleaned open-data extract."""
    rng = np.random.default_rng(seed)
    dates = pd.Timestamp("2019-01-01") + pd.to_timedelta(rng.integers(0, 1000, n), unit="D")
    hours = rng.integers(0, 24, n)
    return pd.DataFrame({
        "occ_date": dates.strftime("%Y-%m-%d"),
        "occ_dow": dates.day_name(),
        "occ_doy": dates.dayofyear,
        "occ_hour": hours,
        "occ_time_range": [_time_range(h) for h in hours],
        "neighbourhood_158": rng.choice(NEIGHBOURHOODS, n),
        "division": rng.choice(TEST_DIVISIONS, n),
        "death": rng.integers(0, 2, n),
        "injuries": rng.integers(0, 4, n),
    })


@pytest.fixture
def raw_incidents() -> pd.DataFrame:
    return make_incidents()


@pytest.fixture
def scored_incidents(raw_incidents) -> pd.DataFrame:
    return prepare_incidents(raw_incidents, AuditTrail(len(raw_incidents)))


@pytest.fixture
def incidents_csv(tmp_path, raw_incidents):
    path = tmp_path / "cleaned_data.csv"
    raw_incidents.to_csv(path, index=False)
    return path


@pytest.fixture(scope="session")
def small_artifact() -> dict:
    # Few trees and folds keep the suite fast; the code path is the same
    raw = make_incidents()
    scored = prepare_incidents(raw, AuditTrail(len(raw)))
    return fit_gbm(scored, n_trees=30, cv_folds=3, random_state=0)


@pytest.fixture
def model_path(tmp_path, small_artifact):
    return save_model(small_artifact, tmp_path / "models" / "gbm_severity.joblib")
