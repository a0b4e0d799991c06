"""
Tests for loading, validating and scoring the incident table.
"""

import json

import numpy as np
import pandas as pd
import pytest

from data_cleaning import (
    AuditTrail,
    SchemaValidationError,
    add_weighted_score,
    compute_weighted_score,
    load_data,
    run_pipeline,
    standardise_categories,
    validate_schema,
)


@pytest.mark.parametrize(
    "death, injuries, expected",
    [(1, 2, 4), (0, 5, 5), (3, 0, 6), (0, 0, 0)],
)
def test_compute_weighted_score_scenarios(death, injuries, expected):
    assert compute_weighted_score(death, injuries) == expected


def test_compute_weighted_score_rejects_negative_counts():
    with pytest.raises(ValueError):
        compute_weighted_score(-1, 2)


def test_add_weighted_score_matches_formula(scored_incidents):
    df = scored_incidents
    assert (df["weighted_score"] == df["death"] * 2 + df["injuries"]).all()
    assert df["weighted_score"].dtype == np.int64
    assert (df["weighted_score"] >= np.maximum(2 * df["death"], df["injuries"])).all()


def test_add_weighted_score_is_idempotent_and_does_not_mutate_input():
    df = pd.DataFrame({"death": [1, 0, 3, 0], "injuries": [2, 5, 0, 0]})
    first = add_weighted_score(df)
    second = add_weighted_score(df)

    assert "weighted_score" not in df.columns
    assert first["weighted_score"].tolist() == [4, 5, 6, 0]
    pd.testing.assert_series_equal(first["weighted_score"], second["weighted_score"])
    pd.testing.assert_frame_equal(first[["death", "injuries"]], df)


def test_add_weighted_score_refuses_missing_counts():
    df = pd.DataFrame({"death": [1, np.nan], "injuries": [0, 1]})
    with pytest.raises(ValueError):
        add_weighted_score(df)


def test_row_count_and_order_are_preserved(raw_incidents, scored_incidents):
    assert len(scored_incidents) == len(raw_incidents)
    assert scored_incidents.index.equals(raw_incidents.index)


def test_standardise_categories_normalises_labels(raw_incidents):
    raw = raw_incidents.head(3).copy()
    raw["occ_dow"] = ["  monday ", "TUESDAY", "Wednesday"]
    raw["division"] = ["d31", " D23", "D42"]
    audit = AuditTrail(len(raw))

    out = standardise_categories(raw, audit)

    assert out["occ_dow"].tolist() == ["Monday", "Tuesday", "Wednesday"]
    assert out["division"].tolist() == ["D31", "D23", "D42"]
    dow_step = next(s for s in audit.steps if s["step"] == "Standardise: occ_dow")
    assert dow_step["rows_affected"] == 2
    # Caller's frame is untouched
    assert raw["occ_dow"].iloc[0] == "  monday "


def test_validate_schema_casts_types(raw_incidents):
    out = validate_schema(raw_incidents, AuditTrail(len(raw_incidents)))
    assert pd.api.types.is_datetime64_any_dtype(out["occ_date"])
    assert out["death"].dtype == np.int64
    assert out["injuries"].dtype == np.int64


@pytest.mark.parametrize(
    "column, bad_value, fragment",
    [
        ("death", -1, "below 0"),
        ("injuries", np.nan, "missing"),
        ("injuries", "two", "non-numeric"),
        ("death", 1.5, "non-integer"),
        ("death", np.inf, "non-finite"),
        ("injuries", 1e30, "above"),
        ("occ_hour", 24, "above 23"),
        ("occ_doy", 0, "below 1"),
        ("division", "D99", "D99"),
        ("occ_time_range", "Dusk", "Dusk"),
        ("occ_dow", "Funday", "Funday"),
        ("occ_date", "not a date", "unparseable"),
        ("neighbourhood_158", None, "neighbourhood_158"),
    ],
)
def test_validate_schema_rejects_malformed_rows(raw_incidents, column, bad_value, fragment):
    raw = raw_incidents.copy()
    raw[column] = raw[column].astype(object)
    raw.loc[5, column] = bad_value

    with pytest.raises(SchemaValidationError) as excinfo:
        validate_schema(raw, AuditTrail(len(raw)))

    assert fragment in str(excinfo.value)
    assert "[5]" in str(excinfo.value)


def test_validate_schema_reports_every_problem_at_once(raw_incidents):
    raw = raw_incidents.copy()
    raw.loc[0, "death"] = -2
    raw.loc[1, "division"] = "NSA"

    with pytest.raises(SchemaValidationError) as excinfo:
        validate_schema(raw, AuditTrail(len(raw)))

    assert len(excinfo.value.errors) == 2
    assert isinstance(excinfo.value, ValueError)


def test_validate_schema_rejects_an_empty_table(raw_incidents):
    header_only = raw_incidents.iloc[0:0]

    with pytest.raises(SchemaValidationError, match="no incident rows"):
        validate_schema(header_only, AuditTrail(0))


def test_run_pipeline_rejects_infinite_counts_read_from_csv(tmp_path, raw_incidents):
    raw = raw_incidents.copy()
    raw["death"] = raw["death"].astype(object)
    raw.loc[2, "death"] = "inf"
    path = tmp_path / "inf.csv"
    raw.to_csv(path, index=False)

    with pytest.raises(SchemaValidationError) as excinfo:
        run_pipeline(str(path))

    assert "death: 1 non-finite values (rows [2])" in excinfo.value.errors


def test_load_data_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_data(tmp_path / "nope.csv")


def test_load_data_missing_columns(tmp_path):
    path = tmp_path / "partial.csv"
    pd.DataFrame({"occ_date": ["2020-01-01"], "death": [0]}).to_csv(path, index=False)

    with pytest.raises(ValueError, match="injuries"):
        load_data(path)


def test_run_pipeline_writes_outputs(tmp_path, incidents_csv, raw_incidents):
    output = tmp_path / "processed" / "scored.csv"
    audit_path = tmp_path / "processed" / "audit.json"

    df = run_pipeline(str(incidents_csv), str(output), str(audit_path))

    assert output.exists()
    saved = pd.read_csv(output)
    assert saved["weighted_score"].tolist() == df["weighted_score"].tolist()

    audit = json.loads(audit_path.read_text())
    assert audit["total_rows"] == len(raw_incidents)
    assert any(s["step"] == "Severity score" for s in audit["steps"])
