"""
data_cleaning.py
Validation & Severity Scoring for Toronto Shooting Incident Data

Design principles:
- Every check is logged with the number of rows it touched
- No silent data loss: rows are never dropped, malformed rows stop the run
- Functions are pure (input → output), no global state
- A single `run_pipeline()` call reproduces the scored table end-to-end
"""

import pandas as pd
import numpy as np
import logging
import json
from pathlib import Path

# ── Logging Setup ─────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


# ── Constants ─────────────────────────────────────────────────────────────────

REQUIRED_COLUMNS = [
    "occ_date", "occ_dow", "occ_doy", "occ_hour", "occ_time_range",
    "neighbourhood_158", "division", "death", "injuries",
]

COUNT_COLUMNS = ["death", "injuries"]

# A death counts twice as much as an injury
DEATH_WEIGHT = 2
SCORE_COL = "weighted_score"

DOW_ORDER = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
TIME_RANGE_ORDER = ["Morning", "Afternoon", "Evening", "Night"]

# Toronto Police Service divisions (D54 was merged into D55)
DIVISIONS = [
    "D11", "D12", "D13", "D14", "D22", "D23", "D31", "D32",
    "D33", "D41", "D42", "D43", "D51", "D52", "D53", "D55",
]

DOY_RANGE = (1, 366)
HOUR_RANGE = (0, 23)

# Largest count for which death * DEATH_WEIGHT + injuries still fits in int64
MAX_COUNT = int(np.iinfo(np.int64).max) // (DEATH_WEIGHT + 1)

# How many offending row labels to quote in an error message
MAX_EXAMPLES = 5


class SchemaValidationError(ValueError):
    """Raised when one or more rows fail the pre-scoring checks."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Schema validation failed:\n  - " + "\n  - ".join(errors))


# ── Audit Trail ───────────────────────────────────────────────────────────────

class AuditTrail:
    """Tracks every preparation step with the rows it touched."""

    def __init__(self, total_rows: int):
        self.total_rows = total_rows
        self.steps: list[dict] = []

    def record(self, step: str, description: str, changed: int, detail: str = ""):
        pct = changed / self.total_rows * 100 if self.total_rows else 0.0
        self.steps.append({
            "step": step,
            "description": description,
            "rows_affected": changed,
            "pct_affected": round(pct, 2),
            "detail": detail,
        })
        log.info(f"[{step}] {description} → {changed:,} rows affected ({pct:.1f}%) {detail}")

    def save(self, path: str):
        class _NumpyEncoder(json.JSONEncoder):
            """Convert numpy int/float types to native Python before serialising."""
            def default(self, obj):
                if isinstance(obj, np.integer):
                    return int(obj)
                if isinstance(obj, np.floating):
                    return float(obj)
                if isinstance(obj, np.ndarray):
                    return obj.tolist()
                return super().default(obj)

        with open(path, "w") as f:
            json.dump({"total_rows": self.total_rows, "steps": self.steps}, f,
                      indent=2, cls=_NumpyEncoder)
        log.info(f"Audit trail saved → {path}")

    def summary(self):
        print("\n" + "=" * 65)
        print("PREPARATION AUDIT SUMMARY")
        print("=" * 65)
        print(f"{'Step':<22} {'Affected':>10} {'%':>7}  Description")
        print("-" * 65)
        for s in self.steps:
            print(f"{s['step']:<22} {s['rows_affected']:>10,} {s['pct_affected']:>6.1f}%  {s['description']}")
        print("=" * 65)


# ── Step 1: Load ──────────────────────────────────────────────────────────────

def load_data(filepath: str) -> pd.DataFrame:
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {filepath}")

    log.info(f"Loading: {filepath}")
    df = pd.read_csv(filepath, low_memory=False)
    log.info(f"Loaded {len(df):,} rows × {len(df.columns)} columns")

    missing_cols = set(REQUIRED_COLUMNS) - set(df.columns)
    if missing_cols:
        raise ValueError(f"Dataset is missing expected columns: {sorted(missing_cols)}")

    return df


# ── Step 2: Standardise Category Labels ───────────────────────────────────────

def standardise_categories(df: pd.DataFrame, audit: AuditTrail) -> pd.DataFrame:
    """
    Strip padding and fix the case of categorical labels so that
    'monday   ' and 'Monday' land in the same group. Nulls stay null.
    """
    df = df.copy()
    rules = {
        "occ_dow":           lambda s: s.str.strip().str.title(),
        "occ_time_range":    lambda s: s.str.strip().str.title(),
        "division":          lambda s: s.str.strip().str.upper(),
        "neighbourhood_158": lambda s: s.str.strip(),
    }
    for col, rule in rules.items():
        original = df[col]
        cleaned = rule(original.astype("string")).astype(object).where(original.notna())
        changed = (cleaned.ne(original) & original.notna()).sum()
        df[col] = cleaned
        audit.record(f"Standardise: {col}", "Whitespace/case normalised", changed)
    return df


# ── Step 3: Validate ──────────────────────────────────────────────────────────

def _examples(mask: pd.Series) -> str:
    labels = list(mask[mask].index[:MAX_EXAMPLES])
    more = " …" if mask.sum() > MAX_EXAMPLES else ""
    return f"rows {labels}{more}"


def _check_integer_column(df: pd.DataFrame, col: str, low=None, high=None) -> tuple[pd.Series, list[str]]:
    """Coerce `col` to numbers and report missing, non-integral and out-of-range rows."""
    errors = []
    raw = df[col]
    numeric = pd.to_numeric(raw, errors="coerce")

    missing = raw.isna()
    if missing.any():
        errors.append(f"{col}: {missing.sum():,} missing values ({_examples(missing)})")

    non_numeric = numeric.isna() & ~missing
    if non_numeric.any():
        errors.append(f"{col}: {non_numeric.sum():,} non-numeric values ({_examples(non_numeric)})")

    non_finite = numeric.notna() & ~np.isfinite(numeric)
    if non_finite.any():
        errors.append(f"{col}: {non_finite.sum():,} non-finite values ({_examples(non_finite)})")
    finite = numeric.notna() & ~non_finite

    non_integral = finite & (numeric != np.floor(numeric))
    if non_integral.any():
        errors.append(f"{col}: {non_integral.sum():,} non-integer values ({_examples(non_integral)})")

    if low is not None:
        below = finite & (numeric < low)
        if below.any():
            errors.append(f"{col}: {below.sum():,} values below {low} ({_examples(below)})")
    if high is not None:
        above = finite & (numeric > high)
        if above.any():
            errors.append(f"{col}: {above.sum():,} values above {high} ({_examples(above)})")

    return numeric, errors


def _check_levels(df: pd.DataFrame, col: str, levels: list[str]) -> list[str]:
    bad = ~df[col].isin(levels)
    if not bad.any():
        return []
    unknown = sorted(df.loc[bad, col].dropna().astype(str).unique())
    nulls = df.loc[bad, col].isna().sum()
    detail = f"unrecognised levels {unknown[:MAX_EXAMPLES]}" if unknown else ""
    if nulls:
        detail = f"{detail}, {nulls:,} missing" if detail else f"{nulls:,} missing"
    return [f"{col}: {bad.sum():,} invalid values, {detail} ({_examples(bad)})"]


def validate_schema(df: pd.DataFrame, audit: AuditTrail) -> pd.DataFrame:
    """
    Enforce the pre-scoring contract on every row.

    All checks run before anything is raised, so one SchemaValidationError
    reports every problem in the file at once. On success the count columns
    come back as int64 and occ_date as datetime64.
    """
    if df.empty:
        audit.record("Schema validation", "table has no incident rows", 0)
        raise SchemaValidationError(["table has no incident rows"])

    errors: list[str] = []
    df = df.copy()

    for col in COUNT_COLUMNS:
        numeric, col_errors = _check_integer_column(df, col, low=0, high=MAX_COUNT)
        errors.extend(col_errors)
        if not col_errors:
            df[col] = numeric.astype("int64")

    for col, (low, high) in [("occ_doy", DOY_RANGE), ("occ_hour", HOUR_RANGE)]:
        numeric, col_errors = _check_integer_column(df, col, low=low, high=high)
        errors.extend(col_errors)
        if not col_errors:
            df[col] = numeric.astype("int64")

    parsed = pd.to_datetime(df["occ_date"], errors="coerce")
    bad_dates = parsed.isna()
    if bad_dates.any():
        errors.append(f"occ_date: {bad_dates.sum():,} missing or unparseable dates ({_examples(bad_dates)})")
    else:
        df["occ_date"] = parsed.dt.normalize()

    errors.extend(_check_levels(df, "occ_dow", DOW_ORDER))
    errors.extend(_check_levels(df, "occ_time_range", TIME_RANGE_ORDER))
    errors.extend(_check_levels(df, "division", DIVISIONS))

    blank_hood = df["neighbourhood_158"].isna() | (df["neighbourhood_158"].astype(str).str.len() == 0)
    if blank_hood.any():
        errors.append(f"neighbourhood_158: {blank_hood.sum():,} missing values ({_examples(blank_hood)})")

    audit.record("Schema validation", f"{len(errors)} failed checks", 0, "; ".join(errors))
    if errors:
        raise SchemaValidationError(errors)
    return df


# ── Step 4: Severity Score ────────────────────────────────────────────────────

def compute_weighted_score(death: int, injuries: int) -> int:
    """Severity of a single incident: each death counts twice, each injury once."""
    if death < 0 or injuries < 0:
        raise ValueError(f"Counts must be non-negative, got death={death}, injuries={injuries}")
    return int(death) * DEATH_WEIGHT + int(injuries)


def add_weighted_score(df: pd.DataFrame, audit: AuditTrail | None = None) -> pd.DataFrame:
    """
    Return a copy of `df` with the `weighted_score` column attached.
    Expects the count columns to have passed validate_schema().
    """
    missing = [c for c in COUNT_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Cannot derive {SCORE_COL}: missing columns {missing}")
    if df[COUNT_COLUMNS].isna().any().any() or (df[COUNT_COLUMNS] < 0).any().any():
        raise ValueError(f"Cannot derive {SCORE_COL}: counts must be non-null and non-negative")

    out = df.copy()
    out[SCORE_COL] = (out["death"].astype("int64") * DEATH_WEIGHT
                      + out["injuries"].astype("int64"))

    if audit is not None:
        scored = int((out[SCORE_COL] > 0).sum())
        audit.record("Severity score", f"{SCORE_COL} = death*{DEATH_WEIGHT} + injuries", scored,
                     f"({scored:,} incidents with at least one casualty)")
    return out


# ── Pipeline Orchestrator ─────────────────────────────────────────────────────

def prepare_incidents(df: pd.DataFrame, audit: AuditTrail) -> pd.DataFrame:
    """Standardise → validate → score, on an already loaded frame."""
    df = standardise_categories(df, audit)
    df = validate_schema(df, audit)
    return add_weighted_score(df, audit)


def run_pipeline(
    input_path: str,
    output_path: str | None = None,
    audit_path: str | None = None,
) -> pd.DataFrame:
    """
    End-to-end preparation pipeline. Call this to reproduce the scored table.

    Parameters
    ----------
    input_path  : path to the cleaned shooting incidents CSV
    output_path : optional path for the scored CSV
    audit_path  : optional path for the JSON audit log

    Returns
    -------
    Scored DataFrame
    """
    log.info("=" * 60)
    log.info("TORONTO SHOOTINGS — PREPARATION PIPELINE START")
    log.info("=" * 60)

    df = load_data(input_path)
    audit = AuditTrail(total_rows=len(df))
    df = prepare_incidents(df, audit)

    if output_path:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output_path, index=False)
        log.info(f"Scored data saved → {output_path}")
    log.info(f"Final shape: {df.shape[0]:,} rows × {df.shape[1]} columns")

    if audit_path:
        Path(audit_path).parent.mkdir(parents=True, exist_ok=True)
        audit.save(audit_path)
    audit.summary()

    return df


# ── Entry Point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    run_pipeline(
        input_path="data/cleaned_data.csv",
        output_path="data/processed/scored_data.csv",
        audit_path="data/processed/preparation_audit.json",
    )
