"""
modeling.py
Gradient Boosting model of shooting severity

Run offline (`python src/modeling.py`) to fit and save the model artifact;
the report only loads that artifact and inspects it.

Model: weighted_score ~ occ_date + occ_dow + occ_doy + occ_time_range
                        + neighbourhood_158 + division
500 trees, interaction depth 4, shrinkage 0.01, 5-fold CV to pick the
number of trees used for prediction.
"""

import logging
from datetime import datetime
from itertools import islice
from pathlib import Path

import joblib
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import GradientBoostingRegressor
from sklearn.metrics import mean_squared_error
from sklearn.model_selection import KFold, train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OrdinalEncoder

from data_cleaning import SCORE_COL, run_pipeline
from eda import ACCENT, NEUTRAL, FIG_DIR, save_figure, print_banner

log = logging.getLogger(__name__)


# ── Constants ─────────────────────────────────────────────────────────────────

NUMERIC_PREDICTORS = ["occ_date", "occ_doy"]
CATEGORICAL_PREDICTORS = ["occ_dow", "occ_time_range", "neighbourhood_158", "division"]
PREDICTORS = ["occ_date", "occ_dow", "occ_doy", "occ_time_range", "neighbourhood_158", "division"]

N_TREES = 500
MAX_DEPTH = 4
LEARNING_RATE = 0.01
CV_FOLDS = 5
TEST_SIZE = 0.2
RANDOM_SEED = 42

# occ_date enters the model as days since this date
DATE_ORIGIN = pd.Timestamp("1970-01-01")

ARTIFACT_KEYS = {
    "model", "predictors", "response", "params", "best_iteration",
    "cv_rmse", "rmse", "holdout", "trained_at",
}


# ── Feature Table ─────────────────────────────────────────────────────────────

def _predictor_frame(df: pd.DataFrame) -> pd.DataFrame:
    missing = [c for c in PREDICTORS if c not in df.columns]
    if missing:
        raise ValueError(f"Feature table is missing columns: {missing}")

    X = df[PREDICTORS].copy()
    X["occ_date"] = (pd.to_datetime(X["occ_date"]) - DATE_ORIGIN).dt.days.astype(float)
    X["occ_doy"] = X["occ_doy"].astype(float)
    for col in CATEGORICAL_PREDICTORS:
        X[col] = X[col].astype(str)
    return X


def build_feature_table(df: pd.DataFrame) -> tuple[pd.DataFrame, pd.Series]:
    if SCORE_COL not in df.columns:
        raise ValueError(f"Feature table is missing the response column {SCORE_COL!r}")
    return _predictor_frame(df), df[SCORE_COL].astype(float)


def _levels(X: pd.DataFrame) -> list[list[str]]:
    return [sorted(X[col].unique()) for col in CATEGORICAL_PREDICTORS]


def _make_pipeline(levels, n_trees, max_depth, learning_rate, random_state) -> Pipeline:
    # Every factor level in the data gets a code up front, so CV folds and the
    # holdout never meet a level the encoder hasn't seen.
    encode = ColumnTransformer(
        [
            ("cat", OrdinalEncoder(categories=levels), CATEGORICAL_PREDICTORS),
            ("num", "passthrough", NUMERIC_PREDICTORS),
        ],
        verbose_feature_names_out=False,
    )
    gbm = GradientBoostingRegressor(
        loss="squared_error",
        n_estimators=n_trees,
        max_depth=max_depth,
        learning_rate=learning_rate,
        random_state=random_state,
    )
    return Pipeline([("encode", encode), ("gbm", gbm)])


def _predict_at(model: Pipeline, X: pd.DataFrame, n_trees: int) -> np.ndarray:
    """Predictions from the first `n_trees` boosting stages."""
    encoded = model.named_steps["encode"].transform(X)
    stages = model.named_steps["gbm"].staged_predict(encoded)
    return next(islice(stages, n_trees - 1, None))


# ── Metrics ───────────────────────────────────────────────────────────────────

def compute_rmse(y_true, y_pred) -> float:
    return float(np.sqrt(mean_squared_error(np.asarray(y_true, dtype=float),
                                            np.asarray(y_pred, dtype=float))))


def recompute_rmse(artifact: dict) -> float:
    """RMSE from the held-out predictions stored in the artifact."""
    holdout = artifact["holdout"]
    return compute_rmse(holdout["y_true"], holdout["y_pred"])


# ── Training ──────────────────────────────────────────────────────────────────

def cv_best_iteration(X, y, levels, n_trees, max_depth, learning_rate,
                      cv_folds, random_state) -> tuple[int, float]:
    """
    K-fold CV over the boosting path: mean held-out MSE after each tree,
    best iteration = the argmin. Returns (best_iteration, cv_rmse).
    """
    folds = KFold(n_splits=cv_folds, shuffle=True, random_state=random_state)
    stage_mse = np.zeros(n_trees)

    for k, (train_idx, val_idx) in enumerate(folds.split(X), start=1):
        model = _make_pipeline(levels, n_trees, max_depth, learning_rate, random_state)
        model.fit(X.iloc[train_idx], y.iloc[train_idx])
        encoded = model.named_steps["encode"].transform(X.iloc[val_idx])
        y_val = y.iloc[val_idx].to_numpy()
        for i, pred in enumerate(model.named_steps["gbm"].staged_predict(encoded)):
            stage_mse[i] += np.mean((y_val - pred) ** 2)
        log.info(f"CV fold {k}/{cv_folds} done ({len(train_idx):,} train / {len(val_idx):,} validation)")

    stage_mse /= cv_folds
    best = int(np.argmin(stage_mse)) + 1
    return best, float(np.sqrt(stage_mse[best - 1]))


def fit_gbm(
    df: pd.DataFrame,
    n_trees: int = N_TREES,
    max_depth: int = MAX_DEPTH,
    learning_rate: float = LEARNING_RATE,
    cv_folds: int = CV_FOLDS,
    test_size: float = TEST_SIZE,
    random_state: int = RANDOM_SEED,
) -> dict:
    """
    Fit the severity GBM and return the model artifact.

    The rows are split into train/holdout; CV on the train split picks the
    number of trees, the final model is fit on the whole train split and
    scored on the holdout at that number of trees.
    """
    if not 0 < test_size < 1:
        raise ValueError(f"test_size must be between 0 and 1, got {test_size}")

    X, y = build_feature_table(df)
    levels = _levels(X)
    X_tr, X_te, y_tr, y_te = train_test_split(X, y, test_size=test_size, random_state=random_state)
    log.info(f"GBM fit: {len(X_tr):,} train / {len(X_te):,} holdout rows, "
             f"{n_trees} trees, depth {max_depth}, shrinkage {learning_rate}")

    best, cv_rmse = cv_best_iteration(X_tr, y_tr, levels, n_trees, max_depth,
                                      learning_rate, cv_folds, random_state)
    log.info(f"CV best iteration: {best} (CV RMSE {cv_rmse:.4f})")

    model = _make_pipeline(levels, n_trees, max_depth, learning_rate, random_state)
    model.fit(X_tr, y_tr)
    y_pred = _predict_at(model, X_te, best)
    rmse = compute_rmse(y_te, y_pred)
    log.info(f"Holdout RMSE: {rmse:.6f}")

    return {
        "model": model,
        "predictors": list(PREDICTORS),
        "response": SCORE_COL,
        "params": {
            "n_trees": n_trees,
            "max_depth": max_depth,
            "learning_rate": learning_rate,
            "cv_folds": cv_folds,
            "test_size": test_size,
            "random_state": random_state,
        },
        "best_iteration": best,
        "cv_rmse": cv_rmse,
        "rmse": rmse,
        "holdout": {"y_true": y_te.to_numpy(), "y_pred": np.asarray(y_pred)},
        "trained_at": datetime.now().isoformat(timespec="seconds"),
    }


# ── Persistence ───────────────────────────────────────────────────────────────

def save_model(artifact: dict, path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(artifact, path)
    log.info(f"Model artifact saved → {path}")
    return path


def load_model(path) -> dict:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model artifact not found: {path}")

    artifact = joblib.load(path)
    if not isinstance(artifact, dict):
        raise ValueError(f"{path} does not hold a model artifact (got {type(artifact).__name__})")
    missing = ARTIFACT_KEYS - set(artifact)
    if missing:
        raise ValueError(f"Model artifact {path} is missing keys: {sorted(missing)}")

    log.info(f"Loaded model artifact ← {path} (trained {artifact['trained_at']})")
    return artifact


# ── Inspection ────────────────────────────────────────────────────────────────

def predict(artifact: dict, df: pd.DataFrame) -> np.ndarray:
    """Predicted weighted_score at the CV-selected number of trees."""
    X = _predictor_frame(df)

    encoder = artifact["model"].named_steps["encode"].named_transformers_["cat"]
    for col, known in zip(CATEGORICAL_PREDICTORS, encoder.categories_):
        unseen = sorted(set(X[col]) - set(known))
        if unseen:
            raise ValueError(f"{col}: levels not seen when the model was trained: {unseen}")

    return _predict_at(artifact["model"], X, artifact["best_iteration"])


def variable_importance(artifact: dict) -> pd.DataFrame:
    """Relative influence per predictor, scaled to sum to 100."""
    model = artifact["model"]
    names = model.named_steps["encode"].get_feature_names_out()
    raw = model.named_steps["gbm"].feature_importances_
    total = raw.sum()
    influence = raw / total * 100 if total > 0 else np.zeros_like(raw)

    return (
        pd.DataFrame({"predictor": list(names), "relative_influence": influence})
        .sort_values("relative_influence", ascending=False)
        .reset_index(drop=True)
    )


def plot_variable_importance(artifact: dict, fig_dir: Path = FIG_DIR) -> Path:
    """Q: Which predictors move the severity score the most?"""
    print_banner("CHART 8 | GBM VARIABLE IMPORTANCE")
    imp = variable_importance(artifact)

    fig, ax = plt.subplots(figsize=(9, 5))
    colors = [ACCENT if i == 0 else NEUTRAL for i in range(len(imp))]
    ax.barh(imp["predictor"][::-1], imp["relative_influence"][::-1], color=colors[::-1])
    for i, v in enumerate(imp["relative_influence"][::-1]):
        ax.text(v, i, f" {v:.1f}%", va="center", fontsize=8)
    ax.set_title("GBM Relative Influence on Weighted Severity")
    ax.set_xlabel("Relative Influence (%)")
    path = save_figure(fig, "08_variable_importance", fig_dir)

    top = imp.iloc[0]
    print(f"  Most influential predictor: {top['predictor']} ({top['relative_influence']:.1f}%)")
    return path


# ── Entry Point ───────────────────────────────────────────────────────────────

def train_and_save(input_path: str, model_path: str) -> dict:
    df = run_pipeline(input_path)
    artifact = fit_gbm(df)
    save_model(artifact, model_path)
    return artifact


if __name__ == "__main__":
    train_and_save("data/cleaned_data.csv", "models/gbm_severity.joblib")
