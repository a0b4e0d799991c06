"""
report.py
Toronto Shootings: Severity Report

Builds the static Markdown report: data overview, the seven descriptive
charts with a one-line finding each, and the GBM summary (variable importance
and holdout RMSE) read from a pre-fitted model artifact.

Usage:
    python src/report.py --data data/cleaned_data.csv \
                         --model models/gbm_severity.joblib \
                         --output output/report.md
"""

import argparse
import logging
import os
from pathlib import Path

import pandas as pd

from data_cleaning import AuditTrail, SCORE_COL, DEATH_WEIGHT, load_data, prepare_incidents
from eda import run_eda
from modeling import load_model, plot_variable_importance, variable_importance

log = logging.getLogger(__name__)

DEFAULT_DATA = "data/cleaned_data.csv"
DEFAULT_MODEL = "models/gbm_severity.joblib"
DEFAULT_OUTPUT = "output/report.md"

SECTION_TITLES = {
    "date":          ("Severity over time", "The most severe single day was {key:%Y-%m-%d}"),
    "day_of_week":   ("Severity by day of week", "{key} carries the highest total severity"),
    "day_of_year":   ("Seasonality (day of year, smoothed)", "Day {key} of the year has the highest total severity"),
    "hour":          ("Severity by hour of day", "The peak hour is {key}:00"),
    "time_range":    ("Severity by time range", "The {key} time range is the most severe"),
    "neighbourhood": ("Severity by neighbourhood", "{key} is the most severe neighbourhood"),
    "division":      ("Severity by police division", "Division {key} is the most severe"),
}

REFERENCES = [
    "Toronto Police Service. *Shooting and Firearm Discharges* (Public Safety Data Portal).",
    "Friedman, J. H. (2001). Greedy function approximation: a gradient boosting machine. "
    "*Annals of Statistics*, 29(5), 1189–1232.",
    "Pedregosa, F. et al. (2011). Scikit-learn: Machine Learning in Python. *JMLR*, 12, 2825–2830.",
    "McKinney, W. (2010). Data Structures for Statistical Computing in Python. *Proc. SciPy*.",
    "Hunter, J. D. (2007). Matplotlib: A 2D Graphics Environment. *Computing in Science & Engineering*, 9(3).",
    "Waskom, M. (2021). seaborn: statistical data visualization. *JOSS*, 6(60), 3021.",
]


def _rel(path: Path, start: Path) -> str:
    return Path(os.path.relpath(path, start)).as_posix()


def format_finding(name: str, totals: pd.Series) -> str:
    _, template = SECTION_TITLES[name]
    key = totals.idxmax()
    return f"{template.format(key=key)} (weighted score {totals.max():,})."


def build_overview_markdown(df: pd.DataFrame) -> list[str]:
    start, end = df["occ_date"].min(), df["occ_date"].max()
    return [
        "## Data",
        f"- **Incidents analysed:** {len(df):,}",
        f"- **Period covered:** {start:%d %b %Y} to {end:%d %b %Y}",
        f"- **Deaths:** {int(df['death'].sum()):,}",
        f"- **Injuries:** {int(df['injuries'].sum()):,}",
        f"- **Total weighted score:** {int(df[SCORE_COL].sum()):,}",
        f"- **Neighbourhoods / divisions represented:** "
        f"{df['neighbourhood_158'].nunique():,} / {df['division'].nunique():,}",
        "",
        "## Severity score",
        f"Each incident is scored as `{SCORE_COL} = death × {DEATH_WEIGHT} + injuries`, "
        "so a fatality weighs twice as much as a non-fatal injury and an incident "
        "with no casualties scores 0. All charts below plot the sum of this score.",
        "",
    ]


def build_model_markdown(artifact: dict, importance_path: Path, figure_root: Path) -> list[str]:
    params = artifact["params"]
    imp = variable_importance(artifact)
    lines = [
        "## Gradient Boosting Model",
        f"`{artifact['response']}` is modelled on {', '.join(f'`{p}`' for p in artifact['predictors'])} "
        "with a gradient boosting machine (squared-error loss).",
        "",
        f"- **Trees:** {params['n_trees']}",
        f"- **Interaction depth:** {params['max_depth']}",
        f"- **Shrinkage:** {params['learning_rate']}",
        f"- **Cross-validation folds:** {params['cv_folds']}",
        f"- **Best iteration (CV):** {artifact['best_iteration']}",
        f"- **Trained:** {artifact['trained_at']}",
        "",
        f"![Variable importance]({_rel(importance_path, figure_root)})",
        "",
        "| Predictor | Relative influence (%) |",
        "| --- | ---: |",
    ]
    lines += [f"| {row.predictor} | {row.relative_influence:.2f} |" for row in imp.itertuples()]
    lines += [
        "",
        f"The held-out RMSE of the model is **{artifact['rmse']:.6f}**.",
        "",
    ]
    return lines


def build_report_markdown(df: pd.DataFrame, charts: dict, artifact: dict,
                          importance_path: Path, figure_root: Path) -> str:
    lines = [
        "# Shootings and Firearm Discharges in Toronto: Severity Report",
        "",
    ]
    lines += build_overview_markdown(df)

    lines.append("## Descriptive analysis")
    lines.append("")
    for name, result in charts.items():
        title, _ = SECTION_TITLES[name]
        lines += [
            f"### {title}",
            f"![{title}]({_rel(result['path'], figure_root)})",
            "",
            format_finding(name, result["totals"]),
            "",
        ]

    lines += build_model_markdown(artifact, importance_path, figure_root)
    lines.append("## References")
    lines += [f"{i}. {ref}" for i, ref in enumerate(REFERENCES, start=1)]
    return "\n".join(lines) + "\n"


def generate_report(data_source, model_source, output_target) -> Path:
    """
    Render the full report.

    Parameters
    ----------
    data_source   : path to the incidents CSV
    model_source  : path to the joblib model artifact
    output_target : path of the Markdown document to write; figures go to
                    a `figures/` directory next to it

    Returns
    -------
    Path of the written report
    """
    output_target = Path(output_target)
    figure_root = output_target.parent
    fig_dir = figure_root / "figures"

    raw = load_data(data_source)
    audit = AuditTrail(total_rows=len(raw))
    df = prepare_incidents(raw, audit)
    artifact = load_model(model_source)

    charts = run_eda(df, fig_dir)
    importance_path = plot_variable_importance(artifact, fig_dir)

    markdown = build_report_markdown(df, charts, artifact, importance_path, figure_root)
    figure_root.mkdir(parents=True, exist_ok=True)
    output_target.write_text(markdown, encoding="utf-8")
    log.info(f"Report written → {output_target}")
    return output_target


def main() -> None:
    parser = argparse.ArgumentParser(description="Render the Toronto shootings severity report.")
    parser.add_argument("--data", default=DEFAULT_DATA, help="Incidents CSV.")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="Fitted GBM artifact (joblib).")
    parser.add_argument("--output", default=DEFAULT_OUTPUT, help="Markdown file to write.")
    args = parser.parse_args()
    generate_report(args.data, args.model, args.output)


if __name__ == "__main__":
    main()
