"""
eda.py
Descriptive Severity Charts for Toronto Shooting Incidents

Design principles:
- Every chart answers one question: where and when is shooting severity concentrated?
- Each chart plots the SUM of weighted_score, never a raw incident count
- Aggregation is separated from drawing so the numbers can be checked on their own
- Charts are terminal outputs; the incident table is never modified
"""

import matplotlib
matplotlib.use("Agg")

import pandas as pd
import matplotlib.pyplot as plt
import matplotlib.ticker as mticker
import seaborn as sns
from pathlib import Path

from data_cleaning import SCORE_COL, DOW_ORDER, TIME_RANGE_ORDER, DOY_RANGE, HOUR_RANGE

# ── Style ─────────────────────────────────────────────────────────────────────
ACCENT   = "#D62728"   # red: peaks and weekends
NEUTRAL  = "#4C72B0"   # blue: standard bars
BG_GRAY  = "#F7F7F7"
FIG_DIR  = Path("output/figures")

SMOOTH_WINDOW_DAYS = 15
TOP_NEIGHBOURHOODS = 20

plt.rcParams.update({
    "figure.facecolor": BG_GRAY,
    "axes.facecolor":   BG_GRAY,
    "axes.spines.top":  False,
    "axes.spines.right": False,
    "axes.labelsize":   11,
    "axes.titlesize":   13,
    "axes.titleweight": "bold",
    "xtick.labelsize":  9,
    "ytick.labelsize":  9,
    "font.family":      "sans-serif",
})


# ── Helpers ───────────────────────────────────────────────────────────────────

def save_figure(fig: plt.Figure, name: str, fig_dir: Path = FIG_DIR) -> Path:
    fig_dir = Path(fig_dir)
    fig_dir.mkdir(parents=True, exist_ok=True)
    path = fig_dir / f"{name}.png"
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"  ✓ Saved → {path}")
    return path


def _source_note(ax, note="Source: Toronto Police Service Public Safety Data Portal"):
    ax.annotate(note, xy=(0, -0.12), xycoords="axes fraction",
                fontsize=7, color="gray")


def print_banner(title: str):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def fmt_thousands(ax, axis="y"):
    fmt = mticker.FuncFormatter(lambda x, _: f"{x:,.0f}")
    if axis == "y":
        ax.yaxis.set_major_formatter(fmt)
    else:
        ax.xaxis.set_major_formatter(fmt)


def aggregate_score(df: pd.DataFrame, by: str, order=None) -> pd.Series:
    """
    Sum weighted_score per value of `by`.
    With `order`, the result is laid out in that order and levels
    without incidents get 0.
    """
    totals = df.groupby(by, observed=True)[SCORE_COL].sum()
    if order is not None:
        totals = totals.reindex(list(order), fill_value=0)
    totals.name = SCORE_COL
    return totals


# ── Chart 1: Severity Over Time ───────────────────────────────────────────────

def plot_score_by_date(df: pd.DataFrame, fig_dir: Path = FIG_DIR) -> tuple[Path, pd.Series]:
    """Q: Is shooting severity rising or falling over the years?"""
    print_banner("CHART 1 | SEVERITY BY DATE")
    daily = aggregate_score(df, "occ_date").sort_index()

    fig, ax = plt.subplots(figsize=(14, 5))
    ax.plot(daily.index, daily.values, color=NEUTRAL, linewidth=0.8)
    ax.set_title("Daily Weighted Severity Score")
    ax.set_xlabel("Date of Occurrence")
    ax.set_ylabel("Weighted Score (sum)")
    fmt_thousands(ax)
    _source_note(ax)
    path = save_figure(fig, "01_score_by_date", fig_dir)

    print(f"  Worst day: {daily.idxmax():%Y-%m-%d} (score {daily.max():,})")
    return path, daily


# ── Chart 2: Day of Week ──────────────────────────────────────────────────────

def plot_score_by_dow(df: pd.DataFrame, fig_dir: Path = FIG_DIR) -> tuple[Path, pd.Series]:
    """Q: Are weekends more severe than weekdays?"""
    print_banner("CHART 2 | SEVERITY BY DAY OF WEEK")
    by_dow = aggregate_score(df, "occ_dow", order=DOW_ORDER)

    fig, ax = plt.subplots(figsize=(10, 5))
    bar_colors = [ACCENT if d in ("Saturday", "Sunday") else NEUTRAL for d in DOW_ORDER]
    ax.bar(range(7), by_dow.values, color=bar_colors)
    ax.set_xticks(range(7))
    ax.set_xticklabels([d[:3] for d in DOW_ORDER])
    ax.set_title("Weighted Severity by Day of Week\n(Weekend days highlighted)")
    ax.set_ylabel("Weighted Score (sum)")
    fmt_thousands(ax)
    _source_note(ax)
    path = save_figure(fig, "02_score_by_dow", fig_dir)

    print(f"  Most severe day: {by_dow.idxmax()} (score {by_dow.max():,})")
    return path, by_dow


# ── Chart 3: Day of Year (Smoothed) ───────────────────────────────────────────

def plot_score_by_doy(df: pd.DataFrame, fig_dir: Path = FIG_DIR) -> tuple[Path, pd.Series]:
    """
    Q: Is there a seasonal cycle?
    Raw daily sums are noisy, so a centred rolling mean is drawn on top.
    """
    print_banner("CHART 3 | SEVERITY BY DAY OF YEAR")
    days = range(DOY_RANGE[0], DOY_RANGE[1] + 1)
    by_doy = aggregate_score(df, "occ_doy", order=days)
    smooth = by_doy.rolling(SMOOTH_WINDOW_DAYS, center=True, min_periods=1).mean()

    fig, ax = plt.subplots(figsize=(14, 5))
    ax.scatter(by_doy.index, by_doy.values, s=8, color=NEUTRAL, alpha=0.5, label="Daily sum")
    ax.plot(smooth.index, smooth.values, color=ACCENT, linewidth=2,
            label=f"{SMOOTH_WINDOW_DAYS}-day rolling mean")
    ax.set_xlim(DOY_RANGE[0], DOY_RANGE[1])
    ax.set_title("Weighted Severity by Day of Year (Smoothed)")
    ax.set_xlabel("Day of Year")
    ax.set_ylabel("Weighted Score (sum)")
    ax.legend(fontsize=8)
    _source_note(ax)
    path = save_figure(fig, "03_score_by_doy", fig_dir)

    print(f"  Smoothed peak: day {smooth.idxmax()} ({smooth.max():.1f})")
    return path, by_doy


# ── Chart 4: Hour of Day ──────────────────────────────────────────────────────

def plot_score_by_hour(df: pd.DataFrame, fig_dir: Path = FIG_DIR) -> tuple[Path, pd.Series]:
    """Q: At what hour are shootings most severe?"""
    print_banner("CHART 4 | SEVERITY BY HOUR")
    hours = range(HOUR_RANGE[0], HOUR_RANGE[1] + 1)
    by_hour = aggregate_score(df, "occ_hour", order=hours)

    fig, ax = plt.subplots(figsize=(12, 5))
    sns.barplot(x=by_hour.index, y=by_hour.values, color=NEUTRAL, ax=ax)
    ax.set_title("Weighted Severity by Hour of Day")
    ax.set_xlabel("Hour of Day")
    ax.set_ylabel("Weighted Score (sum)")
    fmt_thousands(ax)
    _source_note(ax)
    path = save_figure(fig, "04_score_by_hour", fig_dir)

    print(f"  Peak hour: {by_hour.idxmax()}:00 (score {by_hour.max():,})")
    return path, by_hour


# ── Chart 5: Time Range ───────────────────────────────────────────────────────

def plot_score_by_time_range(df: pd.DataFrame, fig_dir: Path = FIG_DIR) -> tuple[Path, pd.Series]:
    print_banner("CHART 5 | SEVERITY BY TIME RANGE")
    by_range = aggregate_score(df, "occ_time_range", order=TIME_RANGE_ORDER)

    fig, ax = plt.subplots(figsize=(8, 5))
    bar_colors = [ACCENT if r == by_range.idxmax() else NEUTRAL for r in by_range.index]
    ax.bar(by_range.index, by_range.values, color=bar_colors, edgecolor="white")
    for i, v in enumerate(by_range.values):
        ax.text(i, v, f"{v:,}", ha="center", va="bottom", fontsize=9)
    ax.set_title("Weighted Severity by Time Range")
    ax.set_ylabel("Weighted Score (sum)")
    fmt_thousands(ax)
    _source_note(ax)
    path = save_figure(fig, "05_score_by_time_range", fig_dir)

    print(f"  Most severe time range: {by_range.idxmax()} (score {by_range.max():,})")
    return path, by_range


# ── Chart 6: Neighbourhood ────────────────────────────────────────────────────

def plot_score_by_neighbourhood(df: pd.DataFrame, fig_dir: Path = FIG_DIR) -> tuple[Path, pd.Series]:
    """
    Q: Which neighbourhoods carry the most severity?
    All neighbourhoods are aggregated; only the top ones fit on the chart.
    """
    print_banner("CHART 6 | SEVERITY BY NEIGHBOURHOOD")
    by_hood = aggregate_score(df, "neighbourhood_158").sort_values(ascending=False)
    top = by_hood.head(TOP_NEIGHBOURHOODS)

    fig, ax = plt.subplots(figsize=(10, 8))
    sns.barplot(x=top.values, y=top.index.astype(str), color=NEUTRAL, ax=ax)
    ax.set_title(f"Weighted Severity — Top {len(top)} Neighbourhoods")
    ax.set_xlabel("Weighted Score (sum)")
    ax.set_ylabel("")
    fmt_thousands(ax, axis="x")
    _source_note(ax)
    path = save_figure(fig, "06_score_by_neighbourhood", fig_dir)

    share = top.sum() / by_hood.sum() * 100 if by_hood.sum() else 0.0
    print(f"  Top {len(top)} neighbourhoods account for {share:.1f}% of total severity")
    return path, by_hood


# ── Chart 7: Police Division ──────────────────────────────────────────────────

def plot_score_by_division(df: pd.DataFrame, fig_dir: Path = FIG_DIR) -> tuple[Path, pd.Series]:
    print_banner("CHART 7 | SEVERITY BY DIVISION")
    by_division = aggregate_score(df, "division").sort_values(ascending=False)

    fig, ax = plt.subplots(figsize=(10, 6))
    area_colors = [ACCENT if i == 0 else NEUTRAL for i in range(len(by_division))]
    ax.barh(by_division.index[::-1], by_division.values[::-1], color=area_colors[::-1])
    for i, v in enumerate(by_division.values[::-1]):
        ax.text(v, i, f" {v:,}", va="center", fontsize=7)
    ax.set_title("Weighted Severity by Police Division")
    ax.set_xlabel("Weighted Score (sum)")
    fmt_thousands(ax, axis="x")
    _source_note(ax)
    path = save_figure(fig, "07_score_by_division", fig_dir)

    print(f"  Most severe division: {by_division.idxmax()} (score {by_division.max():,})")
    return path, by_division


CHARTS = {
    "date":          plot_score_by_date,
    "day_of_week":   plot_score_by_dow,
    "day_of_year":   plot_score_by_doy,
    "hour":          plot_score_by_hour,
    "time_range":    plot_score_by_time_range,
    "neighbourhood": plot_score_by_neighbourhood,
    "division":      plot_score_by_division,
}


# ── Pipeline Orchestrator ─────────────────────────────────────────────────────

def run_eda(df: pd.DataFrame, fig_dir: Path = FIG_DIR) -> dict:
    """
    Render every descriptive chart in presentation order.

    Returns {chart name: {"path": Path, "totals": Series}}.
    """
    results = {}
    for name, chart in CHARTS.items():
        path, totals = chart(df, fig_dir)
        results[name] = {"path": path, "totals": totals}

    print("\n" + "=" * 60)
    print(f"✓ EDA COMPLETE — {len(results)} figures saved to {fig_dir}/")
    print("=" * 60)
    return results


# ── Entry Point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    from data_cleaning import run_pipeline

    run_eda(run_pipeline("data/cleaned_data.csv"))
