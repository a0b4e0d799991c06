"""
Tests for the severity aggregations and chart rendering.
"""

import pandas as pd
import pytest

import matplotlib.pyplot as plt

from eda import CHARTS, aggregate_score, plot_score_by_doy, run_eda, save_figure


@pytest.mark.parametrize("by", ["occ_dow", "occ_hour", "occ_time_range", "neighbourhood_158", "division"])
def test_aggregate_score_sums_exactly_the_matching_rows(scored_incidents, by):
    totals = aggregate_score(scored_incidents, by)

    for key, total in totals.items():
        expected = scored_incidents.loc[scored_incidents[by] == key, "weighted_score"].sum()
        assert total == expected
    assert totals.sum() == scored_incidents["weighted_score"].sum()


def test_aggregate_score_fills_missing_levels_with_zero():
    df = pd.DataFrame({"occ_dow": ["Monday", "Monday", "Friday"], "weighted_score": [4, 1, 2]})

    totals = aggregate_score(df, "occ_dow", order=["Monday", "Tuesday", "Friday"])

    assert totals.tolist() == [5, 0, 2]
    assert list(totals.index) == ["Monday", "Tuesday", "Friday"]


def test_aggregate_score_does_not_modify_table(scored_incidents):
    before = scored_incidents.copy()
    aggregate_score(scored_incidents, "division")
    pd.testing.assert_frame_equal(scored_incidents, before)


def test_doy_chart_covers_the_whole_year(tmp_path, scored_incidents):
    path, by_doy = plot_score_by_doy(scored_incidents, tmp_path)

    assert path.exists()
    assert by_doy.index[0] == 1 and by_doy.index[-1] == 366
    assert by_doy.sum() == scored_incidents["weighted_score"].sum()


def test_run_eda_renders_every_chart(tmp_path, scored_incidents):
    results = run_eda(scored_incidents, tmp_path / "figures")

    assert list(results) == list(CHARTS)
    pngs = sorted((tmp_path / "figures").glob("*.png"))
    assert len(pngs) == 7
    grand_total = scored_incidents["weighted_score"].sum()
    for name, result in results.items():
        assert result["path"].exists()
        assert result["totals"].sum() == grand_total, name


def test_save_figure_writes_png_and_closes_figure(tmp_path):
    fig, ax = plt.subplots()
    ax.plot([1, 2, 3])

    path = save_figure(fig, "scratch", tmp_path / "nested")

    assert path == tmp_path / "nested" / "scratch.png"
    assert path.stat().st_size > 0
    assert not plt.fignum_exists(fig.number)
