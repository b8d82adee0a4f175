"""Figures for cross-species flux comparisons.

Every function builds one matplotlib figure, saves it as PNG when a path
is given, and returns it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

if TYPE_CHECKING:
    from matplotlib.figure import Figure

    from crossflux.analysis.correlation import PathwayComparison

logger = logging.getLogger(__name__)

DPI = 300


def _finish(fig: Figure, path: str | Path | None) -> Figure:
    """Save and release a finished figure."""
    fig.tight_layout()
    if path is not None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=DPI, bbox_inches="tight")
        logger.info(f"Saved figure to {path}")
    plt.close(fig)
    return fig


def _format_stats(rho: float, p_value: float, n_obs: int) -> str:
    if np.isnan(rho):
        return f"rho = NA (n = {n_obs})"
    return f"rho = {rho:.3f}, p = {p_value:.2g} (n = {n_obs})"


def plot_pathway_scatter(
    comparison: PathwayComparison,
    path: str | Path | None = None,
) -> Figure:
    """Scatter the mean fluxes of a pathway's reactions in both cohorts.

    Parameters
    ----------
    comparison : PathwayComparison
        Output of :func:`crossflux.analysis.correlation.compare_pathway`.
    path : str or Path, optional
        PNG output path.
    """
    name_a, name_b = comparison.profile.columns[:2]
    result = comparison.result

    fig, ax = plt.subplots(figsize=(5, 5))
    if comparison.has_data:
        sns.regplot(
            data=comparison.profile,
            x=name_a,
            y=name_b,
            color=comparison.color,
            ax=ax,
            ci=None,
            fit_reg=result.is_defined,
            scatter_kws={"s": 25, "alpha": 0.8},
        )
    ax.axhline(0, color="black", linewidth=0.5)
    ax.axvline(0, color="black", linewidth=0.5)
    ax.set_xlabel(f"{name_a} mean flux")
    ax.set_ylabel(f"{name_b} mean flux")
    ax.set_title(
        f"{comparison.pathway}\n"
        f"{_format_stats(result.rho, result.p_value, result.n_obs)}"
    )
    return _finish(fig, path)


def plot_correlation_heatmap(
    correlations: pd.DataFrame,
    path: str | Path | None = None,
    max_rows: int | None = 50,
    title: str = "Cross-species Spearman correlation",
) -> Figure:
    """Render a reactions x 1 column of coefficients as a heatmap.

    Parameters
    ----------
    correlations : pd.DataFrame
        Results indexed by identifier with a ``rho`` column, already in
        display order (e.g. ranked).
    path : str or Path, optional
        PNG output path.
    max_rows : int or None, default=50
        Number of rows to display.
    title : str
        Figure title.
    """
    column = correlations[["rho"]]
    if max_rows is not None:
        column = column.head(max_rows)

    height = max(2.0, 0.25 * len(column) + 1.0)
    fig, ax = plt.subplots(figsize=(3.5, height))
    if len(column):
        sns.heatmap(
            column.astype(float),
            cmap="RdBu_r",
            vmin=-1,
            vmax=1,
            center=0,
            annot=len(column) <= 40,
            fmt=".2f",
            cbar_kws={"label": "rho"},
            ax=ax,
        )
    ax.set_xlabel("")
    ax.set_ylabel("")
    ax.set_title(title)
    return _finish(fig, path)


def plot_top_reactions(
    top: pd.DataFrame,
    path: str | Path | None = None,
    label_column: str | None = None,
) -> Figure:
    """Horizontal bars of the strongest reaction correlations.

    Parameters
    ----------
    top : pd.DataFrame
        Ranked table from :func:`crossflux.analysis.ranking.rank_correlations`.
    path : str or Path, optional
        PNG output path.
    label_column : str, optional
        Column used for bar labels instead of the identifier.
    """
    labels = top[label_column].fillna("").astype(str) if label_column else top.index.astype(str)
    values = top["rho"].to_numpy(dtype=float)
    colors = np.where(values >= 0, "#b2182b", "#2166ac")

    fig, ax = plt.subplots(figsize=(7, max(2.0, 0.3 * len(top) + 1.0)))
    ax.barh(np.arange(len(top)), np.nan_to_num(values), color=colors)
    ax.set_yticks(np.arange(len(top)))
    ax.set_yticklabels(labels)
    ax.invert_yaxis()
    ax.axvline(0, color="black", linewidth=0.5)
    ax.set_xlim(-1, 1)
    ax.set_xlabel("Spearman rho")
    ax.set_title(f"Top {len(top)} reactions by |rho|")
    return _finish(fig, path)


def plot_pathway_activity(
    activity: pd.DataFrame,
    names: Sequence[str] = ("human", "mouse"),
    top_n: int = 20,
    path: str | Path | None = None,
) -> Figure:
    """Paired bars of pathway activity in both cohorts.

    Pathways are ordered by their mean activity across cohorts; pathways
    undefined in both cohorts are left out.

    Parameters
    ----------
    activity : pd.DataFrame
        Output of :func:`crossflux.analysis.pathways.compare_pathway_activity`.
    names : sequence of str
        Cohort names used in the column prefixes.
    top_n : int, default=20
        Number of pathways shown.
    path : str or Path, optional
        PNG output path.
    """
    name_a, name_b = names
    columns = [f"{name_a}_activity", f"{name_b}_activity"]
    table = activity[columns].dropna(how="all")
    table = table.loc[table.mean(axis=1).sort_values(ascending=False).index].head(top_n)

    long = (
        table.rename(columns={columns[0]: name_a, columns[1]: name_b})
        .rename_axis("pathway")
        .reset_index()
        .melt(id_vars="pathway", var_name="cohort", value_name="activity")
    )

    fig, ax = plt.subplots(figsize=(8, max(2.5, 0.35 * len(table) + 1.0)))
    if len(long):
        sns.barplot(data=long, y="pathway", x="activity", hue="cohort", ax=ax)
    ax.set_xlabel("Mean |flux|")
    ax.set_ylabel("")
    ax.set_title("Pathway activity")
    return _finish(fig, path)
