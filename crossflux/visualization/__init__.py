"""Plotting of comparison results with matplotlib and seaborn."""

from .plots import (
    plot_correlation_heatmap,
    plot_pathway_activity,
    plot_pathway_scatter,
    plot_top_reactions,
)

__all__ = [
    "plot_correlation_heatmap",
    "plot_pathway_activity",
    "plot_pathway_scatter",
    "plot_top_reactions",
]
