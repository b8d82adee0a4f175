"""End-to-end cross-species comparison of flux matrices.

Stages run strictly in order: cube-root normalization, reaction
alignment, per-reaction correlation and ranking, pathway aggregation and
correlation, and the highlighted per-pathway comparisons.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from .alignment import align_reactions
from .correlation import (
    CorrelationResult,
    PathwayComparison,
    compare_pathway,
    correlate_mean_profiles,
    correlate_pathway_activity,
    correlate_pathways,
    correlate_reactions,
)
from .normalize import cube_root_transform
from .pathways import compare_pathway_activity
from .ranking import DEFAULT_TOP_K, export_table, rank_correlations

if TYPE_CHECKING:
    from crossflux.core.cache import FluxCache
    from crossflux.core.flux import CobraFluxProvider, FluxResult

logger = logging.getLogger(__name__)


@dataclass
class PathwayHighlight:
    """A pathway to compare in detail, with its plot color."""

    label: str
    color: str = "steelblue"

    @classmethod
    def parse(cls, text: str) -> PathwayHighlight:
        """Parse ``"LABEL"`` or ``"LABEL:COLOR"``.

        The suffix after the last colon is read as a color only when
        matplotlib recognizes it, so labels containing colons survive.
        """
        from matplotlib.colors import is_color_like

        label, sep, color = text.rpartition(":")
        if sep and label and is_color_like(color):
            return cls(label=label.strip(), color=color.strip())
        return cls(label=text.strip())


@dataclass
class ComparisonConfig:
    """Configuration for a cross-species comparison.

    Attributes
    ----------
    names : tuple[str, str]
        Names of the two cohorts.
    top_k : int
        Number of reactions kept in the ranked table.
    highlights : list[PathwayHighlight]
        Pathways compared in detail.
    normalize : bool
        Apply the cube-root transform to both flux matrices first.
    n_processes : int
        Worker processes for per-reaction correlations.
    """

    names: tuple[str, str] = ("human", "mouse")
    top_k: int = DEFAULT_TOP_K
    highlights: list[PathwayHighlight] = field(default_factory=list)
    normalize: bool = True
    n_processes: int = 1


@dataclass
class ComparisonResult:
    """Everything computed by :func:`run_comparison`."""

    config: ComparisonConfig
    flux_a: pd.DataFrame
    flux_b: pd.DataFrame
    shared_reactions: pd.Index
    reaction_correlations: pd.DataFrame
    top_reactions: pd.DataFrame
    overall: CorrelationResult
    pathway_activity: pd.DataFrame
    activity_correlation: CorrelationResult
    pathway_correlations: pd.DataFrame
    highlights: list[PathwayComparison] = field(default_factory=list)
    # Untransformed provider output per cohort name, when run from expression
    flux_results: dict[str, FluxResult] = field(default_factory=dict)

    def summary(self) -> dict:
        """JSON-serializable overview of the comparison."""
        name_a, name_b = self.config.names
        return {
            "names": list(self.config.names),
            "n_samples": {
                name_a: int(self.flux_a.shape[1]),
                name_b: int(self.flux_b.shape[1]),
            },
            "n_shared_reactions": len(self.shared_reactions),
            "n_defined_reaction_correlations": int(
                self.reaction_correlations["rho"].notna().sum()
            ),
            "overall": _result_dict(self.overall),
            "pathway_activity": _result_dict(self.activity_correlation),
            "highlights": [
                dict(_result_dict(h.result), color=h.color) for h in self.highlights
            ],
        }


def _result_dict(result: CorrelationResult) -> dict:
    data = asdict(result)
    for key in ("rho", "p_value"):
        if np.isnan(data[key]):
            data[key] = None
    return data


def run_comparison(
    flux_a: pd.DataFrame,
    flux_b: pd.DataFrame,
    metadata: pd.DataFrame,
    config: ComparisonConfig | None = None,
) -> ComparisonResult:
    """Compare the flux matrices of two cohorts.

    Parameters
    ----------
    flux_a, flux_b : pd.DataFrame
        Flux matrices (reactions x samples).
    metadata : pd.DataFrame
        Shared reaction metadata (``equation``, ``subsystem``).
    config : ComparisonConfig, optional
        Comparison settings.

    Returns
    -------
    ComparisonResult
        Correlations, rankings and pathway activities. An empty
        alignment produces empty tables, not an error.

    Examples
    --------
    >>> from crossflux.analysis.pipeline import run_comparison
    >>> result = run_comparison(human_flux, mouse_flux, metadata)
    >>> result.top_reactions.head()
    """
    config = config or ComparisonConfig()
    name_a, name_b = config.names

    logger.info(
        f"Comparing {name_a} ({flux_a.shape[0]} reactions x {flux_a.shape[1]} samples) "
        f"with {name_b} ({flux_b.shape[0]} reactions x {flux_b.shape[1]} samples)"
    )

    if config.normalize:
        flux_a = cube_root_transform(flux_a)
        flux_b = cube_root_transform(flux_b)

    shared = align_reactions(flux_a, flux_b)
    logger.info(f"{len(shared)} reactions shared by both cohorts")

    reaction_correlations = correlate_reactions(
        flux_a, flux_b, shared, n_processes=config.n_processes
    )
    top_reactions = rank_correlations(
        reaction_correlations, top_k=config.top_k, metadata=metadata
    )
    overall = correlate_mean_profiles(flux_a, flux_b, shared)
    logger.info(
        f"Mean flux profile correlation: rho={overall.rho:.3f}, "
        f"p={overall.p_value:.3g} ({overall.n_obs} reactions)"
    )

    pathway_activity = compare_pathway_activity(
        flux_a, flux_b, metadata, names=config.names
    )
    activity_correlation = correlate_pathway_activity(
        pathway_activity, names=config.names
    )
    pathway_correlations = rank_correlations(
        correlate_pathways(flux_a, flux_b, metadata), top_k=None
    )

    highlights = [
        compare_pathway(
            flux_a, flux_b, metadata, h.label, color=h.color, names=config.names
        )
        for h in config.highlights
    ]

    return ComparisonResult(
        config=config,
        flux_a=flux_a,
        flux_b=flux_b,
        shared_reactions=shared,
        reaction_correlations=reaction_correlations,
        top_reactions=top_reactions,
        overall=overall,
        pathway_activity=pathway_activity,
        activity_correlation=activity_correlation,
        pathway_correlations=pathway_correlations,
        highlights=highlights,
    )


def run_from_expression(
    expression_a: pd.DataFrame,
    expression_b: pd.DataFrame,
    provider: CobraFluxProvider,
    metadata: pd.DataFrame,
    config: ComparisonConfig | None = None,
    cache: FluxCache | None = None,
) -> ComparisonResult:
    """Estimate fluxes for both cohorts and compare them.

    Provider failures propagate; nothing downstream can run without
    fluxes.

    Parameters
    ----------
    expression_a, expression_b : pd.DataFrame
        Expression matrices (genes x samples).
    provider : CobraFluxProvider
        Flux provider; any object with a ``run(expression)`` method
        returning a :class:`~crossflux.core.flux.FluxResult` works.
    metadata : pd.DataFrame
        Shared reaction metadata.
    config : ComparisonConfig, optional
        Comparison settings.
    cache : FluxCache, optional
        Reuse and store provider output per cohort name. Cached output is
        only reused for the same expression matrix and provider config.

    Returns
    -------
    ComparisonResult
        The comparison of the two cohorts, with the untransformed provider
        output in ``flux_results``.
    """
    from crossflux.core.cache import input_fingerprint

    config = config or ComparisonConfig()

    flux_results = {}
    for name, expression in zip(config.names, (expression_a, expression_b)):
        result = None
        if cache is not None:
            fingerprint = input_fingerprint(
                expression, getattr(provider, "config", None)
            )
            result = cache.load_result(name, fingerprint=fingerprint)
        if result is None:
            logger.info(f"Estimating fluxes for {name}...")
            result = provider.run(expression)
            if cache is not None:
                cache.save_result(name, result, fingerprint=fingerprint)
        flux_results[name] = result

    name_a, name_b = config.names
    comparison = run_comparison(
        flux_results[name_a].fluxes, flux_results[name_b].fluxes, metadata, config
    )
    comparison.flux_results = flux_results
    return comparison


def save_comparison(
    result: ComparisonResult,
    output_dir: str | Path,
    plots: bool = True,
) -> list[Path]:
    """Write comparison tables, summary and figures.

    Parameters
    ----------
    result : ComparisonResult
        Output of :func:`run_comparison`.
    output_dir : str or Path
        Output directory, created if needed.
    plots : bool, default=True
        Also render PNG figures.

    Returns
    -------
    list[Path]
        Written files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    written = [
        export_table(result.reaction_correlations, output_dir / "reaction_correlations.tsv"),
        export_table(result.top_reactions, output_dir / "top_reactions.tsv"),
        export_table(result.pathway_activity, output_dir / "pathway_activity.tsv"),
        export_table(result.pathway_correlations, output_dir / "pathway_correlations.tsv"),
    ]

    slugs = _unique_slugs([highlight.pathway for highlight in result.highlights])
    for highlight, slug in zip(result.highlights, slugs):
        written.append(
            export_table(highlight.profile, output_dir / f"pathway_{slug}_profile.tsv")
        )

    summary_path = output_dir / "summary.json"
    with open(summary_path, "w") as f:
        json.dump(result.summary(), f, indent=2)
    written.append(summary_path)

    if plots:
        from crossflux.visualization import (
            plot_correlation_heatmap,
            plot_pathway_activity,
            plot_pathway_scatter,
            plot_top_reactions,
        )

        figures_dir = output_dir / "figures"
        plot_top_reactions(result.top_reactions, figures_dir / "top_reactions.png")
        plot_correlation_heatmap(
            result.top_reactions, figures_dir / "top_reactions_heatmap.png"
        )
        plot_pathway_activity(
            result.pathway_activity,
            names=result.config.names,
            path=figures_dir / "pathway_activity.png",
        )
        written.extend(
            [
                figures_dir / "top_reactions.png",
                figures_dir / "top_reactions_heatmap.png",
                figures_dir / "pathway_activity.png",
            ]
        )
        for highlight, slug in zip(result.highlights, slugs):
            path = figures_dir / f"pathway_{slug}.png"
            plot_pathway_scatter(highlight, path)
            written.append(path)

    logger.info(f"Saved {len(written)} files to {output_dir}/")
    return written


def _slugify(label: str) -> str:
    """File-name-safe version of a pathway label."""
    slug = "".join(ch.lower() if ch.isalnum() else "_" for ch in label)
    return "_".join(part for part in slug.split("_") if part) or "pathway"


def _unique_slugs(labels: list[str]) -> list[str]:
    """Slugify labels, suffixing repeats so no two share a file name."""
    seen: dict[str, int] = {}
    slugs = []
    for label in labels:
        slug = _slugify(label)
        if slug in seen:
            seen[slug] += 1
            candidate = f"{slug}_{seen[slug]}"
            while candidate in seen:
                seen[slug] += 1
                candidate = f"{slug}_{seen[slug]}"
            slug = candidate
        seen[slug] = 1
        slugs.append(slug)
    return slugs
