"""Reaction activity scores and flux estimation with COBRApy.

This is the flux provider used by the comparison pipeline. Gene
expression is turned into Metabolic Reaction Activity Scores (MRAS) by
evaluating each reaction's Gene-Protein-Reaction (GPR) rule, and MRAS are
turned into per-sample flux estimates by scaling the reaction bounds of
the reference model (E-Flux) and solving parsimonious FBA.

The analysis code only depends on the contract: same expression matrix
and medium in, same reactions x samples flux matrix out.
"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Literal

import numpy as np
import pandas as pd

from .fba import apply_media, medium_overlap, scale_bounds

if TYPE_CHECKING:
    import anndata as ad
    import cobra

logger = logging.getLogger(__name__)

# Floor for bound scaling so that unexpressed reactions are throttled, not removed
MIN_SCALE = 0.01


class FluxProviderError(RuntimeError):
    """Raised when reaction scores or fluxes cannot be computed."""


@dataclass
class FluxConfig:
    """Configuration for the flux provider.

    Attributes
    ----------
    and_function : str
        Function for AND operations in GPR: 'min', 'mean', 'median'.
    or_function : str
        Function for OR operations in GPR: 'max', 'sum', 'mean'.
    lambda_penalty : float
        Weight (0 to 1) given to the mean score of neighbouring samples.
    n_neighbors : int
        Number of neighbours for KNN-based score smoothing.
    min_scale : float
        Bound scale applied to reactions with an activity score of zero.
    objective : str or None
        Reaction to optimize. None keeps the model objective.
    fraction_of_optimum : float
        Fraction of the optimal objective kept during pFBA.
    n_processes : int
        Number of parallel processes for per-sample optimization.
    """

    and_function: Literal["min", "mean", "median"] = "min"
    or_function: Literal["max", "sum", "mean"] = "sum"
    lambda_penalty: float = 0.0
    n_neighbors: int = 10
    min_scale: float = MIN_SCALE
    objective: str | None = None
    fraction_of_optimum: float = 1.0
    n_processes: int = 1


@dataclass
class FluxResult:
    """Output of the flux provider.

    Attributes
    ----------
    mras : pd.DataFrame
        Reaction activity scores (reactions x samples), in [0, 1].
    fluxes : pd.DataFrame
        Flux estimates (reactions x samples).
    config : FluxConfig
        Configuration used for the computation.
    """

    mras: pd.DataFrame
    fluxes: pd.DataFrame
    config: FluxConfig = field(default_factory=FluxConfig)


class CobraFluxProvider:
    """Compute reaction activity scores and fluxes for an expression matrix.

    Parameters
    ----------
    model : cobra.Model
        Genome-scale metabolic model. It is copied, never modified.
    medium : dict[str, float], optional
        Exchange reaction ID to maximal uptake rate. If None, the model's
        exchange bounds are used as they are.
    config : FluxConfig, optional
        Provider configuration.

    Examples
    --------
    >>> from crossflux.core.flux import CobraFluxProvider
    >>> from crossflux.models import load_gem, load_medium
    >>> provider = CobraFluxProvider(load_gem("human"), load_medium("blood.json"))
    >>> result = provider.run(expression)
    >>> result.fluxes.shape
    """

    def __init__(
        self,
        model: cobra.Model,
        medium: dict[str, float] | None = None,
        config: FluxConfig | None = None,
    ) -> None:
        self.config = config or FluxConfig()
        self.medium = medium

        if medium is not None:
            if medium_overlap(model, medium) == 0:
                raise FluxProviderError(
                    f"Medium shares no exchange reaction with model '{model.id}'"
                )
            self.model = apply_media(model, medium)
        else:
            self.model = model.copy()

        if self.config.objective is not None:
            if self.config.objective not in self.model.reactions:
                raise FluxProviderError(
                    f"Objective reaction '{self.config.objective}' not in model"
                )
            self.model.objective = self.config.objective

        self._reaction_gpr = {
            rxn.id: rxn.gene_reaction_rule
            for rxn in self.model.reactions
            if rxn.gene_reaction_rule
        }

    def run(self, expression: pd.DataFrame | ad.AnnData) -> FluxResult:
        """Compute MRAS and fluxes for every sample.

        Parameters
        ----------
        expression : pd.DataFrame or AnnData
            Gene expression. DataFrame: genes x samples. AnnData: samples x genes.

        Returns
        -------
        FluxResult
            Activity scores and flux estimates.
        """
        mras = self.compute_mras(expression)
        fluxes = self.compute_flux(mras)
        return FluxResult(mras=mras, fluxes=fluxes, config=self.config)

    def compute_mras(self, expression: pd.DataFrame | ad.AnnData) -> pd.DataFrame:
        """Compute Metabolic Reaction Activity Scores from gene expression.

        Parameters
        ----------
        expression : pd.DataFrame or AnnData
            Gene expression input.

        Returns
        -------
        pd.DataFrame
            Scores (reactions x samples). Each sample is scaled to [0, 1]
            by its highest scoring reaction.

        Raises
        ------
        FluxProviderError
            If the expression matrix is empty or the model has no GPR rules.
        """
        expression = _process_expression_input(expression)
        if expression.empty:
            raise FluxProviderError("Expression matrix is empty")
        if not self._reaction_gpr:
            raise FluxProviderError(f"Model '{self.model.id}' has no GPR rules")

        logger.info(
            f"Computing activity scores for {len(self._reaction_gpr)} reactions "
            f"across {expression.shape[1]} samples..."
        )

        expression_upper = expression.copy()
        expression_upper.index = expression_upper.index.astype(str).str.upper()
        expression_upper = expression_upper.groupby(level=0).sum()

        and_funcs = {"min": np.min, "mean": np.mean, "median": np.median}
        or_funcs = {"max": np.max, "sum": np.sum, "mean": np.mean}
        and_func = and_funcs[self.config.and_function]
        or_func = or_funcs[self.config.or_function]

        scores = {
            rxn_id: _evaluate_gpr(rule.upper(), expression_upper, and_func, or_func)
            for rxn_id, rule in self._reaction_gpr.items()
        }
        mras = pd.DataFrame.from_dict(
            scores, orient="index", columns=expression.columns
        )

        n_matched = len(set(expression_upper.index) & _gpr_genes(self._reaction_gpr))
        if n_matched == 0:
            logger.warning("No model gene found in the expression matrix")

        max_vals = mras.max(axis=0)
        max_vals[max_vals <= 0] = 1.0
        mras = mras.div(max_vals, axis=1)

        if self.config.lambda_penalty > 0:
            mras = self._smooth_scores(mras, expression)

        return mras

    def _smooth_scores(
        self, scores: pd.DataFrame, expression: pd.DataFrame
    ) -> pd.DataFrame:
        """Blend each sample's scores with the mean of its nearest neighbours."""
        from sklearn.neighbors import NearestNeighbors

        logger.info(
            f"Smoothing scores with {self.config.n_neighbors} neighbors, "
            f"lambda={self.config.lambda_penalty}"
        )

        n_samples = scores.shape[1]
        if n_samples < 2:
            return scores

        n_neighbors = min(self.config.n_neighbors + 1, n_samples)
        knn = NearestNeighbors(n_neighbors=n_neighbors, metric="cosine")
        expr_matrix = expression.T.values  # samples x genes
        knn.fit(expr_matrix)
        _, indices = knn.kneighbors(expr_matrix)

        values = scores.values.T  # samples x reactions
        smoothed = np.zeros_like(values)
        for i in range(n_samples):
            neighbor_scores = values[indices[i, 1:]].mean(axis=0)
            smoothed[i] = (
                1 - self.config.lambda_penalty
            ) * values[i] + self.config.lambda_penalty * neighbor_scores

        return pd.DataFrame(smoothed.T, index=scores.index, columns=scores.columns)

    def compute_flux(self, mras: pd.DataFrame) -> pd.DataFrame:
        """Estimate fluxes for each sample from its activity scores.

        Parameters
        ----------
        mras : pd.DataFrame
            Reaction activity scores (reactions x samples).

        Returns
        -------
        pd.DataFrame
            Flux estimates for every model reaction (reactions x samples).

        Raises
        ------
        FluxProviderError
            If any sample has no optimal solution.
        """
        if mras.empty:
            raise FluxProviderError("Reaction activity matrix is empty")

        logger.info(f"Estimating fluxes for {mras.shape[1]} samples...")

        if self.config.n_processes > 1:
            fluxes = self._compute_flux_parallel(mras)
        else:
            fluxes = {}
            for sample_idx, sample in enumerate(mras.columns):
                if sample_idx % 10 == 0:
                    logger.info(f"Processing sample {sample_idx + 1}/{mras.shape[1]}")
                fluxes[sample] = _solve_sample(
                    self.model,
                    mras[sample],
                    self.config.min_scale,
                    self.config.fraction_of_optimum,
                    str(sample),
                )

        flux_df = pd.DataFrame(fluxes, columns=mras.columns)
        flux_df = flux_df.reindex([rxn.id for rxn in self.model.reactions])
        logger.info("Flux estimation complete")
        return flux_df

    def _compute_flux_parallel(self, mras: pd.DataFrame) -> dict[str, pd.Series]:
        """Run per-sample optimization in parallel across samples."""
        import cobra

        model_str = cobra.io.to_json(self.model)

        fluxes = {}
        with ProcessPoolExecutor(max_workers=self.config.n_processes) as executor:
            futures = {}
            for sample in mras.columns:
                future = executor.submit(
                    _flux_sample_worker,
                    model_str,
                    mras[sample].to_dict(),
                    self.config.min_scale,
                    self.config.fraction_of_optimum,
                    str(sample),
                )
                futures[future] = sample

            for future in as_completed(futures):
                fluxes[futures[future]] = future.result()

        return fluxes


def _process_expression_input(expr: pd.DataFrame | ad.AnnData) -> pd.DataFrame:
    """Convert expression input to a genes x samples DataFrame."""
    if isinstance(expr, pd.DataFrame):
        return expr

    import anndata as ad

    if isinstance(expr, ad.AnnData):
        from .preprocessing import to_dataframe

        return to_dataframe(expr, genes_as_rows=True)

    raise TypeError(
        f"expression must be pd.DataFrame or AnnData, got {type(expr)}"
    )


def _gpr_genes(reaction_gpr: dict[str, str]) -> set[str]:
    """Collect the uppercase gene identifiers named by GPR rules."""
    genes = set()
    for rule in reaction_gpr.values():
        for token in rule.replace("(", " ").replace(")", " ").split():
            if token.lower() not in {"and", "or"}:
                genes.add(token.upper())
    return genes


def _evaluate_gpr(
    gpr_rule: str,
    expression: pd.DataFrame,
    and_func: Callable,
    or_func: Callable,
) -> np.ndarray:
    """Recursively evaluate an uppercase GPR rule against expression values."""
    gpr_rule = _strip_outer_parentheses(gpr_rule.strip())
    if not gpr_rule:
        return np.zeros(expression.shape[1])

    or_parts = _split_at_operator(gpr_rule, " OR ")
    if len(or_parts) > 1:
        values = [
            _evaluate_gpr(part, expression, and_func, or_func) for part in or_parts
        ]
        return or_func(np.array(values), axis=0)

    and_parts = _split_at_operator(gpr_rule, " AND ")
    if len(and_parts) > 1:
        values = [
            _evaluate_gpr(part, expression, and_func, or_func) for part in and_parts
        ]
        return and_func(np.array(values), axis=0)

    if gpr_rule in expression.index:
        return expression.loc[gpr_rule].values.astype(float)
    return np.zeros(expression.shape[1])


def _strip_outer_parentheses(rule: str) -> str:
    """Remove parentheses enclosing the whole rule."""
    while rule.startswith("(") and rule.endswith(")"):
        depth = 0
        for i, char in enumerate(rule):
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
            # Closed before the end: "(A) or (B)"
            if depth == 0 and i < len(rule) - 1:
                return rule
        rule = rule[1:-1].strip()
    return rule


def _split_at_operator(rule: str, operator: str) -> list[str]:
    """Split GPR rule at operator, respecting parentheses."""
    parts = []
    current = ""
    depth = 0

    i = 0
    while i < len(rule):
        if rule[i] == "(":
            depth += 1
            current += rule[i]
        elif rule[i] == ")":
            depth -= 1
            current += rule[i]
        elif depth == 0 and rule.startswith(operator, i):
            if current.strip():
                parts.append(current.strip())
            current = ""
            i += len(operator) - 1
        else:
            current += rule[i]
        i += 1

    if current.strip():
        parts.append(current.strip())

    return parts if len(parts) > 1 else [rule]


def _solve_sample(
    model: cobra.Model,
    scores: pd.Series,
    min_scale: float,
    fraction_of_optimum: float,
    sample: str,
) -> pd.Series:
    """Scale bounds by one sample's scores and solve parsimonious FBA."""
    import cobra
    from cobra.exceptions import OptimizationError

    with model:
        scale_bounds(model, scores, min_scale=min_scale)
        try:
            solution = cobra.flux_analysis.pfba(
                model, fraction_of_optimum=fraction_of_optimum
            )
        except OptimizationError as e:
            raise FluxProviderError(
                f"Flux optimization failed for sample '{sample}': {e}"
            ) from e

        if solution.status != "optimal":
            raise FluxProviderError(
                f"Flux optimization for sample '{sample}' ended with "
                f"status '{solution.status}'"
            )
        return solution.fluxes.copy()


def _flux_sample_worker(
    model_json: str,
    scores_dict: dict[str, float],
    min_scale: float,
    fraction_of_optimum: float,
    sample: str,
) -> pd.Series:
    """Worker function for parallel sample optimization.

    This function is called in a separate process.
    """
    import cobra

    model = cobra.io.from_json(model_json)
    return _solve_sample(
        model, pd.Series(scores_dict), min_scale, fraction_of_optimum, sample
    )


def run_flux_provider(
    model: cobra.Model,
    expression: pd.DataFrame | ad.AnnData,
    medium: dict[str, float] | None = None,
    config: FluxConfig | None = None,
) -> FluxResult:
    """Compute activity scores and fluxes for an expression matrix.

    Convenience wrapper around :class:`CobraFluxProvider`.

    Parameters
    ----------
    model : cobra.Model
        Genome-scale metabolic model.
    expression : pd.DataFrame or AnnData
        Gene expression data. DataFrame should be genes x samples.
    medium : dict[str, float], optional
        Growth medium.
    config : FluxConfig, optional
        Provider configuration.

    Returns
    -------
    FluxResult
        Activity scores and fluxes.
    """
    provider = CobraFluxProvider(model, medium=medium, config=config)
    return provider.run(expression)
