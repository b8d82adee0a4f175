"""Spearman rank correlation between the fluxes of two cohorts.

Correlations are computed per reaction (raw per-sample fluxes), per
pathway (per-sample pathway activities) or across reactions on
sample-averaged profiles. Degenerate inputs never raise: a vector with
fewer than two observations or zero variance yields a NaN coefficient and
p-value, and the remaining entities are processed as usual.

The two cohorts have different sample counts and no natural sample
pairing. Per-sample vectors are therefore truncated to the shorter
length, keeping the first samples of each cohort in column order.
"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from typing import Iterable, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from .alignment import align_reactions, check_unique_reactions, subsystem_reactions
from .pathways import pathway_activity_matrix

logger = logging.getLogger(__name__)

METHOD = "spearman"

RESULT_COLUMNS = ["rho", "p_value", "n_obs", "method"]


@dataclass
class CorrelationResult:
    """Correlation of one reaction, pathway or profile between two cohorts.

    Attributes
    ----------
    identifier : str
        Reaction ID, pathway label or profile name.
    rho : float
        Spearman coefficient in [-1, 1], NaN when undefined.
    p_value : float
        Two-sided p-value for zero correlation, NaN when undefined.
    n_obs : int
        Number of paired observations used.
    method : str
        Correlation method tag.
    """

    identifier: str
    rho: float
    p_value: float
    n_obs: int
    method: str = METHOD

    @property
    def is_defined(self) -> bool:
        return not np.isnan(self.rho)


@dataclass
class PathwayComparison:
    """Cross-species comparison of one pathway on mean flux profiles.

    Attributes
    ----------
    pathway : str
        Subsystem label.
    color : str
        Plot color for this pathway.
    reactions : pd.Index
        Pathway reactions present in both flux matrices.
    profile : pd.DataFrame
        Per-reaction sample-mean flux, one column per cohort.
    result : CorrelationResult
        Correlation of the two profile columns.
    """

    pathway: str
    color: str
    reactions: pd.Index
    profile: pd.DataFrame
    result: CorrelationResult

    @property
    def has_data(self) -> bool:
        return len(self.reactions) > 0


def spearman(x: Sequence[float], y: Sequence[float]) -> tuple[float, float, int]:
    """Spearman correlation with explicit handling of degenerate inputs.

    Pairs where either value is NaN are dropped first.

    Parameters
    ----------
    x, y : sequence of float
        Equal-length vectors.

    Returns
    -------
    tuple[float, float, int]
        Coefficient, two-sided p-value and number of observations. The
        coefficient and p-value are NaN with fewer than two observations
        or when either vector is constant.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape:
        raise ValueError(f"Vectors differ in length: {len(x)} != {len(y)}")

    mask = ~(np.isnan(x) | np.isnan(y))
    x, y = x[mask], y[mask]
    n_obs = int(mask.sum())

    if n_obs < 2 or np.ptp(x) == 0 or np.ptp(y) == 0:
        return np.nan, np.nan, n_obs

    with np.errstate(divide="ignore", invalid="ignore"):
        rho, p_value = stats.spearmanr(x, y)

    rho = float(np.clip(rho, -1.0, 1.0))
    return rho, float(p_value), n_obs


def truncate_to_shorter(
    x: Sequence[float], y: Sequence[float]
) -> tuple[np.ndarray, np.ndarray]:
    """Cut both vectors to the length of the shorter one.

    Parameters
    ----------
    x, y : sequence of float
        Vectors of possibly different lengths.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        The first ``min(len(x), len(y))`` elements of each vector.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    n = min(len(x), len(y))
    return x[:n], y[:n]


def correlate_vectors(
    identifier: str,
    x: Sequence[float],
    y: Sequence[float],
    truncate: bool = True,
) -> CorrelationResult:
    """Correlate two vectors, truncating them to a common length.

    Parameters
    ----------
    identifier : str
        Name stored on the result.
    x, y : sequence of float
        Values of the two cohorts.
    truncate : bool, default=True
        Cut both vectors to the shorter length. If False, the lengths must
        match.

    Returns
    -------
    CorrelationResult
        The correlation of the two vectors.
    """
    if truncate:
        x, y = truncate_to_shorter(x, y)

    rho, p_value, n_obs = spearman(x, y)
    if np.isnan(rho):
        logger.debug(f"Correlation undefined for {identifier} (n={n_obs})")

    return CorrelationResult(identifier=str(identifier), rho=rho, p_value=p_value, n_obs=n_obs)


def results_to_frame(results: Iterable[CorrelationResult]) -> pd.DataFrame:
    """Collect correlation results into a DataFrame indexed by identifier.

    Parameters
    ----------
    results : iterable of CorrelationResult
        Results in the order they should appear.

    Returns
    -------
    pd.DataFrame
        Columns ``rho``, ``p_value``, ``n_obs`` and ``method``.
    """
    records = [asdict(result) for result in results]
    if not records:
        frame = pd.DataFrame(columns=RESULT_COLUMNS)
        frame.index.name = "identifier"
        return frame.astype({"rho": float, "p_value": float, "n_obs": int})

    return pd.DataFrame.from_records(records, index="identifier")[RESULT_COLUMNS]


def correlate_reactions(
    flux_a: pd.DataFrame,
    flux_b: pd.DataFrame,
    reactions: Iterable[str] | None = None,
    n_processes: int = 1,
) -> pd.DataFrame:
    """Correlate the per-sample fluxes of each shared reaction.

    Parameters
    ----------
    flux_a, flux_b : pd.DataFrame
        Flux matrices (reactions x samples) of the two cohorts.
    reactions : iterable of str, optional
        Reactions to correlate. Defaults to all shared reactions.
    n_processes : int, default=1
        Number of worker processes.

    Returns
    -------
    pd.DataFrame
        One row per reaction, in the order of ``reactions``.
    """
    if reactions is None:
        reactions = align_reactions(flux_a, flux_b)
    else:
        check_unique_reactions(flux_a, "First")
        check_unique_reactions(flux_b, "Second")
    reactions = [str(rxn) for rxn in reactions]

    if not reactions:
        logger.warning("No shared reactions to correlate")
        return results_to_frame([])

    if flux_a.shape[1] != flux_b.shape[1]:
        n = min(flux_a.shape[1], flux_b.shape[1])
        logger.info(
            f"Sample counts differ ({flux_a.shape[1]} vs {flux_b.shape[1]}); "
            f"using the first {n} samples of each"
        )

    values_a = flux_a.loc[reactions].to_numpy(dtype=float)
    values_b = flux_b.loc[reactions].to_numpy(dtype=float)

    logger.info(f"Correlating {len(reactions)} reactions...")

    if n_processes > 1:
        results = _correlate_parallel(reactions, values_a, values_b, n_processes)
    else:
        results = _correlate_rows(reactions, values_a, values_b)

    frame = results_to_frame(results)
    n_undefined = int(frame["rho"].isna().sum())
    if n_undefined:
        logger.info(f"{n_undefined}/{len(frame)} reaction correlations are undefined")
    return frame


def _correlate_rows(
    identifiers: list[str], values_a: np.ndarray, values_b: np.ndarray
) -> list[CorrelationResult]:
    """Correlate matching rows of two value arrays."""
    return [
        correlate_vectors(identifier, values_a[i], values_b[i])
        for i, identifier in enumerate(identifiers)
    ]


def _correlate_parallel(
    identifiers: list[str],
    values_a: np.ndarray,
    values_b: np.ndarray,
    n_processes: int,
) -> list[CorrelationResult]:
    """Correlate rows in worker processes, keeping the input order."""
    chunks = np.array_split(np.arange(len(identifiers)), n_processes)

    by_identifier: dict[str, CorrelationResult] = {}
    with ProcessPoolExecutor(max_workers=n_processes) as executor:
        futures = [
            executor.submit(
                _correlate_rows,
                [identifiers[i] for i in chunk],
                values_a[chunk],
                values_b[chunk],
            )
            for chunk in chunks
            if len(chunk)
        ]
        for future in as_completed(futures):
            for result in future.result():
                by_identifier[result.identifier] = result

    return [by_identifier[identifier] for identifier in identifiers]


def correlate_mean_profiles(
    flux_a: pd.DataFrame,
    flux_b: pd.DataFrame,
    reactions: Iterable[str] | None = None,
    identifier: str = "all_reactions",
) -> CorrelationResult:
    """Correlate sample-averaged fluxes across reactions.

    Each cohort is reduced to one mean flux per reaction and the two mean
    profiles are correlated across the reactions.

    Parameters
    ----------
    flux_a, flux_b : pd.DataFrame
        Flux matrices (reactions x samples).
    reactions : iterable of str, optional
        Reactions to include. Defaults to all shared reactions.
    identifier : str, default="all_reactions"
        Name stored on the result.

    Returns
    -------
    CorrelationResult
        Correlation of the two mean profiles.
    """
    profile = mean_profile(flux_a, flux_b, reactions)
    return correlate_vectors(
        identifier, profile.iloc[:, 0], profile.iloc[:, 1], truncate=False
    )


def mean_profile(
    flux_a: pd.DataFrame,
    flux_b: pd.DataFrame,
    reactions: Iterable[str] | None = None,
    names: Sequence[str] = ("a", "b"),
) -> pd.DataFrame:
    """Per-reaction sample means of two cohorts, paired by reaction.

    Parameters
    ----------
    flux_a, flux_b : pd.DataFrame
        Flux matrices (reactions x samples).
    reactions : iterable of str, optional
        Reactions to include. Defaults to all shared reactions.
    names : sequence of str
        Column names for the two cohorts.

    Returns
    -------
    pd.DataFrame
        Reactions x 2 frame of mean fluxes.
    """
    if reactions is None:
        reactions = align_reactions(flux_a, flux_b)
    else:
        check_unique_reactions(flux_a, "First")
        check_unique_reactions(flux_b, "Second")
    reactions = list(reactions)

    name_a, name_b = names
    profile = pd.DataFrame(
        {
            name_a: flux_a.loc[reactions].mean(axis=1),
            name_b: flux_b.loc[reactions].mean(axis=1),
        },
        index=pd.Index(reactions, name="reaction_id"),
    )
    return profile


def correlate_pathways(
    flux_a: pd.DataFrame,
    flux_b: pd.DataFrame,
    metadata: pd.DataFrame,
    pathways: Iterable[str] | None = None,
) -> pd.DataFrame:
    """Correlate per-sample pathway activities between two cohorts.

    Parameters
    ----------
    flux_a, flux_b : pd.DataFrame
        Flux matrices (reactions x samples).
    metadata : pd.DataFrame
        Shared reaction metadata with a ``subsystem`` column.
    pathways : iterable of str, optional
        Labels to process. Defaults to every label in ``metadata``.

    Returns
    -------
    pd.DataFrame
        One row per pathway. Pathways without reactions in either matrix
        have NaN coefficients.
    """
    activity_a = pathway_activity_matrix(flux_a, metadata, pathways)
    activity_b = pathway_activity_matrix(flux_b, metadata, pathways)

    logger.info(f"Correlating {len(activity_a)} pathways...")

    results = [
        correlate_vectors(label, activity_a.loc[label], activity_b.loc[label])
        for label in activity_a.index
    ]
    return results_to_frame(results)


def correlate_pathway_activity(
    activity: pd.DataFrame,
    names: Sequence[str] = ("human", "mouse"),
    identifier: str = "pathway_activity",
) -> CorrelationResult:
    """Correlate two cohorts' pathway activities across pathways.

    Parameters
    ----------
    activity : pd.DataFrame
        Output of :func:`crossflux.analysis.pathways.compare_pathway_activity`.
    names : sequence of str
        Cohort names used in the activity column prefixes.
    identifier : str, default="pathway_activity"
        Name stored on the result.

    Returns
    -------
    CorrelationResult
        Correlation over pathways defined in both cohorts.
    """
    name_a, name_b = names
    return correlate_vectors(
        identifier,
        activity[f"{name_a}_activity"],
        activity[f"{name_b}_activity"],
        truncate=False,
    )


def compare_pathway(
    flux_a: pd.DataFrame,
    flux_b: pd.DataFrame,
    metadata: pd.DataFrame,
    pathway: str,
    color: str = "steelblue",
    names: Sequence[str] = ("human", "mouse"),
) -> PathwayComparison:
    """Compare one pathway between two cohorts on mean flux profiles.

    Parameters
    ----------
    flux_a, flux_b : pd.DataFrame
        Flux matrices (reactions x samples).
    metadata : pd.DataFrame
        Shared reaction metadata.
    pathway : str
        Subsystem label.
    color : str, default="steelblue"
        Plot color carried on the result.
    names : sequence of str
        Cohort names, used as profile column names.

    Returns
    -------
    PathwayComparison
        Aligned reactions, scatter-ready profile and correlation.
    """
    reactions = align_reactions(
        flux_a, flux_b, pathway_filter=subsystem_reactions(metadata, pathway)
    )
    if len(reactions) == 0:
        logger.warning(f"No shared reactions for pathway '{pathway}'")

    profile = mean_profile(flux_a, flux_b, reactions, names=names)
    result = correlate_vectors(
        pathway, profile.iloc[:, 0], profile.iloc[:, 1], truncate=False
    )

    logger.info(
        f"{pathway}: rho={result.rho:.3f}, p={result.p_value:.3g} "
        f"({result.n_obs} reactions)"
    )
    return PathwayComparison(
        pathway=pathway,
        color=color,
        reactions=reactions,
        profile=profile,
        result=result,
    )
