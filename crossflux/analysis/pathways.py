"""Aggregation of reaction fluxes into pathway (subsystem) activities.

Every subsystem label of the reaction metadata yields exactly one record.
A pathway with no reaction in the flux matrix gets a missing activity
(NaN), never zero: zero would read as "no flux" instead of "no data".
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from .alignment import check_unique_reactions, pathway_labels

logger = logging.getLogger(__name__)


def _resolve_pathways(
    metadata: pd.DataFrame, pathways: Iterable[str] | None
) -> list[str]:
    """Pathways to process, each once, in a stable order."""
    if pathways is None:
        return pathway_labels(metadata)
    return list(pd.unique(pd.Series(list(pathways), dtype=object)))


def _present_reactions(
    flux: pd.DataFrame, metadata: pd.DataFrame
) -> dict[str, pd.Index]:
    """Group the reactions of the flux matrix by subsystem label."""
    check_unique_reactions(flux)
    annotated = metadata.loc[metadata.index.isin(flux.index), "subsystem"].dropna()
    return {label: group.index for label, group in annotated.groupby(annotated, sort=False)}


def aggregate_pathway_activity(
    flux: pd.DataFrame,
    metadata: pd.DataFrame,
    pathways: Iterable[str] | None = None,
) -> pd.DataFrame:
    """Compute one activity value per pathway.

    The activity of a pathway is the mean, over samples, of the row means
    of absolute flux over the pathway's reactions present in ``flux``.

    Parameters
    ----------
    flux : pd.DataFrame
        Flux matrix (reactions x samples).
    metadata : pd.DataFrame
        Reaction metadata with a ``subsystem`` column.
    pathways : iterable of str, optional
        Labels to process. Defaults to every label in ``metadata``.

    Returns
    -------
    pd.DataFrame
        Columns ``pathway``, ``activity`` (NaN when no reaction is
        present) and ``n_reactions``, one row per label.
    """
    labels = _resolve_pathways(metadata, pathways)
    present = _present_reactions(flux, metadata)

    records = []
    for label in labels:
        reactions = present.get(label)
        if reactions is None or len(reactions) == 0:
            records.append({"pathway": label, "activity": np.nan, "n_reactions": 0})
            continue

        row_means = flux.loc[reactions].abs().mean(axis=1)
        records.append(
            {
                "pathway": label,
                "activity": float(row_means.mean()),
                "n_reactions": len(reactions),
            }
        )

    table = pd.DataFrame.from_records(
        records, columns=["pathway", "activity", "n_reactions"]
    )
    n_missing = int(table["activity"].isna().sum())
    if n_missing:
        logger.info(f"{n_missing}/{len(table)} pathways have no reactions with flux")

    return table


def pathway_activity_matrix(
    flux: pd.DataFrame,
    metadata: pd.DataFrame,
    pathways: Iterable[str] | None = None,
) -> pd.DataFrame:
    """Per-sample pathway activities.

    Parameters
    ----------
    flux : pd.DataFrame
        Flux matrix (reactions x samples).
    metadata : pd.DataFrame
        Reaction metadata with a ``subsystem`` column.
    pathways : iterable of str, optional
        Labels to process. Defaults to every label in ``metadata``.

    Returns
    -------
    pd.DataFrame
        Pathways x samples mean absolute flux. Pathways with no reaction
        in ``flux`` are all-NaN rows.
    """
    labels = _resolve_pathways(metadata, pathways)
    present = _present_reactions(flux, metadata)

    rows = {}
    for label in labels:
        reactions = present.get(label)
        if reactions is None or len(reactions) == 0:
            rows[label] = pd.Series(np.nan, index=flux.columns)
        else:
            rows[label] = flux.loc[reactions].abs().mean(axis=0)

    matrix = pd.DataFrame.from_dict(rows, orient="index", columns=flux.columns)
    matrix = matrix.reindex(labels)
    matrix.index.name = "pathway"
    return matrix


def compare_pathway_activity(
    flux_a: pd.DataFrame,
    flux_b: pd.DataFrame,
    metadata: pd.DataFrame,
    names: Sequence[str] = ("human", "mouse"),
    pathways: Iterable[str] | None = None,
) -> pd.DataFrame:
    """Pathway activities of two cohorts side by side.

    Parameters
    ----------
    flux_a, flux_b : pd.DataFrame
        Flux matrices (reactions x samples) of the two cohorts.
    metadata : pd.DataFrame
        Shared reaction metadata.
    names : sequence of str, default=("human", "mouse")
        Cohort names used as column prefixes.
    pathways : iterable of str, optional
        Labels to process. Defaults to every label in ``metadata``.

    Returns
    -------
    pd.DataFrame
        Indexed by pathway with ``<name>_activity`` and
        ``<name>_n_reactions`` columns for both cohorts.
    """
    labels = _resolve_pathways(metadata, pathways)
    name_a, name_b = names

    table_a = aggregate_pathway_activity(flux_a, metadata, labels).set_index("pathway")
    table_b = aggregate_pathway_activity(flux_b, metadata, labels).set_index("pathway")

    combined = pd.concat(
        [table_a.add_prefix(f"{name_a}_"), table_b.add_prefix(f"{name_b}_")],
        axis=1,
    )
    return combined.reindex(labels)
