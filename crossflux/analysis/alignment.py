"""Alignment of reaction identifiers shared by two flux matrices.

Both cohorts are scored against the same reference network, so a
reaction identifier means the same reaction in either matrix.
"""

from __future__ import annotations

import logging
from typing import Iterable

import pandas as pd

logger = logging.getLogger(__name__)


def check_unique_reactions(flux: pd.DataFrame, name: str = "flux") -> None:
    """Raise ValueError if a flux matrix repeats a reaction identifier.

    Rows are looked up by reaction ID, so a repeated ID would pair the
    wrong rows of the two cohorts.
    """
    duplicated = flux.index[flux.index.duplicated()].unique()
    if len(duplicated):
        raise ValueError(
            f"{name} matrix has {len(duplicated)} duplicated reaction IDs "
            f"(e.g. {list(duplicated[:3])})"
        )


def align_reactions(
    flux_a: pd.DataFrame,
    flux_b: pd.DataFrame,
    pathway_filter: Iterable[str] | None = None,
) -> pd.Index:
    """Return the reactions present in both flux matrices.

    Parameters
    ----------
    flux_a : pd.DataFrame
        First flux matrix (reactions x samples). Its row order is kept.
    flux_b : pd.DataFrame
        Second flux matrix (reactions x samples).
    pathway_filter : iterable of str, optional
        Reaction IDs of one pathway; the result is restricted to them.

    Returns
    -------
    pd.Index
        Shared reaction IDs in the row order of ``flux_a``. Empty when the
        matrices share nothing, which is logged but not an error.

    Raises
    ------
    ValueError
        If either matrix repeats a reaction ID.
    """
    check_unique_reactions(flux_a, "First")
    check_unique_reactions(flux_b, "Second")

    shared = flux_a.index[flux_a.index.isin(flux_b.index)]
    if pathway_filter is not None:
        allowed = set(pathway_filter)
        shared = shared[shared.isin(allowed)]

    if len(shared) == 0:
        logger.warning("Flux matrices share no reaction identifiers")
    else:
        logger.debug(f"Aligned {len(shared)} shared reactions")

    return shared


def pathway_labels(metadata: pd.DataFrame) -> list[str]:
    """Distinct subsystem labels, in order of first appearance.

    Parameters
    ----------
    metadata : pd.DataFrame
        Reaction metadata with a ``subsystem`` column.

    Returns
    -------
    list[str]
        Labels without missing values or duplicates.
    """
    return list(pd.unique(metadata["subsystem"].dropna()))


def subsystem_reactions(metadata: pd.DataFrame, pathway: str) -> list[str]:
    """Reaction IDs annotated with a subsystem label.

    Parameters
    ----------
    metadata : pd.DataFrame
        Reaction metadata with a ``subsystem`` column.
    pathway : str
        Subsystem label.

    Returns
    -------
    list[str]
        Reaction IDs in metadata order; empty if the label is unknown.
    """
    return list(metadata.index[metadata["subsystem"] == pathway])
