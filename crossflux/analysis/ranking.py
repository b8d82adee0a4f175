"""Ranking of correlation results and tabular export."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import numpy as np
import pandas as pd

from .correlation import CorrelationResult, results_to_frame

logger = logging.getLogger(__name__)

# Number of top-ranked reactions reported by default
DEFAULT_TOP_K = 30


def rank_correlations(
    results: pd.DataFrame | Iterable[CorrelationResult],
    top_k: int | None = DEFAULT_TOP_K,
    metadata: pd.DataFrame | None = None,
) -> pd.DataFrame:
    """Order correlation results by strength and keep the strongest.

    Results are sorted by absolute coefficient, descending. The sort is
    stable, so equal magnitudes keep their input order, and undefined
    (NaN) coefficients go last.

    Parameters
    ----------
    results : pd.DataFrame or iterable of CorrelationResult
        Correlations indexed by identifier with a ``rho`` column.
    top_k : int or None, default=30
        Number of rows to keep. None keeps all of them.
    metadata : pd.DataFrame, optional
        Reaction metadata; its ``equation`` and ``subsystem`` columns are
        joined onto the selected rows. Identifiers without metadata keep
        NaN placeholders.

    Returns
    -------
    pd.DataFrame
        Selected rows with a 1-based ``rank`` column.
    """
    if not isinstance(results, pd.DataFrame):
        results = results_to_frame(results)

    if top_k is not None and top_k < 0:
        raise ValueError(f"top_k must be non-negative, got {top_k}")

    strength = results["rho"].abs().to_numpy(dtype=float)
    sort_key = np.where(np.isnan(strength), np.inf, -strength)
    ranked = results.iloc[np.argsort(sort_key, kind="stable")]

    if top_k is not None:
        ranked = ranked.head(top_k)

    ranked = ranked.copy()
    ranked.insert(0, "rank", range(1, len(ranked) + 1))

    if metadata is not None:
        columns = [col for col in ("equation", "subsystem") if col in metadata.columns]
        annotations = metadata[columns].reindex(ranked.index)
        for col in columns:
            ranked[col] = annotations[col].to_numpy()

    return ranked


def export_table(
    frame: pd.DataFrame,
    path: str | Path,
    sep: str | None = None,
) -> Path:
    """Write a result table to a delimited text file.

    Parameters
    ----------
    frame : pd.DataFrame
        Table to write, index included.
    path : str or Path
        Output file. Parent directories are created.
    sep : str, optional
        Field separator. Defaults to ',' for .csv files and tab otherwise.

    Returns
    -------
    Path
        The written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if sep is None:
        sep = "," if path.suffix.lower() == ".csv" else "\t"

    frame.to_csv(path, sep=sep)
    logger.debug(f"Wrote {len(frame)} rows to {path}")
    return path
