"""Data loading and preprocessing utilities.

This module handles loading bulk expression matrices (genes x samples)
and the light preprocessing applied before metabolic analysis.
"""

from __future__ import annotations

import logging
from pathlib import Path

import anndata as ad
import numpy as np
import pandas as pd
from scipy.sparse import issparse

logger = logging.getLogger(__name__)


class DataLoader:
    """Load expression matrices from various formats.

    Supports loading from CSV, TSV/TXT and h5ad (AnnData). Text files are
    expected in genes x samples layout with gene identifiers in the first
    column and sample identifiers as column headers.

    Parameters
    ----------
    filepath : str or Path
        Path to the data file.
    clamp : bool, default=True
        Replace negative expression values with zero after loading.

    Attributes
    ----------
    adata : anndata.AnnData
        The loaded data as an AnnData object (samples x genes).

    Examples
    --------
    >>> from crossflux.core.preprocessing import DataLoader
    >>> loader = DataLoader("data/human_tumors.tsv")
    >>> adata = loader.load()
    >>> print(adata.shape)
    """

    def __init__(self, filepath: str | Path, clamp: bool = True) -> None:
        self.filepath = Path(filepath)
        self.clamp = clamp
        self.adata: ad.AnnData | None = None

    def load(self) -> ad.AnnData:
        """Load the data file based on extension.

        Returns
        -------
        anndata.AnnData
            The loaded data.

        Raises
        ------
        ValueError
            If the file format is not supported.
        FileNotFoundError
            If the file doesn't exist.
        """
        if not self.filepath.exists():
            raise FileNotFoundError(f"File not found: {self.filepath}")

        suffix = self.filepath.suffix.lower()
        logger.info(f"Loading data from {self.filepath} (format: {suffix})")

        if suffix == ".h5ad":
            adata = self.load_h5ad()
        elif suffix == ".csv":
            adata = self.load_csv()
        elif suffix in {".tsv", ".txt"}:
            adata = self.load_csv(sep="\t")
        else:
            raise ValueError(
                f"Unsupported file format: {suffix}. "
                "Supported formats: .h5ad, .csv, .tsv, .txt"
            )

        if self.clamp:
            adata = clamp_negative(adata)

        self.adata = adata
        logger.info(
            f"Loaded data with {adata.n_obs} samples and {adata.n_vars} genes"
        )
        return adata

    def load_csv(self, sep: str = ",", **kwargs) -> ad.AnnData:
        """Load data from CSV/TSV file.

        Expects genes as rows and samples as columns.

        Parameters
        ----------
        sep : str, default=","
            Column separator.
        **kwargs
            Additional arguments passed to pd.read_csv.

        Returns
        -------
        anndata.AnnData
            The loaded data.

        Raises
        ------
        ValueError
            If any cell is missing or not a number.
        """
        df = pd.read_csv(self.filepath, index_col=0, sep=sep, **kwargs)
        numeric = df.apply(pd.to_numeric, errors="coerce")
        invalid = numeric.isna()
        if invalid.to_numpy().any():
            rows, cols = np.nonzero(invalid.to_numpy())
            gene, sample = df.index[rows[0]], df.columns[cols[0]]
            raise ValueError(
                f"{self.filepath} has {int(invalid.to_numpy().sum())} missing or "
                f"non-numeric values (first at gene '{gene}', sample '{sample}')"
            )
        df = numeric

        # AnnData expects samples x genes
        adata = ad.AnnData(df.T.to_numpy(dtype=float))
        adata.var_names = df.index.astype(str)
        adata.obs_names = df.columns.astype(str)

        self.adata = adata
        return adata

    def load_h5ad(self) -> ad.AnnData:
        """Load data from h5ad file.

        Returns
        -------
        anndata.AnnData
            The loaded data.
        """
        self.adata = ad.read_h5ad(self.filepath)
        return self.adata


def clamp_negative(adata: ad.AnnData, copy: bool = True) -> ad.AnnData:
    """Replace negative expression values with zero.

    Parameters
    ----------
    adata : anndata.AnnData
        The data to clamp.
    copy : bool, default=True
        If True, return a copy. Otherwise, modify in place.

    Returns
    -------
    anndata.AnnData
        Data without negative entries.
    """
    if copy:
        adata = adata.copy()

    if issparse(adata.X):
        X = adata.X.tocsr(copy=True)
        n_negative = int((X.data < 0).sum())
        X.data[X.data < 0] = 0
        X.eliminate_zeros()
    else:
        X = np.asarray(adata.X, dtype=float).copy()
        n_negative = int((X < 0).sum())
        X[X < 0] = 0

    adata.X = X

    if n_negative:
        logger.info(f"Clamped {n_negative} negative expression values to zero")

    return adata


def normalize_expression(
    adata: ad.AnnData,
    target_sum: float = 1e6,
    log_transform: bool = False,
    copy: bool = True,
) -> ad.AnnData:
    """Normalize gene expression data.

    Performs library size normalization followed by optional log
    transformation.

    Parameters
    ----------
    adata : anndata.AnnData
        The data to normalize.
    target_sum : float, default=1e6
        Target sum per sample (default: CPM-like scaling).
    log_transform : bool, default=False
        Whether to log-transform after normalization.
    copy : bool, default=True
        If True, return a copy. Otherwise, modify in place.

    Returns
    -------
    anndata.AnnData
        Normalized data.
    """
    if copy:
        adata = adata.copy()

    if issparse(adata.X):
        X = adata.X.toarray()
    else:
        X = np.asarray(adata.X, dtype=float).copy()

    library_sizes = X.sum(axis=1, keepdims=True)
    library_sizes[library_sizes == 0] = 1  # Avoid division by zero
    X = X / library_sizes * target_sum

    if log_transform:
        X = np.log1p(X)

    adata.X = X

    adata.uns["normalization"] = {
        "target_sum": target_sum,
        "log_transform": log_transform,
    }

    logger.info(
        f"Normalized expression (target_sum={target_sum}, log={log_transform})"
    )

    return adata


def to_dataframe(
    adata: ad.AnnData,
    layer: str | None = None,
    genes_as_rows: bool = True,
) -> pd.DataFrame:
    """Convert AnnData to DataFrame.

    Parameters
    ----------
    adata : anndata.AnnData
        The data to convert.
    layer : str, optional
        Layer to use. If None, uses X.
    genes_as_rows : bool, default=True
        If True, returns genes x samples. Otherwise, samples x genes.

    Returns
    -------
    pd.DataFrame
        Expression data as DataFrame.
    """
    if layer is not None:
        X = adata.layers[layer]
    else:
        X = adata.X

    if issparse(X):
        X = X.toarray()

    if genes_as_rows:
        return pd.DataFrame(X.T, index=adata.var_names, columns=adata.obs_names)
    else:
        return pd.DataFrame(X, index=adata.obs_names, columns=adata.var_names)


def load_expression(
    filepath: str | Path,
    clamp: bool = True,
    normalize: bool = False,
    target_sum: float = 1e6,
) -> pd.DataFrame:
    """Load an expression file straight into a genes x samples DataFrame.

    Parameters
    ----------
    filepath : str or Path
        Path to the expression file.
    clamp : bool, default=True
        Replace negative values with zero.
    normalize : bool, default=False
        Apply library size normalization.
    target_sum : float, default=1e6
        Target sum used when ``normalize`` is set.

    Returns
    -------
    pd.DataFrame
        Expression matrix (genes x samples).
    """
    adata = DataLoader(filepath, clamp=clamp).load()
    if normalize:
        adata = normalize_expression(adata, target_sum=target_sum)
    return to_dataframe(adata, genes_as_rows=True)
