"""Caching utilities for flux provider results.

Flux estimation solves one optimization problem per sample on a
genome-scale model, which is by far the slowest step of a comparison.
This module stores activity scores and fluxes per dataset so that the
analysis can be rerun without recomputing them.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import shutil
from pathlib import Path
from typing import Any

import pandas as pd

from .flux import FluxConfig, FluxResult

logger = logging.getLogger(__name__)

# Default cache directory
DEFAULT_CACHE_DIR = Path.home() / ".crossflux" / "cache"


class FluxCache:
    """Cache for flux provider results.

    Parameters
    ----------
    cache_dir : Path or str, optional
        Directory for cache files. Defaults to ~/.crossflux/cache.
    model_id : str, optional
        Identifier for the metabolic model used to compute the fluxes.

    Attributes
    ----------
    cache_dir : Path
        Cache directory path.
    model_id : str
        Model identifier used to separate cached results.

    Examples
    --------
    >>> from crossflux.core.cache import FluxCache
    >>> cache = FluxCache.from_model(model)
    >>> cache.save_result("human", result)
    >>> cached = cache.load_result("human")
    """

    def __init__(
        self,
        cache_dir: Path | str | None = None,
        model_id: str | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir) if cache_dir else DEFAULT_CACHE_DIR
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        self.model_id = model_id or "default"
        self._model_cache_dir = self.cache_dir / self.model_id
        self._model_cache_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_model(
        cls,
        model: Any,
        cache_dir: Path | str | None = None,
        medium: dict[str, float] | None = None,
    ) -> FluxCache:
        """Create cache with a model- and medium-derived identifier.

        Parameters
        ----------
        model : cobra.Model
            Metabolic model to derive ID from.
        cache_dir : Path or str, optional
            Cache directory.
        medium : dict[str, float], optional
            Medium applied to the model; fluxes differ between media.

        Returns
        -------
        FluxCache
            Cache instance with model-specific ID.
        """
        model_str = f"{model.id}_{len(model.reactions)}_{len(model.metabolites)}"
        if medium:
            model_str += json.dumps(sorted(medium.items()))
        model_hash = hashlib.md5(model_str.encode()).hexdigest()[:12]
        model_id = f"{model.id or 'model'}_{model_hash}"

        return cls(cache_dir=cache_dir, model_id=model_id)

    def _get_path(self, key: str, suffix: str = ".parquet") -> Path:
        """Get file path for a cache key."""
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self._model_cache_dir / f"{safe_key}{suffix}"

    def save_result(
        self, dataset: str, result: FluxResult, fingerprint: str | None = None
    ) -> None:
        """Save activity scores and fluxes of a dataset.

        Parameters
        ----------
        dataset : str
            Dataset identifier (e.g. 'human').
        result : FluxResult
            Provider output to store.
        fingerprint : str, optional
            Key of the inputs the result was computed from, see
            :func:`input_fingerprint`.
        """
        _to_parquet(result.mras, self._get_path(f"mras_{dataset}"))
        _to_parquet(result.fluxes, self._get_path(f"flux_{dataset}"))
        with open(self._get_path(f"config_{dataset}", suffix=".json"), "w") as f:
            json.dump(
                {
                    "fingerprint": fingerprint,
                    "config": dataclasses.asdict(result.config),
                },
                f,
                indent=2,
            )
        logger.debug(f"Saved flux result for {dataset}")

    def load_result(
        self, dataset: str, fingerprint: str | None = None
    ) -> FluxResult | None:
        """Load cached activity scores and fluxes of a dataset.

        Parameters
        ----------
        dataset : str
            Dataset identifier.
        fingerprint : str, optional
            Key of the current inputs. A cached result stored under a
            different key is stale and treated as a miss.

        Returns
        -------
        FluxResult or None
            Cached result, None if the dataset is not cached or stale.
        """
        if not self.has_dataset(dataset):
            return None

        stored = {}
        config_path = self._get_path(f"config_{dataset}", suffix=".json")
        if config_path.exists():
            with open(config_path) as f:
                stored = json.load(f)

        if fingerprint is not None and stored.get("fingerprint") != fingerprint:
            logger.info(f"Cached fluxes for {dataset} were computed from other inputs")
            return None

        logger.info(f"Loading cached fluxes for {dataset}")
        mras = pd.read_parquet(self._get_path(f"mras_{dataset}"))
        fluxes = pd.read_parquet(self._get_path(f"flux_{dataset}"))
        config = FluxConfig(**stored.get("config", {}))

        return FluxResult(mras=mras, fluxes=fluxes, config=config)

    def has_dataset(self, dataset: str) -> bool:
        """Check whether a dataset has cached fluxes."""
        return (
            self._get_path(f"flux_{dataset}").exists()
            and self._get_path(f"mras_{dataset}").exists()
        )

    def get_cached_datasets(self) -> list[str]:
        """Get list of datasets with cached fluxes.

        Returns
        -------
        list[str]
            Dataset identifiers, sorted.
        """
        datasets = []
        for path in self._model_cache_dir.glob("flux_*.parquet"):
            datasets.append(path.stem[len("flux_"):])
        return sorted(datasets)

    def clear(self, dataset: str | None = None) -> None:
        """Clear cache data.

        Parameters
        ----------
        dataset : str, optional
            If provided, clear only this dataset. Otherwise, clear all.
        """
        if dataset is not None:
            for key, suffix in [
                (f"mras_{dataset}", ".parquet"),
                (f"flux_{dataset}", ".parquet"),
                (f"config_{dataset}", ".json"),
            ]:
                path = self._get_path(key, suffix=suffix)
                if path.exists():
                    path.unlink()
            logger.info(f"Cleared cache for dataset: {dataset}")
        else:
            shutil.rmtree(self._model_cache_dir)
            self._model_cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Cleared all cache for model: {self.model_id}")

    def get_cache_size(self) -> int:
        """Get total cache size in bytes."""
        total = 0
        for path in self._model_cache_dir.rglob("*"):
            if path.is_file():
                total += path.stat().st_size
        return total

    def get_cache_info(self) -> dict:
        """Get cache information.

        Returns
        -------
        dict
            Cache statistics and info.
        """
        datasets = self.get_cached_datasets()
        size = self.get_cache_size()

        return {
            "model_id": self.model_id,
            "cache_dir": str(self._model_cache_dir),
            "n_cached_datasets": len(datasets),
            "cached_datasets": datasets,
            "total_size_bytes": size,
            "total_size_mb": size / (1024 * 1024),
        }


def input_fingerprint(
    expression: pd.DataFrame, config: FluxConfig | None = None
) -> str:
    """Hash an expression matrix and provider configuration.

    Parameters
    ----------
    expression : pd.DataFrame
        Expression matrix (genes x samples).
    config : FluxConfig, optional
        Provider configuration.

    Returns
    -------
    str
        MD5 hex digest over values, gene and sample labels and config.
    """
    hasher = hashlib.md5()
    hasher.update(pd.util.hash_pandas_object(expression, index=True).to_numpy().tobytes())
    hasher.update(json.dumps([str(col) for col in expression.columns]).encode())
    if config is not None:
        hasher.update(json.dumps(dataclasses.asdict(config), sort_keys=True).encode())
    return hasher.hexdigest()


def _to_parquet(frame: pd.DataFrame, path: Path) -> None:
    """Write a frame to parquet; parquet requires string column names."""
    frame = frame.copy()
    frame.columns = frame.columns.astype(str)
    frame.to_parquet(path)
