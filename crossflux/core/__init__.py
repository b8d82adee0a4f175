"""Core module for expression loading and flux estimation.

This module contains:
- Loading and light preprocessing of expression matrices
- Reaction activity scores and flux estimation with COBRApy
- Medium and bound helpers for constraint-based models
- Caching of flux estimates
"""

from .preprocessing import (
    DataLoader,
    clamp_negative,
    load_expression,
    normalize_expression,
    to_dataframe,
)
from .fba import (
    apply_media,
    medium_overlap,
    scale_bounds,
)
from .flux import (
    CobraFluxProvider,
    FluxConfig,
    FluxProviderError,
    FluxResult,
    run_flux_provider,
)
from .cache import FluxCache, input_fingerprint

__all__ = [
    # Preprocessing
    "DataLoader",
    "clamp_negative",
    "load_expression",
    "normalize_expression",
    "to_dataframe",
    # FBA
    "apply_media",
    "medium_overlap",
    "scale_bounds",
    # Flux
    "CobraFluxProvider",
    "FluxConfig",
    "FluxProviderError",
    "FluxResult",
    "run_flux_provider",
    # Cache
    "FluxCache",
    "input_fingerprint",
]
