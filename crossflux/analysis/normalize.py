"""Sign-preserving cube-root transform of flux matrices."""

from __future__ import annotations

import numpy as np
import pandas as pd


def cube_root_transform(
    flux: pd.DataFrame | pd.Series | np.ndarray,
) -> pd.DataFrame | pd.Series | np.ndarray:
    """Compress flux values with a real, sign-preserving cube root.

    Each value ``x`` becomes ``sign(x) * |x| ** (1/3)``. Zero maps to zero
    and negative fluxes stay negative; ``x ** (1/3)`` would be NaN for
    them.

    Parameters
    ----------
    flux : pd.DataFrame, pd.Series or np.ndarray
        Flux values, typically reactions x samples.

    Returns
    -------
    Same type as ``flux``
        Transformed copy with identical shape and labels.
    """
    if isinstance(flux, pd.DataFrame):
        return pd.DataFrame(
            np.cbrt(flux.to_numpy(dtype=float)), index=flux.index, columns=flux.columns
        )
    if isinstance(flux, pd.Series):
        return pd.Series(
            np.cbrt(flux.to_numpy(dtype=float)), index=flux.index, name=flux.name
        )
    return np.cbrt(np.asarray(flux, dtype=float))
