"""Flux Balance Analysis (FBA) utilities.

Helpers for constraining a genome-scale model before flux estimation:
applying a growth medium to the exchange reactions and scaling internal
reaction bounds by reaction activity scores.
"""

from __future__ import annotations

import logging

import cobra
import pandas as pd

logger = logging.getLogger(__name__)


def apply_media(
    model: cobra.Model,
    media: dict[str, float],
    default_uptake: float = 0.0,
) -> cobra.Model:
    """Apply media constraints to model.

    Parameters
    ----------
    model : cobra.Model
        Metabolic model.
    media : dict[str, float]
        Dictionary mapping exchange reaction IDs to uptake rates
        (positive values = uptake allowed).
    default_uptake : float, default=0.0
        Default uptake rate for exchanges not in media dict.

    Returns
    -------
    cobra.Model
        Copy of the model with updated exchange bounds.
    """
    model = model.copy()

    exchange_ids = {rxn.id for rxn in model.exchanges}
    unknown = [rxn_id for rxn_id in media if rxn_id not in exchange_ids]
    if unknown:
        logger.warning(
            f"{len(unknown)} medium components are not exchange reactions "
            f"of model '{model.id}' (e.g. {unknown[:3]})"
        )

    for rxn in model.exchanges:
        if rxn.id in media:
            rxn.lower_bound = -abs(media[rxn.id])
        else:
            rxn.lower_bound = -default_uptake

    return model


def medium_overlap(model: cobra.Model, media: dict[str, float]) -> int:
    """Count medium components that match exchange reactions of the model."""
    exchange_ids = {rxn.id for rxn in model.exchanges}
    return sum(1 for rxn_id in media if rxn_id in exchange_ids)


def scale_bounds(
    model: cobra.Model,
    scores: pd.Series,
    min_scale: float = 0.01,
) -> int:
    """Scale internal reaction bounds by activity scores (E-Flux style).

    Each scored, non-boundary reaction gets both bounds multiplied by
    ``min_scale + (1 - min_scale) * score``. Call inside a ``with model:``
    block so the original bounds are restored afterwards.

    Parameters
    ----------
    model : cobra.Model
        Model to constrain in place.
    scores : pd.Series
        Activity scores in [0, 1] indexed by reaction ID.
    min_scale : float, default=0.01
        Scale applied to reactions with a score of zero.

    Returns
    -------
    int
        Number of reactions whose bounds were scaled.
    """
    n_scaled = 0
    for rxn_id, score in scores.items():
        if rxn_id not in model.reactions:
            continue
        rxn = model.reactions.get_by_id(rxn_id)
        if rxn.boundary:
            continue

        score = min(max(float(score), 0.0), 1.0)
        scale = min_scale + (1.0 - min_scale) * score
        lower, upper = rxn.lower_bound * scale, rxn.upper_bound * scale
        # Assign together so cobra never sees lower > upper in between
        rxn.bounds = (lower, upper)
        n_scaled += 1

    return n_scaled
