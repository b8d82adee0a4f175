"""Models module for genome-scale metabolic models.

This module handles loading the reference GEM (Genome-Scale Metabolic)
model, the growth medium applied to it, and the reaction metadata table
(equation and subsystem per reaction) shared by both cohorts.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import cobra
import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# Path to bundled GEM models
GEMS_DIR = Path(__file__).parent / "gems"

# Supported model formats
SUPPORTED_FORMATS = {".xml", ".sbml", ".json", ".mat", ".yml", ".yaml"}

# URLs for downloading standard models
MODEL_URLS = {
    "human": "https://github.com/SysBioChalmers/Human-GEM/raw/main/model/Human-GEM.xml",
    "recon3d": "https://www.vmh.life/files/reconstructions/ReconMaps/Recon3D.mat",
}

# Column layout of a reaction metadata table
METADATA_COLUMNS = ["equation", "subsystem"]

# Uptake rate for medium components listed without an explicit rate
DEFAULT_MEDIUM_UPTAKE = 1000.0


def load_gem(organism: str) -> cobra.Model:
    """Load a GEM model by name or file path.

    Reaction identifiers of the loaded model are used for both cohorts,
    including the mouse one.

    Parameters
    ----------
    organism : str
        Model name ('human', 'recon3d') or path to a model file.

    Returns
    -------
    cobra.Model
        The loaded metabolic model.

    Raises
    ------
    ValueError
        If the name is not supported and the path doesn't exist.
    FileNotFoundError
        If a named model has not been downloaded.
    """
    path = Path(organism)
    if path.exists():
        return load_model_from_file(path)

    organism_lower = organism.lower()
    for suffix in SUPPORTED_FORMATS:
        bundled_path = GEMS_DIR / f"{organism_lower}{suffix}"
        if bundled_path.exists():
            logger.info(f"Loading bundled model from {bundled_path}")
            return load_model_from_file(bundled_path)

    if organism_lower in MODEL_URLS:
        raise FileNotFoundError(
            f"Model '{organism}' not found. Please download it manually from:\n"
            f"  {MODEL_URLS[organism_lower]}\n"
            f"and place it in: {GEMS_DIR}"
        )

    raise ValueError(
        f"Unknown model '{organism}'. Supported names: {list(MODEL_URLS.keys())}\n"
        f"Or provide a path to a model file ({', '.join(sorted(SUPPORTED_FORMATS))})"
    )


def load_model_from_file(path: str | Path) -> cobra.Model:
    """Load a metabolic model from a file.

    Parameters
    ----------
    path : str or Path
        Path to the model file. Supports SBML (.xml, .sbml), JSON (.json),
        MATLAB (.mat), and YAML (.yml, .yaml) formats.

    Returns
    -------
    cobra.Model
        The loaded COBRApy model.

    Raises
    ------
    ValueError
        If the file format is not supported.
    FileNotFoundError
        If the file doesn't exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model file not found: {path}")

    suffix = path.suffix.lower()
    logger.info(f"Loading model from {path} (format: {suffix})")

    if suffix in {".xml", ".sbml"}:
        model = cobra.io.read_sbml_model(str(path))
    elif suffix == ".json":
        model = cobra.io.load_json_model(str(path))
    elif suffix == ".mat":
        model = cobra.io.load_matlab_model(str(path))
    elif suffix in {".yml", ".yaml"}:
        model = cobra.io.load_yaml_model(str(path))
    else:
        raise ValueError(
            f"Unsupported model format: {suffix}. "
            f"Supported formats: {SUPPORTED_FORMATS}"
        )

    logger.info(
        f"Loaded model '{model.id}' with {len(model.reactions)} reactions, "
        f"{len(model.metabolites)} metabolites, {len(model.genes)} genes"
    )
    return model


def get_subsystem_reactions(model: cobra.Model) -> dict[str, list[str]]:
    """Get mapping from subsystems to their reactions.

    Parameters
    ----------
    model : cobra.Model
        A COBRApy model.

    Returns
    -------
    dict[str, list[str]]
        Dictionary mapping subsystem names to lists of reaction IDs.
    """
    subsystems: dict[str, list[str]] = {}
    for rxn in model.reactions:
        if rxn.subsystem:
            if rxn.subsystem not in subsystems:
                subsystems[rxn.subsystem] = []
            subsystems[rxn.subsystem].append(rxn.id)
    return subsystems


def reaction_metadata(model: cobra.Model) -> pd.DataFrame:
    """Build the reaction metadata table of a model.

    Parameters
    ----------
    model : cobra.Model
        A COBRApy model.

    Returns
    -------
    pd.DataFrame
        Indexed by reaction ID with ``equation`` and ``subsystem`` columns.
        Reactions without a subsystem carry NaN.
    """
    rows = {}
    for rxn in model.reactions:
        rows[rxn.id] = {
            "equation": rxn.build_reaction_string(use_metabolite_names=True),
            "subsystem": rxn.subsystem if rxn.subsystem else np.nan,
        }

    metadata = pd.DataFrame.from_dict(rows, orient="index", columns=METADATA_COLUMNS)
    metadata.index.name = "reaction_id"
    return metadata


def load_reaction_metadata(path: str | Path) -> pd.DataFrame:
    """Load a reaction metadata table exported from a model.

    The first column holds reaction IDs. Column names are matched
    case-insensitively, so tables with ``Equation``/``SUBSYSTEM`` headers
    load as well.

    Parameters
    ----------
    path : str or Path
        CSV or tab-separated file.

    Returns
    -------
    pd.DataFrame
        Metadata with ``equation`` and ``subsystem`` columns.

    Raises
    ------
    FileNotFoundError
        If the file doesn't exist.
    ValueError
        If the table has no subsystem column.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Metadata file not found: {path}")

    sep = "," if path.suffix.lower() == ".csv" else "\t"
    table = pd.read_csv(path, sep=sep, index_col=0)
    table.columns = [str(col).strip().lower() for col in table.columns]

    if "subsystem" not in table.columns:
        raise ValueError(
            f"Metadata table {path} has no 'subsystem' column "
            f"(found: {list(table.columns)})"
        )
    if "equation" not in table.columns:
        table["equation"] = np.nan

    table.index = table.index.astype(str)
    table.index.name = "reaction_id"
    table["subsystem"] = table["subsystem"].replace("", np.nan)

    logger.info(
        f"Loaded metadata for {len(table)} reactions "
        f"({table['subsystem'].nunique()} subsystems)"
    )
    return table[METADATA_COLUMNS]


def load_medium(path: str | Path) -> dict[str, float]:
    """Load a growth medium definition.

    Accepts a JSON object mapping exchange reaction IDs to uptake rates,
    or a CSV/TSV table whose first column holds exchange reaction IDs and
    whose optional second column holds uptake rates.

    Parameters
    ----------
    path : str or Path
        Medium file.

    Returns
    -------
    dict[str, float]
        Exchange reaction ID to maximal uptake rate.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Medium file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        with open(path) as f:
            raw = json.load(f)
        if isinstance(raw, list):
            return {str(rxn_id): DEFAULT_MEDIUM_UPTAKE for rxn_id in raw}
        return {str(rxn_id): float(rate) for rxn_id, rate in raw.items()}

    sep = "," if suffix == ".csv" else "\t"
    table = pd.read_csv(path, sep=sep)
    if table.shape[1] == 1:
        return {str(rxn_id): DEFAULT_MEDIUM_UPTAKE for rxn_id in table.iloc[:, 0]}

    rates = table.iloc[:, 1].fillna(DEFAULT_MEDIUM_UPTAKE).astype(float)
    return dict(zip(table.iloc[:, 0].astype(str), rates))
