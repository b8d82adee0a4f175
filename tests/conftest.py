"""Pytest configuration and fixtures."""

import tempfile
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def scenario_fluxes():
    """Two cohorts sharing R1 (identical), R2 (constant in one) and R3 (reversed)."""
    flux_a = pd.DataFrame(
        {
            "h1": [1.0, 1.0, 1.0, 0.5],
            "h2": [2.0, 2.0, 2.0, 0.5],
            "h3": [3.0, 3.0, 3.0, 0.5],
            "h4": [4.0, 4.0, 4.0, 0.5],
            "h5": [5.0, 5.0, 5.0, 0.5],
        },
        index=["R1", "R2", "R3", "R_HUMAN_ONLY"],
    )
    flux_b = pd.DataFrame(
        {
            "m1": [1.0, 7.0, 5.0, 1.0],
            "m2": [2.0, 7.0, 4.0, 1.0],
            "m3": [3.0, 7.0, 3.0, 1.0],
            "m4": [4.0, 7.0, 2.0, 1.0],
            "m5": [5.0, 7.0, 1.0, 1.0],
        },
        index=["R1", "R2", "R3", "R_MOUSE_ONLY"],
    )
    return flux_a, flux_b


@pytest.fixture
def scenario_metadata():
    """Reaction metadata for the scenario fluxes, with one pathway lacking data."""
    metadata = pd.DataFrame(
        {
            "equation": ["A => B", "B => C", "C => D", "X => Y", "E => F"],
            "subsystem": [
                "Glycolysis",
                "Glycolysis",
                "TCA cycle",
                "Urea cycle",
                np.nan,
            ],
        },
        index=pd.Index(["R1", "R2", "R3", "R9", "R_HUMAN_ONLY"], name="reaction_id"),
    )
    return metadata


@pytest.fixture
def random_fluxes():
    """Random flux matrices of unequal sample counts."""
    rng = np.random.default_rng(42)
    reactions = [f"rxn_{i}" for i in range(40)]
    flux_a = pd.DataFrame(
        rng.normal(size=(40, 10)),
        index=reactions,
        columns=[f"human_{i}" for i in range(10)],
    )
    flux_b = pd.DataFrame(
        rng.normal(size=(30, 7)),
        index=reactions[10:],
        columns=[f"mouse_{i}" for i in range(7)],
    )
    return flux_a, flux_b


@pytest.fixture
def random_metadata():
    """Subsystem annotation for the random flux reactions."""
    subsystems = ["Glycolysis", "TCA cycle", "Fatty acid oxidation", "Urea cycle"]
    return pd.DataFrame(
        {
            "equation": [f"m{i} => m{i + 1}" for i in range(40)],
            "subsystem": [subsystems[i % 4] for i in range(40)],
        },
        index=pd.Index([f"rxn_{i}" for i in range(40)], name="reaction_id"),
    )


@pytest.fixture
def toy_model():
    """Small COBRApy model: uptake, two parallel conversions and a sink."""
    cobra = pytest.importorskip("cobra")

    model = cobra.Model("toy")
    a_e = cobra.Metabolite("a_e", compartment="e")
    a_c = cobra.Metabolite("a_c", compartment="c")
    b_c = cobra.Metabolite("b_c", compartment="c")

    upt = cobra.Reaction("UPT", lower_bound=0, upper_bound=10)
    upt.add_metabolites({a_e: -1, a_c: 1})
    conv = cobra.Reaction("CONV", lower_bound=0, upper_bound=1000)
    conv.add_metabolites({a_c: -1, b_c: 1})
    alt = cobra.Reaction("ALT", lower_bound=0, upper_bound=1000)
    alt.add_metabolites({a_c: -1, b_c: 1})
    out = cobra.Reaction("OUT", lower_bound=0, upper_bound=1000)
    out.add_metabolites({b_c: -1})

    model.add_reactions([upt, conv, alt, out])
    model.add_boundary(a_e, type="exchange", reaction_id="EX_a_e", lb=-10, ub=1000)

    model.reactions.UPT.gene_reaction_rule = "G1"
    model.reactions.CONV.gene_reaction_rule = "G2 and G3"
    model.reactions.ALT.gene_reaction_rule = "G4 or G5"
    model.reactions.UPT.subsystem = "Transport"
    model.reactions.CONV.subsystem = "Glycolysis"
    model.reactions.ALT.subsystem = "Glycolysis"

    model.objective = "OUT"
    return model


@pytest.fixture
def toy_expression():
    """Expression for the toy model genes, with lowercase identifiers."""
    return pd.DataFrame(
        {"S1": [4.0, 3.0, 5.0, 1.0, 2.0], "S2": [2.0, 1.0, 6.0, 0.0, 0.0]},
        index=["g1", "g2", "g3", "g4", "g5"],
    )
