"""Tests for pathway activity aggregation."""

import numpy as np
import pandas as pd
import pytest


class TestAggregatePathwayActivity:
    """Test one-record-per-pathway aggregation."""

    def test_every_label_exactly_once(self, random_fluxes, random_metadata):
        from crossflux.analysis.pathways import aggregate_pathway_activity

        flux_a, _ = random_fluxes
        table = aggregate_pathway_activity(flux_a, random_metadata)

        labels = list(random_metadata["subsystem"].unique())
        assert sorted(table["pathway"]) == sorted(labels)
        assert table["pathway"].is_unique

    def test_missing_pathway_is_nan_not_zero(self, scenario_fluxes, scenario_metadata):
        from crossflux.analysis.pathways import aggregate_pathway_activity

        flux_a, _ = scenario_fluxes
        table = aggregate_pathway_activity(flux_a, scenario_metadata).set_index("pathway")

        assert list(table.index) == ["Glycolysis", "TCA cycle", "Urea cycle"]
        assert np.isnan(table.loc["Urea cycle", "activity"])
        assert table.loc["Urea cycle", "n_reactions"] == 0

    def test_activity_value(self):
        from crossflux.analysis.pathways import aggregate_pathway_activity

        flux = pd.DataFrame(
            {"s1": [-2.0, 4.0, 100.0], "s2": [2.0, -8.0, 100.0]},
            index=["R1", "R2", "R3"],
        )
        metadata = pd.DataFrame(
            {"equation": ["", "", ""], "subsystem": ["P", "P", "Q"]},
            index=["R1", "R2", "R3"],
        )
        table = aggregate_pathway_activity(flux, metadata).set_index("pathway")

        # Row means of |flux|: R1 -> 2, R2 -> 6; mean -> 4
        assert table.loc["P", "activity"] == pytest.approx(4.0)
        assert table.loc["P", "n_reactions"] == 2
        assert table.loc["Q", "activity"] == pytest.approx(100.0)

    def test_duplicate_reaction_ids(self, scenario_metadata):
        from crossflux.analysis.pathways import aggregate_pathway_activity

        flux = pd.DataFrame({"s1": [1.0, 1.0]}, index=["R1", "R1"])
        with pytest.raises(ValueError, match="duplicated reaction IDs"):
            aggregate_pathway_activity(flux, scenario_metadata)

    def test_explicit_pathways_deduplicated(self, scenario_fluxes, scenario_metadata):
        from crossflux.analysis.pathways import aggregate_pathway_activity

        flux_a, _ = scenario_fluxes
        table = aggregate_pathway_activity(
            flux_a, scenario_metadata, pathways=["TCA cycle", "Nope", "TCA cycle"]
        )
        assert list(table["pathway"]) == ["TCA cycle", "Nope"]
        assert np.isnan(table["activity"].iloc[1])


class TestPathwayMatrices:
    """Test per-sample matrices and cohort comparison tables."""

    def test_activity_matrix(self, scenario_fluxes, scenario_metadata):
        from crossflux.analysis.pathways import pathway_activity_matrix

        flux_a, _ = scenario_fluxes
        matrix = pathway_activity_matrix(flux_a, scenario_metadata)

        assert list(matrix.index) == ["Glycolysis", "TCA cycle", "Urea cycle"]
        assert list(matrix.columns) == list(flux_a.columns)
        np.testing.assert_allclose(matrix.loc["Glycolysis"], [1, 2, 3, 4, 5])
        assert matrix.loc["Urea cycle"].isna().all()

    def test_compare_pathway_activity(self, scenario_fluxes, scenario_metadata):
        from crossflux.analysis.pathways import compare_pathway_activity

        flux_a, flux_b = scenario_fluxes
        table = compare_pathway_activity(flux_a, flux_b, scenario_metadata)

        assert list(table.columns) == [
            "human_activity",
            "human_n_reactions",
            "mouse_activity",
            "mouse_n_reactions",
        ]
        assert table.loc["TCA cycle", "human_activity"] == pytest.approx(3.0)
        assert table.loc["TCA cycle", "mouse_activity"] == pytest.approx(3.0)
        assert np.isnan(table.loc["Urea cycle", "mouse_activity"])
