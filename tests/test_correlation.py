"""Tests for cross-species correlation."""

import numpy as np
import pandas as pd
import pytest


class TestSpearman:
    """Test the guarded Spearman correlation."""

    def test_perfect_monotonic(self):
        from crossflux.analysis.correlation import spearman

        rho, p_value, n_obs = spearman([1, 2, 3, 4, 5], [1, 4, 9, 16, 25])
        assert rho == pytest.approx(1.0)
        assert p_value < 0.05
        assert n_obs == 5

    def test_zero_variance_is_undefined(self):
        from crossflux.analysis.correlation import spearman

        rho, p_value, n_obs = spearman([1, 2, 3, 4], [2, 2, 2, 2])
        assert np.isnan(rho)
        assert np.isnan(p_value)
        assert n_obs == 4

    def test_too_few_observations(self):
        from crossflux.analysis.correlation import spearman

        rho, p_value, n_obs = spearman([1.0], [2.0])
        assert np.isnan(rho)
        assert n_obs == 1

    def test_nan_pairs_dropped(self):
        from crossflux.analysis.correlation import spearman

        rho, _, n_obs = spearman([1, 2, np.nan, 4], [1, 2, 3, np.nan])
        assert n_obs == 2
        assert rho == pytest.approx(1.0)

    def test_length_mismatch_raises(self):
        from crossflux.analysis.correlation import spearman

        with pytest.raises(ValueError):
            spearman([1, 2, 3], [1, 2])

    def test_bounded(self):
        from crossflux.analysis.correlation import spearman

        rng = np.random.default_rng(0)
        for _ in range(50):
            x = rng.normal(size=12)
            y = rng.normal(size=12)
            rho, _, _ = spearman(x, y)
            assert -1.0 <= rho <= 1.0


class TestTruncation:
    """Test positional truncation of unpaired cohorts."""

    def test_truncate_to_shorter(self):
        from crossflux.analysis.correlation import truncate_to_shorter

        x = np.arange(10, dtype=float)
        y = np.arange(100, 107, dtype=float)
        x_cut, y_cut = truncate_to_shorter(x, y)

        np.testing.assert_array_equal(x_cut, x[:7])
        np.testing.assert_array_equal(y_cut, y)

    def test_correlator_uses_prefix(self):
        from crossflux.analysis.correlation import correlate_vectors

        # The first 7 samples rise together; the tail would reverse the trend
        x = [1, 2, 3, 4, 5, 6, 7, 0, -10, -20]
        y = [10, 20, 30, 40, 50, 60, 70]
        result = correlate_vectors("R1", x, y)

        assert result.n_obs == 7
        assert result.rho == pytest.approx(1.0)

    def test_reaction_correlation_truncates(self):
        from crossflux.analysis.correlation import correlate_reactions

        flux_a = pd.DataFrame([list(range(10))], index=["R1"], dtype=float)
        flux_b = pd.DataFrame([[7, 6, 5, 4, 3, 2, 1]], index=["R1"], dtype=float)

        frame = correlate_reactions(flux_a, flux_b)
        assert frame.loc["R1", "n_obs"] == 7
        assert frame.loc["R1", "rho"] == pytest.approx(-1.0)


class TestCorrelateReactions:
    """Test per-reaction correlation tables."""

    def test_scenario(self, scenario_fluxes):
        from crossflux.analysis.correlation import correlate_reactions

        flux_a, flux_b = scenario_fluxes
        frame = correlate_reactions(flux_a, flux_b)

        assert list(frame.index) == ["R1", "R2", "R3"]
        assert list(frame.columns) == ["rho", "p_value", "n_obs", "method"]
        assert frame.loc["R1", "rho"] == pytest.approx(1.0)
        assert np.isnan(frame.loc["R2", "rho"])
        assert frame.loc["R3", "rho"] == pytest.approx(-1.0)
        assert (frame["method"] == "spearman").all()

    def test_bounded_or_undefined(self, random_fluxes):
        from crossflux.analysis.correlation import correlate_reactions

        flux_a, flux_b = random_fluxes
        frame = correlate_reactions(flux_a, flux_b)

        defined = frame["rho"].dropna()
        assert len(frame) == 30
        assert ((defined >= -1) & (defined <= 1)).all()

    def test_empty_alignment(self):
        from crossflux.analysis.correlation import correlate_reactions

        flux_a = pd.DataFrame({"s": [1.0]}, index=["R1"])
        flux_b = pd.DataFrame({"s": [1.0]}, index=["R2"])

        frame = correlate_reactions(flux_a, flux_b)
        assert frame.empty
        assert list(frame.columns) == ["rho", "p_value", "n_obs", "method"]

    def test_duplicate_reaction_ids(self):
        from crossflux.analysis.correlation import correlate_reactions

        columns = ["s1", "s2", "s3"]
        flux_a = pd.DataFrame(
            [[1.0, 2.0, 3.0], [3.0, 2.0, 1.0]], index=["R1", "R2"], columns=columns
        )
        flux_b = pd.DataFrame(
            [[1.0, 2.0, 3.0], [1.0, 2.0, 3.0], [3.0, 2.0, 1.0]],
            index=["R1", "R1", "R2"],
            columns=columns,
        )

        # R2 falls in both cohorts; a repeated R1 must not shift it onto R1's row
        with pytest.raises(ValueError, match="duplicated reaction IDs"):
            correlate_reactions(flux_a, flux_b)
        with pytest.raises(ValueError, match="duplicated reaction IDs"):
            correlate_reactions(flux_a, flux_b, reactions=["R1", "R2"])

        frame = correlate_reactions(flux_a, flux_b.iloc[1:])
        assert frame.loc["R2", "rho"] == pytest.approx(1.0)

    def test_parallel_matches_sequential(self, random_fluxes):
        from crossflux.analysis.correlation import correlate_reactions

        flux_a, flux_b = random_fluxes
        sequential = correlate_reactions(flux_a, flux_b)
        parallel = correlate_reactions(flux_a, flux_b, n_processes=2)

        pd.testing.assert_frame_equal(sequential, parallel)


class TestProfilesAndPathways:
    """Test mean-profile and pathway-level correlations."""

    def test_mean_profiles(self, scenario_fluxes):
        from crossflux.analysis.correlation import correlate_mean_profiles, mean_profile

        flux_a, flux_b = scenario_fluxes
        profile = mean_profile(flux_a, flux_b, names=("human", "mouse"))

        assert list(profile.index) == ["R1", "R2", "R3"]
        assert profile.loc["R2", "mouse"] == pytest.approx(7.0)

        result = correlate_mean_profiles(flux_a, flux_b)
        assert result.identifier == "all_reactions"
        assert result.n_obs == 3

    def test_compare_pathway(self, random_fluxes, random_metadata):
        from crossflux.analysis.correlation import compare_pathway

        flux_a, flux_b = random_fluxes
        comparison = compare_pathway(
            flux_a, flux_b, random_metadata, "Glycolysis", color="red"
        )

        assert comparison.color == "red"
        assert comparison.has_data
        assert all(r in flux_a.index and r in flux_b.index for r in comparison.reactions)
        assert all(
            random_metadata.loc[r, "subsystem"] == "Glycolysis"
            for r in comparison.reactions
        )
        assert list(comparison.profile.columns) == ["human", "mouse"]
        assert comparison.result.n_obs == len(comparison.reactions)

    def test_compare_pathway_without_reactions(self, scenario_fluxes, scenario_metadata):
        from crossflux.analysis.correlation import compare_pathway

        flux_a, flux_b = scenario_fluxes
        comparison = compare_pathway(flux_a, flux_b, scenario_metadata, "Urea cycle")

        assert not comparison.has_data
        assert np.isnan(comparison.result.rho)
        assert comparison.result.n_obs == 0

    def test_correlate_pathways(self, scenario_fluxes, scenario_metadata):
        from crossflux.analysis.correlation import correlate_pathways

        flux_a, flux_b = scenario_fluxes
        frame = correlate_pathways(flux_a, flux_b, scenario_metadata)

        assert list(frame.index) == ["Glycolysis", "TCA cycle", "Urea cycle"]
        assert frame.loc["Glycolysis", "rho"] == pytest.approx(1.0)
        # |flux| of R3 is the same ranking reversed in the mouse cohort
        assert frame.loc["TCA cycle", "rho"] == pytest.approx(-1.0)
        assert np.isnan(frame.loc["Urea cycle", "rho"])

    def test_correlate_pathway_activity(self, random_fluxes, random_metadata):
        from crossflux.analysis.correlation import correlate_pathway_activity
        from crossflux.analysis.pathways import compare_pathway_activity

        flux_a, flux_b = random_fluxes
        activity = compare_pathway_activity(flux_a, flux_b, random_metadata)
        result = correlate_pathway_activity(activity)

        assert result.identifier == "pathway_activity"
        assert result.n_obs == 4
        assert np.isnan(result.rho) or -1 <= result.rho <= 1
