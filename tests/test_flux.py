"""Tests for the COBRApy flux provider, model helpers and flux cache."""

import json

import numpy as np
import pandas as pd
import pytest


class TestReactionActivityScores:
    """Test GPR evaluation into activity scores."""

    def test_gpr_evaluation(self, toy_model, toy_expression):
        from crossflux.core.flux import CobraFluxProvider

        provider = CobraFluxProvider(toy_model)
        mras = provider.compute_mras(toy_expression)

        assert set(mras.index) == {"UPT", "CONV", "ALT"}
        assert list(mras.columns) == ["S1", "S2"]
        # S1: UPT=4, CONV=min(3,5)=3, ALT=1+2=3, scaled by 4
        assert mras.loc["UPT", "S1"] == pytest.approx(1.0)
        assert mras.loc["CONV", "S1"] == pytest.approx(0.75)
        assert mras.loc["ALT", "S1"] == pytest.approx(0.75)
        # S2: UPT=2, CONV=min(1,6)=1, ALT=0, scaled by 2
        assert mras.loc["CONV", "S2"] == pytest.approx(0.5)
        assert mras.loc["ALT", "S2"] == pytest.approx(0.0)

    def test_or_function(self, toy_model, toy_expression):
        from crossflux.core.flux import CobraFluxProvider, FluxConfig

        provider = CobraFluxProvider(toy_model, config=FluxConfig(or_function="max"))
        mras = provider.compute_mras(toy_expression)
        assert mras.loc["ALT", "S1"] == pytest.approx(0.5)

    def test_smoothing_blends_neighbours(self, toy_model, toy_expression):
        from crossflux.core.flux import CobraFluxProvider, FluxConfig

        raw = CobraFluxProvider(toy_model).compute_mras(toy_expression)
        smoothed = CobraFluxProvider(
            toy_model, config=FluxConfig(lambda_penalty=0.5, n_neighbors=1)
        ).compute_mras(toy_expression)

        expected = 0.5 * raw["S1"] + 0.5 * raw["S2"]
        np.testing.assert_allclose(smoothed["S1"], expected)

    def test_empty_expression(self, toy_model):
        from crossflux.core.flux import CobraFluxProvider, FluxProviderError

        with pytest.raises(FluxProviderError):
            CobraFluxProvider(toy_model).compute_mras(pd.DataFrame())

    def test_nested_rule(self):
        from crossflux.core.flux import _evaluate_gpr

        expression = pd.DataFrame(
            {"s": [1.0, 2.0, 3.0, 4.0]}, index=["A", "B", "C", "D"]
        )
        value = _evaluate_gpr("(A OR B) AND (C OR D)", expression, np.min, np.sum)
        assert value[0] == pytest.approx(3.0)

        value = _evaluate_gpr("((A AND D))", expression, np.min, np.sum)
        assert value[0] == pytest.approx(1.0)

        value = _evaluate_gpr("MISSING", expression, np.min, np.sum)
        assert value[0] == 0.0


class TestFluxEstimation:
    """Test per-sample flux estimation."""

    def test_run(self, toy_model, toy_expression):
        from crossflux.core.flux import run_flux_provider

        result = run_flux_provider(toy_model, toy_expression, medium={"EX_a_e": 5})

        assert list(result.fluxes.columns) == ["S1", "S2"]
        assert set(result.fluxes.index) == {r.id for r in toy_model.reactions}
        np.testing.assert_allclose(result.fluxes.loc["OUT"], [5.0, 5.0], atol=1e-6)
        np.testing.assert_allclose(result.fluxes.loc["UPT"], [5.0, 5.0], atol=1e-6)

    def test_deterministic(self, toy_model, toy_expression):
        from crossflux.core.flux import CobraFluxProvider

        provider = CobraFluxProvider(toy_model)
        first = provider.run(toy_expression)
        second = provider.run(toy_expression)
        pd.testing.assert_frame_equal(first.fluxes, second.fluxes)

    def test_original_model_untouched(self, toy_model, toy_expression):
        from crossflux.core.flux import CobraFluxProvider

        bounds = {r.id: r.bounds for r in toy_model.reactions}
        CobraFluxProvider(toy_model, medium={"EX_a_e": 1}).run(toy_expression)
        assert {r.id: r.bounds for r in toy_model.reactions} == bounds

    def test_medium_without_exchanges(self, toy_model):
        from crossflux.core.flux import CobraFluxProvider, FluxProviderError

        with pytest.raises(FluxProviderError, match="no exchange"):
            CobraFluxProvider(toy_model, medium={"EX_glc": 10})

    def test_unknown_objective(self, toy_model):
        from crossflux.core.flux import CobraFluxProvider, FluxConfig, FluxProviderError

        with pytest.raises(FluxProviderError):
            CobraFluxProvider(toy_model, config=FluxConfig(objective="BIOMASS"))


class TestModelHelpers:
    """Test metadata and medium helpers."""

    def test_reaction_metadata(self, toy_model):
        from crossflux.models import reaction_metadata

        metadata = reaction_metadata(toy_model)

        assert list(metadata.columns) == ["equation", "subsystem"]
        assert metadata.loc["CONV", "subsystem"] == "Glycolysis"
        assert pd.isna(metadata.loc["OUT", "subsystem"])
        assert "=>" in metadata.loc["UPT", "equation"] or "-->" in metadata.loc["UPT", "equation"]

    def test_load_reaction_metadata(self, temp_dir):
        from crossflux.models import load_reaction_metadata

        path = temp_dir / "reactions.tsv"
        pd.DataFrame(
            {"Equation": ["a => b", "b => c"], "SUBSYSTEM": ["Glycolysis", ""]},
            index=pd.Index(["R1", "R2"], name="ID"),
        ).to_csv(path, sep="\t")

        metadata = load_reaction_metadata(path)
        assert list(metadata.columns) == ["equation", "subsystem"]
        assert metadata.loc["R1", "subsystem"] == "Glycolysis"
        assert pd.isna(metadata.loc["R2", "subsystem"])

    def test_load_reaction_metadata_requires_subsystem(self, temp_dir):
        from crossflux.models import load_reaction_metadata

        path = temp_dir / "reactions.csv"
        pd.DataFrame({"equation": ["a => b"]}, index=["R1"]).to_csv(path)
        with pytest.raises(ValueError, match="subsystem"):
            load_reaction_metadata(path)

    def test_load_medium(self, temp_dir):
        from crossflux.models import DEFAULT_MEDIUM_UPTAKE, load_medium

        json_path = temp_dir / "medium.json"
        json_path.write_text(json.dumps({"EX_glc": 5, "EX_o2": 20}))
        assert load_medium(json_path) == {"EX_glc": 5.0, "EX_o2": 20.0}

        csv_path = temp_dir / "medium.csv"
        csv_path.write_text("reaction\nEX_glc\nEX_gln\n")
        assert load_medium(csv_path) == {
            "EX_glc": DEFAULT_MEDIUM_UPTAKE,
            "EX_gln": DEFAULT_MEDIUM_UPTAKE,
        }

    def test_apply_media(self, toy_model):
        from crossflux.core.fba import apply_media

        constrained = apply_media(toy_model, {"EX_a_e": 2.5})
        assert constrained.reactions.EX_a_e.lower_bound == -2.5
        assert toy_model.reactions.EX_a_e.lower_bound == -10


class TestFluxCache:
    """Test caching of provider results."""

    def test_round_trip(self, toy_model, toy_expression, temp_dir):
        from crossflux.core.cache import FluxCache
        from crossflux.core.flux import CobraFluxProvider, FluxConfig

        result = CobraFluxProvider(
            toy_model, config=FluxConfig(or_function="max")
        ).run(toy_expression)
        cache = FluxCache.from_model(toy_model, cache_dir=temp_dir)

        assert cache.load_result("human") is None
        cache.save_result("human", result)

        assert cache.has_dataset("human")
        loaded = cache.load_result("human")
        pd.testing.assert_frame_equal(loaded.fluxes, result.fluxes, check_names=False)
        assert loaded.config.or_function == "max"

        info = cache.get_cache_info()
        assert info["cached_datasets"] == ["human"]
        assert info["total_size_bytes"] > 0

        cache.clear("human")
        assert not cache.has_dataset("human")

    def test_stale_result_is_a_miss(self, toy_model, toy_expression, temp_dir):
        from crossflux.core.cache import FluxCache, input_fingerprint
        from crossflux.core.flux import CobraFluxProvider, FluxConfig

        config = FluxConfig()
        result = CobraFluxProvider(toy_model, config=config).run(toy_expression)
        cache = FluxCache.from_model(toy_model, cache_dir=temp_dir)
        cache.save_result("human", result, fingerprint=input_fingerprint(toy_expression, config))

        assert cache.load_result("human", input_fingerprint(toy_expression, config)) is not None
        assert cache.load_result("human", input_fingerprint(toy_expression * 2, config)) is None
        assert (
            cache.load_result(
                "human", input_fingerprint(toy_expression, FluxConfig(lambda_penalty=0.5))
            )
            is None
        )

    def test_fingerprint_sees_labels(self, toy_expression):
        from crossflux.core.cache import input_fingerprint

        renamed = toy_expression.rename(columns={"S1": "T1"})
        reordered = toy_expression.iloc[::-1]

        assert input_fingerprint(toy_expression) == input_fingerprint(toy_expression.copy())
        assert input_fingerprint(toy_expression) != input_fingerprint(renamed)
        assert input_fingerprint(toy_expression) != input_fingerprint(reordered)

    def test_medium_changes_model_id(self, toy_model, temp_dir):
        from crossflux.core.cache import FluxCache

        plain = FluxCache.from_model(toy_model, cache_dir=temp_dir)
        with_medium = FluxCache.from_model(
            toy_model, cache_dir=temp_dir, medium={"EX_a_e": 1.0}
        )
        assert plain.model_id != with_medium.model_id
