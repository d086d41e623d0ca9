import pytest

from alqemist.services.model_catalog import (
    AVAILABLE_MODELS,
    DEFAULT_CATALOG,
    TIER_ORDER,
    ModelCatalog,
    ModelInfo,
    TokenCost,
    estimate_conversation_cost,
)


def _model(model_id: str, **overrides) -> ModelInfo:
    values = dict(
        id=model_id,
        name=model_id,
        provider="openai",
        category="chat",
        context_length=8000,
        cost_per_1k_tokens=TokenCost(input=1, output=1),
        features=("streaming",),
        description="",
        max_output_tokens=1000,
        tier="starter",
    )
    values.update(overrides)
    return ModelInfo(**values)


def test_catalog_ids_are_unique():
    ids = [m.id for m in AVAILABLE_MODELS]
    assert len(ids) == len(set(ids)) == 10


def test_duplicate_ids_rejected():
    with pytest.raises(ValueError):
        ModelCatalog((_model("a"), _model("a")))


@pytest.mark.parametrize("lower,higher", [(a, b) for i, a in enumerate(TIER_ORDER) for b in TIER_ORDER[i:]])
def test_tier_monotonicity(lower, higher):
    low_ids = {m.id for m in DEFAULT_CATALOG.models_for_tier(lower)}
    high_ids = {m.id for m in DEFAULT_CATALOG.models_for_tier(higher)}
    assert low_ids <= high_ids


def test_models_for_tier_excludes_deprecated():
    catalog = ModelCatalog((_model("old", deprecated=True), _model("new")))
    assert [m.id for m in catalog.models_for_tier("enterprise")] == ["new"]


def test_starter_tier_models():
    ids = {m.id for m in DEFAULT_CATALOG.models_for_tier("starter")}
    assert ids == {
        "gpt-4o-mini",
        "gpt-3.5-turbo",
        "claude-3-haiku-20240307",
        "gemini-1.5-flash",
        "meta-llama/llama-3.2-90b-vision-instruct",
    }


def test_cost_rounding():
    # 1000/1000 * 0.15 + 500/1000 * 0.6 = 0.45 -> 1 cent
    assert estimate_conversation_cost("gpt-4o-mini", 1000, 500) == 1


def test_cost_estimate_is_deterministic():
    first = DEFAULT_CATALOG.estimate_conversation_cost("gpt-4o", 12345, 678)
    assert all(DEFAULT_CATALOG.estimate_conversation_cost("gpt-4o", 12345, 678) == first for _ in range(20))
    # 12.345 * 2.5 + 0.678 * 10 = 37.6425 -> 38
    assert first == 38


def test_cost_exact_integer_is_not_rounded_up():
    # 0.1 * 10 = 1.0 exactly; float arithmetic must not push it to 2
    catalog = ModelCatalog((_model("m", cost_per_1k_tokens=TokenCost(input=0.1, output=0)),))
    assert catalog.estimate_conversation_cost("m", 10_000, 0) == 1


def test_unknown_model_costs_nothing():
    assert estimate_conversation_cost("no-such-model", 1000, 1000) == 0


def test_for_providers_restricts_catalog():
    subset = DEFAULT_CATALOG.for_providers(["anthropic"])
    assert {m.provider for m in subset} == {"anthropic"}
    assert len(subset) == 2


def test_models_with_features_and_category():
    vision = DEFAULT_CATALOG.models_with_features(["vision"])
    assert all("vision" in m.features for m in vision)
    assert "gpt-3.5-turbo" not in {m.id for m in vision}
    assert [m.id for m in DEFAULT_CATALOG.models_by_category("vision")] == ["meta-llama/llama-3.2-90b-vision-instruct"]


def test_recommend_model_use_cases():
    assert DEFAULT_CATALOG.recommend_model("general", "starter").id == "gpt-4o-mini"
    assert DEFAULT_CATALOG.recommend_model("cost-effective", "starter").id == "gemini-1.5-flash"
    assert DEFAULT_CATALOG.recommend_model("reasoning", "enterprise").id == "o1-preview"
    assert "vision" in DEFAULT_CATALOG.recommend_model("vision", "starter").features
    assert ModelCatalog(()).recommend_model("general", "starter") is None
