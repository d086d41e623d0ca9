"""
Model selection: primary model + fallbacks for a chat request, failure handling, and
usage-based cost advice. Pure functions over a ModelCatalog; no I/O.
"""
import logging
import math
from dataclasses import dataclass, field

from alqemist.services.model_catalog import DEFAULT_CATALOG, TIER_ORDER, ModelCatalog, ModelInfo

logger = logging.getLogger(__name__)

STRATEGIES = ("cost", "speed", "quality", "balanced")
ERROR_KINDS = ("rate_limit", "context_limit", "unavailable", "auth_error", "unknown")

OUTPUT_TOKENS = {"short": 100, "medium": 500, "long": 1500}

# Monthly spend (cents) above which the next tier pays off
TIER_COST_THRESHOLDS = {"free": 500, "starter": 2000, "professional": 8000}

HARD_FEATURES = ("vision",)
MAX_FALLBACKS = 3


class NoCompatibleModelError(Exception):
    """No model in the user's tier satisfies the request's hard requirements."""

    def __init__(self, message: str, required_features: list[str] | None = None):
        super().__init__(message)
        self.required_features = required_features or []


@dataclass
class ModelRecommendation:
    primary: ModelInfo
    fallbacks: list[ModelInfo]
    estimated_cost: int
    reasoning: str

    def to_dict(self) -> dict:
        return {
            "primary": self.primary.to_dict(),
            "fallbacks": [m.to_dict() for m in self.fallbacks],
            "estimated_cost": self.estimated_cost,
            "reasoning": self.reasoning,
        }


@dataclass
class UsageOptimization:
    recommendations: list[str] = field(default_factory=list)
    potential_savings: int = 0
    suggested_tier_upgrade: str | None = None


def required_features_for(input_text: str, has_attachments: bool) -> list[str]:
    features = []
    if has_attachments:
        features.append("vision")
    lowered = input_text.lower()
    if "analyze" in lowered or "think" in lowered:
        features.append("reasoning")
    return features


def _cost(model: ModelInfo) -> float:
    return model.cost_per_1k_tokens.total


def _cheapest(models: list[ModelInfo]) -> ModelInfo:
    # min() keeps the first of equal-cost models
    return min(models, key=_cost)


def _fastest(models: list[ModelInfo]) -> ModelInfo:
    return (
        next((m for m in models if "mini" in m.name or "flash" in m.name), None)
        or next((m for m in models if m.provider == "openai"), None)
        or models[0]
    )


def _highest_quality(models: list[ModelInfo]) -> ModelInfo:
    return (
        next((m for m in models if m.category == "reasoning"), None)
        or next((m for m in models if "Opus" in m.name or "GPT-4o" in m.name), None)
        or next((m for m in models if m.tier == "enterprise"), None)
        or models[0]
    )


def _balanced(models: list[ModelInfo], input_length: int) -> ModelInfo:
    if input_length < 500:
        return _cheapest(models)
    if input_length > 5000:
        return _highest_quality(models)
    return (
        next(
            (m for m in models if "mini" not in m.name and "Opus" not in m.name and m.tier == "professional"),
            None,
        )
        or models[0]
    )


_REASONING_TEXT = {
    "cost": "Chosen for cost efficiency",
    "speed": "Chosen for speed",
    "quality": "Chosen for highest quality",
    "balanced": "Balanced choice between cost, speed and quality",
}


class ModelOptimizer:
    def __init__(
        self,
        catalog: ModelCatalog | None = None,
        tier: str = "starter",
        strategy: str = "balanced",
        fallback_enabled: bool = True,
    ):
        self.catalog = catalog if catalog is not None else DEFAULT_CATALOG
        self.tier = tier
        self.strategy = strategy if strategy in STRATEGIES else "balanced"
        self.fallback_enabled = fallback_enabled

    def _candidates(self, tier: str, required: list[str]) -> tuple[list[ModelInfo], list[str]]:
        """
        Models of the tier carrying every required feature. Soft features are dropped when
        nothing matches; an unmet hard feature (vision) or an empty tier raises.
        Returns (candidates, features actually applied).
        """
        available = self.catalog.models_for_tier(tier)
        if not available:
            raise NoCompatibleModelError(f"No models available for tier '{tier}'", required)

        compatible = [m for m in available if m.has_features(required)]
        if compatible:
            return compatible, required

        hard = [f for f in required if f in HARD_FEATURES]
        compatible = [m for m in available if m.has_features(hard)]
        if not compatible:
            raise NoCompatibleModelError(
                f"No model in tier '{tier}' supports: {', '.join(hard)}", hard
            )
        logger.info("Dropping soft features %s for tier %s: no model supports them", required, tier)
        return compatible, hard

    def recommend_for_input(
        self,
        input_text: str,
        has_attachments: bool = False,
        expected_output_length: str = "medium",
        tier: str | None = None,
        strategy: str | None = None,
    ) -> ModelRecommendation:
        tier = tier or self.tier
        strategy = strategy if strategy in STRATEGIES else self.strategy

        required = required_features_for(input_text, has_attachments)
        candidates, applied = self._candidates(tier, required)

        if strategy == "cost":
            primary = _cheapest(candidates)
        elif strategy == "speed":
            primary = _fastest(candidates)
        elif strategy == "quality":
            primary = _highest_quality(candidates)
        else:
            primary = _balanced(candidates, len(input_text))

        fallbacks = self.generate_fallbacks(primary, candidates)
        input_tokens = math.ceil(len(input_text) / 4)
        output_tokens = OUTPUT_TOKENS.get(expected_output_length, OUTPUT_TOKENS["medium"])
        estimated_cost = self.catalog.estimate_conversation_cost(primary.id, input_tokens, output_tokens)

        reasoning = _REASONING_TEXT[strategy]
        if applied:
            reasoning += f" (requires: {', '.join(applied)})"
        return ModelRecommendation(primary, fallbacks, estimated_cost, reasoning)

    def recommend_with_primary(self, primary: ModelInfo, input_text: str, has_attachments: bool = False,
                               expected_output_length: str = "medium", tier: str | None = None) -> ModelRecommendation:
        """
        Recommendation for an explicitly requested model; fallbacks are still generated.
        A requested model missing a hard feature (vision) is ignored and the model is picked automatically.
        """
        tier = tier or self.tier
        required = required_features_for(input_text, has_attachments)
        missing = [f for f in required if f in HARD_FEATURES and f not in primary.features]
        if missing:
            logger.info("Requested model %s lacks %s; selecting automatically", primary.id, ", ".join(missing))
            return self.recommend_for_input(input_text, has_attachments, expected_output_length, tier)
        try:
            candidates, _ = self._candidates(tier, required)
        except NoCompatibleModelError:
            candidates = []
        fallbacks = self.generate_fallbacks(primary, candidates)
        input_tokens = math.ceil(len(input_text) / 4)
        output_tokens = OUTPUT_TOKENS.get(expected_output_length, OUTPUT_TOKENS["medium"])
        return ModelRecommendation(
            primary,
            fallbacks,
            self.catalog.estimate_conversation_cost(primary.id, input_tokens, output_tokens),
            "Requested by user",
        )

    @staticmethod
    def generate_fallbacks(primary: ModelInfo, candidates: list[ModelInfo]) -> list[ModelInfo]:
        """Up to 3 candidates other than the primary: other providers first, then cheaper first."""
        others = [m for m in candidates if m.id != primary.id]
        others.sort(key=lambda m: (m.provider == primary.provider, _cost(m)))
        return others[:MAX_FALLBACKS]

    def handle_model_failure(
        self,
        failed_model_id: str,
        error_kind: str,
        recommendation: ModelRecommendation,
    ) -> ModelInfo | None:
        """Replacement for a failed model, or None when no fallback applies."""
        if not self.fallback_enabled:
            return None
        fallbacks = recommendation.fallbacks

        if error_kind == "rate_limit":
            failed = self.catalog.get(failed_model_id)
            failed_provider = failed.provider if failed else None
            return next((m for m in fallbacks if m.provider != failed_provider), None)
        if error_kind == "context_limit":
            return max(fallbacks, key=lambda m: m.context_length) if fallbacks else None
        if error_kind == "auth_error":
            return next((m for m in fallbacks if m.tier in ("free", "starter")), None)
        # unavailable / unknown
        return fallbacks[0] if fallbacks else None

    def optimize_for_usage(self, daily_usage: list[dict], monthly_budget: int) -> UsageOptimization:
        """
        daily_usage: [{"model_id", "calls", "cost"}] for one day. monthly_budget in cents.
        """
        result = UsageOptimization()
        if not daily_usage:
            return result

        total_cost = sum(u.get("cost", 0) for u in daily_usage)
        monthly_projection = total_cost * 30
        most_used = daily_usage[0]
        for u in daily_usage[1:]:
            if u.get("calls", 0) > most_used.get("calls", 0):
                most_used = u

        if monthly_projection > monthly_budget:
            result.recommendations.append(
                f"Projected monthly cost (${monthly_projection / 100:.2f}) exceeds budget (${monthly_budget / 100:.2f})"
            )
            used_model = self.catalog.get(most_used["model_id"])
            features = list(used_model.features) if used_model else []
            compatible = [m for m in self.catalog.models_for_tier(self.tier) if m.has_features(features)]
            if compatible:
                cheaper = _cheapest(compatible)
                if cheaper.id != most_used["model_id"]:
                    savings = (
                        self.catalog.estimate_conversation_cost(most_used["model_id"], 1000, 500)
                        - self.catalog.estimate_conversation_cost(cheaper.id, 1000, 500)
                    )
                    result.potential_savings = savings * most_used.get("calls", 0)
                    result.recommendations.append(
                        f"Consider {cheaper.name} for routine tasks "
                        f"(${result.potential_savings / 100:.2f} savings per month)"
                    )

        next_tier = _next_tier(self.tier)
        threshold = TIER_COST_THRESHOLDS.get(self.tier)
        if next_tier and threshold is not None and monthly_projection > threshold:
            result.recommendations.append(
                f"Consider upgrading to the {next_tier} tier for better models and lower per-token cost"
            )
            result.suggested_tier_upgrade = next_tier
        return result


def _next_tier(tier: str) -> str | None:
    if tier not in TIER_ORDER:
        return None
    idx = TIER_ORDER.index(tier)
    return TIER_ORDER[idx + 1] if idx + 1 < len(TIER_ORDER) else None
