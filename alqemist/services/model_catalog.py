"""
Static registry of the hosted models the assistant can route to.
Costs are in cents per 1000 tokens. Tiers are ordered free < starter < professional < enterprise.
"""
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

TIER_ORDER = ("free", "starter", "professional", "enterprise")
PROVIDERS = ("openai", "anthropic", "google", "openrouter")


def tier_rank(tier: str) -> int:
    """Position of a tier in TIER_ORDER; unknown tiers rank as free."""
    try:
        return TIER_ORDER.index(tier)
    except ValueError:
        return 0


@dataclass(frozen=True)
class TokenCost:
    input: float
    output: float

    @property
    def total(self) -> float:
        return self.input + self.output


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    provider: str
    category: str  # chat | vision | code | reasoning | embedding
    context_length: int
    cost_per_1k_tokens: TokenCost
    features: tuple[str, ...]
    description: str
    max_output_tokens: int
    tier: str
    deprecated: bool = False

    def has_features(self, features: Iterable[str]) -> bool:
        return all(f in self.features for f in features)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "category": self.category,
            "context_length": self.context_length,
            "cost_per_1k_tokens": {"input": self.cost_per_1k_tokens.input, "output": self.cost_per_1k_tokens.output},
            "features": list(self.features),
            "description": self.description,
            "max_output_tokens": self.max_output_tokens,
            "deprecated": self.deprecated,
            "tier": self.tier,
        }


_CHAT_FEATURES = ("vision", "json", "function-calling", "streaming")

AVAILABLE_MODELS: tuple[ModelInfo, ...] = (
    # OpenAI
    ModelInfo(
        id="gpt-4o",
        name="GPT-4o",
        provider="openai",
        category="chat",
        context_length=128000,
        cost_per_1k_tokens=TokenCost(input=2.5, output=10),
        features=_CHAT_FEATURES,
        description="Latest GPT-4 model with vision and multimodal capabilities",
        max_output_tokens=4096,
        tier="professional",
    ),
    ModelInfo(
        id="gpt-4o-mini",
        name="GPT-4o Mini",
        provider="openai",
        category="chat",
        context_length=128000,
        cost_per_1k_tokens=TokenCost(input=0.15, output=0.6),
        features=_CHAT_FEATURES,
        description="Fast and cost-efficient GPT-4 variant",
        max_output_tokens=16384,
        tier="starter",
    ),
    ModelInfo(
        id="gpt-3.5-turbo",
        name="GPT-3.5 Turbo",
        provider="openai",
        category="chat",
        context_length=16385,
        cost_per_1k_tokens=TokenCost(input=0.5, output=1.5),
        features=("json", "function-calling", "streaming"),
        description="Fast and affordable conversational model",
        max_output_tokens=4096,
        tier="starter",
    ),
    ModelInfo(
        id="o1-preview",
        name="GPT-o1 Preview",
        provider="openai",
        category="reasoning",
        context_length=128000,
        cost_per_1k_tokens=TokenCost(input=15, output=60),
        features=("reasoning", "streaming"),
        description="Advanced reasoning model for complex problems",
        max_output_tokens=32768,
        tier="enterprise",
    ),
    # Anthropic
    ModelInfo(
        id="claude-3-5-sonnet-20241022",
        name="Claude 3.5 Sonnet",
        provider="anthropic",
        category="chat",
        context_length=200000,
        cost_per_1k_tokens=TokenCost(input=3, output=15),
        features=_CHAT_FEATURES,
        description="Anthropic's most capable model for complex tasks",
        max_output_tokens=8192,
        tier="professional",
    ),
    ModelInfo(
        id="claude-3-haiku-20240307",
        name="Claude 3 Haiku",
        provider="anthropic",
        category="chat",
        context_length=200000,
        cost_per_1k_tokens=TokenCost(input=0.25, output=1.25),
        features=("json", "streaming"),
        description="Fast and lightweight Claude variant",
        max_output_tokens=4096,
        tier="starter",
    ),
    # Google
    ModelInfo(
        id="gemini-1.5-pro",
        name="Gemini 1.5 Pro",
        provider="google",
        category="chat",
        context_length=2000000,
        cost_per_1k_tokens=TokenCost(input=1.25, output=5),
        features=_CHAT_FEATURES,
        description="Google's most powerful multimodal model",
        max_output_tokens=8192,
        tier="professional",
    ),
    ModelInfo(
        id="gemini-1.5-flash",
        name="Gemini 1.5 Flash",
        provider="google",
        category="chat",
        context_length=1000000,
        cost_per_1k_tokens=TokenCost(input=0.075, output=0.3),
        features=_CHAT_FEATURES,
        description="Fast Gemini variant for real-time applications",
        max_output_tokens=8192,
        tier="starter",
    ),
    # OpenRouter
    ModelInfo(
        id="anthropic/claude-3-opus:beta",
        name="Claude 3 Opus (OpenRouter)",
        provider="openrouter",
        category="reasoning",
        context_length=200000,
        cost_per_1k_tokens=TokenCost(input=15, output=75),
        features=("vision", "json", "reasoning", "streaming"),
        description="Claude's most powerful model via OpenRouter",
        max_output_tokens=4096,
        tier="enterprise",
    ),
    ModelInfo(
        id="meta-llama/llama-3.2-90b-vision-instruct",
        name="Llama 3.2 90B Vision",
        provider="openrouter",
        category="vision",
        context_length=131072,
        cost_per_1k_tokens=TokenCost(input=0.9, output=0.9),
        features=("vision", "json", "streaming"),
        description="Meta's open-source multimodal model",
        max_output_tokens=8192,
        tier="starter",
    ),
)


def cost_for_tokens(model: ModelInfo, input_tokens: int, output_tokens: int) -> int:
    """ceil(in/1000 * input_cost + out/1000 * output_cost) in cents, computed in exact decimal."""
    cost = model.cost_per_1k_tokens
    raw = (
        Decimal(input_tokens) / 1000 * Decimal(str(cost.input))
        + Decimal(output_tokens) / 1000 * Decimal(str(cost.output))
    )
    return math.ceil(raw)


@dataclass(frozen=True)
class ModelCatalog:
    """Immutable, ordered list of models. Order matters: 'first' rules in the optimizer use it."""

    models: tuple[ModelInfo, ...] = field(default=AVAILABLE_MODELS)

    def __post_init__(self):
        object.__setattr__(self, "models", tuple(self.models))
        seen = set()
        for m in self.models:
            if m.id in seen:
                raise ValueError(f"Duplicate model id in catalog: {m.id}")
            seen.add(m.id)

    def __iter__(self):
        return iter(self.models)

    def __len__(self) -> int:
        return len(self.models)

    def get(self, model_id: str) -> ModelInfo | None:
        for m in self.models:
            if m.id == model_id:
                return m
        return None

    def models_for_tier(self, tier: str) -> list[ModelInfo]:
        rank = tier_rank(tier)
        return [m for m in self.models if tier_rank(m.tier) <= rank and not m.deprecated]

    def models_by_category(self, category: str) -> list[ModelInfo]:
        return [m for m in self.models if m.category == category and not m.deprecated]

    def models_with_features(self, features: Iterable[str]) -> list[ModelInfo]:
        features = list(features)
        return [m for m in self.models if m.has_features(features) and not m.deprecated]

    def for_providers(self, providers: Iterable[str]) -> "ModelCatalog":
        allowed = set(providers)
        return ModelCatalog(tuple(m for m in self.models if m.provider in allowed))

    def estimate_conversation_cost(self, model_id: str, input_tokens: int, output_tokens: int) -> int:
        """Cost in cents, rounded up. Unknown model -> 0."""
        model = self.get(model_id)
        if model is None:
            return 0
        return cost_for_tokens(model, input_tokens, output_tokens)

    def recommend_model(self, use_case: str = "general", tier: str = "starter") -> ModelInfo | None:
        """Pick a model for a coarse use case: general, vision, coding, reasoning, cost-effective."""
        available = self.models_for_tier(tier)
        if not available:
            return None

        def first(pred):
            return next((m for m in available if pred(m)), None)

        if use_case == "vision":
            return first(lambda m: "vision" in m.features) or available[0]
        if use_case == "coding":
            return first(lambda m: m.category == "code") or first(lambda m: "GPT-4" in m.name) or available[0]
        if use_case == "reasoning":
            return (
                first(lambda m: m.category == "reasoning")
                or first(lambda m: "reasoning" in m.features)
                or first(lambda m: m.provider == "anthropic")
                or available[0]
            )
        if use_case == "cost-effective":
            return min(available, key=lambda m: m.cost_per_1k_tokens.total)
        return first(lambda m: m.id == "gpt-4o-mini") or first(lambda m: m.provider == "openai") or available[0]


DEFAULT_CATALOG = ModelCatalog()


def estimate_conversation_cost(model_id: str, input_tokens: int, output_tokens: int) -> int:
    return DEFAULT_CATALOG.estimate_conversation_cost(model_id, input_tokens, output_tokens)
