"""
Model Registry - Model ids, providers and capability flags.

Maps each selectable model id to the provider client that serves it and the
capability flags the orchestrator consults once per turn:

- supports_reasoning_budget: honors a thinking-token budget toggle
- supports_line_smoothing: raw output is revealed line by line
- extracts_reasoning: reasoning arrives inline as <think> tags
- starts_with_reasoning: output begins inside a <think> block

The registry is built once at startup from RuntimeConfig and injected into
the orchestrator; provider clients are shared per provider, not per model.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from errors import ErrorCode, ValidationError
from .llm_client import LLMClient

logger = logging.getLogger(__name__)

# Model ID constants
MODEL_GPT4O = "gpt-4o"
MODEL_GPT4_1 = "gpt-4.1"
MODEL_GPT_O4 = "o4-mini"
MODEL_QWQ = "qwen-qwq-32b"
MODEL_DEEPSEEK_R1 = "DeepSeek-R1"
MODEL_DEEPSEEK_V3 = "DeepSeek-V3-0324"
MODEL_GEMINI_2_5 = "gemini-2.5-flash-preview-04-17"


@dataclass
class ProviderConfig:
    """Connection settings for one OpenAI-compatible provider."""

    name: str
    base_url: str
    api_key: str
    reports_usage: bool = True  # accepts stream_options.include_usage


@dataclass
class ModelSpec:
    """A selectable model and how to call it."""

    model_id: str
    display_name: str
    group: str
    provider: str
    upstream_model: str = ""
    supports_reasoning_budget: bool = False
    supports_line_smoothing: bool = False
    extracts_reasoning: bool = False
    starts_with_reasoning: bool = False
    reasoning_capable: bool = False
    default_settings: Dict[str, Any] = field(default_factory=dict)
    client: Optional[LLMClient] = field(default=None, repr=False)

    def __post_init__(self):
        if not self.upstream_model:
            self.upstream_model = self.model_id

    def build_options(self, reasoning_enabled: bool, reasoning_budget_tokens: int, reports_usage: bool = True) -> Dict[str, Any]:
        """Provider options for one turn.

        The reasoning toggle only has an effect on models that support a
        thinking budget; every other model ignores it.
        """
        options: Dict[str, Any] = dict(self.default_settings)
        if reports_usage:
            options["stream_options"] = {"include_usage": True}
        if self.supports_reasoning_budget:
            budget = reasoning_budget_tokens if reasoning_enabled else 0
            # Gemini OpenAI-compatible endpoint: nested extra_body.google.thinking_config
            options["extra_body"] = {
                "extra_body": {
                    "google": {
                        "thinking_config": {
                            "thinking_budget": budget,
                            "include_thoughts": reasoning_enabled,
                        }
                    }
                }
            }
        return options


# Default catalog
MODEL_CATALOG: List[ModelSpec] = [
    ModelSpec(MODEL_GPT4O, "GPT-4o", "Copilot", "copilot", default_settings={"temperature": 0.8}),
    ModelSpec(MODEL_GPT4_1, "GPT-4.1", "Copilot", "copilot"),
    ModelSpec(MODEL_GPT_O4, "o4-mini", "Copilot", "copilot", reasoning_capable=True),
    ModelSpec(
        MODEL_QWQ,
        "Qwen-QWQ-32B",
        "Groq",
        "groq",
        supports_line_smoothing=True,
        extracts_reasoning=True,
        starts_with_reasoning=True,
        reasoning_capable=True,
    ),
    ModelSpec(MODEL_DEEPSEEK_R1, "DeepSeek R1", "DeepSeek", "github", extracts_reasoning=True, reasoning_capable=True),
    ModelSpec(MODEL_DEEPSEEK_V3, "DeepSeek V3", "DeepSeek", "github"),
    ModelSpec(
        MODEL_GEMINI_2_5,
        "Gemini 2.5 Flash",
        "Google",
        "google",
        supports_reasoning_budget=True,
        reasoning_capable=True,
    ),
]

GROUP_DESCRIPTIONS = {
    "DeepSeek": "DeepSeek models",
    "Copilot": "GPT models",
    "Groq": "Groq-optimized models",
    "Google": "Google Gemini models",
}


def provider_configs_from(config) -> Dict[str, ProviderConfig]:
    """Provider connection settings from RuntimeConfig."""
    return {
        "copilot": ProviderConfig("copilot", config.copilot_api_url, config.copilot_api_key),
        "groq": ProviderConfig("groq", config.groq_api_url, config.groq_api_key, reports_usage=False),
        "google": ProviderConfig("google", config.google_api_url, config.google_api_key),
        "github": ProviderConfig("github", config.github_api_url, config.github_api_key),
    }


class ModelRegistry:
    """Lookup from model id to ModelSpec with a bound provider client."""

    def __init__(
        self,
        specs: List[ModelSpec],
        providers: Dict[str, ProviderConfig],
        default_model: str,
        reasoning_budget_tokens: int = 1024,
    ):
        self._specs: Dict[str, ModelSpec] = {s.model_id: s for s in specs}
        self._providers = providers
        self.reasoning_budget_tokens = reasoning_budget_tokens
        if default_model not in self._specs:
            logger.warning(f"Default model {default_model!r} not in catalog, using {specs[0].model_id}")
            default_model = specs[0].model_id
        self.default_model = default_model

    @classmethod
    def from_config(cls, config, clients: Optional[Dict[str, LLMClient]] = None) -> "ModelRegistry":
        """Build the registry and one LLMClient per provider.

        Args:
            config: RuntimeConfig
            clients: Optional prebuilt clients by provider name (tests)
        """
        providers = provider_configs_from(config)
        clients = dict(clients or {})
        specs = []
        for template in MODEL_CATALOG:
            provider = providers[template.provider]
            if template.provider not in clients:
                clients[template.provider] = LLMClient(
                    base_url=provider.base_url,
                    api_key=provider.api_key,
                    timeout=config.llm_timeout,
                    provider=provider.name,
                )
                if not provider.api_key:
                    logger.warning(f"No API key configured for provider '{provider.name}'")
            spec = ModelSpec(**{**template.__dict__, "client": clients[template.provider]})
            specs.append(spec)
        logger.info(f"Model registry: {len(specs)} models across {len(clients)} providers")
        return cls(specs, providers, config.default_model, config.reasoning_budget_tokens)

    def get(self, model_id: str) -> ModelSpec:
        """Resolve a model id, raising ValidationError for unknown ids."""
        spec = self._specs.get(model_id)
        if spec is None:
            raise ValidationError(
                "Unknown model",
                details=f"Model '{model_id}' is not available",
                code=ErrorCode.VALIDATION_UNKNOWN_MODEL,
                parameter="selectedModelId",
                expected=", ".join(self._specs),
                received=model_id,
            )
        return spec

    def options_for(self, spec: ModelSpec, reasoning_enabled: bool) -> Dict[str, Any]:
        provider = self._providers.get(spec.provider)
        reports_usage = provider.reports_usage if provider else False
        return spec.build_options(reasoning_enabled, self.reasoning_budget_tokens, reports_usage)

    def catalog(self) -> Dict[str, Any]:
        """Catalog payload for the model picker."""
        groups: Dict[str, List[str]] = {}
        for spec in self._specs.values():
            groups.setdefault(spec.group, []).append(spec.model_id)
        return {
            "models": {s.model_id: s.display_name for s in self._specs.values()},
            "groups": [
                {"name": name, "description": GROUP_DESCRIPTIONS.get(name, ""), "models": ids}
                for name, ids in groups.items()
            ],
            "reasoning_models": [s.model_id for s in self._specs.values() if s.reasoning_capable],
            "default_model": self.default_model,
        }
