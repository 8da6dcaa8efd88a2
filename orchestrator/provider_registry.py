from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from models.errors import ConfigurationError
from utils.validation import is_valid_url

API_FORMATS = {"anthropic", "openai", "gemini", "xai", "openai_compatible"}
DEFAULT_FALLBACK_ORDER = ["anthropic", "openai", "gemini", "xai"]


@dataclass(frozen=True)
class RateLimit:
    requests_per_minute: int
    tokens_per_minute: int


@dataclass(frozen=True)
class ProviderConfig:
    key: str
    name: str
    base_url: str
    models: list[str]
    rate_limit: RateLimit
    api_format: str = "openai_compatible"

    def __post_init__(self):
        errors = validate_provider_config(self)
        if errors:
            raise ConfigurationError(
                f"Invalid provider configuration for {self.key or '?'}: " + "; ".join(errors),
                field=f"providers.{self.key or '?'}",
                reason="; ".join(errors),
            )

    @property
    def default_model(self) -> str:
        return self.models[0]


def validate_provider_config(config: ProviderConfig) -> list[str]:
    errors: list[str] = []
    if not config.key or not config.key.strip():
        errors.append("Provider key is required")
    if not config.name or not config.name.strip():
        errors.append("Provider name is required")
    if not is_valid_url(config.base_url):
        errors.append("Valid base URL is required")
    if not config.models:
        errors.append("At least one model must be specified")
    if config.rate_limit.requests_per_minute < 1:
        errors.append("Requests per minute must be at least 1")
    if config.rate_limit.tokens_per_minute < 1:
        errors.append("Tokens per minute must be at least 1")
    if config.api_format not in API_FORMATS:
        errors.append(f"Unsupported api_format: {config.api_format}")
    return errors


@dataclass
class ProviderRegistry:
    _providers: dict[str, ProviderConfig]
    _fallback_order: list[str] = field(default_factory=lambda: list(DEFAULT_FALLBACK_ORDER))
    _builtin: frozenset[str] = frozenset()

    @classmethod
    def from_yaml(cls, path: str | None = None) -> "ProviderRegistry":
        registry_path = (
            Path(path) if path else Path(__file__).resolve().parent.parent / "config" / "providers.yaml"
        )
        if not registry_path.exists():
            raise ConfigurationError(
                f"Provider registry not found at {registry_path}",
                field="PROVIDER_REGISTRY_PATH",
            )

        data = yaml.safe_load(registry_path.read_text(encoding="utf-8"))
        if not data or "providers" not in data:
            raise ConfigurationError(
                "Invalid provider registry: missing providers", field="providers"
            )
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderRegistry":
        providers: dict[str, ProviderConfig] = {}
        for key, pdata in (data.get("providers") or {}).items():
            pdata = pdata or {}
            models = pdata.get("models", [])
            if not isinstance(models, list):
                raise ConfigurationError(
                    f"Invalid models list for provider {key}", field=f"providers.{key}.models"
                )
            limits = pdata.get("rate_limit") or {}
            providers[key] = ProviderConfig(
                key=key,
                name=pdata.get("name", key),
                base_url=pdata.get("base_url", ""),
                models=[str(m) for m in models],
                rate_limit=RateLimit(
                    requests_per_minute=int(limits.get("requests_per_minute", 0)),
                    tokens_per_minute=int(limits.get("tokens_per_minute", 0)),
                ),
                api_format=pdata.get("api_format", key if key in API_FORMATS else "openai_compatible"),
            )

        fallback_order = list(data.get("fallback_order") or DEFAULT_FALLBACK_ORDER)
        return cls(
            _providers=providers,
            _fallback_order=fallback_order,
            _builtin=frozenset(providers),
        )

    def get(self, key: str) -> ProviderConfig | None:
        return self._providers.get(key)

    def require(self, key: str) -> ProviderConfig:
        config = self._providers.get(key)
        if config is None:
            raise ConfigurationError(f"Provider {key} not found", field="provider", reason="unknown")
        return config

    def keys(self) -> list[str]:
        return list(self._providers)

    def all(self) -> list[ProviderConfig]:
        return list(self._providers.values())

    def is_builtin(self, key: str) -> bool:
        return key in self._builtin

    def add(self, config: ProviderConfig) -> None:
        self._providers[config.key] = config

    def remove(self, key: str) -> None:
        if self.is_builtin(key):
            raise ConfigurationError(
                f"Cannot remove built-in provider {key}", field="provider", reason="builtin"
            )
        self._providers.pop(key, None)

    def preference_order(self) -> list[str]:
        """Fixed fallback preference first, then any other providers in registry order."""
        ordered = [key for key in self._fallback_order if key in self._providers]
        ordered.extend(key for key in self._providers if key not in ordered)
        return ordered
