"""
Uniform LLM access across providers.

The gateway owns three pieces of state: the provider registry, one
rate-limit window per provider, and a cache of client instances keyed by
provider and credential prefix. ``request`` is the only entry point the
rest of the pipeline uses.
"""

import asyncio
import dataclasses
from collections.abc import Callable
from typing import Any

from api.anthropic_client import AnthropicClient
from api.base_client import BaseAIClient
from api.google_gemini_client import GeminiClient
from api.grok_client import GrokClient
from api.openai_client import OpenAIClient
from models.errors import (
    APIError,
    ConfigurationError,
    ProviderTimeout,
    ProviderUnavailable,
    RateLimited,
)
from models.unified_response import LLMRequest, UnifiedResponse
from orchestrator.credentials import CredentialService
from orchestrator.fallback_manager import FallbackManager, FallbackPolicy, NextAction
from orchestrator.provider_registry import ProviderConfig, ProviderRegistry
from orchestrator.rate_limiter import RateLimitTracker
from utils.logger import get_logger

logger = get_logger(__name__)

CLIENT_CLASSES: dict[str, type[BaseAIClient]] = {
    "anthropic": AnthropicClient,
    "openai": OpenAIClient,
    "openai_compatible": OpenAIClient,
    "gemini": GeminiClient,
    "xai": GrokClient,
}

ClientFactory = Callable[[ProviderConfig, str, float], BaseAIClient]


def default_client_factory(config: ProviderConfig, api_key: str, timeout_s: float) -> BaseAIClient:
    client_cls = CLIENT_CLASSES.get(config.api_format)
    if client_cls is None:
        raise ConfigurationError(
            f"Unsupported provider format: {config.api_format}",
            field=f"providers.{config.key}.api_format",
        )
    return client_cls(
        api_key,
        config.default_model,
        base_url=config.base_url,
        timeout_s=timeout_s,
        provider_name=config.key,
    )


class ProviderGateway:
    def __init__(
        self,
        registry: ProviderRegistry,
        credentials: CredentialService,
        *,
        rate_limiter: RateLimitTracker | None = None,
        fallback_manager: FallbackManager | None = None,
        fallback_policy: FallbackPolicy | None = None,
        client_factory: ClientFactory = default_client_factory,
        active_provider: str = "anthropic",
        active_model: str | None = None,
        timeout_s: float = 30.0,
    ):
        self._registry = registry
        self._credentials = credentials
        self._rate_limiter = rate_limiter or RateLimitTracker()
        self._fallback_manager = fallback_manager or FallbackManager()
        self._fallback_policy = fallback_policy or FallbackPolicy()
        self._client_factory = client_factory
        self._timeout_s = timeout_s
        self._client_cache: dict[str, BaseAIClient] = {}

        self._active_provider = active_provider
        self._active_model = active_model
        if registry.get(active_provider) is None:
            fallback = registry.preference_order()[0] if registry.keys() else active_provider
            logger.warning(
                f"Active provider {active_provider} is not registered, using {fallback}",
                extra={"extra_fields": {"requested": active_provider, "using": fallback}},
            )
            self._active_provider = fallback
            self._active_model = None

    # ------------------------------------------------------------------
    # Provider selection
    # ------------------------------------------------------------------

    @property
    def active_provider(self) -> str:
        return self._active_provider

    @property
    def active_model(self) -> str | None:
        config = self._registry.get(self._active_provider)
        if self._active_model:
            return self._active_model
        return config.default_model if config else None

    def set_active_provider(self, name: str, model: str | None = None) -> None:
        config = self._registry.require(name)
        if not self._credentials.has_credentials(name):
            raise ConfigurationError(
                f"No API key configured for {name}", field=f"api_key.{name}", reason="missing"
            )
        if model is not None and model not in config.models:
            raise ConfigurationError(
                f"Model {model} is not offered by {name}", field="model", reason="unknown_model"
            )
        self._active_provider = name
        self._active_model = model
        logger.info(
            "Active provider changed",
            extra={"extra_fields": {"provider": name, "model": self.active_model}},
        )

    def add_provider(self, config: ProviderConfig) -> None:
        self._registry.add(config)
        logger.info("Registered provider", extra={"extra_fields": {"provider": config.key}})

    def remove_provider(self, name: str) -> None:
        self._registry.remove(name)
        if self._active_provider == name:
            self._active_provider = self._registry.preference_order()[0]
            self._active_model = None

    def is_rate_limited(self, name: str) -> bool:
        config = self._registry.get(name)
        if config is None:
            return False
        return self._rate_limiter.is_limited(name, config.rate_limit)

    def available_providers(self) -> list[str]:
        """Registered providers that have credentials, in fallback preference order."""
        return [
            key for key in self._registry.preference_order() if self._credentials.has_credentials(key)
        ]

    def _is_fallback_candidate(self, name: str) -> bool:
        return self._credentials.has_credentials(name) and not self.is_rate_limited(name)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _get_client(self, config: ProviderConfig, api_key: str) -> BaseAIClient:
        cache_key = f"{config.key}:{api_key[:10]}"
        client = self._client_cache.get(cache_key)
        if client is None:
            client = self._client_factory(config, api_key, self._timeout_s)
            self._client_cache[cache_key] = client
            logger.debug("Created provider client", extra={"extra_fields": {"provider": config.key}})
        return client

    def _resolve_model(self, config: ProviderConfig, requested: str | None, primary: bool) -> str:
        if requested and (primary or requested in config.models):
            return requested
        if config.key == self._active_provider and self._active_model:
            return self._active_model
        return config.default_model

    async def _dispatch(self, name: str, request: LLMRequest, *, primary: bool) -> UnifiedResponse:
        config = self._registry.get(name)
        if config is None:
            raise ProviderUnavailable(f"Provider {name} not found", provider=name)

        api_key = self._credentials.get_api_key(name)
        if not api_key:
            raise ProviderUnavailable(f"No API key configured for {name}", provider=name)

        if self._rate_limiter.is_limited(name, config.rate_limit):
            raise RateLimited(f"Rate limit exceeded for {name}", provider=name, status_code=None)

        client = self._get_client(config, api_key)
        call = request.with_model(self._resolve_model(config, request.model, primary))

        try:
            response = await asyncio.wait_for(client.get_completion(call), timeout=self._timeout_s)
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(
                f"{name} did not respond within {self._timeout_s}s", provider=name
            ) from e

        if response.is_error:
            self._raise_for_error(name, response)

        self._rate_limiter.record(name, response.token_usage.total_tokens)
        return response

    @staticmethod
    def _raise_for_error(name: str, response: UnifiedResponse) -> None:
        error = response.error
        status = error.status_code
        message = f"{name} API error: {error.message}"
        if error.code == "rate_limit":
            raise RateLimited(message, provider=name, status_code=status or 429)
        if error.code == "timeout":
            raise ProviderTimeout(message, provider=name, status_code=status)
        raise ProviderUnavailable(message, provider=name, status_code=status)

    async def request(self, request: LLMRequest, provider_name: str | None = None) -> UnifiedResponse:
        """
        Send a completion request.

        Args:
            request: Provider-neutral request
            provider_name: Force a provider; disables fallback

        Returns:
            UnifiedResponse: Successful response (``attempt`` is 2 after a fallback)

        Raises:
            RateLimited, ProviderUnavailable, ProviderTimeout
        """
        primary = provider_name or self._active_provider
        try:
            return await self._dispatch(primary, request, primary=True)
        except APIError as e:
            decision = self._fallback_manager.decide(
                failed_provider=primary,
                error=e,
                attempt_index=0,
                explicit_provider=provider_name is not None,
                preference_order=self._registry.preference_order(),
                is_available=self._is_fallback_candidate,
                policy=self._fallback_policy,
            )
            if decision.action != NextAction.FALLBACK:
                raise

            logger.warning(
                f"Primary provider {primary} failed, trying fallback {decision.next_provider}",
                extra={
                    "extra_fields": {
                        "failed_provider": primary,
                        "fallback_provider": decision.next_provider,
                        "reason": decision.reason,
                        "error": str(e),
                    }
                },
            )
            response = await self._dispatch(decision.next_provider, request, primary=False)
            return dataclasses.replace(
                response, attempt=2, fallback_from=f"{primary}:{request.model or self.active_model}"
            )

    async def validate(self, name: str) -> bool:
        """Send a tiny real request to ``name``; never raises."""
        probe = LLMRequest.from_prompt("Hello", max_tokens=10)
        try:
            await self._dispatch(name, probe, primary=True)
        except Exception as e:
            logger.warning(
                f"Provider validation failed for {name}",
                extra={"extra_fields": {"provider": name, "error_type": type(e).__name__, "error": str(e)}},
            )
            return False
        return True

    def usage_statistics(self) -> dict[str, dict[str, Any]]:
        stats: dict[str, dict[str, Any]] = {}
        for config in self._registry.all():
            window = self._rate_limiter.snapshot(config.key)
            stats[config.key] = {
                "requests_used": window.requests_used if window else 0,
                "tokens_used": window.tokens_used if window else 0,
                "window_reset_at": window.window_reset_at if window else None,
                "requests_per_minute": config.rate_limit.requests_per_minute,
                "tokens_per_minute": config.rate_limit.tokens_per_minute,
                "rate_limited": self.is_rate_limited(config.key),
            }
        return stats

    async def clear_cache(self) -> None:
        clients = list(self._client_cache.values())
        self._client_cache.clear()
        for client in clients:
            await client.aclose()
