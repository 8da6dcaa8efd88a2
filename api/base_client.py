import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any

import httpx

from models.unified_response import (
    ChatMessage,
    LLMRequest,
    NormalizedError,
    TokenUsage,
    UnifiedResponse,
)

_FINISH_REASONS = {
    "stop": "stop",
    "end_turn": "stop",
    "stop_sequence": "stop",
    "complete": "stop",
    "length": "length",
    "max_tokens": "length",
    "tool_calls": "tool",
    "tool_use": "tool",
    "function_call": "tool",
    "content_filter": "content_filter",
    "safety": "content_filter",
    "recitation": "content_filter",
    "refusal": "content_filter",
}


class BaseAIClient(ABC):
    """
    Abstract base class for LLM provider clients.

    Subclasses translate an LLMRequest into one vendor's wire format and back
    into a UnifiedResponse. ``get_completion`` never raises: every failure is
    returned as a UnifiedResponse carrying a NormalizedError.
    """

    provider_name = "unknown"
    default_model = ""

    def __init__(
        self,
        api_key: str,
        model_name: str | None = None,
        *,
        base_url: str | None = None,
        timeout_s: float = 30.0,
        provider_name: str | None = None,
        **kwargs,
    ):
        """
        Initialize the AI client.

        Args:
            api_key: API key for the AI service
            model_name: Default model for requests that do not name one
            base_url: Override of the vendor API root
            timeout_s: Per-request timeout in seconds
            provider_name: Registry key to report in responses (defaults to the class value)
            **kwargs: Additional client-specific parameters
        """
        if not api_key:
            raise ValueError(f"API key is required for {provider_name or self.provider_name}")
        self.api_key = api_key
        self.model_name = model_name or self.default_model
        self.base_url = base_url
        self.timeout_s = timeout_s
        if provider_name:
            self.provider_name = provider_name

    @abstractmethod
    async def get_completion(self, request: LLMRequest) -> UnifiedResponse:
        """
        Send one completion request.

        Returns:
            UnifiedResponse: Normalized response object (error set on failure)
        """

    async def aclose(self) -> None:
        """Release any transport the client owns."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _generate_request_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _measure_latency(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)

    @staticmethod
    def _split_system_messages(messages: list[ChatMessage]) -> tuple[str | None, list[ChatMessage]]:
        """Separate system prompts (joined) from the conversational turns."""
        system_parts = [m.content for m in messages if m.role == "system"]
        turns = [m for m in messages if m.role != "system"]
        return ("\n\n".join(system_parts) if system_parts else None), turns

    @staticmethod
    def _normalize_finish_reason(reason: Any, provider: str) -> str | None:
        if reason is None:
            return None
        # Enum values (google-genai) expose the vendor name
        raw = getattr(reason, "name", reason)
        key = str(raw).lower()
        if key in {"finish_reason_unspecified", ""}:
            return None
        return _FINISH_REASONS.get(key, str(raw))

    @staticmethod
    def _extract_status_code(error: Exception) -> int | None:
        status = getattr(error, "status_code", None)
        if isinstance(status, int):
            return status
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            return status
        code = getattr(error, "code", None)
        if isinstance(code, int):
            return code
        return None

    def _normalize_error(self, error: Exception, provider: str) -> NormalizedError:
        status = self._extract_status_code(error)
        message = str(error) or type(error).__name__
        details: dict[str, Any] = {"status_code": status, "error_type": type(error).__name__}

        if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)) or (
            "timeout" in type(error).__name__.lower()
        ):
            return NormalizedError("timeout", message, provider, retryable=True, details=details)
        if status in {401, 403}:
            return NormalizedError("auth", message, provider, retryable=False, details=details)
        if status == 429:
            return NormalizedError("rate_limit", message, provider, retryable=True, details=details)
        if status is not None and 400 <= status < 500:
            return NormalizedError("bad_request", message, provider, retryable=False, details=details)
        if status is not None and status >= 500:
            return NormalizedError(
                "provider_error", message, provider, retryable=True, details=details
            )
        if isinstance(error, httpx.TransportError) or "connection" in type(error).__name__.lower():
            return NormalizedError(
                "provider_error", message, provider, retryable=True, details=details
            )
        return NormalizedError("unknown", message, provider, retryable=False, details=details)

    def _create_error_response(
        self, *, request_id: str, error: NormalizedError, latency_ms: int, model: str
    ) -> UnifiedResponse:
        return UnifiedResponse(
            request_id=request_id,
            text="",
            provider=self.provider_name,
            model=model,
            latency_ms=latency_ms,
            token_usage=TokenUsage(),
            finish_reason="error",
            error=error,
            metadata={},
        )
