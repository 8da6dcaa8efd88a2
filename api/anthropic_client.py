import time

import httpx

from models.unified_response import LLMRequest, TokenUsage, UnifiedResponse
from utils.logger import get_logger

from .base_client import BaseAIClient

logger = get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicClient(BaseAIClient):
    """
    Anthropic Messages API client returning UnifiedResponse.

    Talks to ``{base_url}/messages`` over httpx. System prompts are lifted out
    of the message list into the top-level ``system`` field as the API requires.
    """

    provider_name = "anthropic"
    default_model = "claude-3-5-sonnet-20241022"

    def __init__(
        self,
        api_key: str,
        model_name: str | None = None,
        *,
        base_url: str | None = None,
        timeout_s: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        **kwargs,
    ):
        super().__init__(api_key, model_name, base_url=base_url, timeout_s=timeout_s, **kwargs)
        self.base_url = (base_url or "https://api.anthropic.com/v1").rstrip("/")
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=timeout_s)

    def _build_payload(self, request: LLMRequest, model: str) -> dict:
        system, turns = self._split_system_messages(request.messages)
        payload = {
            "model": model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [m.to_dict() for m in turns],
        }
        if system:
            payload["system"] = system
        return payload

    async def get_completion(self, request: LLMRequest) -> UnifiedResponse:
        """
        Get a completion from the Anthropic API.

        IMPORTANT: Never raises exceptions - returns UnifiedResponse with error instead
        """
        request_id = self._generate_request_id()
        start_time = time.time()
        model = request.model or self.model_name

        try:
            response = await self.client.post(
                f"{self.base_url}/messages",
                json=self._build_payload(request, model),
                headers={
                    "Content-Type": "application/json",
                    "x-api-key": self.api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                },
                timeout=self.timeout_s,
            )
            response.raise_for_status()
            data = response.json()

            latency_ms = self._measure_latency(start_time)

            content = data.get("content") or []
            text = content[0].get("text", "") if content else ""

            usage = data.get("usage") or {}
            token_usage = TokenUsage(
                prompt_tokens=usage.get("input_tokens", 0),
                completion_tokens=usage.get("output_tokens", 0),
            )

            finish_reason = self._normalize_finish_reason(
                data.get("stop_reason"), provider=self.provider_name
            )

            logger.info(
                "Anthropic completion successful",
                extra={
                    "extra_fields": {
                        "request_id": request_id,
                        "model": model,
                        "latency_ms": latency_ms,
                        "tokens": token_usage.total_tokens,
                    }
                },
            )

            return UnifiedResponse(
                request_id=request_id,
                text=text,
                provider=self.provider_name,
                model=data.get("model", model),
                latency_ms=latency_ms,
                token_usage=token_usage,
                finish_reason=finish_reason,
                error=None,
                metadata={"response_id": data.get("id")},
            )

        except Exception as e:
            latency_ms = self._measure_latency(start_time)
            error = self._normalize_error(e, provider=self.provider_name)

            logger.error(
                f"Anthropic completion failed: {error.code}",
                extra={
                    "extra_fields": {
                        "request_id": request_id,
                        "model": model,
                        "error_code": error.code,
                        "error_message": error.message,
                        "retryable": error.retryable,
                    }
                },
            )

            return self._create_error_response(
                request_id=request_id, error=error, latency_ms=latency_ms, model=model
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
