import time

import httpx
import openai

from models.unified_response import LLMRequest, TokenUsage, UnifiedResponse
from utils.logger import get_logger

from .base_client import BaseAIClient

logger = get_logger(__name__)


class OpenAIClient(BaseAIClient):
    """
    OpenAI chat-completions client returning UnifiedResponse.

    Also serves any OpenAI-compatible endpoint: pass ``base_url`` and
    ``provider_name`` for custom providers registered at runtime.
    """

    provider_name = "openai"
    default_model = "gpt-4o-mini"
    default_base_url = "https://api.openai.com/v1"

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
        """
        Initialize the client.

        Args:
            api_key: Bearer token for the endpoint
            model_name: Default model
            base_url: API root (defaults to the vendor's public endpoint)
            timeout_s: Per-request timeout in seconds
            http_client: Optional pre-built httpx client (used by tests)
        """
        super().__init__(api_key, model_name, base_url=base_url, timeout_s=timeout_s, **kwargs)
        self.base_url = base_url or self.default_base_url
        # Retries and fallback are the gateway's job, not the SDK's
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=timeout_s,
            max_retries=0,
            http_client=http_client,
        )

    async def get_completion(self, request: LLMRequest) -> UnifiedResponse:
        """
        Get a chat completion.

        IMPORTANT: Never raises exceptions - returns UnifiedResponse with error instead
        """
        request_id = self._generate_request_id()
        start_time = time.time()
        model = request.model or self.model_name

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=[m.to_dict() for m in request.messages],
                temperature=request.temperature,
                max_tokens=request.max_tokens,
                top_p=request.top_p,
            )

            latency_ms = self._measure_latency(start_time)

            text = (response.choices[0].message.content or "") if response.choices else ""

            usage = getattr(response, "usage", None)
            token_usage = TokenUsage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            )

            finish_reason = self._normalize_finish_reason(
                response.choices[0].finish_reason if response.choices else None,
                provider=self.provider_name,
            )

            logger.info(
                f"{self.provider_name} completion successful",
                extra={
                    "extra_fields": {
                        "request_id": request_id,
                        "provider": self.provider_name,
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
                model=response.model or model,
                latency_ms=latency_ms,
                token_usage=token_usage,
                finish_reason=finish_reason,
                error=None,
                metadata={"response_id": response.id},
            )

        except Exception as e:
            latency_ms = self._measure_latency(start_time)
            error = self._normalize_error(e, provider=self.provider_name)

            logger.error(
                f"{self.provider_name} completion failed: {error.code}",
                extra={
                    "extra_fields": {
                        "request_id": request_id,
                        "provider": self.provider_name,
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
        await self.client.close()
