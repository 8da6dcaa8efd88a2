from .openai_client import OpenAIClient


class GrokClient(OpenAIClient):
    """
    xAI Grok client.

    The Grok API is OpenAI-compatible, so this only pins the endpoint,
    default model and provider name.
    """

    provider_name = "xai"
    default_model = "grok-beta"
    default_base_url = "https://api.x.ai/v1"
