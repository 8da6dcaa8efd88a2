import os
from dotenv import load_dotenv
from pathlib import Path

from utils.logger import get_logger

logger = get_logger(__name__)

# Environment variable holding each built-in provider's API key
PROVIDER_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "gemini": "GOOGLE_GEMINI_API_KEY",
    "xai": "XAI_API_KEY",
}

DEFAULT_REGISTRY_PATH = Path(__file__).parent / "providers.yaml"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


class Config:
    """Configuration management for the application."""

    def __init__(self, load_env_file: bool = True):
        """Initialize configuration with environment variables."""
        # Load environment variables from .env file if it exists
        env_path = Path(__file__).parent.parent / '.env'
        if load_env_file and env_path.exists():
            load_dotenv(dotenv_path=env_path)

        # Provider credentials
        self.ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY')
        self.OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
        self.GOOGLE_GEMINI_API_KEY = os.getenv('GOOGLE_GEMINI_API_KEY')
        self.XAI_API_KEY = os.getenv('XAI_API_KEY') or os.getenv('GROK_API_KEY')

        # Provider selection
        self.ACTIVE_PROVIDER = os.getenv('ACTIVE_PROVIDER', 'anthropic').strip().lower()
        self.ACTIVE_MODEL = os.getenv('ACTIVE_MODEL') or None
        self.PROVIDER_REGISTRY_PATH = os.getenv('PROVIDER_REGISTRY_PATH') or str(DEFAULT_REGISTRY_PATH)

        # Discovery backends
        self.TAVILY_API_KEY = os.getenv('TAVILY_API_KEY')
        self.BRAVE_API_KEY = os.getenv('BRAVE_API_KEY')
        self.ENABLE_DUCKDUCKGO = os.getenv('ENABLE_DUCKDUCKGO', 'true').lower() == 'true'

        # Pipeline tuning
        self.FETCH_TIMEOUT_S = _env_float('FETCH_TIMEOUT_S', 30.0)
        self.LLM_TIMEOUT_S = _env_float('LLM_TIMEOUT_S', 30.0)
        self.MAX_CONCURRENT_SCRAPES = _env_int('MAX_CONCURRENT_SCRAPES', 5)
        self.MAX_CONTENT_LENGTH = _env_int('MAX_CONTENT_LENGTH', 50000)
        self.RESULT_CACHE_TTL_SECONDS = _env_int('RESULT_CACHE_TTL_SECONDS', 300)
        self.ANALYSIS_CACHE_TTL_SECONDS = _env_int('ANALYSIS_CACHE_TTL_SECONDS', 3600)
        self.DISCOVERY_RETRY_ATTEMPTS = _env_int('DISCOVERY_RETRY_ATTEMPTS', 3)

        # Persistence: unset means in-memory stores
        self.DATABASE_URL = os.getenv('DATABASE_URL') or None

    def api_key_for(self, provider: str) -> str | None:
        """Return the environment credential for a built-in provider, if any."""
        env_name = PROVIDER_KEY_ENV.get(provider)
        if env_name is None:
            return os.getenv(f"{provider.upper()}_API_KEY") or None
        return getattr(self, env_name, None) or None

    def validate(self) -> list[str]:
        """
        Validate the loaded configuration.

        Returns:
            list[str]: Problems found (empty if the configuration is usable)
        """
        problems: list[str] = []

        if not any(self.api_key_for(name) for name in PROVIDER_KEY_ENV):
            problems.append(
                "No LLM provider API key is set; analysis features will be unavailable"
            )
        elif not self.api_key_for(self.ACTIVE_PROVIDER):
            problems.append(f"ACTIVE_PROVIDER '{self.ACTIVE_PROVIDER}' has no API key configured")

        if self.MAX_CONCURRENT_SCRAPES < 1:
            problems.append("MAX_CONCURRENT_SCRAPES must be at least 1")
        if self.FETCH_TIMEOUT_S <= 0:
            problems.append("FETCH_TIMEOUT_S must be positive")
        if self.LLM_TIMEOUT_S <= 0:
            problems.append("LLM_TIMEOUT_S must be positive")
        if not Path(self.PROVIDER_REGISTRY_PATH).exists():
            problems.append(f"Provider registry not found at {self.PROVIDER_REGISTRY_PATH}")

        for problem in problems:
            logger.warning(f"Configuration problem: {problem}")
        return problems
