import pytest

from config.config import Config
from db.memory import InMemoryCredentialStore
from models.errors import ConfigurationError
from orchestrator.credentials import CredentialService

PROVIDER_ENV = [
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "GOOGLE_GEMINI_API_KEY",
    "XAI_API_KEY",
    "GROK_API_KEY",
    "ACTIVE_PROVIDER",
    "FETCH_TIMEOUT_S",
    "MAX_CONCURRENT_SCRAPES",
    "DATABASE_URL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfig:
    def test_defaults(self, clean_env):
        config = Config(load_env_file=False)

        assert config.ACTIVE_PROVIDER == "anthropic"
        assert config.FETCH_TIMEOUT_S == 30.0
        assert config.MAX_CONCURRENT_SCRAPES == 5
        assert config.RESULT_CACHE_TTL_SECONDS == 300
        assert config.DATABASE_URL is None

    def test_env_overrides_and_bad_numbers(self, clean_env):
        clean_env.setenv("ACTIVE_PROVIDER", " OpenAI ")
        clean_env.setenv("FETCH_TIMEOUT_S", "12.5")
        clean_env.setenv("MAX_CONCURRENT_SCRAPES", "lots")

        config = Config(load_env_file=False)

        assert config.ACTIVE_PROVIDER == "openai"
        assert config.FETCH_TIMEOUT_S == 12.5
        assert config.MAX_CONCURRENT_SCRAPES == 5

    def test_grok_key_alias(self, clean_env):
        clean_env.setenv("GROK_API_KEY", "xai-legacy")
        assert Config(load_env_file=False).api_key_for("xai") == "xai-legacy"

    def test_custom_provider_key_from_env(self, clean_env):
        clean_env.setenv("LOCAL_API_KEY", "local-secret")
        assert Config(load_env_file=False).api_key_for("local") == "local-secret"

    def test_validate_reports_missing_keys(self, clean_env):
        problems = Config(load_env_file=False).validate()
        assert any("No LLM provider API key" in p for p in problems)

    def test_validate_reports_active_provider_without_key(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        problems = Config(load_env_file=False).validate()
        assert problems == ["ACTIVE_PROVIDER 'anthropic' has no API key configured"]

    def test_validate_clean_config(self, clean_env):
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        assert Config(load_env_file=False).validate() == []


class TestCredentialService:
    def test_stored_key_takes_precedence_over_env(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-from-env")
        service = CredentialService(InMemoryCredentialStore(), Config(load_env_file=False))

        assert service.get_api_key("openai") == "sk-from-env"
        service.set_api_key("openai", "  sk-stored  ")
        assert service.get_api_key("openai") == "sk-stored"
        assert service.stored_providers() == ["openai"]

        service.remove_api_key("openai")
        assert service.get_api_key("openai") == "sk-from-env"

    def test_invalid_key_format_is_rejected(self, clean_env):
        service = CredentialService(InMemoryCredentialStore())

        with pytest.raises(ConfigurationError) as exc_info:
            service.set_api_key("anthropic", "sk-wrong-prefix")
        assert exc_info.value.field == "api_key.anthropic"
        assert not service.has_credentials("anthropic")
