from config.config import Config
from db.interfaces import CredentialStore
from models.errors import ConfigurationError
from utils.logger import get_logger
from utils.validation import is_valid_api_key

logger = get_logger(__name__)

KEY_PREFIX = "api_key_"


class CredentialService:
    """
    Resolves provider API keys.

    Keys saved through ``set_api_key`` live in the credential store and take
    precedence over the environment (``Config``).
    """

    def __init__(self, store: CredentialStore, config: Config | None = None):
        self._store = store
        self._config = config

    @staticmethod
    def _store_key(provider: str) -> str:
        return f"{KEY_PREFIX}{provider}"

    def get_api_key(self, provider: str) -> str | None:
        stored = self._store.get(self._store_key(provider))
        if stored:
            return stored
        if self._config is not None:
            return self._config.api_key_for(provider)
        return None

    def has_credentials(self, provider: str) -> bool:
        return bool(self.get_api_key(provider))

    def set_api_key(self, provider: str, api_key: str) -> None:
        if not is_valid_api_key(provider, api_key):
            raise ConfigurationError(
                f"API key for {provider} has an invalid format",
                field=f"api_key.{provider}",
                reason="invalid_format",
            )
        self._store.set(self._store_key(provider), api_key.strip())
        logger.info("Stored API key", extra={"extra_fields": {"provider": provider}})

    def remove_api_key(self, provider: str) -> None:
        self._store.remove(self._store_key(provider))
        logger.info("Removed API key", extra={"extra_fields": {"provider": provider}})

    def stored_providers(self) -> list[str]:
        return [k[len(KEY_PREFIX) :] for k in self._store.keys() if k.startswith(KEY_PREFIX)]
