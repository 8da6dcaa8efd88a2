"""Wire a SearchOrchestrator from environment configuration."""

import httpx

from config.config import Config
from db.engine import create_db_engine
from db.memory import InMemoryCacheStore, InMemoryCredentialStore, InMemoryHistoryStore
from db.repository import SqlCacheStore, SqlCredentialStore, SqlHistoryStore
from models.search import SearchOptions
from orchestrator.analysis_engine import AnalysisEngine
from orchestrator.core import SearchOrchestrator
from orchestrator.credentials import CredentialService
from orchestrator.provider_gateway import ProviderGateway
from orchestrator.provider_registry import ProviderRegistry
from tools.web.cache import ResultCache
from tools.web.content_fetcher import ContentFetcher
from tools.web.discovery import (
    BraveDiscovery,
    DiscoveryBackend,
    DuckDuckGoDiscovery,
    TavilyDiscovery,
)
from utils.logger import get_logger
from utils.retry import RetryPolicy

logger = get_logger(__name__)


def create_stores(config: Config):
    """
    Build the cache, history and credential stores.

    Returns:
        tuple: (cache_store, history_store, credential_store); SQL-backed
        when DATABASE_URL is set, in-memory otherwise
    """
    if config.DATABASE_URL:
        engine = create_db_engine(config.DATABASE_URL)
        return SqlCacheStore(engine), SqlHistoryStore(engine), SqlCredentialStore(engine)
    return InMemoryCacheStore(), InMemoryHistoryStore(), InMemoryCredentialStore()


def create_discovery_backends(config: Config, http_client: httpx.AsyncClient) -> list[DiscoveryBackend]:
    backends: list[DiscoveryBackend] = []
    if config.TAVILY_API_KEY:
        backends.append(TavilyDiscovery(config.TAVILY_API_KEY))
    if config.BRAVE_API_KEY:
        backends.append(BraveDiscovery(config.BRAVE_API_KEY, http_client))
    if config.ENABLE_DUCKDUCKGO:
        backends.append(DuckDuckGoDiscovery(http_client))

    if not backends:
        logger.warning("No discovery backend configured; every search will fail discovery")
    else:
        logger.info(
            "Discovery backends configured",
            extra={"extra_fields": {"backends": [b.name for b in backends]}},
        )
    return backends


def create_provider_gateway(config: Config, credentials: CredentialService) -> ProviderGateway:
    registry = ProviderRegistry.from_yaml(config.PROVIDER_REGISTRY_PATH)
    return ProviderGateway(
        registry,
        credentials,
        active_provider=config.ACTIVE_PROVIDER,
        active_model=config.ACTIVE_MODEL,
        timeout_s=config.LLM_TIMEOUT_S,
    )


def create_search_orchestrator(config: Config | None = None) -> SearchOrchestrator:
    """
    Create a fully wired SearchOrchestrator.

    Environment variables (see Config):
        TAVILY_API_KEY / BRAVE_API_KEY / ENABLE_DUCKDUCKGO: discovery backends
        ANTHROPIC_API_KEY, OPENAI_API_KEY, GOOGLE_GEMINI_API_KEY, XAI_API_KEY: LLM providers
        DATABASE_URL: persistent stores (in-memory when unset)

    The analysis engine is attached only when at least one provider has
    credentials.
    """
    config = config or Config()
    config.validate()

    cache_store, history_store, credential_store = create_stores(config)
    credentials = CredentialService(credential_store, config)

    http_client = httpx.AsyncClient(follow_redirects=True)
    fetcher = ContentFetcher(
        create_discovery_backends(config, http_client),
        http_client=http_client,
        owns_client=True,
    )

    analysis_engine = None
    gateway = create_provider_gateway(config, credentials)
    if gateway.available_providers():
        analysis_engine = AnalysisEngine(
            gateway, cache_ttl_seconds=config.ANALYSIS_CACHE_TTL_SECONDS
        )
    else:
        logger.info("No LLM provider credentials found; AI analysis disabled")

    return SearchOrchestrator(
        fetcher,
        result_cache=ResultCache(cache_store),
        history=history_store,
        analysis_engine=analysis_engine,
        retry_policy=RetryPolicy(max_attempts=config.DISCOVERY_RETRY_ATTEMPTS),
        default_options=SearchOptions(
            cache_ttl_seconds=config.RESULT_CACHE_TTL_SECONDS,
            fetch_timeout_s=config.FETCH_TIMEOUT_S,
            max_concurrent_scrapes=config.MAX_CONCURRENT_SCRAPES,
        ),
        max_content_length=config.MAX_CONTENT_LENGTH,
    )
