"""
Startup checks and application context
Validates configuration and builds the single set of shared components
"""

import logging
from typing import Callable, Optional

import httpx

from app.core.config import Settings, get_settings
from app.agents.cache import CacheStore, ImageKeyPolicy
from app.agents.invoker import RemoteInvoker
from app.agents.orchestrator import StudyOrchestrator
from app.agents.registry import AgentRegistry
from app.agents.utils.llm_client import GeminiClient
from app.services.audio_playback import AudioPlaybackManager

logger = logging.getLogger(__name__)


class AssistantContext:
    """
    Everything one process shares: cache store, registry, invoker,
    orchestrator and the audio playback manager.
    Owned by the application root and passed to whoever needs it.
    """

    def __init__(
        self,
        settings: Settings,
        cache: CacheStore,
        registry: AgentRegistry,
        client: GeminiClient,
        invoker: RemoteInvoker,
        orchestrator: StudyOrchestrator,
        audio: AudioPlaybackManager
    ):
        self.settings = settings
        self.cache = cache
        self.registry = registry
        self.client = client
        self.invoker = invoker
        self.orchestrator = orchestrator
        self.audio = audio

    async def close(self):
        await self.audio.close()


def build_context(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    audio_context_factory: Optional[Callable[[], object]] = None
) -> AssistantContext:
    """Wire all components together from settings"""
    settings = settings or get_settings()

    cache = CacheStore(
        image_key_policy=ImageKeyPolicy(settings.image_key_policy),
        max_items=settings.cache_max_items,
        ttl_seconds=settings.cache_ttl_seconds
    )
    registry = AgentRegistry()
    client = GeminiClient(
        api_key=settings.gemini_api_key,
        base_url=settings.gemini_base_url,
        timeout=settings.timeout_seconds,
        transport=transport
    )
    invoker = RemoteInvoker(
        client,
        registry,
        cache,
        text_model=settings.text_model,
        tts_model=settings.tts_model,
        tts_voice=settings.tts_voice,
        max_attempts=settings.max_attempts,
        retry_delay=settings.retry_delay_seconds
    )
    orchestrator = StudyOrchestrator(registry, invoker, cache, enable_enrichments=settings.enable_enrichments)
    audio = AudioPlaybackManager(context_factory=audio_context_factory)

    return AssistantContext(settings, cache, registry, client, invoker, orchestrator, audio)


def check_environment_variables(settings: Settings) -> bool:
    """
    Validate configuration.
    Returns True if all checks pass, False otherwise.
    """
    warnings = []

    if not settings.gemini_api_key or settings.gemini_api_key == "your-gemini-api-key":
        warnings.append("GEMINI_API_KEY not configured - every agent call will fail")

    if settings.cache_max_items is None and settings.cache_ttl_seconds is None:
        warnings.append("Cache is unbounded - set CACHE_MAX_ITEMS or CACHE_TTL_SECONDS for long-running deployments")

    if not settings.allowed_origins or settings.allowed_origins == ["*"]:
        warnings.append("ALLOWED_ORIGINS not configured - using wildcard (*) which is insecure for production")

    if warnings:
        logger.warning("=" * 70)
        logger.warning("Environment Configuration Warnings:")
        logger.warning("=" * 70)
        for warning in warnings:
            logger.warning(f"  ⚠️  {warning}")
        logger.warning("=" * 70)
        return False

    logger.info("✅ Environment configuration OK")
    return True


def run_startup_checks(settings: Optional[Settings] = None) -> bool:
    """Run all startup checks. Never aborts startup; problems are logged."""
    settings = settings or get_settings()
    logger.info("Running startup checks...")
    return check_environment_variables(settings)
