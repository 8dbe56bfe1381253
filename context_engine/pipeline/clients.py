"""External clients shared by the pipeline phases."""

from dataclasses import dataclass

from openai import AsyncOpenAI
from supabase import Client

from context_engine.core.config import Settings, get_settings
from context_engine.core.exa_service import ExaService
from context_engine.core.llm import get_openai_client
from context_engine.core.rate_limiter import MinIntervalRateLimiter
from context_engine.core.wikipedia_service import WikipediaService
from context_engine.db.supabase_client import get_supabase


@dataclass
class PipelineClients:
    """
    Everything a phase needs to talk to the outside world.

    Phases take this as an argument instead of reaching for module-level
    singletons, so tests can pass fakes for any of the clients.
    """

    supabase: Client
    openai: AsyncOpenAI
    wikipedia: WikipediaService
    settings: Settings
    exa: ExaService | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PipelineClients":
        """Build the production clients from configuration."""
        settings = settings or get_settings()
        exa = (
            ExaService(settings.EXA_API_KEY, timeout=settings.EXA_TIMEOUT)
            if settings.EXA_API_KEY
            else None
        )
        return cls(
            supabase=get_supabase(),
            openai=get_openai_client(),
            wikipedia=WikipediaService(
                rate_limiter=MinIntervalRateLimiter(settings.WIKIPEDIA_MIN_INTERVAL),
                timeout=settings.WIKIPEDIA_TIMEOUT,
            ),
            settings=settings,
            exa=exa,
        )
