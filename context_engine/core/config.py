"""Configuration management for the context engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # OpenAI configuration (required)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")

    # Exa configuration (optional - enables deep research, search and answer)
    EXA_API_KEY: str | None = Field(default=None, description="Exa API key")
    EXA_TIMEOUT: int = Field(default=60, description="Exa request timeout in seconds")

    # Environment
    CONTEXT_ENGINE_ENV: str = Field(default="dev", description="Environment: dev, test, prod")

    # Models
    BLUEPRINT_MODEL: str = Field(default="gpt-4o-mini", description="Model for blueprint generation")
    RESEARCH_MODEL: str = Field(default="gpt-4o-mini", description="Model for stub research chunks")
    GLOSSARY_MODEL: str = Field(default="gpt-4o-mini", description="Model for glossary definitions")
    CHUNKS_MODEL: str = Field(default="gpt-4o-mini", description="Model for filler chunk generation")

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")
    EMBEDDING_BATCH_SIZE: int = Field(default=10, description="Concurrent embeddings per batch")
    EMBEDDING_MAX_CHARS: int = Field(
        default=32_000, description="Chunks longer than this are truncated before embedding"
    )

    # Blueprint generation
    BLUEPRINT_MAX_ATTEMPTS: int = Field(default=3, description="LLM attempts for a valid blueprint")

    # Research phase
    DEEP_RESEARCH_POLL_INTERVAL: float = Field(
        default=10.0, description="Seconds between deep research status checks"
    )
    DEEP_RESEARCH_MAX_AGE: float = Field(
        default=300.0, description="Seconds before a deep research task falls back to search"
    )
    DEEP_RESEARCH_MAX_PRIORITY: int = Field(
        default=2,
        description="Queries with a priority value at most this (1 = highest) use deep research",
    )
    WIKIPEDIA_MIN_INTERVAL: float = Field(
        default=0.3, description="Minimum seconds between Wikipedia requests"
    )
    WIKIPEDIA_TIMEOUT: int = Field(default=20, description="Wikipedia request timeout in seconds")

    # Glossary phase
    GLOSSARY_BATCH_SIZE: int = Field(default=5, description="Terms per glossary batch")
    GLOSSARY_AUTHORITATIVE_MAX_PRIORITY: int = Field(
        default=1,
        description="Terms with a priority value at most this (1 = highest) use Exa /answer",
    )
    GLOSSARY_MAX_RESEARCH_CHARS: int = Field(
        default=10_000, description="Max research context chars sent per glossary batch"
    )

    # Chunks phase
    DEFAULT_TARGET_CHUNKS: int = Field(default=500, description="Chunk target when blueprint omits one")

    # Worker
    POLL_INTERVAL: float = Field(default=3.0, description="Seconds between poller ticks")

    # Documents
    DOCUMENTS_BUCKET: str = Field(default="event-docs", description="Storage bucket for event docs")
    MAX_DOCUMENT_BYTES: int = Field(default=5 * 1024 * 1024, description="Max document size in bytes")
    MAX_DOCUMENT_CHARS: int = Field(default=20_000, description="Max extracted chars per document")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance loaded from environment
    """
    return Settings()
