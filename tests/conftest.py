"""Pytest configuration and fixtures."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.fakes.fake_supabase import FakeSupabase


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["CONTEXT_ENGINE_ENV"] = "test"
    os.environ.pop("EXA_API_KEY", None)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests that override env need a fresh read."""
    from context_engine.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    from context_engine.core.config import Settings

    return Settings(
        DEEP_RESEARCH_POLL_INTERVAL=0.0,
        DEEP_RESEARCH_MAX_AGE=300.0,
        WIKIPEDIA_MIN_INTERVAL=0.0,
    )


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def openai_client():
    """AsyncOpenAI stand-in; tests set chat.completions.create / embeddings.create."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.embeddings.create = AsyncMock()
    return client


@pytest.fixture
def clients(fake_supabase, openai_client, settings):
    from context_engine.pipeline.clients import PipelineClients

    wikipedia = MagicMock()
    wikipedia.lookup = AsyncMock(return_value=[])
    return PipelineClients(
        supabase=fake_supabase,
        openai=openai_client,
        wikipedia=wikipedia,
        settings=settings,
        exa=None,
    )
