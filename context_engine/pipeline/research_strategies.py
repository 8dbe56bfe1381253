"""Research strategies: how a single planned query is turned into stored chunks.

Each query is routed by its declared API and priority:

- wikipedia queries go to the encyclopedia lookup
- without an Exa key, exa queries are answered by the LLM stub generator
- high-priority exa queries become deep research tasks (see deep_research)
- everything else is a synchronous Exa search
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from openai import OpenAIError

from context_engine.chains.generate_stub_research import generate_stub_chunks
from context_engine.core.chunking import chunk_words
from context_engine.core.errors import DatastoreError
from context_engine.core.exa_service import search_safe
from context_engine.core.logging import get_logger
from context_engine.core.pricing import CostTracker
from context_engine.core.schemas_blueprint import ResearchApi, ResearchQuery
from context_engine.db.research_results import insert_research_result
from context_engine.pipeline.clients import PipelineClients
from context_engine.pipeline.quality_scores import search_quality_score, wikipedia_quality_score

logger = get_logger(__name__)

CHUNK_MIN_WORDS = 200
CHUNK_MAX_WORDS = 400
SEARCH_RESULTS = 5

# Stub chunks are general knowledge, not retrieved material
STUB_QUALITY = 0.6
STUB_API = "llm_stub"


class ResearchStrategy(str, Enum):
    DEEP_RESEARCH = "deep_research"
    LLM_STUB = "llm_stub"
    SEARCH = "search"
    WIKIPEDIA = "wikipedia"


def select_strategy(
    query: ResearchQuery, exa_available: bool, deep_research_max_priority: int = 2
) -> ResearchStrategy:
    """Pick the strategy for one query from its API hint, priority and key availability."""
    if query.api == ResearchApi.WIKIPEDIA.value:
        return ResearchStrategy.WIKIPEDIA
    if not exa_available:
        return ResearchStrategy.LLM_STUB
    if query.priority is not None and query.priority <= deep_research_max_priority:
        return ResearchStrategy.DEEP_RESEARCH
    return ResearchStrategy.SEARCH


@dataclass
class ResearchRun:
    """State shared by every query of one research cycle."""

    clients: PipelineClients
    event_id: str
    blueprint_id: str
    cycle_id: str
    costs: CostTracker = field(default_factory=CostTracker)
    inserted: int = 0

    def store_chunk(
        self,
        query: ResearchQuery,
        api: str,
        content: str,
        quality_score: float,
        metadata: dict[str, Any],
        source_url: str | None = None,
    ) -> bool:
        """Persist one chunk; a failed insert is logged and skipped."""
        metadata = {
            **metadata,
            "priority": query.priority,
            "agent_utility": query.agent_utility,
        }
        try:
            insert_research_result(
                self.clients.supabase,
                event_id=self.event_id,
                blueprint_id=self.blueprint_id,
                cycle_id=self.cycle_id,
                query=query.query,
                api=api,
                content=content,
                quality_score=quality_score,
                metadata=metadata,
                source_url=source_url,
            )
        except DatastoreError as e:
            logger.error(
                f"Failed to store {api} research result for '{query.query}': {e}",
                extra={"event_id": self.event_id, "cycle_id": self.cycle_id},
            )
            return False
        self.inserted += 1
        return True


async def run_search(run: ResearchRun, query: ResearchQuery) -> int:
    """
    Synchronous Exa search: up to 5 results, each split into 200-400 word chunks.

    Returns:
        Number of chunks stored
    """
    exa = run.clients.exa
    if exa is None:
        raise ValueError("Exa search requested without an Exa client")

    run.costs.add_exa_search(1)
    results = await search_safe(exa, query.query, SEARCH_RESULTS)
    if not results:
        logger.warning(f"Exa /search: no results for '{query.query}'")
        return 0

    stored = 0
    for result in results:
        if not result.text:
            logger.warning(f"Exa /search: result missing text content for URL {result.url}")
            continue
        for chunk in chunk_words(result.text, CHUNK_MIN_WORDS, CHUNK_MAX_WORDS):
            quality = search_quality_score(result, chunk)
            metadata = {
                "api": ResearchApi.EXA.value,
                "query": query.query,
                "url": result.url,
                "title": result.title,
                "author": result.author,
                "published_date": result.published_date,
                "quality_score": quality,
            }
            if run.store_chunk(query, ResearchApi.EXA.value, chunk, quality, metadata, result.url):
                stored += 1
    return stored


async def run_wikipedia(run: ResearchRun, query: ResearchQuery) -> int:
    """
    Encyclopedia lookup: article summaries split into 200-400 word chunks.

    Returns:
        Number of chunks stored
    """
    articles = await run.clients.wikipedia.lookup(query.query)

    stored = 0
    for article in articles:
        for chunk in chunk_words(article.content, CHUNK_MIN_WORDS, CHUNK_MAX_WORDS):
            quality = wikipedia_quality_score(article, chunk)
            metadata = {
                "api": ResearchApi.WIKIPEDIA.value,
                "query": query.query,
                "title": article.title,
                "url": article.url,
                "page_id": article.page_id,
                "quality_score": quality,
            }
            if run.store_chunk(
                query, ResearchApi.WIKIPEDIA.value, chunk, quality, metadata, article.url
            ):
                stored += 1
    return stored


async def run_stub(run: ResearchRun, query: ResearchQuery) -> int:
    """
    LLM stand-in used when no Exa key is configured.

    Returns:
        Number of chunks stored (0 when the LLM call fails)
    """
    model = run.clients.settings.RESEARCH_MODEL
    try:
        chunks, usage = await generate_stub_chunks(run.clients.openai, model, query.query)
    except (OpenAIError, ValueError) as e:
        logger.warning(f"LLM stub research failed for '{query.query}': {e}")
        return 0

    run.costs.add_chat(usage, model)
    stored = 0
    for chunk in chunks:
        metadata = {"api": STUB_API, "query": query.query, "quality_score": STUB_QUALITY}
        if run.store_chunk(query, STUB_API, chunk, STUB_QUALITY, metadata):
            stored += 1
    return stored


# Strategies that complete within the query loop
SYNC_STRATEGIES: dict[ResearchStrategy, Callable[[ResearchRun, ResearchQuery], Awaitable[int]]] = {
    ResearchStrategy.SEARCH: run_search,
    ResearchStrategy.WIKIPEDIA: run_wikipedia,
    ResearchStrategy.LLM_STUB: run_stub,
}
