"""Chunks phase: rank research and filler chunks, embed the top N and store them."""

import asyncio
from datetime import datetime, timezone  # noqa: UP035
from typing import Any

from context_engine.chains.generate_filler_chunks import generate_filler_chunks
from context_engine.core.embeddings import EmbeddingResult, embed_text, prepare_embedding_input
from context_engine.core.errors import DatastoreError
from context_engine.core.logging import get_logger
from context_engine.core.pricing import CostTracker
from context_engine.core.schemas_blueprint import Blueprint
from context_engine.core.schemas_context import (
    ChunkCandidate,
    CycleStatus,
    RankedChunk,
    ResearchChunk,
)
from context_engine.db.context_items import insert_context_item
from context_engine.db.generation_cycles import update_generation_cycle
from context_engine.db.research_results import list_active_research_results
from context_engine.pipeline.clients import PipelineClients
from context_engine.pipeline.ranking import rank_chunks

logger = get_logger(__name__)

DEFAULT_RESEARCH_QUALITY = 0.8
FILLER_QUALITY = 0.7
FILLER_SOURCE = "llm_generation"


def research_candidates(chunks: list[ResearchChunk]) -> list[ChunkCandidate]:
    """Turn active research results into candidates, dropping blank ones."""
    candidates = []
    for chunk in chunks:
        text = chunk.content.strip()
        if not text:
            continue
        quality = chunk.quality_score
        if not isinstance(quality, (int, float)):
            quality = chunk.metadata.get("quality_score") or DEFAULT_RESEARCH_QUALITY
        candidates.append(
            ChunkCandidate(
                text=text,
                source=chunk.api or "research",
                research_source=chunk.metadata.get("api") or chunk.api or "exa",
                quality_score=float(quality),
                agent_utility=chunk.agent_utility,
                priority=chunk.priority,
                metadata=dict(chunk.metadata),
            )
        )
    return candidates


def filler_candidates(texts: list[str]) -> list[ChunkCandidate]:
    return [
        ChunkCandidate(
            text=text.strip(),
            source=FILLER_SOURCE,
            research_source=FILLER_SOURCE,
            quality_score=FILLER_QUALITY,
        )
        for text in texts
        if text.strip()
    ]


def build_item_metadata(ranked: RankedChunk, text: str) -> dict[str, Any]:
    """Provenance metadata stored with each context item."""
    candidate = ranked.candidate
    component_type = "llm_generated" if candidate.research_source == FILLER_SOURCE else "ranked"
    return {
        **candidate.metadata,
        "source": candidate.source,
        "enrichment_source": candidate.research_source,
        "research_source": candidate.research_source,
        "component_type": component_type,
        "quality_score": candidate.quality_score,
        "rank_score": round(ranked.score, 4),
        "chunk_size": len(text),
        "enrichment_timestamp": datetime.now(timezone.utc).isoformat(),  # noqa: UP017
    }


class ChunkEmbedder:
    """Embeds ranked chunks in concurrent batches and stores the results."""

    def __init__(self, clients: PipelineClients, event_id: str, cycle_id: str, costs: CostTracker):
        self.clients = clients
        self.event_id = event_id
        self.cycle_id = cycle_id
        self.costs = costs
        self.inserted = 0

    async def _embed_batch(
        self, batch: list[tuple[RankedChunk, str]]
    ) -> list[EmbeddingResult | BaseException]:
        settings = self.clients.settings
        return await asyncio.gather(
            *(
                embed_text(self.clients.openai, text, settings.EMBEDDING_MODEL, settings.EMBEDDING_DIM)
                for _, text in batch
            ),
            return_exceptions=True,
        )

    def _store(self, ranked: RankedChunk, text: str, result: EmbeddingResult) -> None:
        try:
            insert_context_item(
                self.clients.supabase,
                self.event_id,
                self.cycle_id,
                text,
                result.embedding,
                ranked.rank,
                build_item_metadata(ranked, text),
            )
        except DatastoreError as e:
            logger.error(f"Failed to store chunk at rank {ranked.rank}: {e}")
            return
        self.inserted += 1

    async def run(self, ranked: list[RankedChunk]) -> int:
        """
        Embed and store every ranked chunk.

        Empty text is dropped before embedding and oversized text is
        truncated. A failed embedding or insert skips that chunk only.

        Returns:
            Number of context items stored
        """
        settings = self.clients.settings
        prepared: list[tuple[RankedChunk, str]] = []
        for item in ranked:
            text = prepare_embedding_input(item.candidate.text, settings.EMBEDDING_MAX_CHARS)
            if text is None:
                logger.warning(f"Skipping chunk with empty text (rank {item.rank})")
                continue
            prepared.append((item, text))

        batch_size = max(settings.EMBEDDING_BATCH_SIZE, 1)
        for start in range(0, len(prepared), batch_size):
            batch = prepared[start : start + batch_size]
            results = await self._embed_batch(batch)

            for (item, text), result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.error(f"Embedding failed for chunk at rank {item.rank}: {result}")
                    continue
                self.costs.add_embedding(result.usage, settings.EMBEDDING_MODEL)
                self._store(item, text, result)

            update_generation_cycle(
                self.clients.supabase, self.cycle_id, progress_current=self.inserted
            )
        return self.inserted


async def run_chunks_phase(
    clients: PipelineClients,
    event_id: str,
    cycle_id: str,
    blueprint: Blueprint,
) -> CostTracker:
    """
    Build the ranked, embedded chunk set for an event.

    Raises:
        DatastoreError: If research cannot be loaded or the cycle cannot be
            marked completed
    """
    settings = clients.settings
    target = blueprint.chunks_plan.target_count or settings.DEFAULT_TARGET_CHUNKS
    costs = CostTracker()

    research = research_candidates(list_active_research_results(clients.supabase, event_id))
    update_generation_cycle(
        clients.supabase, cycle_id, status=CycleStatus.PROCESSING, progress_total=target
    )

    candidates = list(research)
    needed = target - len(research)
    if needed > 0:
        texts, usage = await generate_filler_chunks(
            clients.openai,
            settings.CHUNKS_MODEL,
            needed,
            blueprint,
            [c.text for c in research],
        )
        if usage.total_tokens:
            costs.add_chat(usage, settings.CHUNKS_MODEL)
        candidates.extend(filler_candidates(texts))

    ranked = rank_chunks(candidates, target)
    logger.info(
        f"Ranked {len(candidates)} candidates ({len(research)} research), keeping {len(ranked)}",
        extra={"event_id": event_id, "cycle_id": cycle_id, "target": target},
    )

    embedder = ChunkEmbedder(clients, event_id, cycle_id, costs)
    inserted = await embedder.run(ranked)

    update_generation_cycle(
        clients.supabase,
        cycle_id,
        status=CycleStatus.COMPLETED,
        progress_current=inserted,
        metadata=costs.to_metadata(),
    )
    logger.info(
        f"Chunks phase complete: {inserted} context items stored",
        extra={"event_id": event_id, "cycle_id": cycle_id, "cost": round(costs.total, 4)},
    )
    return costs
