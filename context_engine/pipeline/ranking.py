"""Weighted ranking of candidate chunks."""

from context_engine.core.schemas_context import ChunkCandidate, RankedChunk

SOURCE_WEIGHTS = {
    "exa": 1.0,
    "wikipedia": 0.9,
    "research": 0.8,
    "llm_stub": 0.75,
    "llm_generation": 0.7,
}
DEFAULT_SOURCE_WEIGHT = 0.5

SOURCE_FACTOR = 0.5
QUALITY_FACTOR = 0.35
AGENT_FACTOR = 0.15
PRIORITY_FACTOR = 0.05

# Agents that read the chunk set
CONSUMING_AGENTS = frozenset({"facts", "cards"})


def source_weight(research_source: str) -> float:
    return SOURCE_WEIGHTS.get(research_source, DEFAULT_SOURCE_WEIGHT)


def priority_bonus(priority: int | None) -> float:
    """1.0 for priority 1 down to 0.2 for priority 5 and beyond; 0 when unknown."""
    if priority is None:
        return 0.0
    return (6 - min(max(priority, 1), 5)) / 5


def score_candidate(candidate: ChunkCandidate) -> float:
    agent_match = 1.0 if CONSUMING_AGENTS & set(candidate.agent_utility) else 0.0
    quality = max(0.0, min(candidate.quality_score, 1.0))
    return (
        SOURCE_FACTOR * source_weight(candidate.research_source)
        + QUALITY_FACTOR * quality
        + AGENT_FACTOR * agent_match
        + PRIORITY_FACTOR * priority_bonus(candidate.priority)
    )


def rank_chunks(candidates: list[ChunkCandidate], target_count: int) -> list[RankedChunk]:
    """
    Sort candidates by score, best first, and keep the top `target_count`.

    Ranks are dense and 1-based; ties keep their input order.
    """
    scored = [(score_candidate(c), c) for c in candidates]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [
        RankedChunk(candidate=candidate, score=score, rank=rank)
        for rank, (score, candidate) in enumerate(scored[: max(target_count, 0)], start=1)
    ]
