"""Pick the research snippets most relevant to a glossary term."""

from context_engine.core.schemas_blueprint import GlossaryTermPlan
from context_engine.core.schemas_context import ResearchChunk

SNIPPET_LIMIT = 3
MAX_SNIPPET_CHARS = 500
AGENT_UTILITY_BONUS = 0.5


def _truncate(text: str) -> str:
    return f"{text[:MAX_SNIPPET_CHARS]}…" if len(text) > MAX_SNIPPET_CHARS else text


def score_snippet(term: GlossaryTermPlan, chunk: ResearchChunk) -> float:
    """
    Relevance of a chunk to a term.

    +2 per term word found (case-insensitive), +1 per word longer than two
    characters found in uppercase, plus the chunk's quality score clamped to
    [0, 1], plus a bonus when the chunk serves one of the term's agents.
    """
    words = [w for w in term.term.lower().split() if w]
    text = chunk.content
    lowered = text.lower()

    score = 2.0 * sum(1 for w in words if w in lowered)
    score += sum(1 for w in words if len(w) > 2 and w.upper() in text)

    if isinstance(chunk.quality_score, (int, float)):
        score += max(0.0, min(float(chunk.quality_score), 1.0))

    if set(term.agent_utility) & set(chunk.agent_utility):
        score += AGENT_UTILITY_BONUS
    return score


def select_relevant_snippets(
    term: GlossaryTermPlan, chunks: list[ResearchChunk], limit: int = SNIPPET_LIMIT
) -> list[str]:
    """
    Up to `limit` snippets for a term, best first.

    Falls back to the first `limit` chunks when nothing scores above zero.
    Snippets longer than 500 characters are truncated.
    """
    if not chunks:
        return []

    scored = sorted(
        ((score_snippet(term, chunk), chunk.content) for chunk in chunks),
        key=lambda pair: pair[0],
        reverse=True,
    )
    top = [text for score, text in scored if score > 0][:limit]
    if not top:
        top = [chunk.content for chunk in chunks[:limit]]
    return [_truncate(text) for text in top]
