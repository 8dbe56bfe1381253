"""Heuristic quality scores for research chunks."""

from datetime import datetime, timezone  # noqa: UP035

from context_engine.core.chunking import word_count
from context_engine.core.exa_service import ExaSearchResult
from context_engine.core.wikipedia_service import WikipediaArticle

BASE_SCORE = 0.5
SIGNAL_BONUS = 0.1
RECENT_DAYS = 730
MIN_CHUNK_WORDS = 100

# Deep research output is synthesized from several sources
DEEP_RESEARCH_QUALITY = 0.95


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)  # noqa: UP017
    return parsed


def search_quality_score(
    result: ExaSearchResult, chunk_text: str, now: datetime | None = None
) -> float:
    """
    Score a search chunk in [0, 1].

    Base 0.5, plus 0.1 each for a descriptive title, a named author, a
    publication date within two years and a substantial chunk.
    """
    score = BASE_SCORE
    if result.title and len(result.title) > 10:
        score += SIGNAL_BONUS
    if result.author:
        score += SIGNAL_BONUS

    published = _parse_date(result.published_date)
    if published is not None:
        now = now or datetime.now(timezone.utc)  # noqa: UP017
        if (now - published).days < RECENT_DAYS:
            score += SIGNAL_BONUS

    if word_count(chunk_text) > MIN_CHUNK_WORDS:
        score += SIGNAL_BONUS
    return min(score, 1.0)


def wikipedia_quality_score(article: WikipediaArticle, chunk_text: str) -> float:
    """Score an encyclopedia chunk in [0, 1]."""
    score = BASE_SCORE
    if len(article.title) > 20:
        score += SIGNAL_BONUS
    if article.has_thumbnail:
        score += SIGNAL_BONUS
    if article.has_coordinates:
        score += SIGNAL_BONUS
    if len(article.content) > 500:
        score += SIGNAL_BONUS
    if word_count(chunk_text) > MIN_CHUNK_WORDS:
        score += SIGNAL_BONUS
    return min(score, 1.0)
