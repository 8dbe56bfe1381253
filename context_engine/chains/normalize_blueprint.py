"""Post-processing that guarantees a blueprint has at least one unit of work per phase.

Runs after the LLM retry loop. Blank entries are always dropped; a section
left empty gets a single deterministic fallback derived from the event topic.
"""

from context_engine.core.logging import get_logger
from context_engine.core.schemas_blueprint import (
    MIN_IMPORTANT_DETAILS,
    MIN_INFERRED_TOPICS,
    MIN_KEY_TERMS,
    Blueprint,
    ChunkSourcePlan,
    GlossaryTermPlan,
    QualityTier,
    ResearchApi,
    ResearchQuery,
)

logger = get_logger(__name__)

COMPREHENSIVE_MIN_TARGET = 1000
BASIC_MAX_TARGET = 500
DEFAULT_TARGET = 500
DEFAULT_PRIORITY = 5
DEFAULT_CATEGORY = "general"
EXA_QUERY_COST = 0.03
WIKIPEDIA_QUERY_COST = 0.001


def _meaningful(values: list[str]) -> list[str]:
    return [v for v in values if isinstance(v, str) and v.strip()]


def _clean_list(values: list[str], minimum: int, fallback: list[str], field: str) -> list[str]:
    cleaned = _meaningful(values)
    if not cleaned:
        logger.error(f"Blueprint {field} empty after all retries, using minimal fallback")
        return fallback
    if len(cleaned) < minimum:
        logger.warning(f"Blueprint {field} has {len(cleaned)} entries, expected {minimum}")
    return cleaned


def fallback_research_query(topic: str) -> ResearchQuery:
    return ResearchQuery(
        query=f"latest developments and trends in {topic} 2024",
        api=ResearchApi.EXA.value,
        priority=1,
        estimated_cost=EXA_QUERY_COST,
    )


def fallback_glossary_term(topic: str) -> GlossaryTermPlan:
    return GlossaryTermPlan(term=topic, is_acronym=False, category="domain-specific", priority=1)


def _normalize_query(query: ResearchQuery) -> ResearchQuery:
    api = query.api if query.api in (ResearchApi.EXA.value, ResearchApi.WIKIPEDIA.value) else "exa"
    default_cost = EXA_QUERY_COST if api == ResearchApi.EXA.value else WIKIPEDIA_QUERY_COST
    return query.model_copy(
        update={
            "query": query.query or "",
            "api": api,
            "priority": query.priority or DEFAULT_PRIORITY,
            "estimated_cost": query.estimated_cost or default_cost,
        }
    )


def _normalize_term(term: GlossaryTermPlan) -> GlossaryTermPlan:
    return term.model_copy(
        update={
            "term": term.term or "",
            "category": term.category or DEFAULT_CATEGORY,
            "priority": term.priority or DEFAULT_PRIORITY,
        }
    )


def normalize_blueprint(blueprint: Blueprint, topic: str) -> Blueprint:
    """
    Return a normalized copy of a blueprint.

    Args:
        blueprint: Parsed (possibly incomplete) blueprint
        topic: Event topic used to build fallback entries

    Returns:
        New Blueprint; the input is not modified
    """
    bp = blueprint.model_copy(deep=True)

    bp.important_details = _clean_list(
        bp.important_details,
        MIN_IMPORTANT_DETAILS,
        [f"Event focuses on {topic} - content generation failed, please regenerate blueprint"],
        "important_details",
    )
    bp.inferred_topics = _clean_list(
        bp.inferred_topics,
        MIN_INFERRED_TOPICS,
        [f"{topic} Fundamentals", f"{topic} Best Practices"],
        "inferred_topics",
    )
    bp.key_terms = _clean_list(bp.key_terms, MIN_KEY_TERMS, [topic], "key_terms")

    research = bp.research_plan
    research.queries = [q for q in research.queries if q.query and q.query.strip()]
    if not research.queries:
        logger.error("Blueprint research queries empty after all retries, using minimal fallback")
        research.queries = [fallback_research_query(topic)]
    research.queries = [_normalize_query(q) for q in research.queries]
    research.total_searches = len(research.queries)
    research.estimated_total_cost = sum(q.estimated_cost or 0 for q in research.queries)

    glossary = bp.glossary_plan
    glossary.terms = [t for t in glossary.terms if t.term and t.term.strip()]
    if not glossary.terms:
        logger.error("Blueprint glossary terms empty after all retries, using minimal fallback")
        glossary.terms = [fallback_glossary_term(topic)]
    glossary.terms = [_normalize_term(t) for t in glossary.terms]
    glossary.estimated_count = len(glossary.terms)

    chunks = bp.chunks_plan
    if not chunks.sources:
        logger.error("Blueprint chunk sources empty after all retries, using minimal fallback")
        chunks.sources = [
            ChunkSourcePlan(
                label="LLM generated context",
                source="llm_generated",
                priority=1,
                estimated_chunks=chunks.target_count or DEFAULT_TARGET,
            )
        ]

    if chunks.quality_tier not in (QualityTier.BASIC.value, QualityTier.COMPREHENSIVE.value):
        chunks.quality_tier = (
            QualityTier.COMPREHENSIVE.value
            if chunks.target_count >= COMPREHENSIVE_MIN_TARGET
            else QualityTier.BASIC.value
        )

    if chunks.quality_tier == QualityTier.COMPREHENSIVE.value:
        chunks.target_count = max(chunks.target_count, COMPREHENSIVE_MIN_TARGET)
    elif chunks.target_count > BASIC_MAX_TARGET:
        chunks.target_count = BASIC_MAX_TARGET

    cost = bp.cost_breakdown
    if cost.total == 0:
        cost.total = cost.research + cost.glossary + cost.chunks

    return bp
