"""LLM chain that tops up the chunk pool when research falls short of the target."""

import json

from openai import AsyncOpenAI, OpenAIError

from context_engine.core.llm import complete_json, extract_list, parse_llm_json_any
from context_engine.core.logging import get_logger
from context_engine.core.pricing import TokenUsage
from context_engine.core.schemas_blueprint import Blueprint

logger = get_logger(__name__)

FILLER_TEMPERATURE = 0.7
MAX_SUMMARY_CHUNKS = 20
MAX_SUMMARY_CHARS_PER_CHUNK = 400

SYSTEM_PROMPT = """You are a context generation assistant that creates informative context chunks about event topics.

Goal: Produce a diverse set of context chunks that cover key aspects of the topic, drawing from research results and general knowledge.

Guidelines:
- Create 200-400 word chunks with coherent, well-structured content
- Include specific details, examples, and explanations where possible
- Maintain professional tone suitable for business/technical audience
- Avoid redundancy: each chunk should focus on distinct aspects
- Ensure content is factual and accurate

Return a JSON object: {"chunks": string[]}"""


def format_research_summary(research_texts: list[str]) -> str:
    if not research_texts:
        return "No research results available."
    lines = [
        f"{i}. {text[:MAX_SUMMARY_CHARS_PER_CHUNK]}"
        for i, text in enumerate(research_texts[:MAX_SUMMARY_CHUNKS], start=1)
    ]
    return "\n".join(lines)


def build_user_prompt(needed: int, blueprint: Blueprint, research_texts: list[str]) -> str:
    topics = ", ".join(blueprint.inferred_topics) or "None"
    key_terms = ", ".join(blueprint.key_terms[:20]) or "None"
    return f"""Generate exactly {needed} high-quality context chunks for the event topic using the information below.

Research Summary:
{format_research_summary(research_texts)}

Blueprint Details:
- Chunks needed: {needed}
- Quality tier: {blueprint.chunks_plan.quality_tier or 'basic'}
- Inferred topics: {topics}

Glossary Highlights:
{key_terms}

Requirements:
- Each chunk: 200-400 words, well-structured
- Cover different subtopics; do not repeat the research summary verbatim
- Include specific facts and examples when available"""


def _clean(items: list[object]) -> list[str]:
    return [item.strip() for item in items if isinstance(item, str) and item.strip()]


async def generate_filler_chunks(
    client: AsyncOpenAI,
    model: str,
    needed: int,
    blueprint: Blueprint,
    research_texts: list[str],
) -> tuple[list[str], TokenUsage]:
    """
    Ask the LLM for `needed` filler chunks in one JSON call.

    Malformed output, an unexpected shape, or a failed call yields an
    empty list rather than an error.

    Returns:
        Tuple of (at most `needed` chunk texts, token usage)
    """
    if needed <= 0:
        return [], TokenUsage()

    logger.info(f"Generating {needed} filler chunks")
    try:
        result = await complete_json(
            client,
            model,
            SYSTEM_PROMPT,
            build_user_prompt(needed, blueprint, research_texts),
            FILLER_TEMPERATURE,
        )
    except (OpenAIError, ValueError) as e:
        logger.error(f"Filler chunk generation failed: {e}")
        return [], TokenUsage()

    try:
        parsed = parse_llm_json_any(result.content)
    except json.JSONDecodeError:
        logger.error(f"Filler chunk response is not valid JSON: {result.content[:200]}")
        return [], result.usage

    raw_items = extract_list(parsed, "chunks")
    chunks = _clean(raw_items)[:needed]
    logger.info(
        f"Generated {len(chunks)} valid filler chunks (filtered {len(raw_items) - len(chunks)})"
    )
    return chunks, result.usage
