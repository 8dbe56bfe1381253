"""LLM chain that plans an event's context database.

Calls the model in JSON mode, retries while the plan falls short of the
minimum section sizes, then normalizes whatever the last attempt produced.
"""

import json

from openai import AsyncOpenAI
from pydantic import ValidationError

from context_engine.chains.normalize_blueprint import normalize_blueprint
from context_engine.core.errors import BlueprintGenerationError
from context_engine.core.llm import complete_json, parse_llm_json, supports_temperature
from context_engine.core.logging import get_logger
from context_engine.core.pricing import TokenUsage
from context_engine.core.retry import bounded_retry
from context_engine.core.schemas_blueprint import Blueprint

logger = get_logger(__name__)

FIRST_TEMPERATURE = 0.7
RETRY_TEMPERATURE = 0.5


SYSTEM_PROMPT = """You are a context planning assistant that produces blueprints for AI event context databases.

Your blueprint must cover:
- Important details, inferred topics, audience profile, glossary terms, research plan, glossary plan, chunks plan, cost breakdown, and agent alignment

Key rules:
- Serve downstream agents explicitly:
  - Facts agent: needs verifiable, evidence-backed statements that map to transcript lines, documents, or links.
  - Cards agent: needs audience-friendly assets (definitions, attributed quotes, short summaries, lightweight frameworks) with clear provenance.
  - Drop material that supports neither agent.
- Exa usage: reserve deep research for 1-2 high-priority synthesis queries (about $0.10-0.30); default to search for focused queries (about $0.02-0.04); use Wikipedia for lightweight lookups (about $0.001)
- Glossary priorities: priority 1 terms use Exa answer (about $0.01-0.03 each); priority 2+ terms use LLM batch generation
- Chunks plan: choose quality tier "basic" or "comprehensive"; include at least 3 sources; map each source to the agent it serves; estimate embeddings at about $0.0001 per chunk

Requirements:
- Populate every array with relevant content
- Return a JSON object that matches the Blueprint schema exactly"""


RETRY_INSTRUCTION = """

IMPORTANT: This is a retry attempt. The previous response had empty or insufficient arrays. You MUST fill ALL arrays with actual, relevant content. Do not return empty arrays. Every array field must have the minimum required items as specified above."""


def build_user_prompt(event_title: str, topic: str, documents_section: str = "") -> str:
    """Build the blueprint request for one event."""
    return f"""Generate a blueprint for the event context system.

Event Title: {event_title}
Event Topic: {topic}{documents_section}

Return a JSON object with these sections:

1. important_details (5-10 strings): essential takeaways attendees must know.

2. inferred_topics (5-10 strings): likely subtopics, themes, or tracks.

3. key_terms (10-20 strings): domain terminology, acronyms, or jargon anchored in this event's subject, speakers, and timeframe.

4. audience_profile (object): {{"audience_summary": string, "primary_roles": string[], "core_needs": string[], "desired_outcomes": string[], "tone_and_voice": string, "cautionary_notes": string[]}}

5. research_plan (object)
   - queries: 5-12 items, each {{query, api, priority, estimated_cost, agent_utility, provenance_hint}}
   - api is "exa" or "wikipedia"; priority 1 is highest
   - agent_utility is an array drawn from ["facts","cards","glossary"]
   - at most one priority-1 query and at most four priority-2 queries
   - total_searches and estimated_total_cost must match the queries

6. glossary_plan (object)
   - terms: 10-20 items, each {{term, is_acronym, category, priority, agent_utility}}
   - no more than three priority-1 terms
   - estimated_count equals terms.length

7. chunks_plan (object)
   - sources: at least 3 entries with {{label, upstream_reference, expected_format, priority, estimated_chunks, agent_utility}}
   - target_count, quality_tier ("basic" or "comprehensive"), ranking_strategy

8. cost_breakdown (object): {{research, glossary, chunks, total}} where total is the sum of the parts

9. agent_alignment (object): {{"facts": {{"highlights": string[], "open_questions": string[]}}, "cards": {{"assets": string[], "open_questions": string[]}}}}

Checklist before returning:
- important_details has at least 5 items
- inferred_topics has at least 5 items
- key_terms has at least 10 items
- research_plan.queries has at least 5 items
- glossary_plan.terms has at least 10 items
- chunks_plan.sources has at least 3 items
- Response is valid JSON matching the Blueprint schema"""


async def generate_blueprint(
    client: AsyncOpenAI,
    model: str,
    event_title: str,
    topic: str | None,
    documents_section: str = "",
    max_attempts: int = 3,
) -> tuple[Blueprint, TokenUsage]:
    """
    Generate, validate and normalize a blueprint.

    Args:
        client: Async OpenAI client
        model: Chat model name
        event_title: Event title
        topic: Event topic (falls back to the title)
        documents_section: Pre-rendered uploaded document text, may be empty
        max_attempts: Total LLM attempts

    Returns:
        Tuple of (normalized Blueprint, token usage summed over all attempts)

    Raises:
        BlueprintGenerationError: If the final attempt fails to produce JSON
    """
    topic = topic or event_title
    user_prompt = build_user_prompt(event_title, topic, documents_section)
    total_usage = TokenUsage()

    async def _attempt(attempt: int) -> Blueprint:
        nonlocal total_usage
        is_retry = attempt > 0
        logger.info(
            f"Blueprint LLM attempt {attempt + 1}/{max_attempts} for topic '{topic}'"
            + (" (retry with lower temperature)" if is_retry and supports_temperature(model) else "")
        )

        result = await complete_json(
            client,
            model,
            SYSTEM_PROMPT,
            user_prompt + RETRY_INSTRUCTION if is_retry else user_prompt,
            temperature=RETRY_TEMPERATURE if is_retry else FIRST_TEMPERATURE,
        )
        total_usage = total_usage + result.usage

        blueprint = parse_llm_json(result.content, Blueprint)
        shortfalls = blueprint.shortfalls()
        if shortfalls:
            logger.warning(
                f"Blueprint validation failed on attempt {attempt + 1}. "
                f"Missing: {', '.join(shortfalls)}"
            )
        return blueprint

    try:
        blueprint = await bounded_retry(
            _attempt,
            max_attempts=max_attempts,
            accept=Blueprint.meets_minimums,
            label="Blueprint generation",
        )
    except (json.JSONDecodeError, ValidationError, ValueError) as e:
        raise BlueprintGenerationError(f"Failed to parse blueprint: {e}") from e
    except Exception as e:
        raise BlueprintGenerationError(f"Blueprint LLM call failed: {e}") from e

    if not blueprint.meets_minimums():
        logger.error(
            f"All blueprint attempts exhausted; normalizing response with: "
            f"{', '.join(blueprint.shortfalls())}"
        )

    normalized = normalize_blueprint(blueprint, topic)
    logger.info(
        f"Generated blueprint: {len(normalized.important_details)} details, "
        f"{len(normalized.inferred_topics)} topics, {len(normalized.key_terms)} key terms, "
        f"{len(normalized.research_plan.queries)} queries, "
        f"{len(normalized.glossary_plan.terms)} glossary terms, "
        f"target {normalized.chunks_plan.target_count} chunks",
        extra={"prompt_tokens": total_usage.prompt_tokens, "completion_tokens": total_usage.completion_tokens},
    )
    return normalized, total_usage
