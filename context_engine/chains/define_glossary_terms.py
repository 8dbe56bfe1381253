"""LLM chains that turn glossary plan terms into structured definitions.

Two paths: polishing an authoritative Exa answer into a single entry, and
defining a batch of terms from research context alone.
"""

import json
from typing import Any

from openai import AsyncOpenAI

from context_engine.core.llm import complete_json, extract_list, parse_llm_json_any
from context_engine.core.logging import get_logger
from context_engine.core.pricing import TokenUsage
from context_engine.core.schemas_blueprint import GlossaryTermPlan
from context_engine.core.schemas_context import TermDefinition

logger = get_logger(__name__)

POLISH_TEMPERATURE = 0.3
BATCH_TEMPERATURE = 0.5
DEFAULT_CONFIDENCE = 0.8
EXA_CONFIDENCE = 0.9
MAX_DETAILS_CHARS = 2000


EXA_ANSWER_SYSTEM_PROMPT = (
    "Provide a comprehensive, technical definition suitable for professionals. "
    "If this is an acronym, explain what it stands for. "
    "Include relevant context and related concepts."
)

POLISH_SYSTEM_PROMPT = """You are a glossary assistant polishing an authoritative answer into the final glossary definition.

Guidelines:
- Preserve the authoritative answer while integrating corroborating snippets
- Keep the definition concise (1-3 sentences)
- Add 1-2 usage examples when they reinforce understanding
- Include related terms mentioned in the answer or snippets
- Set confidence to 0.95 when evidence is strong, otherwise 0.85
- Use "exa" as the source

Return a JSON object with keys: term, definition, acronym_for, category, usage_examples, related_terms, confidence_score, source, source_url (optional)."""

BATCH_SYSTEM_PROMPT = """You are a glossary assistant that creates clear, accurate definitions for technical and domain-specific terms.

Guidelines:
- Create concise, clear definitions (1-3 sentences)
- If a term is an acronym, provide what it stands for
- Include 1-2 usage examples when helpful
- Identify related terms
- Assign confidence score (0.9-1.0 if highly certain, 0.7-0.9 if somewhat certain)
- Use "llm_generation" as source

Return a JSON object: {"definitions": [...]}"""


def _format_snippets(snippets: list[str], empty: str) -> str:
    if not snippets:
        return empty
    return "\n".join(f"{i}. {snippet}" for i, snippet in enumerate(snippets, start=1))


def _term_label(term: GlossaryTermPlan) -> str:
    return f"{term.term}{' (acronym)' if term.is_acronym else ''}"


def build_polish_prompt(
    term: GlossaryTermPlan, answer: str, snippets: list[str], important_details: str
) -> str:
    return f"""Term: {_term_label(term)}
Category: {term.category or 'general'}

Authoritative Answer:
{answer}

Relevant Research Snippets:
{_format_snippets(snippets, 'None available.')}

Important Event Details:
{important_details[:MAX_DETAILS_CHARS] or 'None provided'}

Create a single glossary entry as JSON. Use "exa" as the source and keep the tone factual and professional."""


def build_batch_prompt(
    terms: list[GlossaryTermPlan],
    research_context: str,
    important_details: str,
    snippets_by_term: dict[str, list[str]] | None = None,
) -> str:
    lines = []
    for term in terms:
        lines.append(f"- {_term_label(term)} - {term.category or 'general'}")
        for snippet in (snippets_by_term or {}).get(term.term, []):
            lines.append(f"    * {snippet}")

    return f"""Generate definitions for the following terms:

{chr(10).join(lines)}

Research Context:
{research_context or 'None available.'}

Important Event Details:
{important_details[:MAX_DETAILS_CHARS] or 'None provided'}

For each term return:
- term: string
- definition: string (1-3 sentences)
- acronym_for: string | null
- category: string
- usage_examples: string[] (1-2 examples)
- related_terms: string[]
- confidence_score: number (0.7-1.0)
- source: the string llm_generation"""


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if isinstance(item, str) and item.strip()]


def _confidence(value: Any, default: float) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(score, 1.0))


def normalize_definition(
    raw: dict[str, Any], default_source: str = "llm_generation"
) -> TermDefinition | None:
    """
    Fill defaults on one raw LLM definition.

    Accepts both `acronym_for`/`confidence_score` and the older
    `acronym_expansion`/`confidence` keys. Returns None when the term or
    definition is missing.
    """
    term = str(raw.get("term") or "").strip()
    definition = str(raw.get("definition") or "").strip()
    if not term or not definition:
        return None

    return TermDefinition(
        term=term,
        definition=definition,
        acronym_for=raw.get("acronym_for") or raw.get("acronym_expansion") or None,
        category=raw.get("category") or "general",
        usage_examples=_string_list(raw.get("usage_examples")),
        related_terms=_string_list(raw.get("related_terms")),
        confidence_score=_confidence(
            raw.get("confidence_score", raw.get("confidence")), DEFAULT_CONFIDENCE
        ),
        source=raw.get("source") or default_source,
        source_url=raw.get("source_url") or None,
    )


async def polish_exa_answer(
    client: AsyncOpenAI,
    model: str,
    term: GlossaryTermPlan,
    answer: str,
    source_url: str | None,
    snippets: list[str],
    important_details: str,
) -> tuple[TermDefinition | None, TokenUsage]:
    """
    Turn an Exa answer into a glossary entry.

    Returns:
        Tuple of (definition or None if the response was unusable, token usage)

    Raises:
        openai.OpenAIError: If the API call fails
    """
    result = await complete_json(
        client,
        model,
        POLISH_SYSTEM_PROMPT,
        build_polish_prompt(term, answer, snippets, important_details),
        POLISH_TEMPERATURE,
    )

    try:
        parsed = parse_llm_json_any(result.content)
    except json.JSONDecodeError:
        logger.warning(f"Polish response for '{term.term}' is not valid JSON")
        return None, result.usage

    if isinstance(parsed, list):
        parsed = parsed[0] if parsed and isinstance(parsed[0], dict) else {}
    if not isinstance(parsed, dict):
        return None, result.usage

    parsed.setdefault("term", term.term)
    definition = normalize_definition(parsed, default_source="exa")
    if definition is None:
        return None, result.usage

    has_confidence = "confidence_score" in parsed or "confidence" in parsed
    definition = definition.model_copy(
        update={
            "term": term.term,
            "category": parsed.get("category") or term.category or "general",
            "source": "exa",
            "source_url": source_url or definition.source_url,
            "confidence_score": definition.confidence_score if has_confidence else EXA_CONFIDENCE,
        }
    )
    return definition, result.usage


async def define_terms_batch(
    client: AsyncOpenAI,
    model: str,
    terms: list[GlossaryTermPlan],
    research_context: str,
    important_details: str,
    snippets_by_term: dict[str, list[str]] | None = None,
) -> tuple[list[TermDefinition], TokenUsage]:
    """
    Define a batch of terms in one LLM call.

    Accepts `{"definitions": [...]}`, `{"terms": [...]}` or a bare array.

    Raises:
        openai.OpenAIError: If the API call fails
    """
    if not terms:
        return [], TokenUsage()

    result = await complete_json(
        client,
        model,
        BATCH_SYSTEM_PROMPT,
        build_batch_prompt(terms, research_context, important_details, snippets_by_term),
        BATCH_TEMPERATURE,
    )

    try:
        parsed = parse_llm_json_any(result.content)
    except json.JSONDecodeError:
        logger.warning("Glossary batch response is not valid JSON")
        return [], result.usage

    raw_items = extract_list(parsed, "definitions", "terms")
    definitions = [
        d
        for d in (normalize_definition(item) for item in raw_items if isinstance(item, dict))
        if d is not None
    ]
    logger.info(f"LLM defined {len(definitions)}/{len(terms)} glossary terms")
    return definitions, result.usage
