"""LLM stand-in for deep research when no Exa key is configured."""

import json

from openai import AsyncOpenAI

from context_engine.core.llm import complete_json, extract_list, parse_llm_json_any
from context_engine.core.logging import get_logger
from context_engine.core.pricing import TokenUsage

logger = get_logger(__name__)

MAX_STUB_CHUNKS = 3

SYSTEM_PROMPT = """You are a research assistant. Generate 2-3 informative context chunks (200-300 words each) based on a research query.

Return a JSON object: {"chunks": string[]}"""


def build_user_prompt(query: str) -> str:
    return f"""Query: {query}

Instructions:
- Generate 2-3 chunks that provide rich context about this query
- Include key facts, historical context, and practical implications
- Use markdown headings for structure
- Include relevant bullet points or numbered lists when appropriate"""


def _chunk_text(item: object) -> str:
    if isinstance(item, str):
        return item.strip()
    if isinstance(item, dict):
        for key in ("content", "text", "chunk"):
            value = item.get(key)
            if isinstance(value, str):
                return value.strip()
    return ""


async def generate_stub_chunks(
    client: AsyncOpenAI, model: str, query: str
) -> tuple[list[str], TokenUsage]:
    """
    Generate 2-3 general-knowledge chunks for a research query.

    Returns:
        Tuple of (chunk texts, token usage); chunks are empty when the
        response cannot be parsed

    Raises:
        openai.OpenAIError: If the API call fails
    """
    result = await complete_json(client, model, SYSTEM_PROMPT, build_user_prompt(query), 0.7)

    try:
        parsed = parse_llm_json_any(result.content)
    except json.JSONDecodeError:
        logger.warning(f"Stub research response for '{query}' is not valid JSON")
        return [], result.usage

    chunks = [text for text in map(_chunk_text, extract_list(parsed, "chunks")) if text]
    return chunks[:MAX_STUB_CHUNKS], result.usage
