"""OpenAI chat helpers for JSON-mode calls."""

import json
import re
from dataclasses import dataclass
from typing import Any, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel

from context_engine.core.config import get_settings
from context_engine.core.logging import get_logger
from context_engine.core.pricing import TokenUsage

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


def get_openai_client() -> AsyncOpenAI:
    """Create an async OpenAI client from settings."""
    settings = get_settings()
    return AsyncOpenAI(api_key=settings.OPENAI_API_KEY)


def supports_temperature(model: str) -> bool:
    """o1 and gpt-5 models only accept their default temperature."""
    return not (model.startswith("o1") or "gpt-5" in model)


@dataclass
class ChatResult:
    """Raw content and token usage of one chat completion."""

    content: str
    usage: TokenUsage
    model: str


async def complete_json(
    client: AsyncOpenAI,
    model: str,
    system_prompt: str,
    user_prompt: str,
    temperature: float | None = None,
) -> ChatResult:
    """
    Run one JSON-object chat completion.

    The temperature is dropped for models that do not support it.

    Returns:
        ChatResult with the message content and token usage

    Raises:
        ValueError: If the response has no content
        openai.OpenAIError: If the API call fails
    """
    request: dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "response_format": {"type": "json_object"},
    }
    if temperature is not None and supports_temperature(model):
        request["temperature"] = temperature

    response = await client.chat.completions.create(**request)

    usage = TokenUsage.from_response(getattr(response, "usage", None))
    content = response.choices[0].message.content if response.choices else None
    if not content:
        raise ValueError("Empty response from LLM")

    logger.debug(f"LLM raw output ({model}): {content[:300]}")
    return ChatResult(content=content, usage=usage, model=model)


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json(raw_output: str, model: type[T]) -> T:
    """
    Parse LLM output as JSON and validate against a Pydantic model.

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
        pydantic.ValidationError: If parsed JSON doesn't match schema
    """
    cleaned = _strip_llm_fences(raw_output)
    parsed = json.loads(cleaned)
    return model.model_validate(parsed)


def parse_llm_json_any(raw_output: str) -> Any:
    """
    Parse LLM output as JSON without assuming its top-level shape.

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
    """
    return json.loads(_strip_llm_fences(raw_output))


def extract_list(parsed: Any, *keys: str) -> list[Any]:
    """
    Pull a list out of a JSON response that may be a bare array or an
    object wrapping the array under one of `keys`.

    Returns an empty list when no array is found.
    """
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        for key in keys:
            value = parsed.get(key)
            if isinstance(value, list):
                return value
    return []
