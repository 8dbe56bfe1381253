"""OpenAI embeddings generation with validation."""

from dataclasses import dataclass

from openai import AsyncOpenAI

from context_engine.core.logging import get_logger
from context_engine.core.pricing import TokenUsage

logger = get_logger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_EMBEDDING_DIM = 1536


@dataclass
class EmbeddingResult:
    """Vector plus the tokens billed for it."""

    embedding: list[float]
    usage: TokenUsage


def prepare_embedding_input(text: str | None, max_chars: int) -> str | None:
    """
    Guard a chunk before it is sent for embedding.

    Returns None for empty or whitespace-only text. Text longer than
    max_chars is truncated rather than rejected.
    """
    if text is None:
        return None
    stripped = text.strip()
    if not stripped:
        return None
    if len(stripped) > max_chars:
        logger.warning(
            f"Truncating chunk from {len(stripped)} to {max_chars} chars before embedding"
        )
        return stripped[:max_chars]
    return stripped


async def embed_text(
    client: AsyncOpenAI,
    text: str,
    model: str = DEFAULT_EMBEDDING_MODEL,
    dimensions: int = DEFAULT_EMBEDDING_DIM,
) -> EmbeddingResult:
    """
    Generate an embedding for one text.

    Args:
        client: Async OpenAI client
        text: Text to embed (already guarded by prepare_embedding_input)
        model: Embedding model
        dimensions: Expected vector length

    Returns:
        EmbeddingResult with vector and token usage

    Raises:
        ValueError: If embedding dimension doesn't match `dimensions`
        Exception: If OpenAI API call fails
    """
    response = await client.embeddings.create(model=model, input=text)
    embedding = response.data[0].embedding

    if len(embedding) != dimensions:
        raise ValueError(
            f"Embedding dimension mismatch: expected {dimensions}, got {len(embedding)}"
        )

    return EmbeddingResult(
        embedding=embedding,
        usage=TokenUsage.from_response(getattr(response, "usage", None)),
    )
