"""Provider pricing tables and cost accounting for pipeline runs."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from context_engine.core.logging import get_logger

logger = get_logger(__name__)

PRICING_VERSION = "2025-11-09"

# OpenAI pricing per 1K tokens: (input, output)
OPENAI_PRICING: dict[str, tuple[float, float]] = {
    # GPT-5 family
    "gpt-5": (0.00125, 0.01),
    "gpt-5-mini": (0.00025, 0.002),
    "gpt-5-nano": (0.00005, 0.0004),
    "gpt-5-chat-latest": (0.00125, 0.01),
    "gpt-5-pro": (0.015, 0.12),
    # GPT-4.1 family
    "gpt-4.1": (0.002, 0.008),
    "gpt-4.1-mini": (0.0004, 0.0016),
    "gpt-4.1-nano": (0.0001, 0.0004),
    # GPT-4o family
    "gpt-4o": (0.0025, 0.01),
    "gpt-4o-2024-05-13": (0.005, 0.015),
    "gpt-4o-mini": (0.00015, 0.0006),
    # Legacy
    "gpt-4-turbo": (0.01, 0.03),
    "gpt-3.5-turbo": (0.0005, 0.0015),
    # Reasoning models
    "o1": (0.015, 0.06),
    "o1-preview": (0.015, 0.06),
    "o1-mini": (0.0011, 0.0044),
    "o1-pro": (0.15, 0.6),
    "o3": (0.002, 0.008),
}

# Embedding pricing per 1K tokens
EMBEDDING_PRICING: dict[str, float] = {
    "text-embedding-3-small": 0.00002,
    "text-embedding-3-large": 0.00013,
    "text-embedding-ada-002": 0.0001,
}

DEFAULT_CHAT_MODEL = "gpt-4o-mini"

# Exa pricing in USD
EXA_SEARCH_PER_QUERY = 0.03
EXA_ANSWER_PER_QUERY = 0.02
EXA_RESEARCH_PER_1K_SEARCHES = 5.0
EXA_RESEARCH_PER_1K_PAGES = 5.0
EXA_RESEARCH_PER_1M_TOKENS = 5.0

# Exa does not report usage for research tasks; assume a typical task
ESTIMATED_RESEARCH_USAGE = {"searches": 5, "pages": 3, "tokens": 50_000}


@dataclass
class TokenUsage:
    """Token counts reported by an OpenAI response."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_response(cls, usage: Any) -> "TokenUsage":
        """Build from an OpenAI `usage` object (or None)."""
        if usage is None:
            return cls()
        prompt = getattr(usage, "prompt_tokens", 0) or 0
        completion = getattr(usage, "completion_tokens", 0) or 0
        total = getattr(usage, "total_tokens", 0) or prompt + completion
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


def calculate_openai_cost(usage: TokenUsage, model: str, is_embedding: bool = False) -> float:
    """
    Calculate USD cost of an OpenAI call.

    Unknown chat models are priced as gpt-4o-mini.
    """
    if is_embedding and model in EMBEDDING_PRICING:
        return (usage.total_tokens / 1000) * EMBEDDING_PRICING[model]

    pricing = OPENAI_PRICING.get(model)
    if pricing is None:
        logger.warning(f"No pricing found for model '{model}', using {DEFAULT_CHAT_MODEL} pricing")
        pricing = OPENAI_PRICING[DEFAULT_CHAT_MODEL]

    input_rate, output_rate = pricing
    return (usage.prompt_tokens / 1000) * input_rate + (
        usage.completion_tokens / 1000
    ) * output_rate


def calculate_exa_search_cost(query_count: int) -> float:
    return query_count * EXA_SEARCH_PER_QUERY


def calculate_exa_answer_cost(query_count: int) -> float:
    return query_count * EXA_ANSWER_PER_QUERY


def calculate_exa_research_cost(searches: int = 0, pages: int = 0, tokens: int = 0) -> float:
    return (
        (searches / 1000) * EXA_RESEARCH_PER_1K_SEARCHES
        + (pages / 1000) * EXA_RESEARCH_PER_1K_PAGES
        + (tokens / 1_000_000) * EXA_RESEARCH_PER_1M_TOKENS
    )


@dataclass
class _QueryCost:
    cost: float = 0.0
    queries: int = 0


@dataclass
class _ResearchCost:
    cost: float = 0.0
    queries: int = 0
    usage: dict[str, int] = field(
        default_factory=lambda: {"searches": 0, "pages": 0, "tokens": 0}
    )


@dataclass
class CostTracker:
    """Accumulates provider spend for one pipeline stage run."""

    chat_completions: list[dict[str, Any]] = field(default_factory=list)
    embeddings: list[dict[str, Any]] = field(default_factory=list)
    exa_search: _QueryCost = field(default_factory=_QueryCost)
    exa_research: _ResearchCost = field(default_factory=_ResearchCost)
    exa_answer: _QueryCost = field(default_factory=_QueryCost)

    def add_chat(self, usage: TokenUsage, model: str) -> float:
        cost = calculate_openai_cost(usage, model)
        self.chat_completions.append({"cost": cost, "usage": asdict(usage), "model": model})
        return cost

    def add_embedding(self, usage: TokenUsage, model: str) -> float:
        cost = calculate_openai_cost(usage, model, is_embedding=True)
        self.embeddings.append({"cost": cost, "usage": asdict(usage), "model": model})
        return cost

    def add_exa_search(self, query_count: int = 1) -> float:
        cost = calculate_exa_search_cost(query_count)
        self.exa_search.cost += cost
        self.exa_search.queries += query_count
        return cost

    def add_exa_answer(self, query_count: int = 1) -> float:
        cost = calculate_exa_answer_cost(query_count)
        self.exa_answer.cost += cost
        self.exa_answer.queries += query_count
        return cost

    def add_exa_research(
        self,
        searches: int = ESTIMATED_RESEARCH_USAGE["searches"],
        pages: int = ESTIMATED_RESEARCH_USAGE["pages"],
        tokens: int = ESTIMATED_RESEARCH_USAGE["tokens"],
    ) -> float:
        cost = calculate_exa_research_cost(searches, pages, tokens)
        self.exa_research.cost += cost
        self.exa_research.queries += 1
        self.exa_research.usage["searches"] += searches
        self.exa_research.usage["pages"] += pages
        self.exa_research.usage["tokens"] += tokens
        return cost

    def merge(self, other: "CostTracker") -> None:
        """Fold another tracker's spend into this one."""
        self.chat_completions.extend(other.chat_completions)
        self.embeddings.extend(other.embeddings)
        self.exa_search.cost += other.exa_search.cost
        self.exa_search.queries += other.exa_search.queries
        self.exa_answer.cost += other.exa_answer.cost
        self.exa_answer.queries += other.exa_answer.queries
        self.exa_research.cost += other.exa_research.cost
        self.exa_research.queries += other.exa_research.queries
        for key, value in other.exa_research.usage.items():
            self.exa_research.usage[key] = self.exa_research.usage.get(key, 0) + value

    @property
    def openai_total(self) -> float:
        return sum(c["cost"] for c in self.chat_completions) + sum(
            e["cost"] for e in self.embeddings
        )

    @property
    def exa_total(self) -> float:
        return self.exa_search.cost + self.exa_research.cost + self.exa_answer.cost

    @property
    def total(self) -> float:
        return self.openai_total + self.exa_total

    def to_metadata(self) -> dict[str, Any]:
        """Render as the `cost` block stored in generation cycle metadata."""
        openai: dict[str, Any] = {
            "total": self.openai_total,
            "chat_completions": self.chat_completions,
        }
        if self.embeddings:
            openai["embeddings"] = self.embeddings

        return {
            "cost": {
                "total": self.total,
                "currency": "USD",
                "breakdown": {
                    "openai": openai,
                    "exa": {
                        "total": self.exa_total,
                        "search": asdict(self.exa_search),
                        "research": asdict(self.exa_research),
                        "answer": asdict(self.exa_answer),
                    },
                },
                "tracked_at": datetime.now(timezone.utc).isoformat(),  # noqa: UP017
                "pricing_version": PRICING_VERSION,
            }
        }
