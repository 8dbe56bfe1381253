"""Pydantic schemas for context blueprints.

Parsing is deliberately lenient: missing sections become empty defaults so
that an incomplete LLM response can still be validated against the minimum
counts and then normalized.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# =======================
# Enums and limits
# =======================


class ResearchApi(str, Enum):
    """Research provider named by a query."""

    EXA = "exa"
    WIKIPEDIA = "wikipedia"


class QualityTier(str, Enum):
    """Chunk set quality tier."""

    BASIC = "basic"
    COMPREHENSIVE = "comprehensive"


MIN_IMPORTANT_DETAILS = 5
MIN_INFERRED_TOPICS = 5
MIN_KEY_TERMS = 10
MIN_RESEARCH_QUERIES = 5
MIN_GLOSSARY_TERMS = 10
MIN_CHUNK_SOURCES = 3


def _only_dicts(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return value


def _only_strings(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return value


class _PlanModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


# =======================
# Plan sections
# =======================


class ResearchQuery(_PlanModel):
    """One planned research query."""

    query: str = Field(default="", description="Search query text")
    api: str = Field(default="exa", description="Provider: exa or wikipedia")
    priority: int | None = Field(default=None, description="1 = highest")
    estimated_cost: float | None = Field(default=None, description="Estimated USD cost")
    agent_utility: list[str] = Field(
        default_factory=list, description="Downstream agents served: facts, cards, glossary"
    )
    provenance_hint: str = Field(default="", description="Expected source of the material")

    @field_validator("agent_utility", mode="before")
    @classmethod
    def coerce_utility(cls, value: Any) -> Any:
        return _only_strings(value)


class ResearchPlan(_PlanModel):
    queries: list[ResearchQuery] = Field(default_factory=list)
    total_searches: int = 0
    estimated_total_cost: float = 0.0

    @field_validator("queries", mode="before")
    @classmethod
    def coerce_queries(cls, value: Any) -> Any:
        return _only_dicts(value)


class GlossaryTermPlan(_PlanModel):
    """One planned glossary term."""

    term: str = Field(default="", description="Term to define")
    is_acronym: bool = Field(default=False, description="Whether the term is an acronym")
    category: str | None = Field(default=None, description="Term category")
    priority: int | None = Field(default=None, description="1 = highest")
    agent_utility: list[str] = Field(default_factory=list)

    @field_validator("agent_utility", mode="before")
    @classmethod
    def coerce_utility(cls, value: Any) -> Any:
        return _only_strings(value)


class GlossaryPlan(_PlanModel):
    terms: list[GlossaryTermPlan] = Field(default_factory=list)
    estimated_count: int = 0

    @field_validator("terms", mode="before")
    @classmethod
    def coerce_terms(cls, value: Any) -> Any:
        return _only_dicts(value)


class ChunkSourcePlan(_PlanModel):
    """One planned source of context chunks."""

    label: str = ""
    source: str | None = None
    upstream_reference: str = ""
    expected_format: str = ""
    priority: int | None = None
    estimated_chunks: int = 0
    agent_utility: list[str] = Field(default_factory=list)

    @field_validator("agent_utility", mode="before")
    @classmethod
    def coerce_utility(cls, value: Any) -> Any:
        return _only_strings(value)


class ChunksPlan(_PlanModel):
    sources: list[ChunkSourcePlan] = Field(default_factory=list)
    target_count: int = 0
    quality_tier: str = ""
    ranking_strategy: str = ""

    @field_validator("sources", mode="before")
    @classmethod
    def coerce_sources(cls, value: Any) -> Any:
        return _only_dicts(value)


class CostBreakdown(_PlanModel):
    research: float = 0.0
    glossary: float = 0.0
    chunks: float = 0.0
    total: float = 0.0


class AudienceProfile(_PlanModel):
    audience_summary: str = ""
    primary_roles: list[str] = Field(default_factory=list)
    core_needs: list[str] = Field(default_factory=list)
    desired_outcomes: list[str] = Field(default_factory=list)
    tone_and_voice: str = ""
    cautionary_notes: list[str] = Field(default_factory=list)


class AgentFocus(_PlanModel):
    highlights: list[str] = Field(default_factory=list)
    assets: list[str] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)


class AgentAlignment(_PlanModel):
    facts: AgentFocus = Field(default_factory=AgentFocus)
    cards: AgentFocus = Field(default_factory=AgentFocus)


# =======================
# Blueprint
# =======================


class Blueprint(_PlanModel):
    """Complete plan produced before research, glossary and chunk work."""

    important_details: list[str] = Field(default_factory=list)
    inferred_topics: list[str] = Field(default_factory=list)
    key_terms: list[str] = Field(default_factory=list)
    audience_profile: AudienceProfile = Field(default_factory=AudienceProfile)
    research_plan: ResearchPlan = Field(default_factory=ResearchPlan)
    glossary_plan: GlossaryPlan = Field(default_factory=GlossaryPlan)
    chunks_plan: ChunksPlan = Field(default_factory=ChunksPlan)
    cost_breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    agent_alignment: AgentAlignment = Field(default_factory=AgentAlignment)

    @field_validator("important_details", "inferred_topics", "key_terms", mode="before")
    @classmethod
    def coerce_strings(cls, value: Any) -> Any:
        return _only_strings(value)

    def shortfalls(self) -> list[str]:
        """Describe every section below its minimum count (empty when valid)."""
        counts = [
            ("important_details", len(self.important_details), MIN_IMPORTANT_DETAILS),
            ("inferred_topics", len(self.inferred_topics), MIN_INFERRED_TOPICS),
            ("key_terms", len(self.key_terms), MIN_KEY_TERMS),
            ("research_queries", len(self.research_plan.queries), MIN_RESEARCH_QUERIES),
            ("glossary_terms", len(self.glossary_plan.terms), MIN_GLOSSARY_TERMS),
            ("chunks_sources", len(self.chunks_plan.sources), MIN_CHUNK_SOURCES),
        ]
        return [f"{name} ({count}/{minimum})" for name, count, minimum in counts if count < minimum]

    def meets_minimums(self) -> bool:
        return not self.shortfalls()
