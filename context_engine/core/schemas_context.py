"""Schemas for generation cycles, research results, glossary terms and chunks."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# =======================
# Lifecycle enums
# =======================


class CycleType(str, Enum):
    BLUEPRINT = "blueprint"
    RESEARCH = "research"
    GLOSSARY = "glossary"
    CHUNKS = "chunks"


class CycleStatus(str, Enum):
    STARTED = "started"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SUPERSEDED = "superseded"


# Statuses a later cycle may supersede
SUPERSEDABLE_STATUSES = [CycleStatus.STARTED, CycleStatus.PROCESSING, CycleStatus.COMPLETED]

# Stages derived from research results
DOWNSTREAM_OF_RESEARCH = [CycleType.GLOSSARY, CycleType.CHUNKS]


class BlueprintStatus(str, Enum):
    GENERATING = "generating"
    READY = "ready"
    APPROVED = "approved"
    ERROR = "error"
    SUPERSEDED = "superseded"


# Blueprint statuses that count as the agent's live blueprint
LIVE_BLUEPRINT_STATUSES = [BlueprintStatus.GENERATING, BlueprintStatus.READY, BlueprintStatus.APPROVED]


class AgentStage(str, Enum):
    BLUEPRINT = "blueprint"
    RESEARCHING = "researching"
    BUILDING_GLOSSARY = "building_glossary"
    BUILDING_CHUNKS = "building_chunks"
    CONTEXT_COMPLETE = "context_complete"
    REGENERATING_RESEARCH = "regenerating_research"
    REGENERATING_GLOSSARY = "regenerating_glossary"
    REGENERATING_CHUNKS = "regenerating_chunks"
    ERROR = "error"


class AgentStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    ERROR = "error"


def agent_status_for(run_state: str) -> AgentStatus:
    """Map a pipeline run state (running, error, ...) to the coarse agent status."""
    if run_state == "running":
        return AgentStatus.ACTIVE
    if run_state == "error":
        return AgentStatus.ERROR
    return AgentStatus.IDLE


# =======================
# Ownership
# =======================


@dataclass(frozen=True)
class Owned:
    """Row written by a governed generation cycle."""

    cycle_id: str


@dataclass(frozen=True)
class Legacy:
    """Row written before generation cycles existed (null cycle reference)."""


Ownership = Owned | Legacy


def ownership_of(row: dict[str, Any]) -> Ownership:
    """Read the ownership tag from a datastore row."""
    cycle_id = row.get("generation_cycle_id")
    return Owned(str(cycle_id)) if cycle_id else Legacy()


def is_active(ownership: Ownership, active_cycle_ids: set[str]) -> bool:
    """Legacy rows are always active; owned rows only while their cycle is not superseded."""
    if isinstance(ownership, Legacy):
        return True
    return ownership.cycle_id in active_cycle_ids


# =======================
# Research results
# =======================


@dataclass
class ResearchChunk:
    """A stored research fragment as read back for glossary and chunk building."""

    content: str
    api: str
    query: str = ""
    source_url: str | None = None
    quality_score: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    ownership: Ownership = field(default_factory=Legacy)
    id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ResearchChunk":
        return cls(
            id=row.get("id"),
            content=row.get("content") or "",
            api=row.get("api") or "research",
            query=row.get("query") or "",
            source_url=row.get("source_url"),
            quality_score=row.get("quality_score"),
            metadata=row.get("metadata") or {},
            ownership=ownership_of(row),
        )

    @property
    def agent_utility(self) -> list[str]:
        utility = self.metadata.get("agent_utility") or []
        return [str(u) for u in utility] if isinstance(utility, list) else []

    @property
    def priority(self) -> int | None:
        value = self.metadata.get("priority")
        return value if isinstance(value, int) else None


# =======================
# Glossary
# =======================


class TermDefinition(BaseModel):
    """Structured glossary entry."""

    term: str = Field(..., description="Term as displayed")
    definition: str = Field(default="", description="1-3 sentence definition")
    acronym_for: str | None = Field(default=None, description="Expansion when term is an acronym")
    category: str = Field(default="general", description="Term category")
    usage_examples: list[str] = Field(default_factory=list)
    related_terms: list[str] = Field(default_factory=list)
    confidence_score: float = Field(default=0.8, ge=0.0, le=1.0)
    source: str = Field(default="llm_generation", description="exa or llm_generation")
    source_url: str | None = Field(default=None)


# =======================
# Chunks
# =======================


@dataclass
class ChunkCandidate:
    """A chunk competing for a place in the ranked context set."""

    text: str
    source: str
    research_source: str
    quality_score: float
    agent_utility: list[str] = field(default_factory=list)
    priority: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RankedChunk:
    candidate: ChunkCandidate
    score: float
    rank: int
