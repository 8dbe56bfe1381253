"""Context generation pipeline.

This package provides:
- Blueprint generation for an agent
- Research, glossary and chunk stages run under generation cycles
- Full generation and per-stage regeneration entry points
"""

from context_engine.pipeline.blueprint_phase import run_blueprint_phase
from context_engine.pipeline.clients import PipelineClients
from context_engine.pipeline.orchestrator import (
    regenerate_chunks,
    regenerate_glossary,
    regenerate_research,
    run_full_generation,
)

__all__ = [
    "PipelineClients",
    "regenerate_chunks",
    "regenerate_glossary",
    "regenerate_research",
    "run_blueprint_phase",
    "run_full_generation",
]
