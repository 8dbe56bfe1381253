"""Glossary phase: define the blueprint's planned terms and upsert them.

High-priority terms are first asked of Exa /answer and the answer is
polished into a structured definition. Everything else, and every term
whose authoritative attempt fails, is defined by one LLM call per batch.
"""

from dataclasses import dataclass

import httpx
from openai import OpenAIError

from context_engine.chains.define_glossary_terms import (
    EXA_ANSWER_SYSTEM_PROMPT,
    define_terms_batch,
    polish_exa_answer,
)
from context_engine.core.errors import DatastoreError, ProviderCreditsExhaustedError
from context_engine.core.logging import get_logger
from context_engine.core.pricing import CostTracker
from context_engine.core.schemas_blueprint import Blueprint, GlossaryTermPlan
from context_engine.core.schemas_context import CycleStatus, ResearchChunk, TermDefinition
from context_engine.db.generation_cycles import update_generation_cycle
from context_engine.db.glossary_terms import upsert_glossary_term
from context_engine.db.research_results import list_active_research_results
from context_engine.pipeline.clients import PipelineClients
from context_engine.pipeline.snippet_selector import select_relevant_snippets

logger = get_logger(__name__)


@dataclass
class AnswerCircuitBreaker:
    """One-way switch that disables the authoritative path for the rest of a run."""

    tripped: bool = False
    reason: str | None = None

    def trip(self, reason: str) -> None:
        if not self.tripped:
            logger.warning(f"Disabling Exa answers for remaining terms: {reason}")
        self.tripped = True
        self.reason = reason


def build_research_context(chunks: list[ResearchChunk], max_chars: int) -> str:
    return "\n\n".join(c.content for c in chunks if c.content.strip())[:max_chars]


def _batches(terms: list[GlossaryTermPlan], size: int) -> list[list[GlossaryTermPlan]]:
    size = max(size, 1)
    return [terms[i : i + size] for i in range(0, len(terms), size)]


class GlossaryBatchRunner:
    """Defines terms batch by batch, sharing the breaker and cost tracker."""

    def __init__(
        self,
        clients: PipelineClients,
        research: list[ResearchChunk],
        important_details: str,
        costs: CostTracker | None = None,
        breaker: AnswerCircuitBreaker | None = None,
    ):
        self.clients = clients
        self.research = research
        self.important_details = important_details
        self.costs = costs or CostTracker()
        self.breaker = breaker or AnswerCircuitBreaker()
        self.model = clients.settings.GLOSSARY_MODEL
        self.research_context = build_research_context(
            research, clients.settings.GLOSSARY_MAX_RESEARCH_CHARS
        )

    def _wants_answer(self, term: GlossaryTermPlan) -> bool:
        max_priority = self.clients.settings.GLOSSARY_AUTHORITATIVE_MAX_PRIORITY
        return (
            self.clients.exa is not None
            and not self.breaker.tripped
            and term.priority is not None
            and term.priority <= max_priority
        )

    async def define_with_answer(self, term: GlossaryTermPlan) -> TermDefinition | None:
        """
        Authoritative path: Exa /answer, then an LLM polish pass.

        Returns None when the term should fall back to the LLM batch.
        """
        exa = self.clients.exa
        if exa is None:
            return None

        try:
            answer = await exa.answer(f"What is {term.term}?", EXA_ANSWER_SYSTEM_PROMPT)
        except ProviderCreditsExhaustedError as e:
            self.breaker.trip(str(e))
            return None
        except (httpx.HTTPError, ValueError) as e:
            # ValueError covers non-JSON bodies from gateways
            logger.warning(f"Exa answer failed for '{term.term}': {e}")
            return None

        self.costs.add_exa_answer(1)
        text = answer.answer.strip()
        if not text:
            return None

        source_url = answer.citations[0].get("url") if answer.citations else None
        snippets = select_relevant_snippets(term, self.research)
        try:
            definition, usage = await polish_exa_answer(
                self.clients.openai,
                self.model,
                term,
                text,
                source_url,
                snippets,
                self.important_details,
            )
        except (OpenAIError, ValueError) as e:
            logger.warning(f"Polishing Exa answer failed for '{term.term}': {e}")
            return None

        self.costs.add_chat(usage, self.model)
        return definition

    async def define_batch(self, terms: list[GlossaryTermPlan]) -> list[TermDefinition]:
        definitions: list[TermDefinition] = []
        llm_terms: list[GlossaryTermPlan] = []

        for term in terms:
            if self._wants_answer(term):
                definition = await self.define_with_answer(term)
                if definition is not None:
                    definitions.append(definition)
                    continue
            llm_terms.append(term)

        if llm_terms:
            snippets_by_term = {
                term.term: select_relevant_snippets(term, self.research) for term in llm_terms
            }
            try:
                generated, usage = await define_terms_batch(
                    self.clients.openai,
                    self.model,
                    llm_terms,
                    self.research_context,
                    self.important_details,
                    snippets_by_term,
                )
            except (OpenAIError, ValueError) as e:
                logger.error(f"LLM glossary batch failed for {len(llm_terms)} terms: {e}")
            else:
                self.costs.add_chat(usage, self.model)
                definitions.extend(generated)

        return definitions


async def run_glossary_phase(
    clients: PipelineClients,
    event_id: str,
    cycle_id: str,
    blueprint: Blueprint,
) -> CostTracker:
    """
    Define and upsert every planned glossary term.

    Batches run sequentially. A term that cannot be stored is logged and
    skipped; failing to complete the cycle is raised.

    Raises:
        DatastoreError: If research cannot be loaded or the cycle cannot be updated
    """
    settings = clients.settings
    terms = [t for t in blueprint.glossary_plan.terms if t.term.strip()]
    utility_by_term = {t.term.strip().lower(): t.agent_utility for t in terms}

    research = list_active_research_results(clients.supabase, event_id)
    runner = GlossaryBatchRunner(clients, research, "\n".join(blueprint.important_details))

    update_generation_cycle(
        clients.supabase, cycle_id, status=CycleStatus.PROCESSING, progress_total=len(terms)
    )
    logger.info(
        f"Defining {len(terms)} glossary terms from {len(research)} research chunks",
        extra={"event_id": event_id, "cycle_id": cycle_id},
    )

    written = 0
    for batch in _batches(terms, settings.GLOSSARY_BATCH_SIZE):
        for definition in await runner.define_batch(batch):
            try:
                upsert_glossary_term(
                    clients.supabase,
                    event_id,
                    cycle_id,
                    definition,
                    agent_utility=utility_by_term.get(definition.term.strip().lower()),
                )
            except DatastoreError as e:
                logger.error(f"Failed to store glossary term '{definition.term}': {e}")
                continue
            written += 1

        update_generation_cycle(clients.supabase, cycle_id, progress_current=written)

    update_generation_cycle(
        clients.supabase,
        cycle_id,
        status=CycleStatus.COMPLETED,
        progress_current=written,
        metadata=runner.costs.to_metadata(),
    )
    logger.info(
        f"Glossary phase complete: {written}/{len(terms)} terms stored",
        extra={
            "event_id": event_id,
            "cycle_id": cycle_id,
            "exa_disabled": runner.breaker.tripped,
            "cost": round(runner.costs.total, 4),
        },
    )
    return runner.costs
