"""Deep research tasks: submit, poll in the background, store or fall back.

High-priority queries are submitted as Exa research tasks and the research
loop moves on immediately. Once every query has been dispatched, the pending
tasks are polled together. A task that completes is stored as chunks; a task
that fails, comes back empty or outlives the maximum age is replaced by a synchronous search
for the same query, so no query silently yields nothing.

A schema validation failure is never retried: Exa terminates the task, and
the same schema would fail again.
"""

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from context_engine.core.chunking import chunk_words
from context_engine.core.errors import ProviderCreditsExhaustedError, ResearchSchemaValidationError
from context_engine.core.logging import get_logger
from context_engine.core.schemas_blueprint import ResearchApi, ResearchQuery
from context_engine.pipeline.quality_scores import DEEP_RESEARCH_QUALITY
from context_engine.pipeline.research_strategies import (
    CHUNK_MAX_WORDS,
    CHUNK_MIN_WORDS,
    ResearchRun,
    run_search,
)

logger = get_logger(__name__)

MIN_SUMMARY_CHARS = 50

RESEARCH_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["summary", "keyPoints"],
    "properties": {
        "summary": {
            "type": "string",
            "description": "A comprehensive summary (500-1000 words) covering the main topic",
        },
        "keyPoints": {
            "type": "array",
            "items": {"type": "string"},
            "maxItems": 10,
            "description": "Key insights, developments, or findings (1-2 sentences each)",
        },
    },
    "additionalProperties": False,
}


def build_research_instructions(query: str) -> str:
    return f"""Research the topic: "{query}"

OBJECTIVE: Provide a structured summary with key points suitable for AI context building.

WHAT TO FIND:
- Latest developments and the current state of the field
- Industry standards and best practices
- Key insights and practical applications
- Relevant technical details and methodologies

HOW TO RESEARCH:
- Use 3-5 targeted searches to find authoritative sources
- Focus on recent, high-quality publications and official documentation
- Prefer comprehensive overview sources over narrow niche articles

HOW TO COMPOSE:
- Write a concise summary (500-1000 words) synthesizing the findings
- Extract 8-10 key points as separate insights
- Include citations for important claims
- Focus on actionable information relevant to the topic"""


@dataclass
class PendingResearchTask:
    """A submitted research task awaiting completion."""

    task_id: str
    query: ResearchQuery
    query_number: int
    created_at: float = field(default_factory=time.monotonic)


@dataclass
class ResearchOutput:
    summary: str
    key_points: list[str]

    def to_text(self) -> str:
        if not self.key_points:
            return self.summary
        points = "\n".join(f"{i}. {point}" for i, point in enumerate(self.key_points, 1))
        return f"{self.summary}\n\nKey Points:\n{points}"


def normalize_research_output(output: Any) -> ResearchOutput | None:
    """
    Read a task's output as summary + key points.

    The output may be a JSON string, free text, or an object (optionally
    wrapping the structured result under `parsed`). Returns None when the
    summary is missing or too short to be useful.
    """
    data: Any = output
    if isinstance(output, str):
        try:
            data = json.loads(output)
        except json.JSONDecodeError:
            data = {"summary": output, "keyPoints": []}

    if not isinstance(data, dict):
        return None
    if isinstance(data.get("parsed"), dict):
        data = data["parsed"]

    summary = data.get("summary") or data.get("content") or data.get("text") or ""
    if not isinstance(summary, str) or len(summary.strip()) < MIN_SUMMARY_CHARS:
        return None

    key_points = data.get("keyPoints") or []
    if not isinstance(key_points, list):
        key_points = []
    return ResearchOutput(
        summary=summary.strip(),
        key_points=[str(point).strip() for point in key_points if str(point).strip()],
    )


async def submit_deep_research(
    run: ResearchRun, query: ResearchQuery, query_number: int
) -> PendingResearchTask:
    """
    Create an Exa research task for a query.

    Raises:
        ResearchSchemaValidationError: If Exa rejects the output schema
        httpx.HTTPError: If the request fails
    """
    exa = run.clients.exa
    if exa is None:
        raise ValueError("Deep research requested without an Exa client")

    status = await exa.create_research_task(
        build_research_instructions(query.query), RESEARCH_OUTPUT_SCHEMA
    )
    logger.info(
        f"Exa research task {status.task_id} created for '{query.query}' (status={status.status})",
        extra={"cycle_id": run.cycle_id, "query_number": query_number},
    )
    return PendingResearchTask(task_id=status.task_id, query=query, query_number=query_number)


def store_research_output(run: ResearchRun, task: PendingResearchTask, output: Any) -> int:
    """Chunk and store a completed task's output. Returns chunks stored."""
    normalized = normalize_research_output(output)
    if normalized is None:
        logger.warning(f"Exa research output empty or too short for '{task.query.query}'")
        return 0

    stored = 0
    for chunk in chunk_words(normalized.to_text(), CHUNK_MIN_WORDS, CHUNK_MAX_WORDS):
        metadata = {
            "api": ResearchApi.EXA.value,
            "query": task.query.query,
            "research_id": task.task_id,
            "method": "research",
            "quality_score": DEEP_RESEARCH_QUALITY,
        }
        if run.store_chunk(
            task.query, ResearchApi.EXA.value, chunk, DEEP_RESEARCH_QUALITY, metadata
        ):
            stored += 1

    run.costs.add_exa_research()
    return stored


async def _fall_back_to_search(run: ResearchRun, task: PendingResearchTask, reason: str) -> None:
    logger.warning(
        f"Research task {task.task_id} {reason}; falling back to search for '{task.query.query}'",
        extra={"cycle_id": run.cycle_id},
    )
    try:
        stored = await run_search(run, task.query)
    except Exception as e:
        logger.error(f"Fallback search failed for '{task.query.query}': {e}")
        return
    logger.info(f"Fallback search stored {stored} chunks for '{task.query.query}'")


async def poll_research_tasks(
    run: ResearchRun,
    pending: list[PendingResearchTask],
    poll_interval: float = 10.0,
    max_age: float = 300.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> None:
    """
    Poll pending tasks until each completes, fails or exceeds `max_age`.

    Polling errors keep the task pending until it ages out. Exhausted
    credits send the task straight to the search fallback.

    Raises:
        ResearchSchemaValidationError: If a task failed schema validation
    """
    exa = run.clients.exa
    if exa is None or not pending:
        return

    active = list(pending)
    logger.info(f"Polling {len(active)} research task(s)", extra={"cycle_id": run.cycle_id})

    while active:
        for task in list(active):
            if clock() - task.created_at > max_age:
                active.remove(task)
                await _fall_back_to_search(run, task, "exceeded max poll time")
                continue

            try:
                status = await exa.get_research_task(task.task_id)
            except ResearchSchemaValidationError:
                raise
            except ProviderCreditsExhaustedError as e:
                active.remove(task)
                await _fall_back_to_search(run, task, f"could not be polled ({e})")
                continue
            except Exception as e:
                logger.warning(f"Error polling research task {task.task_id}: {e}")
                continue

            if status.is_completed:
                active.remove(task)
                if normalize_research_output(status.output) is None:
                    await _fall_back_to_search(run, task, "completed without usable output")
                    continue
                stored = store_research_output(run, task, status.output)
                logger.info(f"Research task {task.task_id} completed: {stored} chunks stored")
            elif status.is_failed:
                active.remove(task)
                await _fall_back_to_search(run, task, f"failed ({status.error or 'unknown error'})")

        if active:
            await sleep(poll_interval)
