"""Tests for deep research submission, polling and fallback (Exa mocked)."""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from context_engine.core.errors import ProviderCreditsExhaustedError, ResearchSchemaValidationError
from context_engine.core.exa_service import ExaSearchResult, ExaService, ResearchTaskStatus
from context_engine.core.schemas_blueprint import ResearchQuery
from context_engine.pipeline.deep_research import (
    RESEARCH_OUTPUT_SCHEMA,
    PendingResearchTask,
    ResearchOutput,
    normalize_research_output,
    poll_research_tasks,
    submit_deep_research,
)
from context_engine.pipeline.research_strategies import ResearchRun

SUMMARY = "Platform engineering teams build internal developer platforms to reduce cognitive load."


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def exa():
    service = MagicMock()
    service.search = AsyncMock(
        return_value=[ExaSearchResult(url="https://fallback.example", text="Fallback search text.")]
    )
    service.create_research_task = AsyncMock(return_value=ResearchTaskStatus("r-1", "running"))
    service.get_research_task = AsyncMock(return_value=ResearchTaskStatus("r-1", "running"))
    return service


@pytest.fixture
def run(clients, exa):
    clients.exa = exa
    return ResearchRun(clients=clients, event_id="event-1", blueprint_id="bp-1", cycle_id="cycle-1")


def _task(query: str = "platform engineering", priority: int = 1) -> PendingResearchTask:
    return PendingResearchTask(
        task_id="r-1",
        query=ResearchQuery(query=query, priority=priority, agent_utility=["facts"]),
        query_number=1,
        created_at=0.0,
    )


def test_normalize_structured_output():
    output = normalize_research_output({"summary": SUMMARY, "keyPoints": ["One", " ", "Two"]})

    assert output == ResearchOutput(summary=SUMMARY, key_points=["One", "Two"])
    assert output.to_text() == f"{SUMMARY}\n\nKey Points:\n1. One\n2. Two"


def test_normalize_json_string_and_parsed_wrapper():
    as_string = normalize_research_output(json.dumps({"summary": SUMMARY, "keyPoints": ["A"]}))
    wrapped = normalize_research_output({"parsed": {"summary": SUMMARY}, "content": "raw"})

    assert as_string.key_points == ["A"]
    assert wrapped.summary == SUMMARY
    assert wrapped.to_text() == SUMMARY


def test_normalize_free_text_and_alternate_keys():
    assert normalize_research_output(SUMMARY).summary == SUMMARY
    assert normalize_research_output({"content": SUMMARY}).summary == SUMMARY


@pytest.mark.parametrize("output", [None, "", "too short", {"summary": "short"}, ["list"], {"keyPoints": ["x"]}])
def test_normalize_rejects_unusable_output(output):
    assert normalize_research_output(output) is None


def test_output_schema_is_closed():
    assert RESEARCH_OUTPUT_SCHEMA["required"] == ["summary", "keyPoints"]
    assert RESEARCH_OUTPUT_SCHEMA["additionalProperties"] is False


@pytest.mark.asyncio
async def test_submit_creates_task_with_schema(run, exa):
    query = ResearchQuery(query="platform engineering", priority=1)

    task = await submit_deep_research(run, query, 3)

    assert (task.task_id, task.query_number) == ("r-1", 3)
    instructions, schema = exa.create_research_task.await_args.args
    assert '"platform engineering"' in instructions
    assert schema is RESEARCH_OUTPUT_SCHEMA


@pytest.mark.asyncio
async def test_completed_task_is_stored_as_chunks(run, exa, fake_supabase):
    exa.get_research_task.side_effect = [
        ResearchTaskStatus("r-1", "running"),
        ResearchTaskStatus("r-1", "completed", output={"summary": SUMMARY, "keyPoints": ["A"]}),
    ]
    clock = FakeClock()

    await poll_research_tasks(run, [_task()], poll_interval=10.0, clock=clock, sleep=clock.sleep)

    rows = fake_supabase.rows("research_results")
    assert len(rows) == 1
    assert rows[0]["quality_score"] == 0.95
    assert rows[0]["generation_cycle_id"] == "cycle-1"
    assert rows[0]["metadata"]["research_id"] == "r-1"
    assert rows[0]["metadata"]["method"] == "research"
    assert rows[0]["metadata"]["priority"] == 1
    assert rows[0]["metadata"]["agent_utility"] == ["facts"]
    assert clock.sleeps == [10.0]
    assert run.costs.exa_research.queries == 1
    exa.search.assert_not_awaited()


@pytest.mark.asyncio
async def test_task_exceeding_max_age_falls_back_to_search(run, exa, fake_supabase):
    clock = FakeClock()

    await poll_research_tasks(
        run, [_task()], poll_interval=10.0, max_age=300.0, clock=clock, sleep=clock.sleep
    )

    assert clock.now > 300.0
    exa.search.assert_awaited_once_with("platform engineering", 5)
    rows = fake_supabase.rows("research_results")
    assert [r["content"] for r in rows] == ["Fallback search text."]
    assert run.costs.exa_search.queries == 1
    assert run.costs.exa_research.queries == 0


@pytest.mark.asyncio
async def test_failed_task_falls_back_to_search(run, exa, fake_supabase):
    exa.get_research_task.return_value = ResearchTaskStatus("r-1", "failed", error="internal error")
    clock = FakeClock()

    await poll_research_tasks(run, [_task()], clock=clock, sleep=clock.sleep)

    exa.search.assert_awaited_once()
    assert clock.sleeps == []
    assert len(fake_supabase.rows("research_results")) == 1


@pytest.mark.asyncio
async def test_polling_errors_keep_task_pending(run, exa, fake_supabase):
    exa.get_research_task.side_effect = [
        httpx.ConnectError("reset"),
        ResearchTaskStatus("r-1", "completed", output={"summary": SUMMARY}),
    ]
    clock = FakeClock()

    await poll_research_tasks(run, [_task()], poll_interval=5.0, clock=clock, sleep=clock.sleep)

    assert clock.sleeps == [5.0]
    assert len(fake_supabase.rows("research_results")) == 1
    exa.search.assert_not_awaited()


@pytest.mark.asyncio
async def test_short_output_falls_back_to_search(run, exa, fake_supabase):
    exa.get_research_task.return_value = ResearchTaskStatus("r-1", "completed", output={"summary": "tiny"})
    clock = FakeClock()

    await poll_research_tasks(run, [_task()], clock=clock, sleep=clock.sleep)

    exa.search.assert_awaited_once()
    assert [r["content"] for r in fake_supabase.rows("research_results")] == ["Fallback search text."]
    assert run.costs.exa_research.queries == 0


@pytest.mark.asyncio
async def test_schema_validation_failure_propagates(run, exa):
    exa.get_research_task.side_effect = ResearchSchemaValidationError("r-1", "schema mismatch")
    clock = FakeClock()

    with pytest.raises(ResearchSchemaValidationError):
        await poll_research_tasks(run, [_task()], clock=clock, sleep=clock.sleep)

    exa.search.assert_not_awaited()


@pytest.mark.asyncio
async def test_fallback_search_failure_is_logged_not_raised(run, exa, fake_supabase):
    exa.search.side_effect = RuntimeError("exa down")
    exa.get_research_task.return_value = ResearchTaskStatus("r-1", "canceled")
    clock = FakeClock()

    await poll_research_tasks(run, [_task()], clock=clock, sleep=clock.sleep)

    assert fake_supabase.rows("research_results") == []


@pytest.mark.asyncio
async def test_nothing_pending_returns_immediately(run, exa):
    await poll_research_tasks(run, [])

    exa.get_research_task.assert_not_awaited()


@pytest.mark.asyncio
async def test_exhausted_credits_while_polling_falls_back_to_search(run, exa, fake_supabase):
    exa.get_research_task.side_effect = ProviderCreditsExhaustedError("exa", "402")
    clock = FakeClock()

    await poll_research_tasks(run, [_task()], clock=clock, sleep=clock.sleep)

    exa.search.assert_awaited_once_with("platform engineering", 5)
    assert clock.sleeps == []
    assert len(fake_supabase.rows("research_results")) == 1


@pytest.mark.asyncio
async def test_non_json_poll_response_keeps_task_pending_until_max_age(run, fake_supabase):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/search":
            return httpx.Response(200, json={"results": [{"url": "https://s.example", "text": "Found it."}]})
        return httpx.Response(200, text="<html>gateway</html>")

    run.clients.exa = ExaService("test-key", transport=httpx.MockTransport(handler))
    clock = FakeClock()

    await poll_research_tasks(
        run, [_task()], poll_interval=10.0, max_age=30.0, clock=clock, sleep=clock.sleep
    )

    assert clock.sleeps == [10.0, 10.0, 10.0, 10.0]
    assert [r["content"] for r in fake_supabase.rows("research_results")] == ["Found it."]
