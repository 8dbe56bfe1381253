"""Tests for the chunks phase (OpenAI mocked, fake Supabase)."""

import pytest

from context_engine.core.errors import DatastoreError
from context_engine.core.schemas_blueprint import Blueprint
from context_engine.core.schemas_context import CycleType, ResearchChunk
from context_engine.db.generation_cycles import create_generation_cycle, get_generation_cycle
from context_engine.db.research_results import insert_research_result
from context_engine.pipeline.chunks_phase import research_candidates, run_chunks_phase
from tests.fakes.fake_openai import chat_response, embedding_response

EVENT = "event-1"


def _blueprint(target: int) -> Blueprint:
    return Blueprint.model_validate(
        {"chunks_plan": {"target_count": target, "quality_tier": "basic"}, "key_terms": ["SLO"]}
    )


def _research(fake_supabase, content: str, api: str = "exa", quality: float = 0.8, **metadata) -> None:
    insert_research_result(
        fake_supabase,
        event_id=EVENT,
        blueprint_id="bp-1",
        cycle_id=None,
        query="q",
        api=api,
        content=content,
        quality_score=quality,
        metadata={"api": api, **metadata},
    )


def _cycle(fake_supabase) -> str:
    return create_generation_cycle(fake_supabase, EVENT, "agent-1", "bp-1", CycleType.CHUNKS)


def test_research_candidates_drop_blank_text_and_default_quality():
    chunks = [
        ResearchChunk(content="   ", api="exa"),
        ResearchChunk(content=" Body ", api="wikipedia", metadata={"priority": 2, "agent_utility": ["facts"]}),
    ]

    (candidate,) = research_candidates(chunks)

    assert candidate.text == "Body"
    assert candidate.research_source == "wikipedia"
    assert candidate.quality_score == 0.8
    assert candidate.priority == 2
    assert candidate.agent_utility == ["facts"]


@pytest.mark.asyncio
async def test_research_is_topped_up_with_filler_and_ranked(clients, fake_supabase, openai_client):
    _research(fake_supabase, "Exa finding about SLOs.", "exa", 0.9, agent_utility=["facts"], priority=1)
    _research(fake_supabase, "Wikipedia background.", "wikipedia", 0.6)
    openai_client.chat.completions.create.return_value = chat_response(
        {"chunks": ["Filler one.", "Filler two.", "  "]}
    )
    openai_client.embeddings.create.return_value = embedding_response(tokens=10)
    cycle_id = _cycle(fake_supabase)

    costs = await run_chunks_phase(clients, EVENT, cycle_id, _blueprint(4))

    items = sorted(fake_supabase.rows("context_items"), key=lambda r: r["rank"])
    assert [i["chunk"] for i in items] == [
        "Exa finding about SLOs.",
        "Wikipedia background.",
        "Filler one.",
        "Filler two.",
    ]
    assert [i["rank"] for i in items] == [1, 2, 3, 4]
    assert all(i["generation_cycle_id"] == cycle_id for i in items)

    top = items[0]["metadata"]
    assert top["component_type"] == "ranked"
    assert top["research_source"] == "exa"
    assert top["chunk_size"] == len("Exa finding about SLOs.")
    assert items[2]["metadata"]["component_type"] == "llm_generated"
    assert items[2]["metadata"]["quality_score"] == 0.7

    filler_prompt = openai_client.chat.completions.create.await_args.kwargs["messages"][1]["content"]
    assert "Generate exactly 2 high-quality context chunks" in filler_prompt

    cycle = get_generation_cycle(fake_supabase, cycle_id)
    assert cycle["status"] == "completed"
    assert cycle["progress_total"] == 4
    assert cycle["progress_current"] == 4
    assert len(costs.embeddings) == 4
    assert len(costs.chat_completions) == 1
    assert "embeddings" in cycle["metadata"]["cost"]["breakdown"]["openai"]


@pytest.mark.asyncio
async def test_enough_research_skips_filler_and_truncates(clients, fake_supabase, openai_client):
    for i in range(5):
        _research(fake_supabase, f"Research chunk {i}.", quality=i / 10)
    openai_client.embeddings.create.return_value = embedding_response()
    cycle_id = _cycle(fake_supabase)

    await run_chunks_phase(clients, EVENT, cycle_id, _blueprint(3))

    openai_client.chat.completions.create.assert_not_awaited()
    items = sorted(fake_supabase.rows("context_items"), key=lambda r: r["rank"])
    assert [i["chunk"] for i in items] == ["Research chunk 4.", "Research chunk 3.", "Research chunk 2."]


@pytest.mark.asyncio
async def test_failed_embedding_skips_only_that_chunk(clients, fake_supabase, openai_client):
    _research(fake_supabase, "First.", quality=0.9)
    _research(fake_supabase, "Second.", quality=0.5)
    openai_client.embeddings.create.side_effect = [embedding_response(), RuntimeError("rate limited")]
    cycle_id = _cycle(fake_supabase)

    await run_chunks_phase(clients, EVENT, cycle_id, _blueprint(2))

    assert [i["chunk"] for i in fake_supabase.rows("context_items")] == ["First."]
    assert get_generation_cycle(fake_supabase, cycle_id)["progress_current"] == 1


@pytest.mark.asyncio
async def test_failed_insert_skips_only_that_chunk(clients, fake_supabase, openai_client):
    _research(fake_supabase, "Keep.", quality=0.9)
    _research(fake_supabase, "Reject.", quality=0.5)
    openai_client.embeddings.create.return_value = embedding_response()
    cycle_id = _cycle(fake_supabase)

    def reject(table, op, payload):
        if table == "context_items" and payload["chunk"] == "Reject.":
            raise RuntimeError("constraint violation")

    fake_supabase.before_write = reject

    await run_chunks_phase(clients, EVENT, cycle_id, _blueprint(2))

    assert [i["chunk"] for i in fake_supabase.rows("context_items")] == ["Keep."]
    assert get_generation_cycle(fake_supabase, cycle_id)["status"] == "completed"


@pytest.mark.asyncio
async def test_failure_to_complete_cycle_raises(clients, fake_supabase, openai_client):
    _research(fake_supabase, "Only chunk.")
    openai_client.embeddings.create.return_value = embedding_response()
    cycle_id = _cycle(fake_supabase)

    def fail_completion(table, op, payload):
        if table == "generation_cycles" and payload.get("status") == "completed":
            raise RuntimeError("database unavailable")

    fake_supabase.before_write = fail_completion

    with pytest.raises(DatastoreError):
        await run_chunks_phase(clients, EVENT, cycle_id, _blueprint(1))

    assert len(fake_supabase.rows("context_items")) == 1


@pytest.mark.asyncio
async def test_missing_target_uses_default(clients, fake_supabase, openai_client):
    clients.settings.DEFAULT_TARGET_CHUNKS = 2
    openai_client.chat.completions.create.return_value = chat_response({"chunks": ["A.", "B.", "C."]})
    openai_client.embeddings.create.return_value = embedding_response()
    cycle_id = _cycle(fake_supabase)

    await run_chunks_phase(clients, EVENT, cycle_id, Blueprint())

    assert len(fake_supabase.rows("context_items")) == 2
    assert get_generation_cycle(fake_supabase, cycle_id)["progress_total"] == 2


@pytest.mark.asyncio
async def test_embedding_model_and_dimension_come_from_client_settings(
    clients, fake_supabase, openai_client
):
    clients.settings.EMBEDDING_MODEL = "text-embedding-3-large"
    clients.settings.EMBEDDING_DIM = 3072
    _research(fake_supabase, "Only chunk.", quality=0.9)
    openai_client.embeddings.create.return_value = embedding_response(dim=3072)
    cycle_id = _cycle(fake_supabase)

    await run_chunks_phase(clients, EVENT, cycle_id, _blueprint(1))

    assert openai_client.embeddings.create.call_args.kwargs["model"] == "text-embedding-3-large"
    (item,) = fake_supabase.rows("context_items")
    assert len(item["embedding"]) == 3072
