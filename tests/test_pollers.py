"""Tests for the background pollers (pipeline entry points mocked, fake Supabase)."""

from unittest.mock import AsyncMock

import pytest

from context_engine.core.errors import BlueprintNotApprovedError
from context_engine.core.schemas_context import CycleType
from context_engine.worker import pollers
from context_engine.worker.pollers import (
    BlueprintPoller,
    ContextPoller,
    RegenerationPoller,
    build_pollers,
)


def _seed_agents(fake_supabase, *agents: dict) -> None:
    fake_supabase.seed("agents", *({"event_id": "event-1", **a} for a in agents))


def _seed_blueprint(fake_supabase, agent_id: str, status: str) -> str:
    (row,) = fake_supabase.seed(
        "context_blueprints", {"agent_id": agent_id, "event_id": "event-1", "status": status}
    )
    return row["id"]


def test_blueprint_poller_finds_idle_agents_without_live_blueprint(clients, fake_supabase):
    _seed_agents(
        fake_supabase,
        {"id": "new", "stage": "blueprint", "status": "idle"},
        {"id": "waiting", "stage": "blueprint", "status": "idle"},
        {"id": "failed-before", "stage": "blueprint", "status": "idle"},
        {"id": "busy", "stage": "blueprint", "status": "active"},
        {"id": "done", "stage": "context_complete", "status": "idle"},
    )
    _seed_blueprint(fake_supabase, "waiting", "ready")
    _seed_blueprint(fake_supabase, "failed-before", "error")

    work = BlueprintPoller(clients).find_work()

    assert sorted(a["id"] for a in work) == ["failed-before", "new"]


def test_context_poller_finds_agents_with_approved_blueprint(clients, fake_supabase):
    _seed_agents(
        fake_supabase,
        {"id": "approved", "stage": "blueprint", "status": "idle"},
        {"id": "ready", "stage": "blueprint", "status": "idle"},
    )
    blueprint_id = _seed_blueprint(fake_supabase, "approved", "approved")
    _seed_blueprint(fake_supabase, "ready", "ready")

    work = ContextPoller(clients).find_work()

    assert [(a["id"], a["blueprint_id"]) for a in work] == [("approved", blueprint_id)]


def test_regeneration_poller_finds_flagged_agents(clients, fake_supabase):
    _seed_agents(
        fake_supabase,
        {"id": "r", "stage": "regenerating_research", "status": "idle"},
        {"id": "g", "stage": "regenerating_glossary", "status": "active"},
        {"id": "x", "stage": "researching", "status": "active"},
    )

    work = RegenerationPoller(clients).find_work()

    assert sorted(a["id"] for a in work) == ["g", "r"]


@pytest.mark.asyncio
async def test_poll_once_runs_handlers_and_counts(clients, fake_supabase, monkeypatch):
    run_blueprint = AsyncMock(return_value="bp-1")
    monkeypatch.setattr(pollers, "run_blueprint_phase", run_blueprint)
    _seed_agents(
        fake_supabase,
        {"id": "a1", "stage": "blueprint", "status": "idle"},
        {"id": "a2", "stage": "blueprint", "status": "idle"},
    )
    poller = BlueprintPoller(clients)

    picked = await poller.poll_once()

    assert picked == 2
    assert [c.args[1] for c in run_blueprint.await_args_list] == ["a1", "a2"]
    assert poller.stats["processed_count"] == 2
    assert poller.stats["error_count"] == 0
    assert poller.stats["in_flight"] == 0


@pytest.mark.asyncio
async def test_handler_errors_are_counted_not_raised(clients, fake_supabase, monkeypatch):
    monkeypatch.setattr(
        pollers, "run_full_generation", AsyncMock(side_effect=RuntimeError("stage failed"))
    )
    _seed_agents(fake_supabase, {"id": "a1", "stage": "blueprint", "status": "idle"})
    blueprint_id = _seed_blueprint(fake_supabase, "a1", "approved")
    poller = ContextPoller(clients)

    await poller.poll_once()

    pollers.run_full_generation.assert_awaited_once_with(clients, "a1", blueprint_id)
    assert poller.stats["error_count"] == 1
    assert poller.stats["processed_count"] == 0


@pytest.mark.asyncio
async def test_in_flight_agent_is_skipped(clients):
    poller = BlueprintPoller(clients)
    poller._in_flight.add("a1")

    assert await poller.process_one({"id": "a1"}) is False


@pytest.mark.asyncio
async def test_regeneration_dispatches_by_stage(clients, monkeypatch):
    regenerate_glossary = AsyncMock()
    monkeypatch.setitem(pollers.REGENERATORS, CycleType.GLOSSARY, regenerate_glossary)
    poller = RegenerationPoller(clients)

    assert await poller.process_one({"id": "a1", "stage": "regenerating_glossary"}) is True

    regenerate_glossary.assert_awaited_once_with(clients, "a1")


@pytest.mark.asyncio
async def test_unapproved_regeneration_moves_agent_to_error(clients, fake_supabase, monkeypatch):
    monkeypatch.setitem(
        pollers.REGENERATORS,
        CycleType.CHUNKS,
        AsyncMock(side_effect=BlueprintNotApprovedError("bp-1", "ready")),
    )
    _seed_agents(fake_supabase, {"id": "a1", "stage": "regenerating_chunks", "status": "idle"})
    poller = RegenerationPoller(clients)

    assert await poller.poll_once() == 1

    agent = fake_supabase.rows("agents")[0]
    assert (agent["stage"], agent["status"]) == ("error", "error")
    assert poller.stats["error_count"] == 1
    assert poller.find_work() == []


@pytest.mark.asyncio
async def test_run_forever_stops(clients, monkeypatch):
    poller = BlueprintPoller(clients, poll_interval=0.01)

    async def fake_poll_once():
        poller.stop()
        return 0

    monkeypatch.setattr(poller, "poll_once", fake_poll_once)

    await poller.run_forever()

    assert poller.stats["running"] is False


def test_build_pollers(clients):
    built = build_pollers(clients, 1.5)

    assert [p.name for p in built] == ["blueprint", "context", "regeneration"]
    assert all(p.poll_interval == 1.5 for p in built)
