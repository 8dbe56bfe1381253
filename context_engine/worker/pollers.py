"""Background pollers that pick up agents waiting for pipeline work.

Each poller periodically queries for agents in the stages it serves and
runs the matching pipeline entry point for each of them, one at a time.
"""

import asyncio
import time
from typing import Any
from uuid import uuid4

from context_engine.core.errors import BlueprintNotApprovedError, DatastoreError
from context_engine.core.logging import get_logger
from context_engine.core.schemas_context import (
    LIVE_BLUEPRINT_STATUSES,
    AgentStage,
    AgentStatus,
    BlueprintStatus,
    CycleType,
)
from context_engine.db.agents import list_agents, set_agent_stage
from context_engine.db.blueprints import get_latest_blueprint_for_agent
from context_engine.pipeline.blueprint_phase import run_blueprint_phase
from context_engine.pipeline.clients import PipelineClients
from context_engine.pipeline.orchestrator import REGENERATORS, run_full_generation

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 3.0  # seconds


class AgentPoller:
    """Base poller: find agents needing work, process them, sleep, repeat."""

    name = "agent"

    def __init__(self, clients: PipelineClients, poll_interval: float = DEFAULT_POLL_INTERVAL):
        """Initialize the poller.

        Args:
            clients: Shared pipeline clients
            poll_interval: Seconds between polls when there is no work
        """
        self.clients = clients
        self.poll_interval = poll_interval
        self._running = False
        self._in_flight: set[str] = set()
        self._processed_count = 0
        self._error_count = 0
        self._start_time: float | None = None

    @property
    def stats(self) -> dict[str, Any]:
        """Get poller statistics."""
        uptime = time.time() - self._start_time if self._start_time else 0
        return {
            "poller": self.name,
            "running": self._running,
            "in_flight": len(self._in_flight),
            "processed_count": self._processed_count,
            "error_count": self._error_count,
            "uptime_seconds": round(uptime, 1),
        }

    def find_work(self) -> list[dict[str, Any]]:
        """Agents this poller should process now."""
        raise NotImplementedError

    async def handle(self, agent: dict[str, Any]) -> None:
        raise NotImplementedError

    async def process_one(self, agent: dict[str, Any]) -> bool:
        """Process one agent unless it is already being processed.

        Returns:
            True if the agent was processed successfully
        """
        agent_id = agent["id"]
        if agent_id in self._in_flight:
            logger.debug(f"Agent {agent_id} already in flight, skipping")
            return False

        run_id = str(uuid4())
        self._in_flight.add(agent_id)
        logger.info(
            f"{self.name} poller processing agent {agent_id}",
            extra={"agent_id": agent_id, "run_id": run_id},
        )
        try:
            await self.handle(agent)
        except Exception as e:
            self._error_count += 1
            logger.exception(
                f"{self.name} poller failed for agent {agent_id}: {e}",
                extra={"agent_id": agent_id, "run_id": run_id},
            )
            return False
        finally:
            self._in_flight.discard(agent_id)

        self._processed_count += 1
        return True

    async def poll_once(self) -> int:
        """Run one poll. Returns the number of agents picked up."""
        agents = [a for a in self.find_work() if a["id"] not in self._in_flight]
        for agent in agents:
            await self.process_one(agent)
        return len(agents)

    async def run_forever(self) -> None:
        """Poll until stop() is called."""
        self._running = True
        self._start_time = time.time()
        logger.info(f"Starting {self.name} poller (poll_interval={self.poll_interval}s)")

        while self._running:
            try:
                picked = await self.poll_once()
                if not picked:
                    await asyncio.sleep(self.poll_interval)
            except Exception as e:
                logger.exception(f"Error in {self.name} polling loop: {e}")
                await asyncio.sleep(self.poll_interval)

        logger.info(f"{self.name} poller stopped")

    def stop(self) -> None:
        """Stop the poller gracefully."""
        logger.info(f"Stopping {self.name} poller...")
        self._running = False


class BlueprintPoller(AgentPoller):
    """Idle agents in the blueprint stage that have no live blueprint yet."""

    name = "blueprint"

    def find_work(self) -> list[dict[str, Any]]:
        agents = list_agents(self.clients.supabase, [AgentStage.BLUEPRINT], AgentStatus.IDLE)
        return [
            agent
            for agent in agents
            if get_latest_blueprint_for_agent(
                self.clients.supabase, agent["id"], LIVE_BLUEPRINT_STATUSES
            )
            is None
        ]

    async def handle(self, agent: dict[str, Any]) -> None:
        await run_blueprint_phase(self.clients, agent["id"])


class ContextPoller(AgentPoller):
    """Idle agents in the blueprint stage whose latest blueprint was approved."""

    name = "context"

    def find_work(self) -> list[dict[str, Any]]:
        agents = list_agents(self.clients.supabase, [AgentStage.BLUEPRINT], AgentStatus.IDLE)
        ready = []
        for agent in agents:
            latest = get_latest_blueprint_for_agent(
                self.clients.supabase, agent["id"], LIVE_BLUEPRINT_STATUSES
            )
            if latest and latest.get("status") == BlueprintStatus.APPROVED.value:
                ready.append({**agent, "blueprint_id": latest["id"]})
        return ready

    async def handle(self, agent: dict[str, Any]) -> None:
        await run_full_generation(self.clients, agent["id"], agent.get("blueprint_id"))


REGENERATION_STAGES = {
    AgentStage.REGENERATING_RESEARCH: CycleType.RESEARCH,
    AgentStage.REGENERATING_GLOSSARY: CycleType.GLOSSARY,
    AgentStage.REGENERATING_CHUNKS: CycleType.CHUNKS,
}


class RegenerationPoller(AgentPoller):
    """Agents flagged for regenerating one stage."""

    name = "regeneration"

    def find_work(self) -> list[dict[str, Any]]:
        return list_agents(self.clients.supabase, list(REGENERATION_STAGES))

    async def handle(self, agent: dict[str, Any]) -> None:
        cycle_type = REGENERATION_STAGES[AgentStage(agent["stage"])]
        try:
            await REGENERATORS[cycle_type](self.clients, agent["id"])
        except BlueprintNotApprovedError:
            # Leaving the stage in place would pick the agent up again forever
            try:
                set_agent_stage(self.clients.supabase, agent["id"], AgentStage.ERROR, "error")
            except DatastoreError as e:
                logger.error(f"Failed to mark agent {agent['id']} as error: {e}")
            raise


def build_pollers(clients: PipelineClients, poll_interval: float) -> list[AgentPoller]:
    return [
        BlueprintPoller(clients, poll_interval),
        ContextPoller(clients, poll_interval),
        RegenerationPoller(clients, poll_interval),
    ]


async def run_pollers(pollers: list[AgentPoller]) -> None:
    """Run pollers side by side until all of them stop."""
    await asyncio.gather(*(poller.run_forever() for poller in pollers))
