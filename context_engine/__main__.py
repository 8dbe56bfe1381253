"""Command line entry point.

Usage:
    python -m context_engine worker
    python -m context_engine blueprint <agent_id>
    python -m context_engine generate <agent_id> [--blueprint-id ID]
    python -m context_engine regenerate {research,glossary,chunks} <agent_id>
"""

import argparse
import asyncio
import sys

from context_engine.core.config import get_settings
from context_engine.core.logging import get_logger
from context_engine.core.schemas_context import CycleType
from context_engine.pipeline.blueprint_phase import run_blueprint_phase
from context_engine.pipeline.clients import PipelineClients
from context_engine.pipeline.orchestrator import REGENERATORS, run_full_generation
from context_engine.worker.pollers import build_pollers, run_pollers

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="context_engine", description="Build AI agent context for events"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    worker = commands.add_parser("worker", help="Run the blueprint, context and regeneration pollers")
    worker.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between polls (default: POLL_INTERVAL setting)",
    )

    blueprint = commands.add_parser("blueprint", help="Generate a blueprint for an agent")
    blueprint.add_argument("agent_id")

    generate = commands.add_parser("generate", help="Run full context generation")
    generate.add_argument("agent_id")
    generate.add_argument("--blueprint-id", default=None, help="Approved blueprint to use")

    regenerate = commands.add_parser("regenerate", help="Regenerate one stage")
    regenerate.add_argument("stage", choices=[t.value for t in REGENERATORS])
    regenerate.add_argument("agent_id")

    return parser


async def run_command(args: argparse.Namespace, clients: PipelineClients) -> None:
    if args.command == "worker":
        interval = args.poll_interval or clients.settings.POLL_INTERVAL
        pollers = build_pollers(clients, interval)
        try:
            await run_pollers(pollers)
        finally:
            for poller in pollers:
                poller.stop()
    elif args.command == "blueprint":
        blueprint_id = await run_blueprint_phase(clients, args.agent_id)
        logger.info(f"Blueprint {blueprint_id} generated for agent {args.agent_id}")
    elif args.command == "generate":
        await run_full_generation(clients, args.agent_id, args.blueprint_id)
    elif args.command == "regenerate":
        await REGENERATORS[CycleType(args.stage)](clients, args.agent_id)


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    clients = PipelineClients.from_settings(get_settings())

    try:
        asyncio.run(run_command(args, clients))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except Exception as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
