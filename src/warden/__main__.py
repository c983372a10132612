"""
Warden · Entry point.

Usage: warden [--config PATH] run <agent> <action> [--payload JSON] [--metrics PATH]
       warden [--config PATH] status <agent>
       warden --version
       python -m warden
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from warden import __version__

AGENT_NAMES = ("heal", "insight", "ethics")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="warden",
        description="Warden · Safety-gated autonomous agent execution core",
    )
    parser.add_argument("--version", action="version", version=f"Warden v{__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to warden.yaml (default: ~/.warden/warden.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override the configured log level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Execute one action and print the result as JSON")
    run.add_argument("agent", choices=AGENT_NAMES)
    run.add_argument("action", help="Action type, e.g. scan_code")
    run.add_argument("--payload", default="{}", help="Action payload as a JSON object")
    run.add_argument("--requested-by", default="cli", help="Accountable requester")
    run.add_argument(
        "--metrics",
        type=Path,
        default=None,
        help="JSON metrics file for the insight agent",
    )

    status = sub.add_parser("status", help="Print the agent status as JSON")
    status.add_argument("agent", choices=AGENT_NAMES)
    return parser.parse_args(argv)


def build_agent(name: str, settings: Any, *, metrics: Path | None = None) -> Any:
    """Construct an agent wired to the file-backed collaborators."""
    from warden.agents import EthicsAgent, HealAgent, InsightAgent
    from warden.integrations import JsonMetricsSource
    from warden.learning import JsonlLearningStore

    recorder = JsonlLearningStore(settings.learning_path)
    if name == "heal":
        return HealAgent(settings=settings, recorder=recorder)
    if name == "insight":
        source = JsonMetricsSource(metrics) if metrics is not None else None
        return InsightAgent(settings=settings, recorder=recorder, source=source)
    return EthicsAgent(settings=settings, recorder=recorder)


async def _run(args: argparse.Namespace, settings: Any) -> int:
    from warden.models import AgentAction

    try:
        payload = json.loads(args.payload)
    except json.JSONDecodeError as exc:
        print(f"invalid --payload: {exc}", file=sys.stderr)
        return 2
    if not isinstance(payload, dict):
        print("--payload must be a JSON object", file=sys.stderr)
        return 2

    agent = build_agent(args.agent, settings, metrics=args.metrics)
    action = AgentAction(type=args.action, payload=payload, requested_by=args.requested_by)
    result = await agent.execute(action)
    print(result.model_dump_json(indent=2))
    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point for Warden."""
    args = parse_args(argv)

    from warden.config import load_config
    from warden.core.errors import ConfigError
    from warden.utils.logging import setup_logging

    settings = load_config(args.config)
    logging_cfg = settings.logging
    setup_logging(
        level=args.log_level or logging_cfg.level,
        log_dir=logging_cfg.log_dir,
        json_logs=logging_cfg.json_logs,
        console=logging_cfg.console,
    )

    try:
        if args.command == "status":
            agent = build_agent(args.agent, settings)
            print(json.dumps(agent.status(), indent=2, default=str))
            return 0
        return asyncio.run(_run(args, settings))
    except ConfigError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
