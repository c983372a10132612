"""Concrete agents."""

from warden.agents.ethics import EthicsAgent
from warden.agents.heal import HealAgent
from warden.agents.insight import InsightAgent

__all__ = ["EthicsAgent", "HealAgent", "InsightAgent"]
