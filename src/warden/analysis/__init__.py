"""Pluggable analysis strategies used by the agents."""
