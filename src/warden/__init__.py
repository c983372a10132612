"""Warden · Safety-gated autonomous agent execution core.

Agents declare capabilities and safety constraints; every action passes the
constraint gate before it is executed under a bounded retry loop, and every
attempted action feeds the learning recorder.
"""

__version__ = "0.4.0"
