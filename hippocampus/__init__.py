"""
Hippocampus memory integration for conversational agents.

Resolves per-project / per-agent memory banks, recalls and fuses memories
before a turn, and captures new facts after it.
"""

__version__ = "0.3.0"
