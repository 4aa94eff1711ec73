"""Slash-command parsing and dispatch."""

from .processor import (
    CommandCall,
    CommandEvent,
    CommandOutcome,
    CommandProcessor,
    CommandSpec,
)

__all__ = [
    "CommandCall",
    "CommandEvent",
    "CommandOutcome",
    "CommandProcessor",
    "CommandSpec",
]
