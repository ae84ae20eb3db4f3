"""Incident conversation pipeline.

The session controller drives the per-turn stages (compaction, incident
parsing, clarify-or-final decision, final answer, memory update); each stage
lives in its own module.
"""

from .controller import SessionController, SessionLocks
from .decision import MAX_CLARIFY
from .extraction import StructuredExtractor, parse_json_object

__all__ = [
    "MAX_CLARIFY",
    "SessionController",
    "SessionLocks",
    "StructuredExtractor",
    "parse_json_object",
]
