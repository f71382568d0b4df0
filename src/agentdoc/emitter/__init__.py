"""
Emitter — Renders validated IR to markdown.
"""

from agentdoc.emitter.markdown import (
    MarkdownEmitter,
    EmitState,
    emit_document,
    MAX_HEADING_LEVEL,
)
from agentdoc.emitter.conditions import render_condition

__all__ = [
    "MarkdownEmitter",
    "EmitState",
    "emit_document",
    "MAX_HEADING_LEVEL",
    "render_condition",
]
