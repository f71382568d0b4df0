"""
Validation — Structural checks run before emission.
"""

from agentdoc.validation.control_flow import (
    ControlFlowValidator,
    ControlFlowValidationResult,
    ValidationWarning,
    validate_document,
    MIN_OPTIONS,
    MAX_OPTIONS,
)

__all__ = [
    "ControlFlowValidator",
    "ControlFlowValidationResult",
    "ValidationWarning",
    "validate_document",
    "MIN_OPTIONS",
    "MAX_OPTIONS",
]
