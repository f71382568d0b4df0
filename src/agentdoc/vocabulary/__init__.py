"""
Vocabulary — Enumerated types forming the shared language of the compiler.

All enums referenced by IR nodes, staging, validation and emission are defined here.
"""

from agentdoc.vocabulary.enums import (
    # IR
    NodeKind,
    Alignment,
    ReturnStatus,
    StepVariant,
    AssignmentSource,
    # Conditions
    CompareOp,
    # Staging
    ValueShape,
    STRUCTURED_SHAPES,
    # Classification
    ComponentCategory,
)

__all__ = [
    # IR
    "NodeKind",
    "Alignment",
    "ReturnStatus",
    "StepVariant",
    "AssignmentSource",
    # Conditions
    "CompareOp",
    # Staging
    "ValueShape",
    "STRUCTURED_SHAPES",
    # Classification
    "ComponentCategory",
]
