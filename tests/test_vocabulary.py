"""
Tests for vocabulary enums.
"""

import pytest
from agentdoc.vocabulary import (
    NodeKind,
    Alignment,
    ReturnStatus,
    StepVariant,
    AssignmentSource,
    CompareOp,
    ValueShape,
    STRUCTURED_SHAPES,
    ComponentCategory,
)


class TestNodeKind:
    """Tests for the closed set of IR node kinds."""

    def test_control_flow_kinds(self):
        """All control-flow kinds are present."""
        expected = {"conditional", "else-branch", "loop", "break", "return", "ask-user"}
        actual = {k.value for k in NodeKind}
        assert expected <= actual

    def test_agent_kinds(self):
        """Agent and staged execution kinds are present."""
        assert NodeKind("agent-spawn") == NodeKind.AGENT_SPAWN
        assert NodeKind("status-branch") == NodeKind.STATUS_BRANCH
        assert NodeKind("staged-call") == NodeKind.STAGED_CALL

    def test_shell_kinds(self):
        """Assignment and navigation kinds are present."""
        assert NodeKind("assign") == NodeKind.ASSIGN
        assert NodeKind("assign-group") == NodeKind.ASSIGN_GROUP
        assert NodeKind("success-criteria") == NodeKind.SUCCESS_CRITERIA
        assert NodeKind("offer-next") == NodeKind.OFFER_NEXT

    def test_kinds_are_strings(self):
        """Kinds compare equal to their wire values."""
        assert NodeKind.ELSE_BRANCH == "else-branch"


class TestStatusAndVariants:
    """Tests for statuses, alignments and step variants."""

    def test_return_status_values(self):
        """ReturnStatus has exactly 5 values."""
        expected = {"SUCCESS", "BLOCKED", "NOT_FOUND", "ERROR", "CHECKPOINT"}
        assert {s.value for s in ReturnStatus} == expected

    def test_alignment_values(self):
        """Alignment has left, center, right."""
        assert {a.value for a in Alignment} == {"left", "center", "right"}

    def test_step_variants(self):
        """Steps render as heading, bold or xml."""
        assert {v.value for v in StepVariant} == {"heading", "bold", "xml"}

    def test_assignment_sources(self):
        """Assignments read from a command, a value or an env var."""
        assert {s.value for s in AssignmentSource} == {"bash", "value", "env"}

    @pytest.mark.parametrize("op", ["eq", "neq", "gt", "gte", "lt", "lte"])
    def test_compare_ops(self, op):
        """Every comparison operator is defined."""
        assert CompareOp(op).value == op


class TestValueShape:
    """Tests for staged function shapes."""

    def test_structured_shapes(self):
        """Only object, array and any are structured."""
        assert STRUCTURED_SHAPES == {ValueShape.OBJECT, ValueShape.ARRAY, ValueShape.ANY}

    def test_scalars_not_structured(self):
        """Scalar shapes cannot be a staged function's argument."""
        for shape in (ValueShape.STRING, ValueShape.NUMBER, ValueShape.BOOLEAN, ValueShape.NONE):
            assert shape not in STRUCTURED_SHAPES

    def test_component_categories(self):
        """ComponentCategory has 4 values."""
        assert len(ComponentCategory) == 4
