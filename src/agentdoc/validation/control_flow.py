"""
Control-Flow Validator — Structural rules for decision and iteration nodes.

Runs once over a fully built tree, before any text is produced. Every
finding carries the index path of the offending node from the document
root. Any error fails the whole compilation unit.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

from agentdoc.errors import (
    BreakOutsideLoop,
    DanglingElse,
    InvalidOptionCount,
    StructuralError,
    TreePath,
    TypeMismatch,
    format_path,
)
from agentdoc.ir.conditions import is_condition
from agentdoc.ir.nodes import (
    AgentSpawnNode,
    AskUserNode,
    AssignGroupNode,
    AssignNode,
    BreakNode,
    ConditionalNode,
    DocumentNode,
    ElseBranchNode,
    IRNode,
    LoopNode,
    StagedCallNode,
    StatusBranchNode,
    block_children,
    exit_kind,
)
from agentdoc.observability import get_logger
from agentdoc.staging.values import StagedValue
from agentdoc.vocabulary import NodeKind


logger = get_logger("validation")


MIN_OPTIONS = 2
MAX_OPTIONS = 4


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationWarning:
    """Non-fatal finding."""
    rule: str
    path: TreePath
    message: str

    def __str__(self) -> str:
        return f"{self.rule} at {format_path(self.path)}: {self.message}"


@dataclass
class ControlFlowValidationResult:
    """Result of control-flow validation."""
    valid: bool
    errors: list[StructuralError] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        """Raise the first error, if any."""
        if self.errors:
            raise self.errors[0]


@dataclass
class _Scope:
    """What encloses the node being checked."""
    in_loop: bool = False


def _shape_name(value: Any) -> str:
    if isinstance(value, StagedValue):
        return f"staged value {value.describe()}"
    if value is None:
        return "nothing"
    if isinstance(value, bool):
        return f"bool {value}"
    if isinstance(value, (int, float)):
        return f"{type(value).__name__} {value}"
    if isinstance(value, str):
        return f"string {value!r}"
    return type(value).__name__


# =============================================================================
# CONTROL-FLOW VALIDATOR
# =============================================================================

class ControlFlowValidator:
    """
    Validates control-flow structure of an IR tree.

    Checks:
    - else-branch adjacency (DanglingElse)
    - break containment within a loop (BreakOutsideLoop)
    - ask-user option bounds (InvalidOptionCount)
    - shape of loop bounds, counters, outputs and conditions (TypeMismatch)
    - assignment variable names (TypeMismatch)
    - content after break/return, including one inside a step or group (warning)

    A spawned agent runs in its own context, so a loop outside an
    agent-spawn does not contain a break inside it.
    """

    def __init__(self) -> None:
        self._checks: dict[NodeKind, Callable[[Any, TreePath], list[StructuralError]]] = {
            NodeKind.LOOP: self._check_loop,
            NodeKind.ASK_USER: self._check_ask_user,
            NodeKind.STAGED_CALL: self._check_staged_call,
            NodeKind.AGENT_SPAWN: self._check_agent_spawn,
            NodeKind.STATUS_BRANCH: self._check_status_branch,
            NodeKind.CONDITIONAL: self._check_conditional,
            NodeKind.ASSIGN: self._check_assign,
            NodeKind.ASSIGN_GROUP: self._check_assign_group,
        }

    def check(self, document: DocumentNode) -> ControlFlowValidationResult:
        """
        Collect every finding without raising.

        Returns ControlFlowValidationResult with valid=True if no errors.
        """
        errors: list[StructuralError] = []
        warnings: list[ValidationWarning] = []

        self._check_sequence(document.children, (), _Scope(), errors, warnings)

        logger.debug(
            f"Control-flow check: {len(errors)} errors, {len(warnings)} warnings"
        )
        return ControlFlowValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def validate(self, document: DocumentNode) -> ControlFlowValidationResult:
        """Check `document` and raise the first error found."""
        result = self.check(document)
        result.raise_for_errors()
        return result

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def _check_sequence(
        self,
        children: list[IRNode],
        parent: TreePath,
        scope: _Scope,
        errors: list[StructuralError],
        warnings: list[ValidationWarning],
    ) -> None:
        terminated_by: str | None = None
        warned = False
        for index, child in enumerate(children):
            path = parent + (index,)

            if terminated_by is not None and not warned:
                warnings.append(ValidationWarning(
                    rule="unreachable",
                    path=path,
                    message=f"{child.kind} follows a {terminated_by} and is never reached",
                ))
                warned = True

            if isinstance(child, ElseBranchNode):
                previous = children[index - 1] if index > 0 else None
                if not isinstance(previous, ConditionalNode):
                    errors.append(DanglingElse(
                        "else-branch must immediately follow a conditional",
                        path=path,
                        kind=child.kind,
                        expected="conditional before else-branch",
                        actual=previous.kind if previous is not None else "start of sequence",
                    ))

            self._check_node(child, path, scope, errors, warnings)

            if terminated_by is None:
                terminated_by = exit_kind(child)

    def _check_node(
        self,
        node: IRNode,
        path: TreePath,
        scope: _Scope,
        errors: list[StructuralError],
        warnings: list[ValidationWarning],
    ) -> None:
        check = self._checks.get(NodeKind(node.kind))
        if check is not None:
            errors.extend(check(node, path))

        if isinstance(node, BreakNode) and not scope.in_loop:
            errors.append(BreakOutsideLoop(
                "break has no enclosing loop in this execution context",
                path=path,
                kind=node.kind,
            ))

        if isinstance(node, LoopNode):
            inner = _Scope(in_loop=True)
        elif isinstance(node, AgentSpawnNode):
            inner = _Scope(in_loop=False)
        else:
            inner = scope
        self._check_sequence(block_children(node), path, inner, errors, warnings)

    # -------------------------------------------------------------------------
    # Node checks
    # -------------------------------------------------------------------------

    def _variable_slot(
        self,
        node: IRNode,
        path: TreePath,
        slot: str,
        value: Any,
        required: bool,
    ) -> list[StructuralError]:
        """A slot naming an external variable: root staged value or identifier."""
        if value is None and not required:
            return []
        if isinstance(value, StagedValue) and value.is_root:
            return []
        if isinstance(value, str) and value.isidentifier():
            return []
        return [TypeMismatch(
            f"{node.kind} {slot} must name an external variable",
            path=path,
            kind=node.kind,
            expected="root staged value or identifier",
            actual=_shape_name(value),
        )]

    def _check_loop(self, node: LoopNode, path: TreePath) -> list[StructuralError]:
        errors: list[StructuralError] = []
        bound = node.bound
        bound_ok = isinstance(bound, StagedValue) or (
            isinstance(bound, int) and not isinstance(bound, bool) and bound >= 0
        )
        if not bound_ok:
            errors.append(TypeMismatch(
                "loop bound must be a non-negative integer or staged value",
                path=path,
                kind=node.kind,
                expected="non-negative int or staged value",
                actual=_shape_name(bound),
            ))
        errors.extend(self._variable_slot(node, path, "counter", node.counter, required=False))
        return errors

    def _check_ask_user(self, node: AskUserNode, path: TreePath) -> list[StructuralError]:
        errors: list[StructuralError] = []
        count = len(node.options)
        if not MIN_OPTIONS <= count <= MAX_OPTIONS:
            errors.append(InvalidOptionCount(
                f"ask-user offers {count} options",
                path=path,
                kind=node.kind,
                expected=f"{MIN_OPTIONS}-{MAX_OPTIONS} options",
                actual=str(count),
            ))
        errors.extend(self._variable_slot(node, path, "output", node.output, required=True))
        return errors

    def _check_staged_call(self, node: StagedCallNode, path: TreePath) -> list[StructuralError]:
        return self._variable_slot(node, path, "output", node.output, required=True)

    def _check_agent_spawn(self, node: AgentSpawnNode, path: TreePath) -> list[StructuralError]:
        return self._variable_slot(node, path, "output", node.output, required=False)

    def _check_status_branch(self, node: StatusBranchNode, path: TreePath) -> list[StructuralError]:
        if isinstance(node.output, StagedValue):
            return []
        return [TypeMismatch(
            "status-branch must read an agent's captured output",
            path=path,
            kind=node.kind,
            expected="staged value",
            actual=_shape_name(node.output),
        )]

    def _check_assign(self, node: AssignNode, path: TreePath) -> list[StructuralError]:
        return self._variable_slot(node, path, "variable", node.variable, required=True)

    def _check_assign_group(self, node: AssignGroupNode, path: TreePath) -> list[StructuralError]:
        errors: list[StructuralError] = []
        for assignment in node.assignments:
            errors.extend(self._check_assign(assignment, path))
        return errors

    def _check_conditional(self, node: ConditionalNode, path: TreePath) -> list[StructuralError]:
        condition = node.condition
        if isinstance(condition, (bool, StagedValue)) or is_condition(condition):
            return []
        return [TypeMismatch(
            "conditional needs a decidable condition",
            path=path,
            kind=node.kind,
            expected="bool, staged value or condition",
            actual=_shape_name(condition),
        )]


def validate_document(document: DocumentNode) -> ControlFlowValidationResult:
    """Validate `document`, raising the first structural error."""
    return ControlFlowValidator().validate(document)
