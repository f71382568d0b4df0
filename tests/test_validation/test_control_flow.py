"""Tests for the control-flow validator."""

import itertools

import pytest

from agentdoc.errors import (
    BreakOutsideLoop,
    DanglingElse,
    InvalidOptionCount,
    StructuralError,
    TypeMismatch,
)
from agentdoc.ir import (
    AgentSpawnNode,
    AskUserNode,
    AskUserOption,
    AssignGroupNode,
    AssignNode,
    BlockquoteNode,
    BreakNode,
    ConditionalNode,
    DocumentNode,
    ElseBranchNode,
    GroupNode,
    LoopNode,
    ParagraphNode,
    ReturnNode,
    StagedCallNode,
    StatusBranchNode,
    StepNode,
    TextNode,
    all_of,
    eq,
)
from agentdoc.staging import root
from agentdoc.validation import (
    ControlFlowValidator,
    MAX_OPTIONS,
    MIN_OPTIONS,
    validate_document,
)


def para(text: str = "x") -> ParagraphNode:
    return ParagraphNode(children=[TextNode(value=text)])


def options(count: int) -> list[AskUserOption]:
    return [AskUserOption(value=f"v{i}", label=f"Option {i}") for i in range(count)]


def doc(*children) -> DocumentNode:
    return DocumentNode(children=list(children))


@pytest.fixture
def validator() -> ControlFlowValidator:
    return ControlFlowValidator()


# =============================================================================
# ADJACENCY
# =============================================================================

SIBLINGS = {
    "if": lambda: ConditionalNode(condition=root("C"), children=[para()]),
    "else": lambda: ElseBranchNode(children=[para()]),
    "text": lambda: para(),
}


def _dangles(sequence: tuple[str, ...]) -> bool:
    return any(
        name == "else" and (index == 0 or sequence[index - 1] != "if")
        for index, name in enumerate(sequence)
    )


ALL_SEQUENCES = [
    seq for length in range(1, 4) for seq in itertools.product(SIBLINGS, repeat=length)
]


class TestAdjacency:
    """Else-branch must directly follow a conditional."""

    @pytest.mark.parametrize("sequence", ALL_SEQUENCES, ids="-".join)
    def test_every_sibling_order(self, validator, sequence):
        """DanglingElse is reported exactly when an else lacks a conditional before it."""
        result = validator.check(doc(*(SIBLINGS[name]() for name in sequence)))
        dangling = [e for e in result.errors if isinstance(e, DanglingElse)]
        assert bool(dangling) == _dangles(sequence)

    def test_else_first(self, validator):
        """Else at the start of a sequence dangles."""
        with pytest.raises(DanglingElse) as exc:
            validator.validate(doc(ElseBranchNode()))
        assert exc.value.path == (0,)
        assert exc.value.actual == "start of sequence"

    def test_else_after_text(self, validator):
        """Else separated from its conditional dangles."""
        tree = doc(ConditionalNode(condition=True), para(), ElseBranchNode())
        with pytest.raises(DanglingElse) as exc:
            validator.validate(tree)
        assert exc.value.path == (2,)
        assert exc.value.actual == "paragraph"

    def test_nested_adjacency(self, validator):
        """Adjacency is checked at every level."""
        tree = doc(StepNode(number=1, name="Check", children=[para(), ElseBranchNode()]))
        with pytest.raises(DanglingElse) as exc:
            validator.validate(tree)
        assert exc.value.path == (0, 1)

    def test_else_not_adjacent_across_levels(self, validator):
        """A conditional's last child is not an else's predecessor."""
        tree = doc(BlockquoteNode(children=[ConditionalNode(condition=True)]), ElseBranchNode())
        assert not validator.check(tree).valid


# =============================================================================
# LOOP CONTAINMENT
# =============================================================================

WRAPPERS = {
    "loop": lambda inner: LoopNode(bound=2, children=[inner]),
    "if": lambda inner: ConditionalNode(condition=root("C"), children=[inner]),
    "agent": lambda inner: AgentSpawnNode(
        agent="worker", model="sonnet", description="work", children=[inner]
    ),
    "quote": lambda inner: BlockquoteNode(children=[inner]),
}


def _contained(chain: tuple[str, ...]) -> bool:
    in_loop = False
    for name in chain:
        if name == "loop":
            in_loop = True
        elif name == "agent":
            in_loop = False
    return in_loop


ALL_CHAINS = [
    chain for depth in range(0, 4) for chain in itertools.product(WRAPPERS, repeat=depth)
]


class TestLoopContainment:
    """Break must sit inside a loop of the same execution context."""

    @pytest.mark.parametrize("chain", ALL_CHAINS, ids=lambda c: "/".join(c) or "top")
    def test_every_nesting(self, validator, chain):
        """BreakOutsideLoop is reported exactly when no loop encloses the break."""
        node = BreakNode()
        for name in reversed(chain):
            node = WRAPPERS[name](node)
        result = validator.check(doc(node))
        outside = [e for e in result.errors if isinstance(e, BreakOutsideLoop)]
        assert bool(outside) != _contained(chain)

    def test_scenario_loop_with_conditional_break(self, validator):
        """Break in a conditional inside a loop is accepted."""
        tree = doc(LoopNode(bound=3, children=[
            ConditionalNode(condition=root("R").at("done"), children=[BreakNode(message="done")]),
        ]))
        result = validator.validate(tree)
        assert result.valid

    def test_agent_spawn_is_boundary(self, validator):
        """A loop outside an agent does not contain a break inside it."""
        tree = doc(LoopNode(bound=3, children=[
            AgentSpawnNode(agent="a", model="m", description="d", children=[BreakNode()]),
        ]))
        with pytest.raises(BreakOutsideLoop) as exc:
            validator.validate(tree)
        assert exc.value.path == (0, 0, 0)

    def test_return_anywhere(self, validator):
        """Return is valid outside loops."""
        assert validator.check(doc(para(), ReturnNode(status="SUCCESS"))).valid


# =============================================================================
# OPTION COUNT
# =============================================================================

class TestOptionCount:
    """Ask-user takes 2-4 options."""

    @pytest.mark.parametrize("count", range(0, 7))
    def test_bounds(self, validator, count):
        """Counts outside 2-4 are rejected."""
        node = AskUserNode(question="Proceed?", options=options(count), output=root("ANSWER"))
        result = validator.check(doc(node))
        rejected = any(isinstance(e, InvalidOptionCount) for e in result.errors)
        assert rejected == (not MIN_OPTIONS <= count <= MAX_OPTIONS)

    def test_one_option_rejected(self, validator):
        """A single option fails with the count in the error."""
        node = AskUserNode(question="Go?", options=options(1), output=root("ANSWER"))
        with pytest.raises(InvalidOptionCount) as exc:
            validator.validate(doc(node))
        assert exc.value.actual == "1"
        assert exc.value.expected == "2-4 options"

    def test_four_accepted_five_rejected(self, validator):
        """Four options pass, five do not."""
        four = AskUserNode(question="Pick", options=options(4), output=root("PICK"))
        five = AskUserNode(question="Pick", options=options(5), output=root("PICK"))
        assert validator.check(doc(four)).valid
        with pytest.raises(InvalidOptionCount):
            validator.validate(doc(five))


# =============================================================================
# SHAPES
# =============================================================================

class TestShapes:
    """Slots must hold values of the right shape."""

    @pytest.mark.parametrize("bound", [3, 0, root("N"), root("CFG").at("retries")])
    def test_valid_bounds(self, validator, bound):
        """Non-negative ints and staged values are valid bounds."""
        assert validator.check(doc(LoopNode(bound=bound))).valid

    @pytest.mark.parametrize("bound", [-1, True, "3", 2.5, None, [3]])
    def test_invalid_bounds(self, validator, bound):
        """Anything else is a TypeMismatch at the loop's path."""
        with pytest.raises(TypeMismatch) as exc:
            validator.validate(doc(para(), LoopNode(bound=bound)))
        assert exc.value.path == (1,)
        assert exc.value.kind == "loop"

    def test_counter_must_be_root(self, validator):
        """A projected counter is not a variable."""
        with pytest.raises(TypeMismatch):
            validator.validate(doc(LoopNode(bound=3, counter=root("I").at("n"))))

    def test_counter_identifier_accepted(self, validator):
        """A plain identifier names a counter variable."""
        assert validator.check(doc(LoopNode(bound=3, counter="ATTEMPT"))).valid

    @pytest.mark.parametrize("output", [root("ANSWER").at("x"), 42, "not valid", None])
    def test_ask_user_output(self, validator, output):
        """Ask-user output must name a variable."""
        node = AskUserNode(question="Go?", options=options(2), output=output)
        with pytest.raises(TypeMismatch) as exc:
            validator.validate(doc(node))
        assert exc.value.expected == "root staged value or identifier"

    def test_staged_call_output(self, validator):
        """Staged-call output must be a root."""
        node = StagedCallNode(function="init", output=root("OUT").at("x"))
        with pytest.raises(TypeMismatch):
            validator.validate(doc(node))

    def test_agent_output_optional(self, validator):
        """Agent output may be omitted."""
        node = AgentSpawnNode(agent="a", model="m", description="d")
        assert validator.check(doc(node)).valid

    def test_status_branch_needs_staged_output(self, validator):
        """Status branches read a staged result."""
        good = StatusBranchNode(output=root("RESULT"), status="SUCCESS")
        bad = StatusBranchNode(output="RESULT", status="SUCCESS")
        assert validator.check(doc(good)).valid
        with pytest.raises(TypeMismatch):
            validator.validate(doc(bad))

    @pytest.mark.parametrize("condition", [
        True, root("C"), eq(root("C").at("status"), "ok"), all_of(root("A"), root("B")),
    ])
    def test_valid_conditions(self, validator, condition):
        """Bools, staged values and condition trees are decidable."""
        assert validator.check(doc(ConditionalNode(condition=condition))).valid

    @pytest.mark.parametrize("variable", ["CONFIG", root("CONFIG")])
    def test_assign_variable_accepted(self, validator, variable):
        """Assignments fill a named variable."""
        node = AssignNode(variable=variable, content="cat config.json")
        assert validator.check(doc(node)).valid

    @pytest.mark.parametrize("variable", ["not valid", root("CFG").at("x"), 3])
    def test_assign_variable_rejected(self, validator, variable):
        """Anything that is not a variable name is a TypeMismatch."""
        with pytest.raises(TypeMismatch) as exc:
            validator.validate(doc(para(), AssignNode(variable=variable, content="ls")))
        assert exc.value.path == (1,)
        assert exc.value.kind == "assign"

    def test_assign_group_checks_each(self, validator):
        """Every assignment in a group is checked."""
        group = AssignGroupNode(assignments=[
            AssignNode(variable="OK", content="ls"),
            AssignNode(variable="bad name", content="pwd"),
            AssignNode(variable=7, content="date"),
        ])
        result = validator.check(doc(group))
        assert [type(e) for e in result.errors] == [TypeMismatch, TypeMismatch]

    @pytest.mark.parametrize("condition", ["yes", 1, None, {"a": 1}])
    def test_invalid_conditions(self, validator, condition):
        """Other values cannot be conditions."""
        with pytest.raises(TypeMismatch):
            validator.validate(doc(ConditionalNode(condition=condition)))


# =============================================================================
# RESULTS AND WARNINGS
# =============================================================================

class TestResult:
    """Tests for result collection and warnings."""

    def test_collects_all_errors(self, validator):
        """check() reports every error without raising."""
        tree = doc(ElseBranchNode(), BreakNode(), LoopNode(bound=-1))
        result = validator.check(tree)
        assert not result.valid
        assert len(result.errors) == 3

    def test_raise_for_errors_raises_first(self, validator):
        """The first error in document order is raised."""
        tree = doc(para(), ElseBranchNode(), BreakNode())
        with pytest.raises(DanglingElse):
            validator.check(tree).raise_for_errors()

    def test_unreachable_warning(self, validator):
        """Content after a return is flagged once."""
        tree = doc(ReturnNode(), para("a"), para("b"))
        result = validator.check(tree)
        assert result.valid
        assert len(result.warnings) == 1
        assert result.warnings[0].rule == "unreachable"
        assert result.warnings[0].path == (1,)

    def test_return_inside_step_ends_sequence(self, validator):
        """A step that returns makes the blocks after it unreachable."""
        tree = doc(
            StepNode(number=1, name="Stop", children=[para("a"), ReturnNode()]),
            para("after"),
        )
        result = validator.check(tree)
        assert [w.path for w in result.warnings] == [(1,)]
        assert "return" in result.warnings[0].message

    def test_break_inside_group_ends_sequence(self, validator):
        """Groups pass an exit through to their parent sequence."""
        tree = doc(LoopNode(bound=3, children=[
            GroupNode(children=[para("a"), BreakNode()]),
            para("after"),
        ]))
        result = validator.check(tree)
        assert result.valid
        assert [w.path for w in result.warnings] == [(0, 1)]

    def test_return_inside_conditional_does_not_end_sequence(self, validator):
        """A conditional exit may not run, so the next block is reachable."""
        tree = doc(ConditionalNode(condition=root("C"), children=[ReturnNode()]), para("after"))
        assert validator.check(tree).warnings == []

    def test_error_str_includes_path(self):
        """Error text names rule and path."""
        with pytest.raises(StructuralError) as exc:
            validate_document(doc(LoopNode(bound=1, children=[para(), ElseBranchNode()])))
        assert str(exc.value).startswith("dangling_else at /0/1")

    def test_to_dict(self):
        """Errors serialize for diagnostics."""
        with pytest.raises(StructuralError) as exc:
            validate_document(doc(BreakNode()))
        data = exc.value.to_dict()
        assert data["rule"] == "break_outside_loop"
        assert data["path"] == [0]
