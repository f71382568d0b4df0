"""
Conditions — Decision expressions over staged values.

The compiler never evaluates a condition. It only describes it, so the
execution environment can decide when the document runs.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agentdoc.staging.values import StagedValue
from agentdoc.vocabulary import CompareOp


Scalar = str | int | float | bool | None


class _Condition(BaseModel):
    model_config = ConfigDict(frozen=True)


class RefCondition(_Condition):
    """True when the staged value is truthy."""
    kind: Literal["ref"] = "ref"
    value: StagedValue


class LiteralCondition(_Condition):
    """A condition already known at compile time."""
    kind: Literal["literal"] = "literal"
    value: bool


class NotCondition(_Condition):
    kind: Literal["not"] = "not"
    operand: "Condition"


class AndCondition(_Condition):
    kind: Literal["and"] = "and"
    operands: list["Condition"] = Field(..., min_length=2)


class OrCondition(_Condition):
    kind: Literal["or"] = "or"
    operands: list["Condition"] = Field(..., min_length=2)


class CompareCondition(_Condition):
    """
    Compare a staged value against a literal or another staged value.

    The right-hand side is rendered as JSON text when it is a literal.
    """
    kind: Literal["compare"] = "compare"
    op: CompareOp
    left: StagedValue
    right: StagedValue | Scalar = None

    @field_validator("right")
    @classmethod
    def right_not_composite(cls, v: Any) -> Any:
        if isinstance(v, (dict, list)):
            raise ValueError("comparison operand must be a scalar or staged value")
        return v


class ShellTestCondition(_Condition):
    """Shell test written by the author, e.g. `[ -f config.json ]`. Rendered verbatim."""
    kind: Literal["shell-test"] = "shell-test"
    test: str = Field(..., min_length=1)


Condition = Annotated[
    Union[
        RefCondition,
        LiteralCondition,
        NotCondition,
        AndCondition,
        OrCondition,
        CompareCondition,
        ShellTestCondition,
    ],
    Field(discriminator="kind"),
]

CONDITION_TYPES = (
    RefCondition,
    LiteralCondition,
    NotCondition,
    AndCondition,
    OrCondition,
    CompareCondition,
    ShellTestCondition,
)

NotCondition.model_rebuild()
AndCondition.model_rebuild()
OrCondition.model_rebuild()


# =============================================================================
# BUILDERS
# =============================================================================

def is_condition(obj: Any) -> bool:
    return isinstance(obj, CONDITION_TYPES)


def as_condition(value: Any) -> Any:
    """
    Coerce a condition slot value into a condition tree.

    bool becomes a literal, a staged value a truthiness reference.
    Anything else raises TypeError.
    """
    if is_condition(value):
        return value
    if isinstance(value, bool):
        return LiteralCondition(value=value)
    if isinstance(value, StagedValue):
        return RefCondition(value=value)
    raise TypeError(f"cannot use {type(value).__name__} as a condition")


def ref(value: StagedValue) -> RefCondition:
    return RefCondition(value=value)


def not_(operand: Any) -> NotCondition:
    return NotCondition(operand=as_condition(operand))


def all_of(*operands: Any) -> AndCondition:
    return AndCondition(operands=[as_condition(o) for o in operands])


def any_of(*operands: Any) -> OrCondition:
    return OrCondition(operands=[as_condition(o) for o in operands])


def _compare(op: CompareOp, left: StagedValue, right: Any) -> CompareCondition:
    return CompareCondition(op=op, left=left, right=right)


def eq(left: StagedValue, right: Any) -> CompareCondition:
    return _compare(CompareOp.EQ, left, right)


def neq(left: StagedValue, right: Any) -> CompareCondition:
    return _compare(CompareOp.NEQ, left, right)


def gt(left: StagedValue, right: Any) -> CompareCondition:
    return _compare(CompareOp.GT, left, right)


def gte(left: StagedValue, right: Any) -> CompareCondition:
    return _compare(CompareOp.GTE, left, right)


def lt(left: StagedValue, right: Any) -> CompareCondition:
    return _compare(CompareOp.LT, left, right)


def lte(left: StagedValue, right: Any) -> CompareCondition:
    return _compare(CompareOp.LTE, left, right)


def shell_test(test: str) -> ShellTestCondition:
    return ShellTestCondition(test=test)
