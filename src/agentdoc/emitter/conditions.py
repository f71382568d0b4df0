"""
Condition Rendering — Condition trees as shell-style assertions.
"""

import json
from typing import Any, Callable

from agentdoc.errors import InternalInvariantError
from agentdoc.ir.conditions import (
    AndCondition,
    CompareCondition,
    LiteralCondition,
    NotCondition,
    OrCondition,
    RefCondition,
    ShellTestCondition,
    as_condition,
)
from agentdoc.staging.values import StagedValue, truthiness
from agentdoc.vocabulary import CompareOp


Resolver = Callable[[StagedValue], str]


OPERATORS: dict[CompareOp, str] = {
    CompareOp.EQ: "==",
    CompareOp.NEQ: "!=",
    CompareOp.GT: ">",
    CompareOp.GTE: ">=",
    CompareOp.LT: "<",
    CompareOp.LTE: "<=",
}


def _operand(value: Any, resolve: Resolver) -> str:
    if isinstance(value, StagedValue):
        return resolve(value)
    return json.dumps(value)


def _grouped(condition: Any, resolve: Resolver) -> str:
    text = render_condition(condition, resolve)
    if isinstance(condition, (LiteralCondition, CompareCondition)):
        return text
    return f"({text})"


def render_condition(condition: Any, resolve: Resolver) -> str:
    """
    Assertion text for `condition`.

    Accepts a bool, a staged value or a condition tree. Staged values
    become truthiness checks on their resolved expression; shell tests
    pass through unchanged.
    """
    try:
        condition = as_condition(condition)
    except TypeError as exc:
        raise InternalInvariantError(str(exc)) from exc

    if isinstance(condition, LiteralCondition):
        return "true" if condition.value else "false"
    if isinstance(condition, RefCondition):
        return truthiness(resolve(condition.value))
    if isinstance(condition, NotCondition):
        return f"!{_grouped(condition.operand, resolve)}"
    if isinstance(condition, AndCondition):
        return " && ".join(_grouped(c, resolve) for c in condition.operands)
    if isinstance(condition, OrCondition):
        return " || ".join(_grouped(c, resolve) for c in condition.operands)
    if isinstance(condition, CompareCondition):
        left = resolve(condition.left)
        right = _operand(condition.right, resolve)
        return f"{left} {OPERATORS[condition.op]} {right}"
    if isinstance(condition, ShellTestCondition):
        return condition.test.strip()
    raise InternalInvariantError(f"unhandled condition {type(condition).__name__}")
