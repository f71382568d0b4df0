"""
IR — Intermediate representation of a compilation unit.

Nodes, condition trees, traversal helpers and the diagnostic
component registry.
"""

from agentdoc.ir.nodes import (
    # Base
    IRNode,
    Content,
    Inline,
    Block,
    # Inline
    TextNode,
    StagedTextNode,
    BoldNode,
    ItalicNode,
    InlineCodeNode,
    LinkNode,
    LineBreakNode,
    # Static blocks
    HeadingNode,
    ParagraphNode,
    ListNode,
    ListItemNode,
    CodeBlockNode,
    BlockquoteNode,
    ThematicBreakNode,
    TableNode,
    XmlBlockNode,
    GroupNode,
    RawNode,
    IndentNode,
    ExecutionReferenceNode,
    StepNode,
    SuccessCriterion,
    SuccessCriteriaNode,
    OfferNextRoute,
    OfferNextNode,
    # Agents and staging
    AgentSpawnNode,
    StatusBranchNode,
    StagedCallNode,
    AssignNode,
    AssignGroupNode,
    # Control flow
    ConditionalNode,
    ElseBranchNode,
    LoopNode,
    BreakNode,
    ReturnNode,
    AskUserOption,
    AskUserNode,
    # Root
    DocumentNode,
    # Traversal
    block_children,
    walk,
    exit_kind,
)
from agentdoc.ir.conditions import (
    Condition,
    RefCondition,
    LiteralCondition,
    NotCondition,
    AndCondition,
    OrCondition,
    CompareCondition,
    ShellTestCondition,
    is_condition,
    as_condition,
    ref,
    not_,
    all_of,
    any_of,
    eq,
    neq,
    gt,
    gte,
    lt,
    lte,
    shell_test,
)
from agentdoc.ir.registry import (
    ComponentInfo,
    classify,
    is_infrastructure,
    is_presentation,
)

__all__ = [
    # Base
    "IRNode",
    "Content",
    "Inline",
    "Block",
    # Inline
    "TextNode",
    "StagedTextNode",
    "BoldNode",
    "ItalicNode",
    "InlineCodeNode",
    "LinkNode",
    "LineBreakNode",
    # Static blocks
    "HeadingNode",
    "ParagraphNode",
    "ListNode",
    "ListItemNode",
    "CodeBlockNode",
    "BlockquoteNode",
    "ThematicBreakNode",
    "TableNode",
    "XmlBlockNode",
    "GroupNode",
    "RawNode",
    "IndentNode",
    "ExecutionReferenceNode",
    "StepNode",
    "SuccessCriterion",
    "SuccessCriteriaNode",
    "OfferNextRoute",
    "OfferNextNode",
    # Agents and staging
    "AgentSpawnNode",
    "StatusBranchNode",
    "StagedCallNode",
    "AssignNode",
    "AssignGroupNode",
    # Control flow
    "ConditionalNode",
    "ElseBranchNode",
    "LoopNode",
    "BreakNode",
    "ReturnNode",
    "AskUserOption",
    "AskUserNode",
    # Root
    "DocumentNode",
    # Traversal
    "block_children",
    "walk",
    "exit_kind",
    # Conditions
    "Condition",
    "RefCondition",
    "LiteralCondition",
    "NotCondition",
    "AndCondition",
    "OrCondition",
    "CompareCondition",
    "ShellTestCondition",
    "is_condition",
    "as_condition",
    "ref",
    "not_",
    "all_of",
    "any_of",
    "eq",
    "neq",
    "gt",
    "gte",
    "lt",
    "lte",
    "shell_test",
    # Classification
    "ComponentInfo",
    "classify",
    "is_infrastructure",
    "is_presentation",
]
